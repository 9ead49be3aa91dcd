"""
Customer test factory.

Generates realistic customer data for testing.
"""

import factory
from faker import Faker

fake = Faker()


class CustomerFactory(factory.Factory):
    """
    Factory for generating Customer test data.

    Usage:
        customer = Customer(business_id=business.id, **CustomerFactory())
        data = CustomerFactory(phone=None)
    """

    class Meta:
        model = dict

    full_name = factory.LazyFunction(fake.name)
    email = factory.LazyFunction(lambda: fake.email().lower())
    phone = factory.LazyFunction(lambda: fake.numerify("+1555#######"))
    external_id = factory.Sequence(lambda n: f"ext-{n + 1}")
    source = "manual"
    status = "active"
    unsubscribed = False
    sms_opted_out = False
    dnc = False
    hard_bounced = False


class EmailOnlyCustomerFactory(CustomerFactory):
    """Customer with no phone number."""

    phone = None


class OptedOutCustomerFactory(CustomerFactory):
    """Customer who opted out of both channels."""

    unsubscribed = True
    sms_opted_out = True
