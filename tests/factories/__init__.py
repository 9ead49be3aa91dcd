"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation. Factories build
plain dicts that are splatted into the models.
"""

from .business import BusinessFactory
from .customer import CustomerFactory, OptedOutCustomerFactory, EmailOnlyCustomerFactory
from .sequence import SequenceFactory, PausedSequenceFactory, DraftSequenceFactory
from .automation_template import AutomationTemplateFactory

__all__ = [
    "BusinessFactory",
    "CustomerFactory",
    "OptedOutCustomerFactory",
    "EmailOnlyCustomerFactory",
    "SequenceFactory",
    "PausedSequenceFactory",
    "DraftSequenceFactory",
    "AutomationTemplateFactory",
]
