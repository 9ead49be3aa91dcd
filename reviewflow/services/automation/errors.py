"""Errors raised by the automation engine.

These are independent of HTTP; the API layer maps them to problem
responses.
"""


class AutomationError(Exception):
    """Base class for automation engine errors."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class BusinessNotFoundError(AutomationError):
    def __init__(self, business_id):
        super().__init__(f"Business {business_id} not found", business_id=business_id)


class SequenceNotFoundError(AutomationError):
    def __init__(self, sequence_id):
        super().__init__(f"Sequence {sequence_id} not found", sequence_id=sequence_id)


class CustomerNotFoundError(AutomationError):
    def __init__(self, customer_id):
        super().__init__(f"Customer {customer_id} not found", customer_id=customer_id)


class NoStepsConfiguredError(AutomationError):
    def __init__(self, sequence_id):
        super().__init__(f"Sequence {sequence_id} has no steps configured", sequence_id=sequence_id)


class DuplicateEnrollmentError(AutomationError):
    def __init__(self, sequence_id, customer_id, enrollment_id):
        super().__init__(
            f"Customer {customer_id} is already enrolled in sequence {sequence_id}",
            sequence_id=sequence_id,
            customer_id=customer_id,
            enrollment_id=enrollment_id,
        )


class SequenceInactiveError(AutomationError):
    def __init__(self, sequence_id, reason: str):
        super().__init__(f"Sequence {sequence_id} cannot be enrolled: {reason}", sequence_id=sequence_id)


class EnrollmentNotFoundError(AutomationError):
    def __init__(self, enrollment_id):
        super().__init__(f"Enrollment {enrollment_id} not found", enrollment_id=enrollment_id)


class TemplateNotFoundError(AutomationError):
    def __init__(self, channel: str, key: str | None = None):
        detail = f"key '{key}'" if key else f"channel '{channel}'"
        super().__init__(f"No automation template for {detail}", channel=channel, key=key)


class MissingContactInfoError(AutomationError):
    def __init__(self, customer_id, channel: str):
        super().__init__(
            f"Customer {customer_id} has no {channel} contact info",
            customer_id=customer_id,
            channel=channel,
        )
