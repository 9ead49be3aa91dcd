from reviewflow.models.business import Business
from reviewflow.models.customer import Customer
from reviewflow.models.sequence import Sequence, SequenceStep, SequenceEnrollment, SequenceStepExecution
from reviewflow.models.scheduled_job import ScheduledJob
from reviewflow.models.automation_template import AutomationTemplate
from reviewflow.models.review_request import ReviewRequest
from reviewflow.models.message_send import MessageSend
from reviewflow.models.telemetry_event import TelemetryEvent

__all__ = [
    "Business",
    "Customer",
    "Sequence",
    "SequenceStep",
    "SequenceEnrollment",
    "SequenceStepExecution",
    "ScheduledJob",
    "AutomationTemplate",
    "ReviewRequest",
    "MessageSend",
    "TelemetryEvent",
]
