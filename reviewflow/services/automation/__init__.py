"""
Review Automation Services

Trigger ingestion, sequence enrollment, safety rules and the polling
executor that sends review requests.
"""

from reviewflow.services.automation.tenancy import TenantContext
from reviewflow.services.automation.event_normalizer import normalize, CanonicalEventType
from reviewflow.services.automation.sequence_matcher import find_matching_sequences
from reviewflow.services.automation.enrollment_manager import EnrollmentManager, EnrollmentResult
from reviewflow.services.automation.trigger_processor import process_trigger_event, TriggerResult
from reviewflow.services.automation.safety_rules import SafetyRulesEngine, SafetyDecision
from reviewflow.services.automation.delivery import DeliveryGateway, DeliveryResult, DeliveryStatus
from reviewflow.services.automation.job_executor import AutomationExecutor, ExecutorSummary
from reviewflow.services.automation.review_requests import (
    schedule_review_request,
    enqueue_missed_review_reminders,
)

__all__ = [
    "TenantContext",
    "normalize",
    "CanonicalEventType",
    "find_matching_sequences",
    "EnrollmentManager",
    "EnrollmentResult",
    "process_trigger_event",
    "TriggerResult",
    "SafetyRulesEngine",
    "SafetyDecision",
    "DeliveryGateway",
    "DeliveryResult",
    "DeliveryStatus",
    "AutomationExecutor",
    "ExecutorSummary",
    "schedule_review_request",
    "enqueue_missed_review_reminders",
]
