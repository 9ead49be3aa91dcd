from reviewflow.schemas.trigger import ProcessEventRequest, ProcessEventResponse
from reviewflow.schemas.sequence import (
    EnrollRequest,
    EnrollResponse,
    EnrollmentResponse,
    EnrollmentListResponse,
)
from reviewflow.schemas.review_request import ReviewRequestCreate, ReviewRequestScheduledResponse
from reviewflow.schemas.executor import ExecutorSummaryResponse, MissedReviewRecoveryResponse
from reviewflow.schemas.webhook import WebhookEvent
