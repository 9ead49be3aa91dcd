from fastapi import APIRouter
from reviewflow.api.v2 import (
    triggers,
    sequences,
    review_requests,
)

api_router = APIRouter()

api_router.include_router(triggers.router, prefix="/triggers", tags=["triggers"])
api_router.include_router(sequences.router, prefix="/sequences", tags=["sequences"])
api_router.include_router(review_requests.router, prefix="/review-requests", tags=["review-requests"])
