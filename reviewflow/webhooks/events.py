"""
Inbound webhooks.

Integrations (Zapier, custom scripts, accounting relays) post business
events here with the shared secret in ``X-Webhook-Secret``. Once
authenticated, the event is acknowledged with 200 even if enrollment
partially fails, so the sender does not retry.
"""

import logging

from fastapi import APIRouter, Depends

from reviewflow.api.deps import DbSession, get_tenant, verify_webhook_secret
from reviewflow.schemas.errors import get_error_responses
from reviewflow.schemas.trigger import ProcessEventResponse
from reviewflow.schemas.webhook import AccountingWebhookEvent, AccountingWebhookResponse, WebhookEvent
from reviewflow.services.automation.event_normalizer import normalize_accounting_entity
from reviewflow.services.automation.trigger_processor import process_trigger_event

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_webhook_secret)])


@router.post("/events", response_model=ProcessEventResponse, responses=get_error_responses(401, 404, 422))
async def receive_event(event: WebhookEvent, db: DbSession):
    tenant = await get_tenant(db, event.business_id)
    logger.info(
        f"Webhook event {event.event_type} from {event.source}",
        extra={"business_id": event.business_id},
    )

    result = await process_trigger_event(
        db,
        tenant,
        event.event_type,
        event.customer.model_dump(exclude_none=True),
        trigger_source=event.source,
    )
    await db.commit()
    return ProcessEventResponse(**result.to_dict())


@router.post(
    "/accounting",
    response_model=AccountingWebhookResponse,
    responses=get_error_responses(401, 404, 422),
)
async def receive_accounting_event(event: AccountingWebhookEvent, db: DbSession):
    """
    Entity changes (``Payment``/``Create``, ``Invoice``/``Update`` ...) are
    mapped onto trigger events; changes no sequence can listen for are
    reported under ``ignored``.
    """
    tenant = await get_tenant(db, event.business_id)
    customer_data = event.customer.model_dump(exclude_none=True)
    response = AccountingWebhookResponse()

    for entity in event.entities:
        canonical = normalize_accounting_entity(entity.name, entity.operation)
        if canonical is None:
            logger.info(
                f"Ignoring accounting change {entity.name}/{entity.operation}",
                extra={"business_id": event.business_id, "entity_id": entity.id},
            )
            response.ignored.append(
                {"entity": entity.name, "operation": entity.operation, "id": entity.id}
            )
            continue

        result = await process_trigger_event(db, tenant, canonical, customer_data, trigger_source=event.source)
        response.results.append(ProcessEventResponse(**result.to_dict()))
        response.events_processed += 1

    await db.commit()
    return response
