import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import ServiceError
from app.core.limiter import limiter
from app.schemas.docusign import WebhookAck
from app.services import docusign_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/docusign", tags=["docusign"])


@router.post(
    "/webhook",
    response_model=WebhookAck,
    response_model_by_alias=True,
    summary="Receive DocuSign Connect envelope status events",
)
@limiter.exempt
async def receive_webhook(
    request: Request,
    db: AsyncSession = Depends(deps.get_db_session),
) -> WebhookAck:
    try:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise docusign_webhook.WebhookPayloadError("Invalid webhook payload format") from exc

        logger.info("DocuSign webhook received")
        logger.debug(
            "DocuSign webhook payload",
            extra={"data": {"payload": payload, "headers": dict(request.headers)}},
        )

        event = docusign_webhook.decode_webhook_payload(payload)
        logger.info(
            "Processing envelope %s status=%s shape=%s",
            event.envelope_id,
            event.status,
            event.shape.value,
        )
        result = await docusign_webhook.reconcile_envelope_event(db, event)
    except ServiceError:
        raise
    except Exception as exc:
        logger.exception("DocuSign webhook processing failed")
        raise ServiceError("Failed to process webhook") from exc

    logger.info(
        "Loan %s updated: DocuSign %s, loan status %s",
        result.loan_id,
        result.docusign_status,
        result.loan_status,
    )
    return WebhookAck(
        loan_id=result.loan_id,
        docusign_status=result.docusign_status,
        loan_status=result.loan_status,
        timestamp=result.processed_at,
    )


@router.get("/webhook", summary="DocuSign webhook URL validation")
@limiter.exempt
async def verify_webhook(request: Request):
    challenge = request.query_params.get("challenge")
    if challenge:
        return PlainTextResponse(challenge, status_code=200)
    return {"message": "DocuSign webhook endpoint"}
