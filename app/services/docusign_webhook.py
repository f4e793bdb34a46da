from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import context
from app.core.errors import ValidationError
from app.core.logging import audit_event
from app.models.loan import Loan
from app.schemas.docusign import (
    EnvelopeEvent,
    EnvelopeEventPayload,
    FlatEnvelopePayload,
)
from app.schemas.loan import EnvelopeStatus, LoanStatus
from app.services import loans

logger = logging.getLogger(__name__)


class WebhookPayloadError(ValidationError):
    code = "invalid_payload"


@dataclass(frozen=True, slots=True)
class StatusTransition:
    docusign_status: str
    loan_status: LoanStatus | None


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    loan_id: str
    docusign_status: str
    loan_status: str
    previous_docusign_status: str | None
    previous_loan_status: str
    processed_at: datetime


_SIGNED_STATUSES = {EnvelopeStatus.COMPLETED, EnvelopeStatus.SIGNED}
_REVIEW_STATUSES = {EnvelopeStatus.DECLINED, EnvelopeStatus.VOIDED}
_IN_FLIGHT_STATUSES = {EnvelopeStatus.SENT, EnvelopeStatus.DELIVERED}


def _has_envelope_id(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value.get("envelopeId"))


def decode_webhook_payload(raw: Any) -> EnvelopeEvent:
    if not isinstance(raw, Mapping):
        raise WebhookPayloadError("Invalid webhook payload format")

    try:
        if _has_envelope_id(raw.get("data")):
            event = EnvelopeEventPayload.model_validate(raw).to_event()
        elif raw.get("envelopeId"):
            event = FlatEnvelopePayload.model_validate(raw).to_event()
        else:
            logger.error("Unknown webhook payload format (keys=%s)", sorted(raw))
            raise WebhookPayloadError("Invalid webhook payload format")
    except PydanticValidationError as exc:
        logger.error("Webhook payload failed validation: %s", exc.errors())
        raise WebhookPayloadError(
            "Invalid webhook payload format",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc

    if not event.envelope_id or not event.status:
        logger.error(
            "Missing required webhook data envelope_id=%r status=%r",
            event.envelope_id,
            event.status,
        )
        raise WebhookPayloadError("Missing envelope ID or status")
    return event


def map_envelope_status(status: str) -> StatusTransition:
    normalized = (status or "").strip().lower()
    try:
        known = EnvelopeStatus(normalized)
    except ValueError:
        known = None

    if known in _SIGNED_STATUSES:
        return StatusTransition(EnvelopeStatus.SIGNED.value, LoanStatus.SIGNED)
    if known in _REVIEW_STATUSES:
        return StatusTransition(normalized, LoanStatus.REVIEW)
    if known in _IN_FLIGHT_STATUSES:
        return StatusTransition(normalized, None)
    logger.info("Unhandled DocuSign status %r; recording without loan status change", normalized)
    return StatusTransition(normalized, None)


async def find_loan_for_event(db: AsyncSession, event: EnvelopeEvent) -> Loan:
    return await loans.find_loan_for_envelope(
        db,
        event.envelope_id,
        fallback_loan_id=event.custom_fields.get("loan_id"),
    )


async def reconcile_envelope_event(
    db: AsyncSession,
    event: EnvelopeEvent,
    *,
    now: datetime | None = None,
) -> ReconcileResult:
    loan = await find_loan_for_event(db, event)
    context.set_loan_id(loan.id)
    now = now or datetime.now(timezone.utc)

    previous_status = loan.status
    previous_docusign_status = loan.docusign_status
    transition = map_envelope_status(event.status)
    new_status = transition.loan_status.value if transition.loan_status else previous_status

    loan.docusign_status = transition.docusign_status
    loan.docusign_status_updated_at = now
    if new_status != previous_status:
        loan.status = new_status
    if event.completed_at is not None:
        loan.docusign_completed_at = event.completed_at

    await loans.commit_loan(db, loan)

    audit_event(
        "loan.docusign_status_updated",
        resource_id=str(loan.id),
        old_value={"docusign_status": previous_docusign_status, "status": previous_status},
        new_value={"docusign_status": transition.docusign_status, "status": new_status},
    )
    logger.info(
        "Webhook processed",
        extra={
            "data": {
                "envelope_id": event.envelope_id,
                "loan_id": str(loan.id),
                "old_docusign_status": previous_docusign_status,
                "new_docusign_status": transition.docusign_status,
                "old_loan_status": previous_status,
                "new_loan_status": new_status,
                "completed_at": event.completed_at,
                "status_changed_at": event.status_changed_at,
            }
        },
    )

    return ReconcileResult(
        loan_id=str(loan.id),
        docusign_status=transition.docusign_status,
        loan_status=new_status,
        previous_docusign_status=previous_docusign_status,
        previous_loan_status=previous_status,
        processed_at=now,
    )
