from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.core import context
from app.core.errors import PersistenceError, UpstreamError
from app.core.logging import audit_event
from app.models.loan import Loan
from app.schemas.loan import PhoneVerificationStatus, VerificationCheckStatus
from app.schemas.phone_verification import VerifyCodeRequest
from app.services import loans
from app.utils.twilio_client import VerificationProviderError, VerifyClient

logger = logging.getLogger(__name__)

# Twilio Verify error 60202: max check attempts reached for this verification.
MAX_CHECK_ATTEMPTS_ERROR_CODE = 60202

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True, slots=True)
class VerifyCodeResult:
    success: bool
    status: str
    message: str


def format_phone_number(phone: str) -> str:
    """Best-effort E.164 formatting for North American numbers."""
    cleaned = _NON_DIGITS.sub("", phone)

    if phone.startswith("+") and len(cleaned) == 11:
        return phone
    if len(cleaned) == 10:
        return f"+1{cleaned}"
    if len(cleaned) == 11 and cleaned.startswith("1"):
        return f"+{cleaned}"
    return phone


async def _set_verification_state(
    db: AsyncSession,
    loan: Loan,
    status: PhoneVerificationStatus,
    *,
    phone_number: str | None = None,
) -> None:
    loan_id = loan.id
    previous = loan.phone_verification_status
    loan.phone_verification_status = status.value
    if phone_number is not None:
        loan.verified_phone_number = phone_number
    loan.updated_at = datetime.now(timezone.utc)
    try:
        await loans.commit_loan(db, loan)
    except PersistenceError:
        # The provider verdict stands even if the write does not.
        logger.warning(
            "Failed to persist phone verification status=%s for loan %s",
            status.value,
            loan_id,
            exc_info=True,
        )
        return
    audit_event(
        "loan.phone_verification_updated",
        resource_id=str(loan_id),
        old_value={"phone_verification_status": previous},
        new_value={"phone_verification_status": status.value},
    )


async def verify_code(
    db: AsyncSession,
    verify_client: VerifyClient,
    request: VerifyCodeRequest,
) -> VerifyCodeResult:
    formatted_phone = format_phone_number(request.phone_number)
    logger.info("Verifying code for loan %s (code length %d)", request.loan_id, len(request.code))

    loan = await loans.get_loan(db, request.loan_id)
    if loan is None:
        logger.error("Loan %s not found for phone verification", request.loan_id)
        raise loans.LoanNotFoundError()
    loan_id = loan.id
    context.set_loan_id(loan_id)

    if loan.phone_verification_status == PhoneVerificationStatus.VERIFIED.value:
        logger.info("Phone already verified for loan %s", loan_id)
        return VerifyCodeResult(
            success=True,
            status=VerificationCheckStatus.APPROVED.value,
            message="Phone number already verified",
        )

    try:
        check = await verify_client.check(to=formatted_phone, code=request.code)
    except VerificationProviderError as exc:
        logger.error(
            "Twilio verification check failed code=%s status=%s: %s",
            exc.code,
            exc.status,
            exc.message,
        )
        if exc.code == MAX_CHECK_ATTEMPTS_ERROR_CODE:
            raise UpstreamError(
                "Max check attempts reached. Please request a new code.",
                status_code=400,
            ) from exc
        raise UpstreamError(
            exc.message or "Failed to verify code",
            status_code=exc.status or 500,
        ) from exc

    logger.info("Twilio verification result status=%s valid=%s sid=%s", check.status, check.valid, check.sid)

    if check.status == VerificationCheckStatus.APPROVED.value and check.valid:
        await _set_verification_state(
            db,
            loan,
            PhoneVerificationStatus.VERIFIED,
            phone_number=formatted_phone,
        )
        logger.info("Phone verification successful for loan %s", loan_id)
        return VerifyCodeResult(
            success=True,
            status=VerificationCheckStatus.APPROVED.value,
            message="Phone number verified successfully",
        )

    logger.info("Verification rejected with status=%s", check.status)
    if check.status == VerificationCheckStatus.CANCELED.value:
        await _set_verification_state(db, loan, PhoneVerificationStatus.FAILED)

    return VerifyCodeResult(
        success=False,
        status=check.status,
        message="Invalid verification code",
    )
