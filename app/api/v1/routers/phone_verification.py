from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.limiter import limiter
from app.core.settings import settings
from app.schemas.phone_verification import VerifyCodeRequest, VerifyCodeResponse
from app.services import phone_verification
from app.utils.twilio_client import VerifyClient

router = APIRouter(prefix="/twilio", tags=["phone-verification"])


@router.post(
    "/verify-code",
    response_model=VerifyCodeResponse,
    summary="Check an SMS one-time code and mark the loan's phone as verified",
)
@limiter.limit(lambda: f"{settings.verify_rate_limit_per_minute}/minute")
async def verify_code(
    request: Request,
    payload: VerifyCodeRequest,
    verify_client: VerifyClient = Depends(deps.get_verification_client),
    db: AsyncSession = Depends(deps.get_db_session),
) -> VerifyCodeResponse:
    result = await phone_verification.verify_code(db, verify_client, payload)
    return VerifyCodeResponse(success=result.success, status=result.status, message=result.message)
