from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client

from app.core.errors import ServiceConfigurationError
from app.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VerificationCheckResult:
    status: str
    valid: bool
    sid: str | None = None


class VerificationProviderError(Exception):
    """Twilio rejected or failed a Verify request."""

    def __init__(self, message: str, *, code: int | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class VerifyClient:
    """Thin async wrapper around one Twilio Verify v2 service."""

    def __init__(self, client: Client, service_sid: str) -> None:
        self._client = client
        self.service_sid = service_sid

    def _create_check(self, to: str, code: str):
        return self._client.verify.v2.services(self.service_sid).verification_checks.create(
            to=to,
            code=code,
        )

    async def check(self, *, to: str, code: str) -> VerificationCheckResult:
        try:
            instance = await asyncio.to_thread(self._create_check, to, code)
        except TwilioRestException as exc:
            raise VerificationProviderError(exc.msg, code=exc.code, status=exc.status) from exc
        except TwilioException as exc:
            raise VerificationProviderError(str(exc)) from exc

        return VerificationCheckResult(
            status=(instance.status or "").lower(),
            valid=bool(instance.valid),
            sid=instance.sid,
        )


def _missing_credentials() -> list[str]:
    required = {
        "TWILIO_ACCOUNT_SID": settings.twilio_account_sid,
        "TWILIO_AUTH_TOKEN": settings.twilio_auth_token,
        "TWILIO_VERIFY_SERVICE_SID": settings.twilio_verify_service_sid,
    }
    return [name for name, value in required.items() if not value]


@lru_cache(maxsize=1)
def _build_verify_client(account_sid: str, auth_token: str, service_sid: str) -> VerifyClient:
    logger.info(
        "Twilio Verify client initialised account=%s... service=%s",
        account_sid[:8],
        service_sid,
    )
    return VerifyClient(Client(account_sid, auth_token), service_sid)


def get_verify_client() -> VerifyClient:
    missing = _missing_credentials()
    if missing:
        logger.error("Twilio Verify is not configured; missing settings: %s", ", ".join(missing))
        raise ServiceConfigurationError(
            "Phone verification is not configured. Please contact support.",
            details="Twilio SMS service is not properly configured on the server.",
        )
    return _build_verify_client(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        settings.twilio_verify_service_sid,
    )
