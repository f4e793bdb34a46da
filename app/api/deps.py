from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.utils.twilio_client import VerifyClient, get_verify_client


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


def get_verification_client() -> VerifyClient:
    """Twilio Verify client; raises a 503 service error when credentials are missing."""
    return get_verify_client()
