from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import MultipleResultsFound, NoResultFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, PersistenceError
from app.models.loan import Loan

logger = logging.getLogger(__name__)


class LoanNotFoundError(NotFoundError):
    code = "loan_not_found"

    def __init__(self, message: str = "Loan not found", **kwargs) -> None:
        super().__init__(message, **kwargs)


def _coerce_uuid(value) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except (TypeError, ValueError, AttributeError):
        return None


async def get_loan(db: AsyncSession, loan_id) -> Loan | None:
    loan_uuid = _coerce_uuid(loan_id)
    if loan_uuid is None:
        return None
    return await db.get(Loan, loan_uuid)


async def get_loan_by_envelope_id(db: AsyncSession, envelope_id: str) -> Loan:
    """Return the single loan linked to ``envelope_id``.

    Raises ``NoResultFound`` / ``MultipleResultsFound`` unless exactly one row matches.
    """
    stmt = select(Loan).where(Loan.docusign_envelope_id == envelope_id)
    result = await db.execute(stmt)
    return result.scalar_one()


async def find_loan_for_envelope(
    db: AsyncSession,
    envelope_id: str,
    fallback_loan_id: str | None = None,
) -> Loan:
    try:
        return await get_loan_by_envelope_id(db, envelope_id)
    except NoResultFound:
        logger.info("No loan linked to envelope %s", envelope_id)
    except MultipleResultsFound:
        logger.error("Multiple loans linked to envelope %s", envelope_id)
    except SQLAlchemyError:
        logger.exception("Loan lookup by envelope %s failed", envelope_id)
        await db.rollback()

    if fallback_loan_id:
        logger.info("Attempting to find loan by custom field loan_id=%s", fallback_loan_id)
        try:
            loan = await get_loan(db, fallback_loan_id)
        except SQLAlchemyError:
            logger.exception("Loan lookup by id %s failed", fallback_loan_id)
            loan = None
        if loan is not None:
            logger.info("Found loan %s using custom field", loan.id)
            return loan

    raise LoanNotFoundError()


async def commit_loan(db: AsyncSession, loan: Loan, *, message: str = "Failed to update loan") -> None:
    db.add(loan)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise PersistenceError(message) from exc
