import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Loan(Base):
    __tablename__ = "loans"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "phone_verification_status IN ('unverified', 'verified', 'failed')",
            name="ck_loans_phone_verification_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    status = Column(String(30), nullable=False, default="draft", index=True)
    docusign_envelope_id = Column(String(100), nullable=True, index=True)
    docusign_status = Column(String(50), nullable=True)
    docusign_completed_at = Column(DateTime(timezone=True), nullable=True)
    docusign_status_updated_at = Column(DateTime(timezone=True), nullable=True)
    phone_verification_status = Column(String(20), nullable=False, default="unverified")
    phone_verification_session_id = Column(String(100), nullable=True)
    verified_phone_number = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
