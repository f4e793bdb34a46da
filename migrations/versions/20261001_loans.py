"""create loans table with e-signature and phone verification columns

Revision ID: 20261001_loans
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261001_loans"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "loans",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
        sa.Column("docusign_envelope_id", sa.String(length=100), nullable=True),
        sa.Column("docusign_status", sa.String(length=50), nullable=True),
        sa.Column("docusign_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("docusign_status_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "phone_verification_status",
            sa.String(length=20),
            nullable=False,
            server_default="unverified",
        ),
        sa.Column("phone_verification_session_id", sa.String(length=100), nullable=True),
        sa.Column("verified_phone_number", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "phone_verification_status IN ('unverified', 'verified', 'failed')",
            name="ck_loans_phone_verification_status",
        ),
    )
    op.create_index("ix_loans_status", "loans", ["status"])
    op.create_index("ix_loans_docusign_envelope_id", "loans", ["docusign_envelope_id"])


def downgrade() -> None:
    op.drop_index("ix_loans_docusign_envelope_id", table_name="loans")
    op.drop_index("ix_loans_status", table_name="loans")
    op.drop_table("loans")
