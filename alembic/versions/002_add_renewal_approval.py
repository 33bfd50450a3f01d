"""Track human approval of renewal payment cycles."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "002_add_renewal_approval"
down_revision = "001_create_subscription_tables"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "payment_cycles",
        sa.Column("renewal_approved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column(
        "payment_cycles",
        sa.Column("renewal_approved_by", sa.String(), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("payment_cycles", "renewal_approved_by")
    op.drop_column("payment_cycles", "renewal_approved_at")
