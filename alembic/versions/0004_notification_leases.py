from alembic import op
import sqlalchemy as sa

revision = "0004_notification_leases"
down_revision = "0003_notifications_audit_idempotency"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column("notifications", sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True))
    op.create_index("ix_notifications_status_lease", "notifications", ["status", "lease_expires_at"])


def downgrade():
    op.drop_index("ix_notifications_status_lease", table_name="notifications")
    op.drop_column("notifications", "lease_expires_at")
