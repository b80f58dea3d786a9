from alembic import op
import sqlalchemy as sa

revision = "0002_ledger_purchases"
down_revision = "0001_users_shops_listings"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "balances",
        sa.Column("account_id", sa.String(), primary_key=True),
        sa.Column("account_type", sa.String(length=20), nullable=False),
        sa.Column("balance", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("balance >= 0", name="ck_balance_non_negative"),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("entry_type", sa.String(length=30), nullable=False),
        sa.Column("reference", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_ledger_entries_account_id", "ledger_entries", ["account_id"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("buyer_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seller_account_id", sa.String(), nullable=False),
        sa.Column("seller_account_type", sa.String(length=20), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("listing_id", name="uq_purchase_listing"),
    )
    op.create_index("ix_purchases_buyer_id", "purchases", ["buyer_id"])
    op.create_index("ix_purchases_seller_account_id", "purchases", ["seller_account_id"])

    op.create_table(
        "deposit_requests",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("bonus", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("approved_by", sa.String(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_deposit_amount_positive"),
    )
    op.create_index("ix_deposit_requests_user_id", "deposit_requests", ["user_id"])


def downgrade():
    op.drop_table("deposit_requests")
    op.drop_table("purchases")
    op.drop_table("ledger_entries")
    op.drop_table("balances")
