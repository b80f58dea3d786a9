from alembic import op
import sqlalchemy as sa

revision = "0001_users_shops_listings"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("username", sa.String(length=60), nullable=False, unique=True),
        sa.Column("role", sa.String(length=30), nullable=False, server_default="user"),
        *_audit_columns(),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("key_prefix", sa.String(length=16), nullable=False),
        sa.Column("key_hash", sa.Text(), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("rotated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])
    op.create_index("ix_api_keys_key_prefix", "api_keys", ["key_prefix"])

    op.create_table(
        "shops",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.String(length=500), nullable=True),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit_columns(),
    )

    op.create_table(
        "shop_members",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("shop_id", sa.String(), sa.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="editor"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.UniqueConstraint("shop_id", "user_id", name="uq_shop_member"),
        sa.CheckConstraint("role IN ('owner', 'editor')", name="ck_shop_member_role"),
    )
    op.create_index("ix_shop_members_shop_id", "shop_members", ["shop_id"])
    op.create_index("ix_shop_members_user_id", "shop_members", ["user_id"])
    # at most one owner per shop
    op.create_index(
        "uq_shop_members_one_owner",
        "shop_members",
        ["shop_id"],
        unique=True,
        postgresql_where=sa.text("role = 'owner'"),
    )

    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("shop_id", sa.String(), sa.ForeignKey("shops.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("category", sa.String(length=30), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="active"),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("boosted_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("mileage", sa.Integer(), nullable=True),
        sa.Column("top_speed", sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint("price >= 0", name="ck_listing_price_non_negative"),
        sa.CheckConstraint("view_count >= 0", name="ck_listing_view_count_non_negative"),
        sa.CheckConstraint("category IN ('vehicle', 'real_estate', 'item', 'service')", name="ck_listing_category"),
        sa.CheckConstraint("status IN ('active', 'passive', 'out_of_stock', 'sold')", name="ck_listing_status"),
        sa.CheckConstraint(
            "(category = 'vehicle' AND mileage IS NOT NULL AND mileage >= 0"
            " AND top_speed IS NOT NULL AND top_speed >= 0)"
            " OR (category != 'vehicle' AND mileage IS NULL AND top_speed IS NULL)",
            name="ck_listing_vehicle_attributes",
        ),
    )
    op.create_index("ix_listings_owner_id", "listings", ["owner_id"])
    op.create_index("ix_listings_shop_id", "listings", ["shop_id"])
    op.create_index("ix_listings_category_status", "listings", ["category", "status"])
    op.create_index("ix_listings_created_at", "listings", ["created_at"])


def downgrade():
    op.drop_table("listings")
    op.drop_index("uq_shop_members_one_owner", table_name="shop_members")
    op.drop_table("shop_members")
    op.drop_table("shops")
    op.drop_table("api_keys")
    op.drop_table("users")
