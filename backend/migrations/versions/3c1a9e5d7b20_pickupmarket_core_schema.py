"""pickup market core schema

Revision ID: 3c1a9e5d7b20
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3c1a9e5d7b20"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    try:
        return sa.inspect(bind).has_table(table_name)
    except Exception:
        return False


def _confirmation_columns() -> list:
    return [
        sa.Column("buyer_confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("vendor_confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("confirmation_window_expires_at", sa.DateTime(), nullable=True),
        sa.Column("pickup_confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("issue_reported_at", sa.DateTime(), nullable=True),
        sa.Column("issue_reported_by", sa.String(length=16), nullable=True),
        sa.Column("issue_description", sa.Text(), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()

    if not _table_exists(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="buyer"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if not _table_exists(bind, "markets"):
        op.create_table(
            "markets",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("vertical_id", sa.String(length=32), nullable=False, server_default="farmers_market"),
            sa.Column("name", sa.String(length=160), nullable=False),
            sa.Column("market_type", sa.String(length=24), nullable=False, server_default="traditional"),
            sa.Column("address", sa.String(length=255), nullable=True),
            sa.Column("city", sa.String(length=80), nullable=True),
            sa.Column("state", sa.String(length=32), nullable=True),
            sa.Column("timezone", sa.String(length=64), nullable=False, server_default="America/Chicago"),
            sa.Column("cutoff_hours", sa.Integer(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_markets_vertical_id", "markets", ["vertical_id"], unique=False)

    if not _table_exists(bind, "market_schedules"):
        op.create_table(
            "market_schedules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("market_id", sa.Integer(), nullable=False),
            sa.Column("day_of_week", sa.Integer(), nullable=False),
            sa.Column("start_time", sa.Time(), nullable=False),
            sa.Column("end_time", sa.Time(), nullable=False),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.ForeignKeyConstraint(["market_id"], ["markets.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_market_schedules_market_id", "market_schedules", ["market_id"], unique=False)

    if not _table_exists(bind, "vendor_profiles"):
        op.create_table(
            "vendor_profiles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("vertical_id", sa.String(length=32), nullable=False, server_default="farmers_market"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("tier", sa.String(length=16), nullable=False, server_default="standard"),
            sa.Column("business_name", sa.String(length=160), nullable=True),
            sa.Column("contact_email", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("website", sa.String(length=255), nullable=True),
            sa.Column("processor_account_id", sa.String(length=120), nullable=True),
            sa.Column("home_market_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["home_market_id"], ["markets.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_vendor_profiles_user_id", "vendor_profiles", ["user_id"], unique=False)
        op.create_index("ix_vendor_profiles_vertical_id", "vendor_profiles", ["vertical_id"], unique=False)

    if not _table_exists(bind, "listings"):
        op.create_table(
            "listings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("vendor_profile_id", sa.Integer(), nullable=False),
            sa.Column("vertical_id", sa.String(length=32), nullable=False, server_default="farmers_market"),
            sa.Column("title", sa.String(length=160), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("quantity", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["vendor_profile_id"], ["vendor_profiles.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_listings_vendor_profile_id", "listings", ["vendor_profile_id"], unique=False)
        op.create_index("ix_listings_vertical_id", "listings", ["vertical_id"], unique=False)
        op.create_index("ix_listings_status", "listings", ["status"], unique=False)

    if not _table_exists(bind, "listing_markets"):
        op.create_table(
            "listing_markets",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("listing_id", sa.Integer(), nullable=False),
            sa.Column("market_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["listing_id"], ["listings.id"]),
            sa.ForeignKeyConstraint(["market_id"], ["markets.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("listing_id", "market_id", name="uq_listing_market"),
        )
        op.create_index("ix_listing_markets_listing_id", "listing_markets", ["listing_id"], unique=False)
        op.create_index("ix_listing_markets_market_id", "listing_markets", ["market_id"], unique=False)

    if not _table_exists(bind, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_number", sa.String(length=32), nullable=False),
            sa.Column("buyer_user_id", sa.Integer(), nullable=False),
            sa.Column("vertical_id", sa.String(length=32), nullable=False, server_default="farmers_market"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("payment_method", sa.String(length=16), nullable=False, server_default="processor"),
            sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("buyer_fee_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("buyer_total_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("vendor_payout_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("platform_fee_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("pricing_snapshot_json", sa.Text(), nullable=True),
            sa.Column("external_payment_confirmed_at", sa.DateTime(), nullable=True),
            sa.Column("external_payment_confirmed_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("cancelled_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["buyer_user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
        op.create_index("ix_orders_buyer_user_id", "orders", ["buyer_user_id"], unique=False)
        op.create_index("ix_orders_vertical_id", "orders", ["vertical_id"], unique=False)
        op.create_index("ix_orders_status", "orders", ["status"], unique=False)

    if not _table_exists(bind, "order_items"):
        op.create_table(
            "order_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_id", sa.Integer(), nullable=False),
            sa.Column("vendor_profile_id", sa.Integer(), nullable=False),
            sa.Column("listing_id", sa.Integer(), nullable=False),
            sa.Column("market_id", sa.Integer(), nullable=True),
            sa.Column("pickup_date", sa.Date(), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("vendor_payout_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("pickup_snapshot_json", sa.Text(), nullable=True),
            sa.Column("confirmed_at", sa.DateTime(), nullable=True),
            sa.Column("ready_at", sa.DateTime(), nullable=True),
            sa.Column("cancelled_at", sa.DateTime(), nullable=True),
            *_confirmation_columns(),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
            sa.ForeignKeyConstraint(["vendor_profile_id"], ["vendor_profiles.id"]),
            sa.ForeignKeyConstraint(["listing_id"], ["listings.id"]),
            sa.ForeignKeyConstraint(["market_id"], ["markets.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_order_items_order_id", "order_items", ["order_id"], unique=False)
        op.create_index("ix_order_items_vendor_profile_id", "order_items", ["vendor_profile_id"], unique=False)
        op.create_index("ix_order_items_listing_id", "order_items", ["listing_id"], unique=False)
        op.create_index("ix_order_items_market_id", "order_items", ["market_id"], unique=False)
        op.create_index("ix_order_items_status", "order_items", ["status"], unique=False)

    if not _table_exists(bind, "order_events"):
        op.create_table(
            "order_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_id", sa.Integer(), nullable=False),
            sa.Column("order_item_id", sa.Integer(), nullable=True),
            sa.Column("event", sa.String(length=48), nullable=False),
            sa.Column("from_status", sa.String(length=16), nullable=False, server_default=""),
            sa.Column("to_status", sa.String(length=16), nullable=False, server_default=""),
            sa.Column("actor_type", sa.String(length=16), nullable=False, server_default="system"),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("idempotency_key", sa.String(length=160), nullable=False),
            sa.Column("note", sa.String(length=240), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("order_id", "idempotency_key", name="uq_order_event_order_key"),
        )
        op.create_index("ix_order_events_order_id", "order_events", ["order_id"], unique=False)
        op.create_index("ix_order_events_order_item_id", "order_events", ["order_item_id"], unique=False)

    if not _table_exists(bind, "market_box_subscriptions"):
        op.create_table(
            "market_box_subscriptions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("buyer_user_id", sa.Integer(), nullable=False),
            sa.Column("vendor_profile_id", sa.Integer(), nullable=False),
            sa.Column("market_id", sa.Integer(), nullable=True),
            sa.Column("offering_name", sa.String(length=160), nullable=False, server_default="Market Box"),
            sa.Column("term_weeks", sa.Integer(), nullable=False, server_default="4"),
            sa.Column("weeks_completed", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["buyer_user_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["vendor_profile_id"], ["vendor_profiles.id"]),
            sa.ForeignKeyConstraint(["market_id"], ["markets.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_market_box_subscriptions_buyer_user_id", "market_box_subscriptions", ["buyer_user_id"], unique=False)
        op.create_index(
            "ix_market_box_subscriptions_vendor_profile_id", "market_box_subscriptions", ["vendor_profile_id"], unique=False
        )

    if not _table_exists(bind, "market_box_pickups"):
        op.create_table(
            "market_box_pickups",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("subscription_id", sa.Integer(), nullable=False),
            sa.Column("week_number", sa.Integer(), nullable=False),
            sa.Column("scheduled_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="scheduled"),
            sa.Column("ready_at", sa.DateTime(), nullable=True),
            sa.Column("picked_up_at", sa.DateTime(), nullable=True),
            sa.Column("missed_at", sa.DateTime(), nullable=True),
            sa.Column("rescheduled_to", sa.Date(), nullable=True),
            sa.Column("vendor_notes", sa.Text(), nullable=True),
            *_confirmation_columns(),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["subscription_id"], ["market_box_subscriptions.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("subscription_id", "week_number", name="uq_market_box_pickup_week"),
        )
        op.create_index("ix_market_box_pickups_subscription_id", "market_box_pickups", ["subscription_id"], unique=False)
        op.create_index("ix_market_box_pickups_status", "market_box_pickups", ["status"], unique=False)

    if not _table_exists(bind, "vendor_fee_ledger"):
        op.create_table(
            "vendor_fee_ledger",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("vendor_profile_id", sa.Integer(), nullable=False),
            sa.Column("order_id", sa.Integer(), nullable=True),
            sa.Column("amount_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("paid_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("description", sa.String(length=240), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("paid_at", sa.DateTime(), nullable=True),
            sa.Column("settlement_reference", sa.String(length=120), nullable=True),
            sa.ForeignKeyConstraint(["vendor_profile_id"], ["vendor_profiles.id"]),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("vendor_profile_id", "order_id", name="uq_vendor_fee_ledger_vendor_order"),
        )
        op.create_index("ix_vendor_fee_ledger_vendor_profile_id", "vendor_fee_ledger", ["vendor_profile_id"], unique=False)
        op.create_index("ix_vendor_fee_ledger_order_id", "vendor_fee_ledger", ["order_id"], unique=False)
        op.create_index("ix_vendor_fee_ledger_status", "vendor_fee_ledger", ["status"], unique=False)
        op.create_index("ix_vendor_fee_ledger_created_at", "vendor_fee_ledger", ["created_at"], unique=False)

    if not _table_exists(bind, "vendor_payouts"):
        op.create_table(
            "vendor_payouts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_item_id", sa.Integer(), nullable=False),
            sa.Column("vendor_profile_id", sa.Integer(), nullable=False),
            sa.Column("amount_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("fee_deduction_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("transfer_id", sa.String(length=120), nullable=True),
            sa.Column("provider", sa.String(length=32), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="processing"),
            sa.Column("failure_reason", sa.String(length=240), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["order_item_id"], ["order_items.id"]),
            sa.ForeignKeyConstraint(["vendor_profile_id"], ["vendor_profiles.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_vendor_payouts_order_item_id", "vendor_payouts", ["order_item_id"], unique=True)
        op.create_index("ix_vendor_payouts_vendor_profile_id", "vendor_payouts", ["vendor_profile_id"], unique=False)

    if not _table_exists(bind, "notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("notification_type", sa.String(length=48), nullable=False),
            sa.Column("urgency", sa.String(length=16), nullable=False, server_default="standard"),
            sa.Column("channel", sa.String(length=16), nullable=False, server_default="in_app"),
            sa.Column("title", sa.String(length=160), nullable=True),
            sa.Column("message", sa.Text(), nullable=False, server_default=""),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="queued"),
            sa.Column("provider", sa.String(length=32), nullable=True),
            sa.Column("provider_ref", sa.String(length=120), nullable=True),
            sa.Column("recipient", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("sent_at", sa.DateTime(), nullable=True),
            sa.Column("read_at", sa.DateTime(), nullable=True),
            sa.Column("data_json", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
        op.create_index("ix_notifications_notification_type", "notifications", ["notification_type"], unique=False)

    if not _table_exists(bind, "platform_events"):
        op.create_table(
            "platform_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("event_type", sa.String(length=80), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("subject_type", sa.String(length=40), nullable=True),
            sa.Column("subject_id", sa.String(length=64), nullable=True),
            sa.Column("request_id", sa.String(length=80), nullable=True),
            sa.Column("idempotency_key", sa.String(length=180), nullable=True),
            sa.Column("severity", sa.String(length=16), nullable=False, server_default="INFO"),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("idempotency_key"),
        )
        op.create_index("ix_platform_events_created_at", "platform_events", ["created_at"], unique=False)
        op.create_index("ix_platform_events_event_type", "platform_events", ["event_type"], unique=False)
        op.create_index("ix_platform_events_actor_user_id", "platform_events", ["actor_user_id"], unique=False)
        op.create_index("ix_platform_events_subject_type", "platform_events", ["subject_type"], unique=False)
        op.create_index("ix_platform_events_subject_id", "platform_events", ["subject_id"], unique=False)

    if not _table_exists(bind, "idempotency_keys"):
        op.create_table(
            "idempotency_keys",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("scope", sa.String(length=64), nullable=False, server_default=""),
            sa.Column("key", sa.String(length=128), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("request_hash", sa.String(length=64), nullable=False, server_default=""),
            sa.Column("response_json", sa.Text(), nullable=True),
            sa.Column("response_code", sa.Integer(), nullable=False, server_default="200"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),
        )
        op.create_index("ix_idempotency_keys_key", "idempotency_keys", ["key"], unique=False)


def downgrade():
    bind = op.get_bind()
    for table_name in (
        "idempotency_keys",
        "platform_events",
        "notifications",
        "vendor_payouts",
        "vendor_fee_ledger",
        "market_box_pickups",
        "market_box_subscriptions",
        "order_events",
        "order_items",
        "orders",
        "listing_markets",
        "listings",
        "vendor_profiles",
        "market_schedules",
        "markets",
        "users",
    ):
        if _table_exists(bind, table_name):
            op.drop_table(table_name)
