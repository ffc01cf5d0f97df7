from __future__ import annotations
"""server/booking_alerts/migrations/versions/0001_initial.py
~~~~~~~~~~~~~~~~~~~~~~~~
Schéma initial : réservations, devices, préférences, outbox (intents + chaînes), logs de livraison.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("restaurant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(32), server_default="pending", nullable=False),
        sa.Column("guest_name", sa.String(255), nullable=True),
        sa.Column("party_size", sa.Integer(), nullable=True),
        sa.Column("booking_time", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )
    op.create_index("ix_bookings_restaurant_status", "bookings", ["restaurant_id", "status"])

    op.create_table(
        "restaurant_devices",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("restaurant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("device_id", sa.String(255), nullable=False),
        sa.Column("push_address", sa.String(255), nullable=False),
        sa.Column("device_name", sa.String(255), nullable=True),
        sa.Column("platform", sa.String(16), nullable=True),
        sa.Column("app_version", sa.String(32), nullable=True),
        sa.Column("enabled", sa.Boolean(), server_default=sa.text("TRUE"), nullable=False),
        sa.Column("last_seen", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("restaurant_id", "device_id", name="uq_restaurant_devices_restaurant_device"),
    )
    op.create_index("ix_restaurant_devices_restaurant_enabled", "restaurant_devices", ["restaurant_id", "enabled"])
    op.create_index("ix_restaurant_devices_push_address", "restaurant_devices", ["push_address"])

    op.create_table(
        "restaurant_notification_preferences",
        sa.Column("restaurant_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("new_bookings", sa.Boolean(), server_default=sa.text("TRUE"), nullable=False),
        sa.Column("booking_cancellations", sa.Boolean(), server_default=sa.text("TRUE"), nullable=False),
        sa.Column("booking_modifications", sa.Boolean(), server_default=sa.text("TRUE"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )

    op.create_table(
        "alert_intents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("restaurant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("parent_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("sound", sa.String(64), server_default="default", nullable=False),
        sa.Column("priority", sa.String(16), server_default="high", nullable=False),
        sa.Column("status", sa.String(16), server_default="queued", nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("max_attempts", sa.Integer(), server_default="3", nullable=False),
        sa.Column("target_addresses", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("scheduled_for", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("sent_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("receipt_ids", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("claim_token", sa.String(64), nullable=True),
        sa.Column("claimed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["parent_id"], ["alert_intents.id"], ondelete="SET NULL"),
        sa.CheckConstraint("attempts <= max_attempts", name="ck_alert_intents_attempts"),
        sa.CheckConstraint("priority IN ('high', 'normal', 'low')", name="ck_alert_intents_priority"),
        sa.CheckConstraint(
            "status IN ('queued', 'sent', 'skipped', 'failed')", name="ck_alert_intents_status"
        ),
    )
    op.create_index("ix_alert_intents_queued", "alert_intents", ["status", "scheduled_for", "created_at"])
    op.create_index("ix_alert_intents_restaurant", "alert_intents", ["restaurant_id", "created_at"])
    op.create_index("ix_alert_intents_booking_kind", "alert_intents", ["booking_id", "kind"])

    op.create_table(
        "alert_repeat_schedules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("intent_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("restaurant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("enabled", sa.Boolean(), server_default=sa.text("TRUE"), nullable=False),
        sa.Column("interval_seconds", sa.Integer(), server_default="30", nullable=False),
        sa.Column("repeat_until", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("last_repeat_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("repeat_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.ForeignKeyConstraint(["intent_id"], ["alert_intents.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_alert_repeat_schedules_live", "alert_repeat_schedules", ["enabled", "repeat_until"])
    op.create_index("ix_alert_repeat_schedules_booking", "alert_repeat_schedules", ["booking_id"])
    # une seule chaîne active par réservation
    op.create_index(
        "uq_alert_repeat_schedules_live_booking",
        "alert_repeat_schedules",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("enabled"),
    )

    op.create_table(
        "alert_delivery_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("intent_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("device_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("push_address", sa.String(255), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("provider_receipt_id", sa.String(255), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("raw_response", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.ForeignKeyConstraint(["intent_id"], ["alert_intents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["device_id"], ["restaurant_devices.id"], ondelete="SET NULL"),
        sa.CheckConstraint("status IN ('ok', 'error')", name="ck_alert_delivery_logs_status"),
    )
    op.create_index("ix_alert_delivery_logs_intent", "alert_delivery_logs", ["intent_id"])


def downgrade() -> None:
    op.drop_table("alert_delivery_logs")
    op.drop_table("alert_repeat_schedules")
    op.drop_table("alert_intents")
    op.drop_table("restaurant_notification_preferences")
    op.drop_table("restaurant_devices")
    op.drop_table("bookings")
