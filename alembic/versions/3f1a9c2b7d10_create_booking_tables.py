"""Create booking tables

Revision ID: 3f1a9c2b7d10
Revises:
Create Date: 2025-02-03 09:12:31.418203

"""

import sqlalchemy as sa

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f1a9c2b7d10"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "external_calendars",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("ical_url", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("TRUE")),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_status", sa.String(20), nullable=True),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("check_in", sa.Date(), nullable=False),
        sa.Column("check_out", sa.Date(), nullable=False),
        sa.Column("guest_name", sa.String(200), nullable=False),
        sa.Column("guest_email", sa.String(320), nullable=False),
        sa.Column("guest_phone", sa.String(50), nullable=True),
        sa.Column("number_of_guests", sa.Integer(), nullable=False),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("number_of_nights", sa.Integer(), nullable=False),
        sa.Column("price_per_night", sa.Numeric(10, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("cleaning_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("service_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False),
        sa.Column("payment_ref", sa.String(255), nullable=True),
        sa.Column("customer_ref", sa.String(255), nullable=True),
        sa.Column("refund_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("check_in < check_out", name="ck_reservations_dates_ordered"),
    )
    op.create_index("ix_reservations_guest_email", "reservations", ["guest_email"])
    op.create_index(
        "ix_reservations_status_dates", "reservations", ["status", "check_in", "check_out"]
    )

    op.create_table(
        "reserved_nights",
        sa.Column("night", sa.Date(), primary_key=True),
        sa.Column(
            "reservation_id",
            sa.String(36),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index("ix_reserved_nights_reservation_id", "reserved_nights", ["reservation_id"])

    op.create_table(
        "manual_blocks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "external_calendar_id",
            sa.Integer(),
            sa.ForeignKey("external_calendars.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("external_event_id", sa.String(512), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("start_date <= end_date", name="ck_manual_blocks_dates_ordered"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_manual_blocks_start_date", "manual_blocks", ["start_date"])
    op.create_index("ix_manual_blocks_end_date", "manual_blocks", ["end_date"])
    op.create_index(
        "ix_manual_blocks_external_calendar_id", "manual_blocks", ["external_calendar_id"]
    )

    op.create_table(
        "rate_overrides",
        sa.Column("date", sa.Date(), primary_key=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("min_nights", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "price IS NOT NULL OR min_nights IS NOT NULL", name="ck_rate_overrides_not_empty"
        ),
    )

    op.create_table(
        "damage_charges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "reservation_id",
            sa.String(36),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payment_ref", sa.String(255), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_damage_charges_reservation_id", "damage_charges", ["reservation_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("damage_charges")
    op.drop_table("rate_overrides")
    op.drop_table("manual_blocks")
    op.drop_table("reserved_nights")
    op.drop_table("reservations")
    op.drop_table("external_calendars")
