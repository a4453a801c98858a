"""BloodLink core schema: responder registry, blood requests + dispatch ledger,
appointment templates/slots/bookings, donations and blood stock.

- Registry tables (users, ngos, blood_banks) are owned by the platform; created
  here so a fresh database is usable on its own
- request_dispatches: one row per (request, recipient) → dispatch is idempotent
- request_idempotency_keys: (requester, Idempotency-Key) → created request
- appointment_slots: CHECK 0 <= current_bookings <= max_bookings
- blood_stock: CHECK units_available >= 0
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = "0001_bloodlink_core"
down_revision = None
branch_labels = None
depends_on = None

_TS = sa.DateTime(timezone=True)


def _registry(name: str, *extra: sa.Column, verified_default) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(100), nullable=False, unique=True),
        *extra,
        sa.Column("address", sa.Text),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default=verified_default),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('active', 'suspended')", name=f"ck_{name}_status"),
    )


def upgrade():
    # ---------- Responder registry ----------
    _registry(
        "users",
        sa.Column("phone", sa.String(20)),
        sa.Column("blood_group", sa.String(5)),
        verified_default=sa.false(),
    )
    _registry("ngos", verified_default=sa.true())
    _registry("blood_banks", sa.Column("contact_info", sa.String(100)), verified_default=sa.true())

    # ---------- Blood requests ----------
    op.create_table(
        "blood_requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("requester_id", sa.Integer, nullable=False),
        sa.Column("requester_type", sa.String(20), nullable=False),
        sa.Column("blood_group", sa.String(5), nullable=False),
        sa.Column("units_needed", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("address", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("accepted_by", sa.Integer),
        sa.Column("accepted_by_type", sa.String(20)),
        sa.Column("accepted_at", _TS),
        sa.Column("cancel_reason", sa.Text),
        sa.Column("last_cancel_reason", sa.Text),
        sa.Column("last_cancelled_by_name", sa.String(255)),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("units_needed >= 1", name="ck_blood_requests_units_positive"),
        sa.CheckConstraint(
            "status IN ('active', 'accepted', 'fulfilled', 'cancelled')", name="ck_blood_requests_status"
        ),
        sa.CheckConstraint(
            "(accepted_by IS NULL) = (accepted_by_type IS NULL)", name="ck_blood_requests_acceptor_pair"
        ),
    )
    op.create_index("ix_blood_requests_requester", "blood_requests", ["requester_type", "requester_id", "created_at"])
    op.create_index("ix_blood_requests_status", "blood_requests", ["status"])

    op.create_table(
        "request_dispatches",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "request_id", sa.Integer, sa.ForeignKey("blood_requests.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("recipient_type", sa.String(20), nullable=False),
        sa.Column("recipient_id", sa.Integer, nullable=False),
        sa.Column("address", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("error", sa.Text),
        sa.Column("dispatched_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("delivered_at", _TS),
        sa.UniqueConstraint(
            "request_id", "recipient_type", "recipient_id", name="uq_request_dispatches_request_recipient"
        ),
        sa.CheckConstraint("status IN ('pending', 'delivered', 'failed')", name="ck_request_dispatches_status"),
    )
    op.create_index("ix_request_dispatches_request_id", "request_dispatches", ["request_id"])

    op.create_table(
        "request_idempotency_keys",
        sa.Column("requester_type", sa.String(20), primary_key=True),
        sa.Column("requester_id", sa.Integer, primary_key=True),
        sa.Column("key", sa.String(255), primary_key=True),
        sa.Column(
            "request_id", sa.Integer, sa.ForeignKey("blood_requests.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
    )

    # ---------- Appointments ----------
    op.create_table(
        "default_appointment_slots",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "blood_bank_id", sa.Integer, sa.ForeignKey("blood_banks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("day_of_week", sa.Integer, nullable=False),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("end_time", sa.Time, nullable=False),
        sa.Column("max_bookings", sa.Integer, nullable=False, server_default=sa.text("5")),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("blood_bank_id", "day_of_week", "start_time", name="uq_default_slots_bank_day_start"),
        sa.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_default_slots_day_of_week"),
        sa.CheckConstraint("max_bookings > 0", name="ck_default_slots_max_positive"),
    )
    op.create_index("idx_default_slots_bank", "default_appointment_slots", ["blood_bank_id"])

    op.create_table(
        "appointment_slots",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "blood_bank_id", sa.Integer, sa.ForeignKey("blood_banks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("slot_date", sa.Date, nullable=False),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("end_time", sa.Time, nullable=False),
        sa.Column("max_bookings", sa.Integer, nullable=False, server_default=sa.text("5")),
        sa.Column("current_bookings", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("is_available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("blood_bank_id", "slot_date", "start_time", name="uq_slots_bank_date_start"),
        sa.CheckConstraint(
            "current_bookings >= 0 AND current_bookings <= max_bookings", name="ck_slots_bookings_within_capacity"
        ),
    )
    op.create_index("idx_slots_bank_date", "appointment_slots", ["blood_bank_id", "slot_date"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "slot_id", sa.Integer, sa.ForeignKey("appointment_slots.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "blood_bank_id", sa.Integer, sa.ForeignKey("blood_banks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_name", sa.String(100), nullable=False),
        sa.Column("user_email", sa.String(100)),
        sa.Column("user_phone", sa.String(20)),
        sa.Column("blood_group", sa.String(5), nullable=False),
        sa.Column("appointment_date", sa.Date, nullable=False),
        sa.Column("appointment_time", sa.Time, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')", name="ck_appointments_status"
        ),
    )
    op.create_index("idx_appointments_user", "appointments", ["user_id"])
    op.create_index("idx_appointments_bank", "appointments", ["blood_bank_id"])
    op.create_index("idx_appointments_date", "appointments", ["appointment_date"])
    op.create_index("idx_appointments_status", "appointments", ["status"])
    op.create_index("idx_appointments_slot_user", "appointments", ["slot_id", "user_id"])

    # ---------- Inventory ----------
    op.create_table(
        "donations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("donor_id", sa.Integer, nullable=False),
        sa.Column("donor_type", sa.String(20), nullable=False),
        sa.Column("request_id", sa.Integer, sa.ForeignKey("blood_requests.id", ondelete="SET NULL")),
        sa.Column("blood_group", sa.String(5), nullable=False),
        sa.Column("units", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("source", sa.String(20), nullable=False, server_default=sa.text("'blood_request'")),
        sa.Column("appointment_id", sa.Integer, sa.ForeignKey("appointments.id", ondelete="SET NULL")),
        sa.Column("donated_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("units >= 1", name="ck_donations_units_positive"),
    )
    op.create_index("ix_donations_donor", "donations", ["donor_type", "donor_id", "donated_at"])

    op.create_table(
        "blood_stock",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "blood_bank_id", sa.Integer, sa.ForeignKey("blood_banks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("blood_group", sa.String(5), nullable=False),
        sa.Column("units_available", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("blood_bank_id", "blood_group", name="uq_blood_stock_bank_group"),
        sa.CheckConstraint("units_available >= 0", name="ck_blood_stock_units_nonnegative"),
    )
    op.create_index("ix_blood_stock_blood_bank_id", "blood_stock", ["blood_bank_id"])


def downgrade():
    for name in (
        "blood_stock",
        "donations",
        "appointments",
        "appointment_slots",
        "default_appointment_slots",
        "request_idempotency_keys",
        "request_dispatches",
        "blood_requests",
        "blood_banks",
        "ngos",
        "users",
    ):
        op.drop_table(name)
