from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from src.shared.infrastructure.database.base_model import Base


class DefaultAppointmentSlotModel(Base):
    __tablename__ = "default_appointment_slots"
    __table_args__ = (
        sa.UniqueConstraint("blood_bank_id", "day_of_week", "start_time", name="uq_default_slots_bank_day_start"),
        sa.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_default_slots_day_of_week"),
        sa.CheckConstraint("max_bookings > 0", name="ck_default_slots_max_positive"),
        sa.Index("idx_default_slots_bank", "blood_bank_id"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    blood_bank_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("blood_banks.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(sa.Time, nullable=False)
    end_time: Mapped[time] = mapped_column(sa.Time, nullable=False)
    max_bookings: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("5"))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.true())
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())
    updated_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())


class AppointmentSlotModel(Base):
    __tablename__ = "appointment_slots"
    __table_args__ = (
        sa.UniqueConstraint("blood_bank_id", "slot_date", "start_time", name="uq_slots_bank_date_start"),
        sa.CheckConstraint(
            "current_bookings >= 0 AND current_bookings <= max_bookings",
            name="ck_slots_bookings_within_capacity",
        ),
        sa.Index("idx_slots_bank_date", "blood_bank_id", "slot_date"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    blood_bank_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("blood_banks.id", ondelete="CASCADE"), nullable=False
    )
    slot_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    start_time: Mapped[time] = mapped_column(sa.Time, nullable=False)
    end_time: Mapped[time] = mapped_column(sa.Time, nullable=False)
    max_bookings: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("5"))
    current_bookings: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("0"))
    is_available: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.true())
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())
    updated_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())


class AppointmentModel(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_appointments_status",
        ),
        sa.Index("idx_appointments_user", "user_id"),
        sa.Index("idx_appointments_bank", "blood_bank_id"),
        sa.Index("idx_appointments_date", "appointment_date"),
        sa.Index("idx_appointments_status", "status"),
        sa.Index("idx_appointments_slot_user", "slot_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    slot_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("appointment_slots.id", ondelete="CASCADE"), nullable=False
    )
    blood_bank_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("blood_banks.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    user_email: Mapped[Optional[str]] = mapped_column(sa.String(100))
    user_phone: Mapped[Optional[str]] = mapped_column(sa.String(20))
    blood_group: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    appointment_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    appointment_time: Mapped[time] = mapped_column(sa.Time, nullable=False)
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, server_default=sa.text("'pending'"))
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())
    updated_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())
