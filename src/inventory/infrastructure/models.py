from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from src.shared.infrastructure.database.base_model import Base


class BloodStockModel(Base):
    __tablename__ = "blood_stock"
    __table_args__ = (
        sa.UniqueConstraint("blood_bank_id", "blood_group", name="uq_blood_stock_bank_group"),
        sa.CheckConstraint("units_available >= 0", name="ck_blood_stock_units_nonnegative"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    blood_bank_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("blood_banks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    blood_group: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    units_available: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("0"))
    updated_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())


class DonationModel(Base):
    __tablename__ = "donations"
    __table_args__ = (
        sa.CheckConstraint("units >= 1", name="ck_donations_units_positive"),
        sa.Index("ix_donations_donor", "donor_type", "donor_id", "donated_at"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    donor_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    donor_type: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    request_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("blood_requests.id", ondelete="SET NULL"), nullable=True
    )
    blood_group: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    units: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("1"))
    source: Mapped[str] = mapped_column(sa.String(20), nullable=False, server_default=sa.text("'blood_request'"))
    appointment_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    donated_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())
