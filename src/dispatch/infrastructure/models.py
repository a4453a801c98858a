from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from src.shared.infrastructure.database.base_model import Base


class BloodRequestModel(Base):
    __tablename__ = "blood_requests"
    __table_args__ = (
        sa.CheckConstraint("units_needed >= 1", name="ck_blood_requests_units_positive"),
        sa.CheckConstraint(
            "status IN ('active', 'accepted', 'fulfilled', 'cancelled')",
            name="ck_blood_requests_status",
        ),
        sa.CheckConstraint(
            "(accepted_by IS NULL) = (accepted_by_type IS NULL)",
            name="ck_blood_requests_acceptor_pair",
        ),
        sa.Index("ix_blood_requests_requester", "requester_type", "requester_id", "created_at"),
        sa.Index("ix_blood_requests_status", "status"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    requester_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    requester_type: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    blood_group: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    units_needed: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("1"))
    latitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    longitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    address: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, server_default=sa.text("'active'"))
    accepted_by: Mapped[Optional[int]] = mapped_column(sa.Integer)
    accepted_by_type: Mapped[Optional[str]] = mapped_column(sa.String(20))
    accepted_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    last_cancel_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    last_cancelled_by_name: Mapped[Optional[str]] = mapped_column(sa.String(255))
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())


class RequestDispatchModel(Base):
    __tablename__ = "request_dispatches"
    __table_args__ = (
        sa.UniqueConstraint(
            "request_id", "recipient_type", "recipient_id", name="uq_request_dispatches_request_recipient"
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'delivered', 'failed')",
            name="ck_request_dispatches_status",
        ),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("blood_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_type: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    recipient_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    address: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, server_default=sa.text("'pending'"))
    error: Mapped[Optional[str]] = mapped_column(sa.Text)
    dispatched_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())
    delivered_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)


class RequestIdempotencyModel(Base):
    __tablename__ = "request_idempotency_keys"

    requester_type: Mapped[str] = mapped_column(sa.String(20), primary_key=True)
    requester_id: Mapped[int] = mapped_column(sa.Integer, primary_key=True)
    key: Mapped[str] = mapped_column(sa.String(255), primary_key=True)
    request_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("blood_requests.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())
