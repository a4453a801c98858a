"""
Responder registry tables.

Owned by the surrounding platform (signup, verification, profiles); this
service only reads them for proximity matching and notification addresses.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from src.shared.infrastructure.database.base_model import Base

_STATUS_CHECK = "status IN ('active', 'suspended')"


class UserModel(Base):
    __tablename__ = "users"
    __table_args__ = (sa.CheckConstraint(_STATUS_CHECK, name="ck_users_status"),)

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(100), nullable=False, unique=True)
    phone: Mapped[Optional[str]] = mapped_column(sa.String(20))
    blood_group: Mapped[Optional[str]] = mapped_column(sa.String(5))
    address: Mapped[Optional[str]] = mapped_column(sa.Text)
    latitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    longitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    is_verified: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, server_default=sa.text("'active'"))
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())


class NgoModel(Base):
    __tablename__ = "ngos"
    __table_args__ = (sa.CheckConstraint(_STATUS_CHECK, name="ck_ngos_status"),)

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(100), nullable=False, unique=True)
    address: Mapped[Optional[str]] = mapped_column(sa.Text)
    latitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    longitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    is_verified: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.true())
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, server_default=sa.text("'active'"))
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())


class BloodBankModel(Base):
    __tablename__ = "blood_banks"
    __table_args__ = (sa.CheckConstraint(_STATUS_CHECK, name="ck_blood_banks_status"),)

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(100), nullable=False, unique=True)
    contact_info: Mapped[Optional[str]] = mapped_column(sa.String(100))
    address: Mapped[Optional[str]] = mapped_column(sa.Text)
    latitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    longitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    is_verified: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.true())
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, server_default=sa.text("'active'"))
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=sa.func.now())
