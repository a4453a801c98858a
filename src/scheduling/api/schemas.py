from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SlotTemplateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")
    day_of_week: int = Field(ge=0, le=6, description="0 = Sunday … 6 = Saturday")
    start_time: time
    end_time: time
    max_bookings: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True


class ReplaceDefaultsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    slots: List[SlotTemplateIn]


class SlotTemplateResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)
    id: int
    blood_bank_id: int
    day_of_week: int
    start_time: time
    end_time: time
    max_bookings: int
    is_active: bool


class MaterializeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    start_date: date
    end_date: date


class OneOffSlotRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    slot_date: date
    start_time: time
    end_time: time
    max_bookings: Optional[int] = Field(default=None, ge=1)


class SlotUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    max_bookings: Optional[int] = Field(default=None, ge=1)
    is_available: Optional[bool] = None


class SlotResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)
    id: int
    blood_bank_id: int
    slot_date: date
    start_time: time
    end_time: time
    max_bookings: int
    current_bookings: int
    is_available: bool
    available_slots: int


class BookRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)
    slot_id: int
    notes: Optional[str] = Field(default=None, max_length=1000)


class AppointmentStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)
    status: str = Field(pattern=r"^(pending|confirmed|cancelled|completed)$")


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)
    id: int
    slot_id: int
    blood_bank_id: int
    user_id: int
    user_name: str
    user_email: Optional[str] = None
    user_phone: Optional[str] = None
    blood_group: str
    appointment_date: date
    appointment_time: time
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
