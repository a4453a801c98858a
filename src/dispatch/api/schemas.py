from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BloodRequestCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)
    blood_group: str = Field(min_length=2, max_length=3)
    units_needed: int = Field(default=1, ge=1)
    address: Optional[str] = Field(default=None, max_length=500)
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class BloodRequestCancel(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)
    reason: Optional[str] = Field(default=None, max_length=1000)


class ActorRef(BaseModel):
    type: str
    id: int


class BloodRequestResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: int
    requester: ActorRef
    blood_group: str
    units_needed: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    status: str
    accepted_by: Optional[ActorRef] = None
    accepted_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    last_cancel_reason: Optional[str] = None
    last_cancelled_by_name: Optional[str] = None
    created_at: Optional[datetime] = None


class BloodRequestCreated(BaseModel):
    message: str = "Blood request created"
    request: BloodRequestResponse
    alerts_sent: int
    warning: Optional[str] = None


class BloodRequestAlertResponse(BaseModel):
    request: BloodRequestResponse
    distance_km: float


class DispatchRecordResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    recipient: ActorRef
    address: str
    status: str
    error: Optional[str] = None
    dispatched_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class DispatchListResponse(BaseModel):
    request_id: int
    dispatches: List[DispatchRecordResponse]


class DonationResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: int
    blood_group: str
    units: int
    source: str
    donated_at: datetime
    request_id: Optional[int] = None
    appointment_id: Optional[int] = None


class ActivityHistoryResponse(BaseModel):
    donations: List[DonationResponse]
    requests: List[BloodRequestResponse]
