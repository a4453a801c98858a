from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class NearbyEntityResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: str
    id: int
    name: str
    latitude: float
    longitude: float
    distance_km: float
    address: Optional[str] = None
    blood_group: Optional[str] = None
