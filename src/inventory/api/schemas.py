from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StockLevelResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)
    blood_group: str
    units_available: int
    updated_at: Optional[datetime] = None


class StockSummaryResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    blood_bank_id: int
    total_units: int
    levels: List[StockLevelResponse]


class StockSetRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)
    blood_group: str = Field(min_length=2, max_length=3)
    units: int


class StockAdjustRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)
    blood_group: str = Field(min_length=2, max_length=3)
    delta: int


class StockUnitsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    blood_bank_id: int
    blood_group: str
    units_available: int
