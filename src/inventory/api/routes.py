from __future__ import annotations

from fastapi import APIRouter, Depends

from src.dependencies import get_current_actor, get_stock_ledger, require_bank
from src.inventory.api.schemas import (
    StockAdjustRequest,
    StockLevelResponse,
    StockSetRequest,
    StockSummaryResponse,
    StockUnitsResponse,
)
from src.inventory.application.services.stock_ledger import StockLedger
from src.shared.domain.actor import Actor
from src.shared.domain.blood_group import BloodGroup

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


@router.get("/{bank_id}/stock", response_model=StockSummaryResponse)
async def get_stock(bank_id: int, ledger: StockLedger = Depends(get_stock_ledger)):
    levels = await ledger.levels(bank_id)
    return StockSummaryResponse(
        blood_bank_id=bank_id,
        total_units=sum(s.units_available for s in levels),
        levels=[
            StockLevelResponse(blood_group=s.blood_group.value, units_available=s.units_available, updated_at=s.updated_at)
            for s in levels
        ],
    )


@router.put("/{bank_id}/stock", response_model=StockUnitsResponse)
async def set_stock(
    bank_id: int,
    payload: StockSetRequest,
    actor: Actor = Depends(get_current_actor),
    ledger: StockLedger = Depends(get_stock_ledger),
):
    require_bank(actor, bank_id)
    units = await ledger.set(bank_id, payload.blood_group, payload.units)
    return StockUnitsResponse(
        blood_bank_id=bank_id,
        blood_group=BloodGroup.parse(payload.blood_group).value,
        units_available=units,
    )


@router.post("/{bank_id}/stock/adjust", response_model=StockUnitsResponse)
async def adjust_stock(
    bank_id: int,
    payload: StockAdjustRequest,
    actor: Actor = Depends(get_current_actor),
    ledger: StockLedger = Depends(get_stock_ledger),
):
    require_bank(actor, bank_id)
    units = await ledger.adjust(bank_id, payload.blood_group, payload.delta)
    return StockUnitsResponse(
        blood_bank_id=bank_id,
        blood_group=BloodGroup.parse(payload.blood_group).value,
        units_available=units,
    )
