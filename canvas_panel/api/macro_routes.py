"""
Macro Routes
============

API routes for zone macros: move, copy, delete/undelete, layout, pinning,
and export/import.
"""

from fastapi import APIRouter, HTTPException
from typing import Optional

from ..models.macro_models import (
    GroupColorRequest,
    ImportRequest,
    MacroResult,
    PinRequest,
    UndeleteRequest,
    ZoneRequest,
    ZoneTransferRequest,
)
from ..services.macro_service import MacroService

router = APIRouter(prefix="/api/macros", tags=["macros"])

# Injected by server
macro_service: Optional[MacroService] = None


def _service() -> MacroService:
    if not macro_service:
        raise HTTPException(status_code=500, detail="Macro service not initialized")
    return macro_service


@router.post("/move", response_model=MacroResult, response_model_exclude_none=True)
async def move_zone(request: ZoneTransferRequest):
    """Move every widget in the source zone into the target zone."""
    return await _service().move(request.sourceZoneId, request.targetZoneId)


@router.post("/copy", response_model=MacroResult, response_model_exclude_none=True)
async def copy_zone(request: ZoneTransferRequest):
    """Copy the source zone's widgets (and their internal connectors) into the target zone."""
    return await _service().copy(request.sourceZoneId, request.targetZoneId)


@router.post("/delete", response_model=MacroResult, response_model_exclude_none=True)
async def delete_zone(request: ZoneRequest):
    """Delete the zone's contents; a deletion record is kept for undelete."""
    return await _service().delete(request.zoneId)


@router.post("/undelete", response_model=MacroResult, response_model_exclude_none=True)
async def undelete_record(request: UndeleteRequest):
    return await _service().undelete(request.recordId, request.targetZoneId)


@router.get("/deleted-records")
async def list_deleted_records():
    return {"success": True, "records": _service().list_deleted()}


@router.get("/deleted-details")
async def deleted_details(recordId: Optional[str] = None):
    summary = _service().deleted_details(recordId)
    return {"success": True, "count": summary.count, "types": summary.types}


@router.delete("/deleted-records/{record_id}")
async def prune_deleted_record(record_id: str):
    await _service().prune_deleted(record_id)
    return {"success": True, "message": f"Record {record_id} removed."}


@router.post("/auto-grid", response_model=MacroResult, response_model_exclude_none=True)
async def auto_grid(request: ZoneRequest):
    return await _service().auto_grid(request.zoneId)


@router.post("/group-color", response_model=MacroResult, response_model_exclude_none=True)
async def group_color(request: GroupColorRequest):
    return await _service().group_by_color(request.zoneId, request.tolerance)


@router.post("/group-title", response_model=MacroResult, response_model_exclude_none=True)
async def group_title(request: ZoneRequest):
    return await _service().group_by_title(request.zoneId)


@router.post("/pin-all", response_model=MacroResult, response_model_exclude_none=True)
async def pin_all(request: ZoneRequest):
    return await _service().set_pinned(request.zoneId, True)


@router.post("/unpin-all", response_model=MacroResult, response_model_exclude_none=True)
async def unpin_all(request: ZoneRequest):
    return await _service().set_pinned(request.zoneId, False)


@router.post("/pin", response_model=MacroResult, response_model_exclude_none=True)
async def set_pinned(request: PinRequest):
    """Pin or unpin every widget in the zone according to `pinned`."""
    return await _service().set_pinned(request.zoneId, request.pinned)


@router.post("/export")
async def export_zone(request: ZoneRequest):
    return await _service().export_zone(request.zoneId)


@router.post("/import", response_model=MacroResult, response_model_exclude_none=True)
async def import_widgets(request: ImportRequest):
    """Recreate an exported widget set, optionally rescaled into a target zone."""
    return await _service().import_widgets(
        request.widgets,
        source=request.zoneBoundingBox,
        target_zone_id=request.targetZoneId
    )
