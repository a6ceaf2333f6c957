"""
Zone Routes
===========

API routes for listing, creating, and removing zone anchors.
"""

from fastapi import APIRouter, HTTPException
from typing import Optional

from ..models.macro_models import CreateZonesRequest, MacroResult, SubZoneRequest
from ..services.zone_service import ZoneService

router = APIRouter(prefix="/api/zones", tags=["zones"])

# Injected by server
zone_service: Optional[ZoneService] = None


def _service() -> ZoneService:
    if not zone_service:
        raise HTTPException(status_code=500, detail="Zone service not initialized")
    return zone_service


@router.get("")
async def list_zones():
    """List every anchor on the canvas."""
    return {"success": True, "zones": await _service().list_zones()}


@router.post("", response_model=MacroResult, response_model_exclude_none=True)
async def create_zones(request: CreateZonesRequest):
    """Tile the canvas with a gridSize x gridSize set of zones."""
    return await _service().create_zones(request.gridSize, request.gridPattern)


@router.post("/{zone_id}/subzones", response_model=MacroResult, response_model_exclude_none=True)
async def create_sub_zones(zone_id: str, request: SubZoneRequest):
    return await _service().create_sub_zones(zone_id, request.subZoneArray)


@router.delete("", response_model=MacroResult, response_model_exclude_none=True)
async def delete_zones():
    """Remove every script-made zone."""
    return await _service().delete_script_zones()
