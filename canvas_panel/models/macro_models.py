"""
Macro Models for Canvas Panel
=============================

Request/response bodies for the macro endpoints, deletion records, and
bulk mutation results.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from .widget_models import BoundingBox


class MacroResult(BaseModel):
    """Standard macro response."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    count: int = 0
    record_id: Optional[str] = Field(default=None, alias="recordId")
    unresolved: List[str] = Field(default_factory=list)


class MutationResult(BaseModel):
    """Outcome of one bulk mutation."""
    processed: int = 0
    failed: List[str] = Field(default_factory=list)
    unresolved: List[str] = Field(default_factory=list)
    # oldId -> newId for create-type operations
    id_map: Dict[str, str] = Field(default_factory=dict)
    sweeps: int = 0

    @property
    def complete(self) -> bool:
        return not self.failed and not self.unresolved


class DeletionRecord(BaseModel):
    """Snapshot of one delete macro invocation."""
    model_config = ConfigDict(populate_by_name=True)

    record_id: str = Field(alias="recordId")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())
    zone_id: Optional[str] = Field(default=None, alias="zoneId")
    zone_bounding_box: BoundingBox = Field(alias="zoneBoundingBox")
    widgets: List[Dict[str, Any]] = Field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class RecordSummary(BaseModel):
    """Count and per-type breakdown of a deletion record."""
    count: int
    types: Dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request bodies
#
# Fields are optional at the schema level so that missing input is reported
# by the macro layer as a 400 with a readable message.
# ---------------------------------------------------------------------------

class ZoneTransferRequest(BaseModel):
    """Move or copy everything in one zone into another."""
    sourceZoneId: Optional[str] = None
    targetZoneId: Optional[str] = None


class ZoneRequest(BaseModel):
    """Any macro that acts on a single zone."""
    zoneId: Optional[str] = None


class GroupColorRequest(ZoneRequest):
    tolerance: Optional[float] = None


class PinRequest(ZoneRequest):
    pinned: Optional[bool] = None


class UndeleteRequest(BaseModel):
    recordId: Optional[str] = None
    targetZoneId: Optional[str] = None


class ImportRequest(BaseModel):
    """Recreate an exported widget set."""
    widgets: Optional[List[Dict[str, Any]]] = None
    zoneBoundingBox: Optional[BoundingBox] = None
    targetZoneId: Optional[str] = None


class CreateZonesRequest(BaseModel):
    gridSize: Optional[int] = None
    gridPattern: Optional[str] = "Z"


class SubZoneRequest(BaseModel):
    subZoneArray: Optional[str] = None
