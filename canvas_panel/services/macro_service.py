"""
Macro Service for Canvas Panel
==============================

Runs zone macros end to end: resolve zones, list widgets, select the zone's
contents, hand them to the bulk mutator, and record deletions.
"""

import json
import logging
import os
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from ..canvas import layouts
from ..canvas.geometry import bounding_box_of, collect_zone_widgets, zone_members
from ..canvas.ledger import MAX_DELETED_RECORDS, DeletionLedger
from ..canvas.mutator import DEFAULT_CONCURRENCY, BulkMutator
from ..canvas.progress import ProgressSink, log_progress
from ..models.errors import MacroValidationError, RecordNotFoundError, ZoneNotFoundError
from ..models.macro_models import DeletionRecord, MacroResult, MutationResult, RecordSummary
from ..models.widget_models import BoundingBox, Widget, WidgetPatch
from .canvas_client import CanvasAPIError, CanvasClient

logger = logging.getLogger(__name__)

ZONE_EDGE_MARGIN = float(os.getenv("ZONE_EDGE_MARGIN", "0"))
MACRO_CONCURRENCY = int(os.getenv("MACRO_CONCURRENCY", str(DEFAULT_CONCURRENCY)))
DELETED_RECORDS_FILE = os.getenv("DELETED_RECORDS_FILE", "data/macros-deleted-records.json")
MAX_RECORDS = int(os.getenv("MAX_DELETED_RECORDS", str(MAX_DELETED_RECORDS)))
EXPORT_DIR = os.getenv("EXPORT_DIR", "data/exports")


class MacroConfig(BaseModel):
    """Settings for macro execution."""
    zone_edge_margin: float = ZONE_EDGE_MARGIN
    concurrency: int = MACRO_CONCURRENCY
    deleted_records_file: str = DELETED_RECORDS_FILE
    max_deleted_records: int = MAX_RECORDS
    export_dir: str = EXPORT_DIR


def _require(**fields: Any):
    missing = [name for name, value in fields.items() if value is None or value == ""]
    if missing:
        raise MacroValidationError(f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required.")


def _with_unresolved(message: str, result: MutationResult) -> str:
    extras = []
    if result.failed:
        extras.append(f"{len(result.failed)} failed")
    if result.unresolved:
        extras.append(f"{len(result.unresolved)} unresolved")
    return f"{message} ({', '.join(extras)})" if extras else message


class MacroService:
    """
    Zone macros against one remote canvas.

    Lookup failures (zone missing, listing failed) raise and abort the macro
    before any mutation. Per-widget failures are counted, not raised.
    """

    def __init__(
        self,
        client: CanvasClient,
        ledger: DeletionLedger,
        config: Optional[MacroConfig] = None
    ):
        self.client = client
        self.ledger = ledger
        self.config = config or MacroConfig()
        self.mutator = BulkMutator(client, concurrency=self.config.concurrency)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def zone_box(self, zone_id: str) -> BoundingBox:
        """Fetch an anchor and project its bounding box."""
        try:
            zone = await self.client.get_anchor(zone_id)
        except CanvasAPIError as e:
            if e.status_code == 404:
                raise ZoneNotFoundError(f"Zone {zone_id} not found.")
            raise
        return bounding_box_of(zone)

    async def _zone_contents(self, zone_id: str, with_links: bool = True):
        box = await self.zone_box(zone_id)
        widgets = await self.client.list_widgets()
        if with_links:
            selected = collect_zone_widgets(widgets, box, self.config.zone_edge_margin, exclude_id=zone_id)
        else:
            selected = zone_members(widgets, box, self.config.zone_edge_margin, exclude_id=zone_id)
        logger.info(f"[MACROS] Zone {zone_id}: {len(selected)} of {len(widgets)} widgets selected")
        return box, selected

    # ------------------------------------------------------------------
    # Move / copy
    # ------------------------------------------------------------------

    async def move(
        self,
        source_zone_id: Optional[str],
        target_zone_id: Optional[str],
        progress: ProgressSink = log_progress
    ) -> MacroResult:
        _require(sourceZoneId=source_zone_id, targetZoneId=target_zone_id)
        source, widgets = await self._zone_contents(source_zone_id)
        target = await self.zone_box(target_zone_id)
        result = await self.mutator.move(widgets, source, target, progress)
        return MacroResult(
            message=_with_unresolved(f"{result.processed} widgets moved successfully.", result),
            count=result.processed
        )

    async def copy(
        self,
        source_zone_id: Optional[str],
        target_zone_id: Optional[str],
        progress: ProgressSink = log_progress
    ) -> MacroResult:
        _require(sourceZoneId=source_zone_id, targetZoneId=target_zone_id)
        source, widgets = await self._zone_contents(source_zone_id)
        target = await self.zone_box(target_zone_id)
        result = await self.mutator.copy(widgets, source, target, progress)
        return MacroResult(
            message=_with_unresolved(
                f"{result.processed} widgets copied (connectors only if both endpoints in zone).", result
            ),
            count=result.processed,
            unresolved=result.unresolved
        )

    # ------------------------------------------------------------------
    # Delete / undelete
    # ------------------------------------------------------------------

    async def delete(self, zone_id: Optional[str], progress: ProgressSink = log_progress) -> MacroResult:
        """Snapshot the zone's contents into the ledger, then delete them."""
        _require(zoneId=zone_id)
        box, widgets = await self._zone_contents(zone_id)

        record = DeletionRecord(
            recordId=f"rec-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
            zoneId=zone_id,
            zoneBoundingBox=box,
            widgets=[w.snapshot() for w in widgets]
        )
        await self.ledger.append(record)

        result = await self.mutator.delete(widgets, progress)
        return MacroResult(
            message=_with_unresolved(
                f"{result.processed} widgets removed (connectors only if both endpoints in zone). "
                f"RecordID={record.record_id}",
                result
            ),
            count=result.processed,
            record_id=record.record_id
        )

    async def undelete(
        self,
        record_id: Optional[str],
        target_zone_id: Optional[str],
        progress: ProgressSink = log_progress
    ) -> MacroResult:
        """Recreate a deletion record's widgets, rescaled into the target zone."""
        _require(recordId=record_id, targetZoneId=target_zone_id)
        record = self.ledger.find(record_id)
        if record is None:
            raise RecordNotFoundError("No such deleted record found.")
        target = await self.zone_box(target_zone_id)
        widgets = [Widget(**raw) for raw in record.widgets]
        result = await self.mutator.restore(widgets, record.zone_bounding_box, target, progress)
        return MacroResult(
            message=_with_unresolved(
                f"{result.processed} widgets restored from recordId={record_id}.", result
            ),
            count=result.processed,
            unresolved=result.unresolved
        )

    def list_deleted(self) -> List[Dict[str, str]]:
        return self.ledger.list_records()

    def deleted_details(self, record_id: Optional[str]) -> RecordSummary:
        _require(recordId=record_id)
        record = self.ledger.find(record_id)
        if record is None:
            raise RecordNotFoundError("No such deleted record found.")
        return self.ledger.summarize(record)

    async def prune_deleted(self, record_id: str) -> bool:
        if not await self.ledger.remove(record_id):
            raise RecordNotFoundError("No such deleted record found.")
        return True

    # ------------------------------------------------------------------
    # Layout macros
    # ------------------------------------------------------------------

    async def _apply_layout(self, operation: str, patches: List[WidgetPatch], progress: ProgressSink) -> MutationResult:
        return await self.mutator.patch_many(operation, patches, progress)

    async def auto_grid(self, zone_id: Optional[str], progress: ProgressSink = log_progress) -> MacroResult:
        _require(zoneId=zone_id)
        box, widgets = await self._zone_contents(zone_id, with_links=False)
        if not widgets:
            return MacroResult(message="No widgets found to auto-grid.")
        rows, cols = layouts.determine_grid(len(widgets), box.width, box.height)
        result = await self._apply_layout("auto-grid", layouts.plan_auto_grid(widgets, box), progress)
        return MacroResult(
            message=_with_unresolved(
                f"{result.processed} widgets auto-gridded into a {rows}x{cols} grid within the zone.", result
            ),
            count=result.processed
        )

    async def group_by_color(
        self,
        zone_id: Optional[str],
        tolerance: Optional[float],
        progress: ProgressSink = log_progress
    ) -> MacroResult:
        _require(zoneId=zone_id, tolerance=tolerance)
        if not 0 <= tolerance <= 100:
            raise MacroValidationError("tolerance must be between 0 and 100.")
        box, widgets = await self._zone_contents(zone_id, with_links=False)
        if not widgets:
            return MacroResult(message="No widgets found to group by color.")
        clusters = layouts.cluster_by_color(widgets, tolerance)
        patches = layouts.plan_columns(clusters, box, layouts.COLOR_ITEM_SPACING)
        result = await self._apply_layout("group-color", patches, progress)
        return MacroResult(
            message=_with_unresolved(
                f"{result.processed} widgets grouped by color into {len(clusters)} cluster(s).", result
            ),
            count=result.processed
        )

    async def group_by_title(self, zone_id: Optional[str], progress: ProgressSink = log_progress) -> MacroResult:
        _require(zoneId=zone_id)
        box, widgets = await self._zone_contents(zone_id, with_links=False)
        if not widgets:
            return MacroResult(message="No widgets found in this zone to group by title.")
        groups = layouts.group_by_title(widgets)
        patches = layouts.plan_columns(groups, box, layouts.TITLE_ITEM_SPACING)
        result = await self._apply_layout("group-title", patches, progress)
        return MacroResult(
            message=_with_unresolved(
                f"{result.processed} widgets grouped by title across {len(groups)} column(s).", result
            ),
            count=result.processed
        )

    async def set_pinned(
        self,
        zone_id: Optional[str],
        pinned: Optional[bool],
        progress: ProgressSink = log_progress
    ) -> MacroResult:
        _require(zoneId=zone_id, pinned=pinned)
        _, widgets = await self._zone_contents(zone_id, with_links=False)
        if not widgets:
            return MacroResult(message="No widgets found in the selected zone to update.")
        result = await self._apply_layout("pin" if pinned else "unpin", layouts.plan_pin(widgets, pinned), progress)
        return MacroResult(
            message=_with_unresolved(
                f"{result.processed} widgets {'pinned' if pinned else 'unpinned'} successfully.", result
            ),
            count=result.processed
        )

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    async def export_zone(self, zone_id: Optional[str]) -> Dict[str, Any]:
        """Write the zone's contents to a JSON file that import can replay."""
        _require(zoneId=zone_id)
        box, widgets = await self._zone_contents(zone_id)
        payload = {
            "timestamp": datetime.now().isoformat(),
            "zoneId": zone_id,
            "zoneBoundingBox": box.model_dump(),
            "widgets": [w.snapshot() for w in widgets]
        }
        export_dir = Path(self.config.export_dir)
        export_dir.mkdir(parents=True, exist_ok=True)
        export_path = export_dir / f"export_{int(time.time() * 1000)}.json"
        with open(export_path, "w") as f:
            json.dump(payload, f, indent=2)
        logger.info(f"[MACROS] Exported {len(widgets)} widgets from zone {zone_id} to {export_path}")
        return {
            "success": True,
            "message": f"Export complete. File at {export_path}",
            "filePath": str(export_path),
            "count": len(widgets)
        }

    async def import_widgets(
        self,
        widgets: Optional[List[Dict[str, Any]]],
        source: Optional[BoundingBox] = None,
        target_zone_id: Optional[str] = None,
        progress: ProgressSink = log_progress
    ) -> MacroResult:
        """Recreate exported widgets; rescaled when both frames are known."""
        _require(widgets=widgets)
        try:
            items = [Widget(**raw) for raw in widgets]
        except ValidationError as e:
            error = e.errors()[0]
            location = ".".join(str(part) for part in error.get("loc", ()))
            raise MacroValidationError(f"Invalid widget in import: {location}: {error.get('msg')}")
        if target_zone_id and source is None:
            raise MacroValidationError("zoneBoundingBox is required when targetZoneId is given.")
        target = await self.zone_box(target_zone_id) if target_zone_id else None
        result = await self.mutator.import_widgets(items, source, target, progress)
        return MacroResult(
            message=_with_unresolved(f"{result.processed} widgets imported successfully.", result),
            count=result.processed,
            unresolved=result.unresolved
        )
