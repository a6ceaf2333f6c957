"""
Zone Service for Canvas Panel
=============================

Creates and removes script-made zone anchors on the configured canvas.
"""

import logging
from typing import Any, Dict, List, Optional

from ..canvas.geometry import bounding_box_of
from ..canvas.mutator import BulkMutator
from ..canvas.progress import ProgressSink, log_progress
from ..canvas.zone_builder import is_script_made, parse_sub_zone_array, plan_sub_zones, plan_zone_grid
from ..models.errors import MacroValidationError, ZoneGeometryError, ZoneNotFoundError
from ..models.macro_models import MacroResult
from ..models.widget_models import WidgetType
from .canvas_client import CanvasAPIError, CanvasClient

logger = logging.getLogger(__name__)


class ZoneService:
    """Zone grid administration."""

    def __init__(self, client: CanvasClient, mutator: Optional[BulkMutator] = None):
        self.client = client
        self.mutator = mutator or BulkMutator(client)

    async def list_zones(self) -> List[Dict[str, Any]]:
        anchors = await self.client.list_anchors()
        return [
            {"id": a.id, "anchor_name": a.anchor_name, "location": a.location, "size": a.size}
            for a in anchors
        ]

    async def _create_anchors(self, payloads: List[Dict[str, Any]]) -> int:
        created = 0
        for payload in payloads:
            name = payload["anchor_name"]
            try:
                await self.client.create_widget(WidgetType.ANCHOR, payload)
            except CanvasAPIError as e:
                logger.error(f"[ZONES-ERROR] Creating anchor '{name}' failed: {e.message}")
                continue
            logger.info(f"[ZONES] Created anchor '{name}'")
            created += 1
        return created

    async def create_zones(self, grid_size: Optional[int], pattern: Optional[str] = "Z") -> MacroResult:
        """Tile the SharedCanvas with a grid_size x grid_size set of zones."""
        if grid_size is None:
            raise MacroValidationError("gridSize is required.")

        widgets = await self.client.list_widgets()
        shared = next((w for w in widgets if w.widget_type == WidgetType.SHARED_CANVAS.value), None)
        if shared is None:
            raise ZoneGeometryError("SharedCanvas widget not found.")
        if shared.size is None or shared.size.width <= 0 or shared.size.height <= 0:
            raise ZoneGeometryError("Invalid canvas size in SharedCanvas widget.")

        payloads = plan_zone_grid(grid_size, pattern, shared.size.width, shared.size.height)
        logger.info(
            f"[ZONES] Creating {len(payloads)} zones with '{pattern}' pattern over "
            f"{shared.size.width}x{shared.size.height}"
        )
        created = await self._create_anchors(payloads)
        failed = len(payloads) - created
        return MacroResult(
            message=f"{created} zones created successfully, {failed} failed.",
            count=created
        )

    async def create_sub_zones(self, zone_id: str, sub_zone_array: Optional[str]) -> MacroResult:
        """Split one zone into a cols x rows grid of sub-zones."""
        cols, rows = parse_sub_zone_array(sub_zone_array)
        try:
            zone = await self.client.get_anchor(zone_id)
        except CanvasAPIError as e:
            if e.status_code == 404:
                raise ZoneNotFoundError(f"Zone {zone_id} not found.")
            raise
        bounding_box_of(zone)

        payloads = plan_sub_zones(zone, cols, rows)
        created = await self._create_anchors(payloads)
        failed = len(payloads) - created
        return MacroResult(
            message=f"{created} subzones created successfully, {failed} failed.",
            count=created
        )

    async def delete_script_zones(self, progress: ProgressSink = log_progress) -> MacroResult:
        """Delete every anchor this service created."""
        anchors = [a for a in await self.client.list_anchors() if is_script_made(a)]
        logger.info(f"[ZONES] Found {len(anchors)} script-created anchors to delete")
        if not anchors:
            return MacroResult(message="No script-created zones to delete.")

        result = await self.mutator.delete(anchors, progress)
        return MacroResult(
            message=f"{result.processed} zones deleted successfully, {len(result.failed)} failed.",
            count=result.processed
        )
