"""
Zone Geometry
=============

Bounding boxes for zones (anchors) and the zone-membership rules shared by
every macro.
"""

import logging
from typing import Iterable, List, Optional, Set

from pydantic import ValidationError

from ..models.errors import UnsupportedWidgetTypeError, ZoneGeometryError
from ..models.widget_models import BoundingBox, Widget

logger = logging.getLogger(__name__)


def bounding_box_of(zone: Widget) -> BoundingBox:
    """Project an anchor's location/size/scale into a BoundingBox."""
    if zone.location is None or zone.size is None:
        raise ZoneGeometryError(f"Invalid or missing anchor data for zone ID: {zone.id}")
    try:
        return BoundingBox(
            x=zone.location.x,
            y=zone.location.y,
            width=zone.size.width,
            height=zone.size.height,
            scale=zone.scale or 1.0
        )
    except ValidationError:
        raise ZoneGeometryError(
            f"Zone {zone.id} has non-positive size "
            f"{zone.size.width}x{zone.size.height}"
        )


def is_in_zone(widget: Widget, box: BoundingBox, margin: float = 0.0) -> bool:
    """
    True when the widget's location lies inside the box.

    A positive margin shrinks the box on every side, so widgets sitting on
    an edge shared with a neighbouring zone are excluded.
    """
    if widget.location is None:
        return False
    x, y = widget.location.x, widget.location.y
    within_x = box.x + margin <= x <= box.x + box.width - margin
    within_y = box.y + margin <= y <= box.y + box.height - margin
    return within_x and within_y


def _routable(widget: Widget) -> bool:
    try:
        widget.collection
    except UnsupportedWidgetTypeError:
        logger.warning(
            f"[GEOMETRY] Skipping widget {widget.id} with unsupported type {widget.widget_type!r}"
        )
        return False
    return True


def zone_members(
    widgets: Iterable[Widget],
    box: BoundingBox,
    margin: float = 0.0,
    exclude_id: Optional[str] = None
) -> List[Widget]:
    """
    Positioned widgets inside the zone.

    Connectors and anchors are never tested by location; the zone's own
    anchor is excluded explicitly.
    """
    members = []
    for w in widgets:
        if exclude_id is not None and w.id == exclude_id:
            continue
        if w.is_connector or w.is_anchor:
            continue
        if not is_in_zone(w, box, margin):
            continue
        if _routable(w):
            members.append(w)
    return members


def with_connectors(widgets: Iterable[Widget], members: List[Widget]) -> List[Widget]:
    """Members plus every connector whose two endpoints are both members."""
    member_ids: Set[str] = {w.id for w in members if w.id}
    result = list(members)
    for w in widgets:
        if not w.is_connector:
            continue
        src_id = w.src.id if w.src else None
        dst_id = w.dst.id if w.dst else None
        if src_id and dst_id and src_id in member_ids and dst_id in member_ids:
            logger.debug(f"[GEOMETRY] Including connector {w.id} (both endpoints in zone)")
            result.append(w)
    return result


def collect_zone_widgets(
    widgets: List[Widget],
    box: BoundingBox,
    margin: float = 0.0,
    exclude_id: Optional[str] = None
) -> List[Widget]:
    """Full operation set for copy/move/delete: members and their internal connectors."""
    members = zone_members(widgets, box, margin, exclude_id)
    return with_connectors(widgets, members)
