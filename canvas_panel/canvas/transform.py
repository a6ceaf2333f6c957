"""
Coordinate Transform
====================

Maps a widget from one zone's frame into another's. The scale factor is
driven by the width ratio alone; height ratios are ignored.
"""

from ..models.widget_models import BoundingBox, Point, Widget


def scale_factor(source: BoundingBox, target: BoundingBox) -> float:
    return target.width / source.width


def transform(widget: Widget, source: BoundingBox, target: BoundingBox) -> Widget:
    """Return a deep copy of the widget positioned and scaled into the target zone."""
    factor = scale_factor(source, target)
    moved = widget.model_copy(deep=True)
    if moved.location is not None:
        moved.location = Point(
            x=target.x + (moved.location.x - source.x) * factor,
            y=target.y + (moved.location.y - source.y) * factor
        )
    moved.scale = (widget.scale or 1) * factor
    return moved
