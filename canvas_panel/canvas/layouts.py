"""
Layout Macros
=============

Pure planners that compute new locations/scales for the widgets of a zone.
Each returns a list of WidgetPatch; applying them is the caller's job.

Policies:
- auto-grid: rows/cols chosen to match the zone aspect ratio, 100 unit
  buffer, per-widget scale floored at 0.1
- group-by-color / group-by-title: one column per group, zone width shared
  evenly, uniform per-column scale fitted to width and height
"""

import logging
import math
import re
from typing import Any, Dict, List, Tuple

from ..models.widget_models import BoundingBox, Widget, WidgetPatch

logger = logging.getLogger(__name__)

GRID_BUFFER = 100.0
MIN_SCALE = 0.1
MAX_COLUMN_SCALE = 1.2

COLUMN_BUFFER = 100.0
COLUMN_SPACING = 50.0
COLOR_ITEM_SPACING = 50.0
TITLE_ITEM_SPACING = 25.0

DEFAULT_BACKGROUND = "#FFFFFF"


def _location(x: float, y: float) -> Dict[str, Any]:
    return {"x": x, "y": y}


# ---------------------------------------------------------------------------
# Auto-grid
# ---------------------------------------------------------------------------

def determine_grid(count: int, zone_width: float, zone_height: float) -> Tuple[int, int]:
    """Pick (rows, cols) whose cols/rows ratio is closest to the zone's aspect ratio."""
    aspect_ratio = zone_width / zone_height
    best_rows, best_cols = 1, count
    best_diff = math.inf
    for rows in range(1, count + 1):
        cols = math.ceil(count / rows)
        diff = abs(aspect_ratio - cols / rows)
        if diff < best_diff:
            best_diff = diff
            best_rows, best_cols = rows, cols
    return best_rows, best_cols


def plan_auto_grid(widgets: List[Widget], box: BoundingBox, buffer: float = GRID_BUFFER) -> List[WidgetPatch]:
    """Lay widgets out row-major in a grid that fills the zone."""
    if not widgets:
        return []

    rows, cols = determine_grid(len(widgets), box.width, box.height)
    cell_width = (box.width - buffer * (cols + 1)) / cols
    cell_height = (box.height - buffer * (rows + 1)) / rows
    logger.info(
        f"[LAYOUT] auto-grid: {len(widgets)} widgets -> {rows}x{cols}, "
        f"cell={cell_width:.1f}x{cell_height:.1f}"
    )

    patches = []
    for index, w in enumerate(widgets):
        row, col = divmod(index, cols)
        scale = max(MIN_SCALE, min(cell_height / w.height, cell_width / w.width))
        x = box.x + buffer + col * (cell_width + buffer)
        y = box.y + buffer + row * (cell_height + buffer)
        patches.append(WidgetPatch(widget=w, fields={"location": _location(x, y), "scale": scale}))
    return patches


# ---------------------------------------------------------------------------
# Column layout shared by the grouping macros
# ---------------------------------------------------------------------------

def plan_columns(groups: List[List[Widget]], box: BoundingBox, item_spacing: float) -> List[WidgetPatch]:
    """One column per group, each column scaled uniformly to fit the zone."""
    if not groups:
        return []

    columns = len(groups)
    available_width = box.width - COLUMN_BUFFER * 2 - COLUMN_SPACING * (columns - 1)
    column_width = available_width / columns
    available_height = box.height - COLUMN_BUFFER * 2

    patches = []
    column_x = box.x + COLUMN_BUFFER
    for group in groups:
        widest = max(w.width for w in group)
        stacked = sum(w.height for w in group)
        fit_width = column_width / widest
        fit_height = (available_height - item_spacing * (len(group) - 1)) / stacked
        scale = min(max(min(fit_width, fit_height), MIN_SCALE), MAX_COLUMN_SCALE)

        y = box.y + COLUMN_BUFFER
        for w in group:
            patches.append(WidgetPatch(
                widget=w,
                fields={"location": _location(column_x, y), "scale": scale}
            ))
            y += w.height * scale + item_spacing
        column_x += column_width + COLUMN_SPACING
    return patches


# ---------------------------------------------------------------------------
# Group by color
# ---------------------------------------------------------------------------

def parse_rgb(color: str) -> Tuple[int, int, int]:
    """RGB channels of a #RRGGBB[AA] string; unparseable channels read as 0."""
    channels = []
    for start in (1, 3, 5):
        try:
            channels.append(int(color[start:start + 2], 16))
        except ValueError:
            channels.append(0)
    return channels[0], channels[1], channels[2]


def color_distance(a: str, b: str) -> float:
    r1, g1, b1 = parse_rgb(a)
    r2, g2, b2 = parse_rgb(b)
    return math.sqrt((r1 - r2) ** 2 + (g1 - g2) ** 2 + (b1 - b2) ** 2)


def cluster_by_color(widgets: List[Widget], tolerance: float) -> List[List[Widget]]:
    """
    First-fit clustering by RGB distance.

    A widget joins the first cluster whose first member is within
    255 * tolerance / 100; otherwise it starts a new cluster.
    """
    threshold = 255 * (tolerance / 100.0)
    clusters: List[List[Widget]] = []
    for w in widgets:
        color = w.background_color or DEFAULT_BACKGROUND
        for cluster in clusters:
            representative = cluster[0].background_color or DEFAULT_BACKGROUND
            if color_distance(color, representative) <= threshold:
                cluster.append(w)
                break
        else:
            clusters.append([w])
    logger.info(f"[LAYOUT] group-color: {len(widgets)} widgets -> {len(clusters)} cluster(s)")
    return clusters


# ---------------------------------------------------------------------------
# Group by title
# ---------------------------------------------------------------------------

_DIGITS = re.compile(r"(\d+)")


def natural_key(title: str) -> Tuple:
    """Case-insensitive sort key that orders embedded numbers numerically."""
    parts = []
    for chunk in _DIGITS.split(title.casefold()):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk), ""))
        else:
            parts.append((1, 0, chunk))
    return tuple(parts)


def group_by_title(widgets: List[Widget]) -> List[List[Widget]]:
    """Stable natural sort, then split into runs of equal (case-folded) title."""
    ordered = sorted(widgets, key=lambda w: natural_key(w.title or ""))
    groups: List[List[Widget]] = []
    for w in ordered:
        title = (w.title or "").casefold()
        if groups and (groups[-1][0].title or "").casefold() == title:
            groups[-1].append(w)
        else:
            groups.append([w])
    logger.info(f"[LAYOUT] group-title: {len(widgets)} widgets -> {len(groups)} column(s)")
    return groups


# ---------------------------------------------------------------------------
# Pin / unpin
# ---------------------------------------------------------------------------

def plan_pin(widgets: List[Widget], pinned: bool) -> List[WidgetPatch]:
    return [WidgetPatch(widget=w, fields={"pinned": pinned}) for w in widgets]
