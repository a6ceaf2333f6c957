"""
Zone Builder
============

Computes anchor payloads for script-made zone grids and sub-zone splits.
"""

import re
from typing import Any, Dict, List, Tuple

from ..models.errors import MacroValidationError
from ..models.widget_models import Widget

SCRIPT_MADE_SUFFIX = "(Script Made)"
VALID_GRID_SIZES = (1, 3, 4, 5)
VALID_PATTERNS = ("Z", "Snake", "Spiral")

Cell = Tuple[int, int]  # (row, col)


def z_order(size: int) -> List[Cell]:
    return [(row, col) for row in range(size) for col in range(size)]


def snake_order(size: int) -> List[Cell]:
    order = []
    for row in range(size):
        cols = range(size) if row % 2 == 0 else reversed(range(size))
        order.extend((row, col) for col in cols)
    return order


def spiral_order(size: int) -> List[Cell]:
    """Cells visited outward from the centre: right, down, left, up with growing legs."""
    row = col = size // 2
    order = [(row, col)]
    step = 1
    while len(order) < size * size:
        for d_row, d_col, legs in ((0, 1, step), (1, 0, step), (0, -1, step + 1), (-1, 0, step + 1)):
            for _ in range(legs):
                row += d_row
                col += d_col
                if 0 <= row < size and 0 <= col < size:
                    order.append((row, col))
        step += 2
    return order


PATTERN_ORDERS = {
    "Z": z_order,
    "Snake": snake_order,
    "Spiral": spiral_order,
}


def plan_zone_grid(grid_size: int, pattern: str, canvas_width: float, canvas_height: float) -> List[Dict[str, Any]]:
    """Anchor payloads tiling the whole canvas, numbered in pattern order."""
    if grid_size not in VALID_GRID_SIZES:
        raise MacroValidationError("Invalid grid size. Choose 1, 3, 4, or 5.")
    pattern = (pattern or "Z").strip()
    if pattern not in PATTERN_ORDERS:
        raise MacroValidationError(f"Invalid grid pattern. Choose one of: {', '.join(VALID_PATTERNS)}")

    zone_width = canvas_width / grid_size
    zone_height = canvas_height / grid_size
    payloads = []
    for number, (row, col) in enumerate(PATTERN_ORDERS[pattern](grid_size), start=1):
        payloads.append({
            "anchor_name": f"{grid_size}x{grid_size} Zone {number} {SCRIPT_MADE_SUFFIX}",
            "location": {"x": col * zone_width, "y": row * zone_height},
            "size": {"width": zone_width, "height": zone_height},
            "pinned": True,
            "scale": 1,
            "depth": 0
        })
    return payloads


def parse_sub_zone_array(value: str) -> Tuple[int, int]:
    """Parse "CxR" into (cols, rows)."""
    match = re.fullmatch(r"\s*(\d+)\s*[xX]\s*(\d+)\s*", value or "")
    if not match:
        raise MacroValidationError("Invalid SubZone Array format.")
    cols, rows = int(match.group(1)), int(match.group(2))
    if cols <= 0 or rows <= 0:
        raise MacroValidationError("Invalid SubZone Array format.")
    return cols, rows


def _zone_number(zone: Widget) -> str:
    match = re.search(r"\s(\d+)\s", zone.anchor_name or "")
    return match.group(1) if match else (zone.id or "0")


def plan_sub_zones(zone: Widget, cols: int, rows: int) -> List[Dict[str, Any]]:
    """Anchor payloads splitting a zone into cols x rows equal cells."""
    width = zone.size.width / cols
    height = zone.size.height / rows
    number = _zone_number(zone)
    payloads = []
    for row in range(rows):
        for col in range(cols):
            payloads.append({
                "anchor_name": f"SubZone {number}.{row * cols + col + 1} {SCRIPT_MADE_SUFFIX}",
                "location": {"x": zone.location.x + col * width, "y": zone.location.y + row * height},
                "size": {"width": width, "height": height},
                "pinned": True,
                "scale": 1,
                "depth": 1
            })
    return payloads


def is_script_made(anchor: Widget) -> bool:
    return bool(anchor.anchor_name and anchor.anchor_name.endswith(SCRIPT_MADE_SUFFIX))
