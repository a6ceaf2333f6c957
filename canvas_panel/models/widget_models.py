"""
Widget Models for Canvas Panel
==============================

Models for remote canvas widgets, zone bounding boxes, and the
widget-type to collection routing table.
"""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import UnsupportedWidgetTypeError


class WidgetType(str, Enum):
    """Widget types known to the remote canvas API."""
    NOTE = "Note"
    IMAGE = "Image"
    PDF = "PDF"
    VIDEO = "Video"
    CONNECTOR = "Connector"
    ANCHOR = "Anchor"
    BROWSER = "Browser"
    SHARED_CANVAS = "SharedCanvas"

    @classmethod
    def parse(cls, value: Optional[str]) -> "WidgetType":
        """Match a remote widget_type string, case-insensitively."""
        if value:
            lowered = value.lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        raise UnsupportedWidgetTypeError(f"Unknown widget type: {value!r}")


# Remote sub-collection for each writable widget type.
# SharedCanvas is the canvas background and has no collection of its own.
WIDGET_COLLECTIONS: Dict[WidgetType, Optional[str]] = {
    WidgetType.NOTE: "notes",
    WidgetType.IMAGE: "images",
    WidgetType.PDF: "pdfs",
    WidgetType.VIDEO: "videos",
    WidgetType.CONNECTOR: "connectors",
    WidgetType.ANCHOR: "anchors",
    WidgetType.BROWSER: "browsers",
    WidgetType.SHARED_CANVAS: None,
}


def collection_for(widget_type: WidgetType) -> str:
    """Return the remote collection name for a widget type."""
    collection = WIDGET_COLLECTIONS[widget_type]
    if collection is None:
        raise UnsupportedWidgetTypeError(
            f"Widget type {widget_type.value} has no writable collection"
        )
    return collection


# Fallback dimensions for widgets that report no size
DEFAULT_WIDGET_WIDTH = 300.0
DEFAULT_WIDGET_HEIGHT = 300.0


class Point(BaseModel):
    """Canvas-global coordinates."""
    model_config = ConfigDict(extra="allow")

    x: float
    y: float


class Size(BaseModel):
    """Unscaled widget dimensions."""
    model_config = ConfigDict(extra="allow")

    width: float
    height: float


class Endpoint(BaseModel):
    """One end of a connector; references another widget by id."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None


class Widget(BaseModel):
    """
    A widget record as returned by the remote canvas API.

    Unknown remote fields are preserved so that snapshots taken before a
    delete can be resubmitted without loss.
    """
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    widget_type: Optional[str] = None
    location: Optional[Point] = None
    size: Optional[Size] = None
    scale: Optional[float] = None
    parent_id: Optional[str] = None
    src: Optional[Endpoint] = None
    dst: Optional[Endpoint] = None
    pinned: Optional[bool] = None
    background_color: Optional[str] = None
    title: Optional[str] = None
    text: Optional[str] = None
    auto_text_color: Optional[bool] = None
    text_color: Optional[str] = None
    anchor_name: Optional[str] = None

    @property
    def kind(self) -> WidgetType:
        """Typed widget_type; raises for unknown types."""
        return WidgetType.parse(self.widget_type)

    @property
    def is_connector(self) -> bool:
        return (self.widget_type or "").lower() == "connector"

    @property
    def is_anchor(self) -> bool:
        return (self.widget_type or "").lower() == "anchor"

    @property
    def collection(self) -> str:
        return collection_for(self.kind)

    @property
    def width(self) -> float:
        if self.size and self.size.width:
            return self.size.width
        return DEFAULT_WIDGET_WIDTH

    @property
    def height(self) -> float:
        if self.size and self.size.height:
            return self.size.height
        return DEFAULT_WIDGET_HEIGHT

    def to_payload(self) -> Dict[str, Any]:
        """Fields to submit for a create call (no id, only fields the record carries)."""
        return self.model_dump(exclude_unset=True, exclude={"id"})

    def snapshot(self) -> Dict[str, Any]:
        """Full record as received, for the deletion ledger."""
        return self.model_dump(exclude_unset=True)


class BoundingBox(BaseModel):
    """Rectangular zone frame used as a coordinate system by the macros."""
    x: float
    y: float
    width: float
    height: float
    scale: float = 1.0

    @field_validator("width", "height")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("zone dimensions must be positive")
        return value


class WidgetPatch(BaseModel):
    """A partial update destined for one widget."""
    widget: Widget
    fields: Dict[str, Any] = Field(default_factory=dict)
