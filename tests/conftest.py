"""
Shared fixtures: an in-memory canvas served through httpx.MockTransport.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from canvas_panel.canvas.ledger import DeletionLedger
from canvas_panel.models.widget_models import WIDGET_COLLECTIONS
from canvas_panel.services.canvas_client import CanvasClient, CanvasConfig
from canvas_panel.services.macro_service import MacroConfig, MacroService
from canvas_panel.services.zone_service import ZoneService

SERVER = "http://canvas.test"
CANVAS = "c1"
PREFIX = f"/api/v1/canvases/{CANVAS}"

COLLECTION_TYPES = {collection: t.value for t, collection in WIDGET_COLLECTIONS.items() if collection}


class FakeCanvas:
    """
    Minimal stand-in for the remote canvas REST API.

    Knobs:
    - omit_ids: create responses come back without the new id
    - fail_ids: PATCH/DELETE on these ids answer 500
    - fail_titles: POST of a widget with one of these titles answers 500
    - flaky: number of upcoming requests that answer 503 before normal service
    """

    def __init__(self):
        self.widgets: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.omit_ids = False
        self.fail_ids = set()
        self.fail_titles = set()
        self.flaky = 0
        self._next_id = 0

    def add(self, widget_id: str, widget_type: str, **fields) -> Dict[str, Any]:
        widget = {"id": widget_id, "widget_type": widget_type, **fields}
        self.widgets[widget_id] = widget
        return widget

    def add_zone(self, zone_id: str, x: float, y: float, width: float, height: float, name: str = "Zone"):
        return self.add(
            zone_id, "Anchor",
            anchor_name=name,
            location={"x": x, "y": y},
            size={"width": width, "height": height},
            scale=1
        )

    def of_type(self, widget_type: str) -> List[Dict[str, Any]]:
        return [w for w in self.widgets.values() if w["widget_type"] == widget_type]

    def calls(self, method: Optional[str] = None) -> List[str]:
        return [
            f"{r.method} {r.url.path[len(PREFIX):] or '/'}"
            for r in self.requests
            if method is None or r.method == method
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.flaky > 0:
            self.flaky -= 1
            return httpx.Response(503, text="busy")

        rest = request.url.path[len(PREFIX):].strip("/")
        parts = rest.split("/") if rest else []
        method = request.method

        if not parts:
            return httpx.Response(200, json={"id": CANVAS, "name": "Test canvas"})
        if parts == ["widgets"]:
            return httpx.Response(200, json=list(self.widgets.values()))

        widget_type = COLLECTION_TYPES.get(parts[0])
        if widget_type is None:
            return httpx.Response(404, text="no such collection")

        if len(parts) == 1 and method == "GET":
            return httpx.Response(200, json=self.of_type(widget_type))

        if len(parts) == 1 and method == "POST":
            body = json.loads(request.content)
            if body.get("title") in self.fail_titles:
                return httpx.Response(500, text="create failed")
            self._next_id += 1
            widget = {**body, "id": f"new-{self._next_id}", "widget_type": widget_type}
            self.widgets[widget["id"]] = widget
            return httpx.Response(200, json={} if self.omit_ids else widget)

        widget_id = parts[1]
        widget = self.widgets.get(widget_id)
        if widget is None or widget["widget_type"] != widget_type:
            return httpx.Response(404, text="not found")
        if method == "GET":
            return httpx.Response(200, json=widget)
        if widget_id in self.fail_ids:
            return httpx.Response(500, text="write failed")
        if method == "PATCH":
            widget.update(json.loads(request.content))
            return httpx.Response(200, json=widget)
        if method == "DELETE":
            del self.widgets[widget_id]
            return httpx.Response(204)
        return httpx.Response(405)


@pytest.fixture
def fake_canvas():
    return FakeCanvas()


@pytest.fixture
def canvas_client(fake_canvas):
    config = CanvasConfig(server=SERVER, canvas_id=CANVAS, api_key="test-key", retry_delay=0)
    return CanvasClient(config, transport=httpx.MockTransport(fake_canvas.handler))


@pytest.fixture
def ledger(tmp_path):
    return DeletionLedger(records_file=tmp_path / "deleted-records.json")


@pytest.fixture
def macro_service(canvas_client, ledger, tmp_path):
    config = MacroConfig(export_dir=str(tmp_path / "exports"), concurrency=4)
    return MacroService(canvas_client, ledger, config)


@pytest.fixture
def zone_service(canvas_client):
    return ZoneService(canvas_client)


@pytest.fixture
def two_zones(fake_canvas):
    """
    Zone A (0,0 1000x1000) holding a note, a child image and a connector
    between them; zone B (2000,0 500x500) empty; one note outside both.
    """
    fake_canvas.add_zone("zone-a", 0, 0, 1000, 1000, name="Zone A")
    fake_canvas.add_zone("zone-b", 2000, 0, 500, 500, name="Zone B")
    fake_canvas.add(
        "n1", "Note", title="Plan", text="first",
        location={"x": 100, "y": 100}, size={"width": 200, "height": 100}, scale=1,
        background_color="#FFCC00"
    )
    fake_canvas.add(
        "i1", "Image", title="Diagram", parent_id="n1",
        location={"x": 300, "y": 300}, size={"width": 400, "height": 300}, scale=2
    )
    fake_canvas.add("c1", "Connector", src={"id": "n1", "rel_location": {"x": 0, "y": 0}}, dst={"id": "i1"})
    fake_canvas.add(
        "n2", "Note", title="Elsewhere", text="outside",
        location={"x": 5000, "y": 5000}, size={"width": 100, "height": 100}
    )
    return fake_canvas
