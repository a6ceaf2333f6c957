import asyncio
import json

import pytest

from canvas_panel.canvas.progress import ProgressRecorder
from canvas_panel.models.errors import (
    MacroValidationError,
    RecordNotFoundError,
    ZoneGeometryError,
    ZoneNotFoundError,
)
from canvas_panel.services.canvas_client import CanvasAPIError
from canvas_panel.models.widget_models import BoundingBox


def non_anchor_ids(fake_canvas):
    return sorted(w["id"] for w in fake_canvas.widgets.values() if w["widget_type"] != "Anchor")


class TestMove:

    def test_moves_zone_contents_into_target(self, two_zones, macro_service):
        result = asyncio.run(macro_service.move("zone-a", "zone-b"))
        assert result.success
        assert result.count == 2
        assert two_zones.widgets["n1"]["location"] == {"x": 2050, "y": 50}
        assert two_zones.widgets["n1"]["scale"] == 0.5
        assert two_zones.widgets["n2"]["location"] == {"x": 5000, "y": 5000}
        assert non_anchor_ids(two_zones) == ["c1", "i1", "n1", "n2"]

    def test_missing_ids_fail_before_any_remote_call(self, two_zones, macro_service):
        with pytest.raises(MacroValidationError):
            asyncio.run(macro_service.move("zone-a", None))
        assert two_zones.requests == []

    def test_unknown_zone(self, two_zones, macro_service):
        with pytest.raises(ZoneNotFoundError):
            asyncio.run(macro_service.move("zone-a", "zone-x"))
        assert two_zones.calls("PATCH") == []

    def test_zone_without_geometry(self, two_zones, macro_service):
        two_zones.add("zone-broken", "Anchor", anchor_name="Broken")
        with pytest.raises(ZoneGeometryError):
            asyncio.run(macro_service.move("zone-broken", "zone-b"))

    def test_listing_failure_aborts(self, two_zones, macro_service):
        two_zones.flaky = 3
        with pytest.raises(CanvasAPIError):
            asyncio.run(macro_service.move("zone-a", "zone-b"))


class TestCopy:

    def test_copies_with_remapped_links(self, two_zones, macro_service):
        result = asyncio.run(macro_service.copy("zone-a", "zone-b"))
        assert result.count == 3
        assert result.unresolved == []
        new_ids = [w for w in two_zones.widgets if w.startswith("new-")]
        assert len(new_ids) == 3
        links = [two_zones.widgets[i] for i in new_ids if two_zones.widgets[i]["widget_type"] == "Connector"]
        (link,) = links
        assert link["src"]["id"] in new_ids and link["dst"]["id"] in new_ids
        assert two_zones.widgets["n1"]["location"] == {"x": 100, "y": 100}

    def test_copy_into_same_zone_keeps_positions(self, two_zones, macro_service):
        asyncio.run(macro_service.copy("zone-a", "zone-a"))
        copies = [w for key, w in two_zones.widgets.items() if key.startswith("new-") and w.get("title") == "Plan"]
        assert copies[0]["location"] == {"x": 100, "y": 100}
        assert copies[0]["scale"] == 1


class TestDeleteUndelete:

    def test_delete_records_snapshot(self, two_zones, macro_service, ledger):
        result = asyncio.run(macro_service.delete("zone-a"))
        assert result.count == 3
        assert result.record_id.startswith("rec-")
        assert non_anchor_ids(two_zones) == ["n2"]

        record = ledger.find(result.record_id)
        assert record.zone_id == "zone-a"
        assert (record.zone_bounding_box.width, record.zone_bounding_box.height) == (1000, 1000)
        assert sorted(w["id"] for w in record.widgets) == ["c1", "i1", "n1"]
        assert record.widgets[0]["background_color"] == "#FFCC00"

    def test_empty_zone_still_gets_a_record(self, two_zones, macro_service, ledger):
        result = asyncio.run(macro_service.delete("zone-b"))
        assert result.count == 0
        assert ledger.find(result.record_id).widgets == []

    def test_undelete_restores_into_target(self, two_zones, macro_service):
        deleted = asyncio.run(macro_service.delete("zone-a"))
        recorder = ProgressRecorder()
        restored = asyncio.run(macro_service.undelete(deleted.record_id, "zone-b", recorder))

        assert restored.count == 3
        notes = [w for w in two_zones.widgets.values() if w.get("title") == "Plan"]
        assert notes[0]["location"] == {"x": 2050, "y": 50}
        images = [w for w in two_zones.widgets.values() if w.get("title") == "Diagram"]
        assert images[0]["parent_id"] == notes[0]["id"]
        assert recorder.stages()[-1] == "done"

    def test_undelete_rewires_connector_to_restored_notes(self, fake_canvas, macro_service, ledger):
        fake_canvas.add_zone("zone-a", 0, 0, 1000, 1000)
        fake_canvas.add_zone("zone-b", 2000, 0, 1000, 1000)
        for key, x in (("a", 100), ("b", 400), ("c", 700)):
            fake_canvas.add(key, "Note", title=key, location={"x": x, "y": 100}, size={"width": 100, "height": 100})
        fake_canvas.add("link", "Connector", src={"id": "a"}, dst={"id": "c"})

        deleted = asyncio.run(macro_service.delete("zone-a"))
        assert len(ledger.find(deleted.record_id).widgets) == 4

        restored = asyncio.run(macro_service.undelete(deleted.record_id, "zone-b"))
        assert restored.count == 4
        (link,) = fake_canvas.of_type("Connector")
        by_title = {w["title"]: w["id"] for w in fake_canvas.of_type("Note")}
        assert link["src"]["id"] == by_title["a"]
        assert link["dst"]["id"] == by_title["c"]
        assert link["src"]["id"].startswith("new-") and link["dst"]["id"].startswith("new-")

    def test_undelete_unknown_record(self, two_zones, macro_service):
        with pytest.raises(RecordNotFoundError):
            asyncio.run(macro_service.undelete("rec-nope", "zone-b"))

    def test_details_and_listing(self, two_zones, macro_service):
        deleted = asyncio.run(macro_service.delete("zone-a"))
        summary = macro_service.deleted_details(deleted.record_id)
        assert summary.count == 3
        assert summary.types == {"Note": 1, "Image": 1, "Connector": 1}
        assert [r["recordId"] for r in macro_service.list_deleted()] == [deleted.record_id]

        asyncio.run(macro_service.prune_deleted(deleted.record_id))
        assert macro_service.list_deleted() == []
        with pytest.raises(RecordNotFoundError):
            asyncio.run(macro_service.prune_deleted(deleted.record_id))


class TestLayoutMacros:

    def test_auto_grid(self, two_zones, macro_service):
        result = asyncio.run(macro_service.auto_grid("zone-a"))
        assert result.count == 2
        assert "1x2" in result.message or "2x1" in result.message
        assert two_zones.calls("PATCH") and "PATCH /connectors/c1" not in two_zones.calls("PATCH")

    def test_auto_grid_on_empty_zone(self, two_zones, macro_service):
        result = asyncio.run(macro_service.auto_grid("zone-b"))
        assert result.count == 0
        assert two_zones.calls("PATCH") == []

    @pytest.mark.parametrize("tolerance", [None, -1, 101])
    def test_group_color_validates_tolerance(self, two_zones, macro_service, tolerance):
        with pytest.raises(MacroValidationError):
            asyncio.run(macro_service.group_by_color("zone-a", tolerance))

    def test_group_color(self, two_zones, macro_service):
        result = asyncio.run(macro_service.group_by_color("zone-a", 10))
        assert result.count == 2
        assert "2 cluster(s)" in result.message

    def test_group_title(self, two_zones, macro_service):
        result = asyncio.run(macro_service.group_by_title("zone-a"))
        assert result.count == 2
        # "Diagram" sorts before "Plan"
        assert two_zones.widgets["i1"]["location"]["x"] < two_zones.widgets["n1"]["location"]["x"]

    def test_pin_and_unpin(self, two_zones, macro_service):
        asyncio.run(macro_service.set_pinned("zone-a", True))
        assert two_zones.widgets["n1"]["pinned"] is True
        assert "pinned" not in two_zones.widgets["n2"]
        result = asyncio.run(macro_service.set_pinned("zone-a", False))
        assert "unpinned" in result.message
        assert two_zones.widgets["i1"]["pinned"] is False


class TestExportImport:

    def test_export_then_import_into_other_zone(self, two_zones, macro_service):
        exported = asyncio.run(macro_service.export_zone("zone-a"))
        assert exported["count"] == 3
        with open(exported["filePath"]) as f:
            payload = json.load(f)
        assert payload["zoneId"] == "zone-a"

        result = asyncio.run(macro_service.import_widgets(
            payload["widgets"], source=BoundingBox(**payload["zoneBoundingBox"]), target_zone_id="zone-b"
        ))
        assert result.count == 3
        notes = [w for k, w in two_zones.widgets.items() if k.startswith("new-") and w.get("title") == "Plan"]
        assert notes[0]["location"] == {"x": 2050, "y": 50}

    def test_import_into_zone_needs_source_frame(self, two_zones, macro_service):
        with pytest.raises(MacroValidationError):
            asyncio.run(macro_service.import_widgets([{"widget_type": "Note"}], target_zone_id="zone-b"))

    def test_import_requires_widgets(self, macro_service):
        with pytest.raises(MacroValidationError):
            asyncio.run(macro_service.import_widgets(None))

    def test_malformed_widget_is_rejected_before_any_call(self, fake_canvas, macro_service):
        with pytest.raises(MacroValidationError) as excinfo:
            asyncio.run(macro_service.import_widgets([{"widget_type": "Note", "location": {"x": 1}}]))
        assert "location.y" in excinfo.value.message
        assert fake_canvas.requests == []


class TestZoneService:

    def test_creates_grid_over_shared_canvas(self, fake_canvas, zone_service):
        fake_canvas.add("bg", "SharedCanvas", size={"width": 3000, "height": 3000})
        result = asyncio.run(zone_service.create_zones(3, "Spiral"))
        assert result.count == 9
        names = [a["anchor_name"] for a in fake_canvas.of_type("Anchor")]
        assert names[0] == "3x3 Zone 1 (Script Made)"
        first = fake_canvas.of_type("Anchor")[0]
        assert first["location"] == {"x": 1000, "y": 1000}

    def test_create_without_shared_canvas(self, fake_canvas, zone_service):
        with pytest.raises(ZoneGeometryError):
            asyncio.run(zone_service.create_zones(3, "Z"))

    def test_sub_zones(self, fake_canvas, zone_service):
        fake_canvas.add_zone("z1", 0, 0, 400, 400, name="2x2 Zone 1 (Script Made)")
        result = asyncio.run(zone_service.create_sub_zones("z1", "2x2"))
        assert result.count == 4
        assert "SubZone 1.4 (Script Made)" in [a["anchor_name"] for a in fake_canvas.of_type("Anchor")]

    def test_deletes_only_script_made_zones(self, fake_canvas, zone_service):
        fake_canvas.add_zone("mine", 0, 0, 10, 10, name="1x1 Zone 1 (Script Made)")
        fake_canvas.add_zone("theirs", 0, 0, 10, 10, name="Workshop")
        result = asyncio.run(zone_service.delete_script_zones())
        assert result.count == 1
        assert [a["id"] for a in fake_canvas.of_type("Anchor")] == ["theirs"]
