"""Tests for PageDataAssembler and the workspace facade."""

import pytest

from core.page_data import layer_boxes
from core.workspace import AnnotationWorkspace
from models.annotation import DEFAULT_LAYER_ID, Point, Rectangle
from models.settings import EngineSettings


class TestPageData:
    def test_unknown_page_is_empty(self, workspace):
        page = workspace.get_page_data("never-seen.pdf", 4)
        assert page.is_empty
        assert [layer.layer_id for layer in page.layers] == [DEFAULT_LAYER_ID]

    def test_aggregates_page_entities(self, workspace, make_box, connection_store, group_store, document_id):
        a, b = make_box(), make_box(x=200)
        make_box(page_number=2)
        connection_store.add_connection(a.box_id, b.box_id, DEFAULT_LAYER_ID)
        group_store.create_group([a.box_id, b.box_id], "G", DEFAULT_LAYER_ID, 1, document_id)

        page = workspace.get_page_data(document_id, 1)

        assert [box.box_id for box in page.boxes] == [a.box_id, b.box_id]
        assert len(page.connections) == 1
        assert len(page.group_boxes) == 1

    def test_cache_invalidated_by_mutation(self, workspace, make_box, box_store, document_id):
        make_box()
        first = workspace.get_page_data(document_id, 1)
        assert workspace.pages.is_cached(document_id, 1)
        assert workspace.get_page_data(document_id, 1) == first

        make_box(x=300)
        assert not workspace.pages.is_cached(document_id, 1)
        assert len(workspace.get_page_data(document_id, 1).boxes) == 2

    def test_returned_view_is_detached(self, workspace, make_box, document_id):
        """Editing a returned view leaves later reads untouched."""
        make_box()
        page = workspace.get_page_data(document_id, 1)
        page.boxes.append(page.boxes[0])
        page.boxes[0].text = "scribbled"
        again = workspace.get_page_data(document_id, 1)
        assert workspace.pages.is_cached(document_id, 1)
        assert len(again.boxes) == 1
        assert again.boxes[0].text == ""

    def test_other_pages_stay_cached(self, workspace, make_box, document_id):
        workspace.get_page_data(document_id, 2)
        make_box(page_number=1)
        assert workspace.pages.is_cached(document_id, 2)

    def test_layer_change_invalidates_all(self, workspace, layer_registry, document_id):
        workspace.get_page_data(document_id, 1)
        layer_registry.add_layer("New")
        page = workspace.get_page_data(document_id, 1)
        assert len(page.layers) == 2

    def test_visible_page_data(self, workspace, layer_registry, make_box, document_id):
        hidden = layer_registry.add_layer("Hidden").unwrap()
        shown = make_box()
        make_box(layer_id=hidden.layer_id)
        layer_registry.set_visibility(hidden.layer_id, False)

        page = workspace.pages.visible_page_data(document_id, 1)

        assert [box.box_id for box in page.boxes] == [shown.box_id]
        assert [layer.layer_id for layer in page.layers] == [DEFAULT_LAYER_ID]

    def test_layer_boxes(self, workspace, layer_registry, make_box, document_id):
        other = layer_registry.add_layer("Other").unwrap()
        make_box()
        grouped = layer_boxes(workspace.get_page_data(document_id, 1))
        assert len(grouped[DEFAULT_LAYER_ID]) == 1
        assert grouped[other.layer_id] == []

    def test_serialize(self, workspace, make_box, document_id):
        make_box()
        data = workspace.get_page_data(document_id, 1).serialize()
        assert set(data) == {"layers", "boxes", "connections", "groupBoxes"}


class TestWorkspace:
    def test_add_box_uses_active_layer(self, workspace, layer_registry, document_id):
        layer = layer_registry.add_layer("Active").unwrap()
        box = workspace.add_box(document_id, 1, Rectangle(0, 0, 40, 40)).unwrap()
        assert box.layer_id == layer.layer_id

    def test_add_box_requires_live_layer(self, workspace, document_id):
        result = workspace.add_box(document_id, 1, Rectangle(0, 0, 40, 40), layer_id="ghost")
        assert result.is_failure()
        assert workspace.boxes.count() == 0

    def test_move_box_requires_live_layer(self, workspace, make_box):
        box = make_box()
        assert workspace.move_box_to_layer(box.box_id, "ghost").is_failure()

    def test_connection_and_group_require_live_layer(self, workspace, make_box, document_id):
        a, b = make_box(), make_box(x=200)
        assert workspace.add_connection(a.box_id, b.box_id, "ghost").is_failure()
        assert workspace.create_group([a.box_id, b.box_id], "G", "ghost", 1, document_id).is_failure()
        assert workspace.add_connection(a.box_id, b.box_id).is_success()

    def test_settings_shared(self):
        settings = EngineSettings(min_box_size=40)
        workspace = AnnotationWorkspace(settings)
        box = workspace.add_box("doc", 1, Rectangle(0, 0, 100, 100)).unwrap()
        workspace.boxes.resize_box(box.box_id, "e", -90, 0)
        assert workspace.boxes.get_box(box.box_id).width == 40


class TestHitTesting:
    def _connected(self, workspace, document_id):
        a = workspace.add_box(document_id, 1, Rectangle(0, 0, 100, 50)).unwrap()
        b = workspace.add_box(document_id, 1, Rectangle(200, 0, 100, 50)).unwrap()
        connection = workspace.add_connection(a.box_id, b.box_id).unwrap()
        return a, b, connection

    def test_connection_points_use_control_ratio(self, document_id):
        workspace = AnnotationWorkspace(EngineSettings(control_distance_ratio=0.5))
        _, _, connection = self._connected(workspace, document_id)
        points = workspace.connection_points(connection.connection_id)
        assert points.start.to_tuple() == pytest.approx((100, 25))
        assert points.end.to_tuple() == pytest.approx((200, 25))
        for control in points.control_points:
            assert control.to_tuple() == pytest.approx((150, 25))

    def test_connection_points_default_ratio(self, workspace, document_id):
        _, _, connection = self._connected(workspace, document_id)
        first, second = workspace.connection_points(connection.connection_id).control_points
        assert first.x == pytest.approx(100 + 100 / 3)
        assert second.x == pytest.approx(200 - 100 / 3)

    def test_connection_points_missing(self, workspace):
        assert workspace.connection_points("missing") is None

    def test_connection_at_uses_hit_threshold(self, document_id):
        narrow = AnnotationWorkspace(EngineSettings(hit_threshold=5.0))
        wide = AnnotationWorkspace(EngineSettings(hit_threshold=20.0))
        _, _, narrow_connection = self._connected(narrow, document_id)
        _, _, wide_connection = self._connected(wide, document_id)

        assert narrow.connection_at(document_id, 1, Point(150, 28)).connection_id == narrow_connection.connection_id
        assert narrow.connection_at(document_id, 1, Point(150, 40)) is None
        assert wide.connection_at(document_id, 1, Point(150, 40)).connection_id == wide_connection.connection_id

    def test_connection_at_skips_hidden_layers(self, workspace, document_id):
        _, _, connection = self._connected(workspace, document_id)
        workspace.layers.toggle_visibility(DEFAULT_LAYER_ID)
        assert workspace.connection_at(document_id, 1, Point(150, 25)) is None
        found = workspace.connection_at(document_id, 1, Point(150, 25), layer_id=DEFAULT_LAYER_ID)
        assert found.connection_id == connection.connection_id

    def test_box_at_returns_topmost(self, workspace, document_id):
        workspace.add_box(document_id, 1, Rectangle(0, 0, 100, 100))
        top = workspace.add_box(document_id, 1, Rectangle(50, 50, 100, 100)).unwrap()
        assert workspace.box_at(document_id, 1, Point(75, 75)).box_id == top.box_id
        assert workspace.box_at(document_id, 1, Point(500, 500)) is None
