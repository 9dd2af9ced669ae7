"""Tests for layer export and import."""

import json

import pytest

from core.error_types import MalformedImportError
from services.export_service import ExportService, export_file_name
from services.import_service import ImportService, parse_layer_export


@pytest.fixture
def export_service(workspace):
    return ExportService(workspace.boxes, workspace.layers, workspace.settings)


@pytest.fixture
def import_service(workspace):
    return ImportService(workspace.boxes, workspace.layers)


def _geometry(boxes):
    return sorted((b.page_number, b.x, b.y, b.width, b.height, b.text) for b in boxes)


class TestExport:
    def test_schema(self, export_service, make_box, document_id):
        make_box(text="first")
        make_box(page_number=3, text="third")

        data = export_service.build_layer_export(document_id, "default", total_pages=4).unwrap()

        assert data["documentName"] == document_id
        assert data["layer"] == {"id": "default", "name": "Default layer", "color": "#000000"}
        assert [page["pageNumber"] for page in data["pages"]] == [1, 2, 3, 4]
        assert data["pages"][1]["boxes"] == []
        box = data["pages"][0]["boxes"][0]
        assert box["pageWidth"] == 800
        assert box["pageHeight"] == 1131
        assert box["layerId"] == "default"
        metadata = data["metadata"]
        assert metadata["totalPages"] == 4
        assert metadata["totalBoxes"] == 2
        assert metadata["defaultPageWidth"] == 800
        assert metadata["defaultPageHeight"] == 1131
        assert "T" in metadata["exportDate"]

    def test_only_requested_layer(self, export_service, layer_registry, make_box, document_id):
        other = layer_registry.add_layer("Other").unwrap()
        make_box()
        make_box(layer_id=other.layer_id)
        data = export_service.build_layer_export(document_id, other.layer_id).unwrap()
        assert data["metadata"]["totalBoxes"] == 1

    def test_default_total_pages(self, export_service, make_box, document_id):
        make_box(page_number=5)
        data = export_service.build_layer_export(document_id, "default").unwrap()
        assert data["metadata"]["totalPages"] == 5

    def test_missing_layer(self, export_service, document_id):
        assert export_service.build_layer_export(document_id, "ghost").is_failure()

    def test_export_layer_is_json(self, export_service, make_box, document_id):
        make_box()
        text = export_service.export_layer(document_id, "default", 1).unwrap()
        assert json.loads(text)["metadata"]["totalBoxes"] == 1

    def test_export_to_directory(self, export_service, make_box, document_id, tmp_path):
        make_box()
        result = export_service.export_layer_to_file(document_id, "default", tmp_path, 1).unwrap()
        assert result.output_path.name == export_file_name(document_id, "Default layer")
        assert result.boxes_exported == 1
        again = export_service.export_layer_to_file(document_id, "default", tmp_path, 1).unwrap()
        assert again.output_path != result.output_path

    def test_export_file_name(self):
        assert export_file_name("a/b.pdf", "Notes") == "a_b.pdf_Notes_boxes.json"


class TestImport:
    def test_round_trip(self, export_service, import_service, layer_registry, box_store, make_box, document_id):
        make_box(x=1, y=2, width=30, height=40, text="alpha")
        make_box(x=5, y=6, width=70, height=80, page_number=2, text="beta")
        payload = export_service.export_layer(document_id, "default", 2).unwrap()
        target = layer_registry.add_layer("Imported").unwrap()

        result = import_service.import_layer(document_id, target.layer_id, payload).unwrap()

        imported = box_store.boxes_for_layer(target.layer_id)
        assert result.boxes_imported == 2
        assert _geometry(imported) == _geometry(box_store.boxes_for_layer("default"))
        assert not {b.box_id for b in imported} & {b.box_id for b in box_store.boxes_for_layer("default")}

    def test_layer_id_rewritten(self, import_service, layer_registry, box_store, document_id):
        target = layer_registry.add_layer("Imported").unwrap()
        payload = {"pages": [{"pageNumber": 1, "boxes": [
            {"layerId": "foreign", "pageNumber": 1, "x": 0, "y": 0, "width": 10, "height": 10},
        ]}]}
        import_service.import_layer(document_id, target.layer_id, payload)
        assert box_store.boxes_for_layer(target.layer_id)[0].layer_id == target.layer_id
        assert box_store.boxes_for_layer("foreign") == []

    @pytest.mark.parametrize("payload", [
        {},
        {"pages": "nope"},
        {"pages": [{"pageNumber": 1}]},
        {"pages": [{"pageNumber": 1, "boxes": None}]},
    ])
    def test_missing_pages_or_boxes_tolerated(self, import_service, payload, document_id):
        result = import_service.import_layer(document_id, "default", payload)
        assert result.unwrap().boxes_imported == 0

    def test_invalid_json(self, import_service, box_store, document_id):
        result = import_service.import_layer(document_id, "default", "{not json")
        assert isinstance(result.get_error(), MalformedImportError)
        assert box_store.count() == 0

    def test_all_or_nothing(self, import_service, box_store, document_id):
        payload = {"pages": [{"pageNumber": 1, "boxes": [
            {"x": 0, "y": 0, "width": 10, "height": 10},
            {"x": "zero", "y": 0, "width": 10, "height": 10},
        ]}]}
        result = import_service.import_layer(document_id, "default", payload)
        assert isinstance(result.get_error(), MalformedImportError)
        assert box_store.count() == 0

    def test_invalid_box_color_rejects_import(self, import_service, box_store, document_id):
        payload = {"pages": [{"pageNumber": 1, "boxes": [
            {"x": 0, "y": 0, "width": 10, "height": 10, "color": "#FF6B6B"},
            {"x": 0, "y": 0, "width": 10, "height": 10, "color": "crimson"},
        ]}]}
        result = import_service.import_layer(document_id, "default", payload)
        assert isinstance(result.get_error(), MalformedImportError)
        assert box_store.count() == 0

    def test_box_page_falls_back_to_page_entry(self):
        specs = parse_layer_export({"pages": [{"pageNumber": 4, "boxes": [
            {"x": 0, "y": 0, "width": 10, "height": 10, "type": "mystery"},
        ]}]}).unwrap()
        assert specs[0].page_number == 4
        assert specs[0].box_type.value == "box"

    def test_unknown_layer(self, import_service, document_id):
        assert import_service.import_layer(document_id, "ghost", {"pages": []}).is_failure()

    def test_import_from_file(self, export_service, import_service, make_box, box_store, document_id, tmp_path):
        make_box(text="from disk")
        exported = export_service.export_layer_to_file(document_id, "default", tmp_path / "layer.json", 1).unwrap()
        result = import_service.import_layer_from_file(document_id, "default", exported.output_path).unwrap()
        assert result.boxes_imported == 1
        assert result.source_path == exported.output_path
        assert box_store.count() == 2

    def test_import_missing_file(self, import_service, document_id, tmp_path):
        result = import_service.import_layer_from_file(document_id, "default", tmp_path / "missing.json")
        assert result.get_error().error_code() == "FS_NOT_FOUND"
