"""Pytest configuration and shared fixtures for the annotation engine tests."""

import pytest

from core.workspace import AnnotationWorkspace
from models.annotation import Rectangle
from models.settings import EngineSettings


DOCUMENT_ID = "report.pdf"


@pytest.fixture
def document_id():
    """Document the tests draw on."""
    return DOCUMENT_ID


@pytest.fixture
def settings():
    """Default engine settings."""
    return EngineSettings()


@pytest.fixture
def workspace(settings):
    """Fresh workspace with only the default layer."""
    return AnnotationWorkspace(settings)


@pytest.fixture
def box_store(workspace):
    return workspace.boxes


@pytest.fixture
def connection_store(workspace):
    return workspace.connections


@pytest.fixture
def group_store(workspace):
    return workspace.groups


@pytest.fixture
def layer_registry(workspace):
    return workspace.layers


@pytest.fixture
def make_box(box_store, document_id):
    """Factory adding a box to the default layer of page 1 unless told otherwise."""

    def _make_box(x=0, y=0, width=100, height=50, page_number=1, layer_id="default", text=""):
        result = box_store.add_box(
            document_id,
            page_number,
            layer_id,
            Rectangle(x, y, width, height),
            text=text,
        )
        assert result.is_success()
        return result.unwrap()

    return _make_box
