"""Tests for engine settings persistence."""

import pytest
from PyQt6.QtCore import QSettings

from models.settings import DEFAULT_LAYER_PALETTE, EngineSettings, SettingsStore


@pytest.fixture
def qsettings(tmp_path):
    """QSettings backed by an ini file in a temporary directory."""
    return QSettings(str(tmp_path / "engine.ini"), QSettings.Format.IniFormat)


class TestEngineSettings:
    def test_defaults(self):
        settings = EngineSettings()
        assert settings.min_box_size == 20
        assert settings.hit_threshold == 5.0
        assert settings.control_distance_ratio == pytest.approx(1 / 3)
        assert (settings.default_page_width, settings.default_page_height) == (800, 1131)
        assert settings.layer_palette == DEFAULT_LAYER_PALETTE
        assert settings.capture_base_url == "http://localhost:8001"

    def test_from_dict_ignores_unknown_and_fills_missing(self):
        settings = EngineSettings.from_dict({"min_box_size": 30, "unknown": True})
        assert settings.min_box_size == 30
        assert settings.hit_threshold == 5.0

    def test_palette_not_shared(self):
        first = EngineSettings()
        first.layer_palette.append("#FFFFFF")
        assert EngineSettings().layer_palette == DEFAULT_LAYER_PALETTE


class TestSettingsStore:
    def test_load_defaults_when_empty(self, qsettings):
        assert SettingsStore(qsettings).load() == EngineSettings()

    def test_save_and_load(self, qsettings):
        store = SettingsStore(qsettings)
        store.save(EngineSettings(min_box_size=25, capture_base_url="http://capture:9000"))
        loaded = SettingsStore(qsettings).load()
        assert loaded.min_box_size == 25
        assert loaded.capture_base_url == "http://capture:9000"

    def test_corrupt_json_falls_back(self, qsettings):
        qsettings.setValue(SettingsStore.SETTINGS_KEY, "{broken")
        assert SettingsStore(qsettings).load() == EngineSettings()

    def test_reset(self, qsettings):
        store = SettingsStore(qsettings)
        store.save(EngineSettings(min_box_size=99))
        assert store.reset() == EngineSettings()
        assert store.load().min_box_size == 20
