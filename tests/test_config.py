"""Tests for InspectorConfig output filtering."""

import pytest

from tapspect.config import InspectorConfig


class TestOutputFilters:

    def test_all_reports_everything(self):
        config = InspectorConfig()
        assert config.should_report("console", "log")
        assert config.should_report("network", "complete")
        assert config.should_report("navigation", "info")

    def test_errors_only(self):
        config = InspectorConfig(output="errors-only")
        assert config.should_report("console", "error")
        assert not config.should_report("console", "warn")
        assert config.should_report("network", "failed")
        assert not config.should_report("network", "complete")
        assert config.should_report("navigation", "error")
        assert not config.should_report("navigation", "info")

    def test_console_preset_includes_navigation(self):
        config = InspectorConfig(output="console")
        assert config.should_report("console", "debug")
        assert config.should_report("navigation", "info")
        assert not config.should_report("network", "complete")

    def test_minimal(self):
        config = InspectorConfig(output="minimal")
        assert config.should_report("console", "error")
        assert not config.should_report("network", "failed")

    def test_custom_list(self):
        config = InspectorConfig(output=" console:warn , network ")
        assert config.output_filters == ["console:warn", "network"]
        assert config.should_report("console", "warn")
        assert not config.should_report("console", "error")
        assert config.should_report("network")

    def test_level_is_optional(self):
        config = InspectorConfig(output="console:error")
        assert not config.should_report("console")


class TestDataDir:

    def test_explicit_directory_is_created(self, tmp_path):
        target = tmp_path / "exports" / "run1"
        config = InspectorConfig(data_dir=str(target))

        assert config.data_dir == target.resolve()
        assert target.is_dir()

    def test_default_directory_uses_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TAPSPECT_DATA_DIR", str(tmp_path / "default"))
        config = InspectorConfig()

        assert config.data_dir == tmp_path / "default"
        assert (tmp_path / "default").is_dir()


@pytest.mark.parametrize("preset", list(InspectorConfig.OUTPUT_PRESETS))
def test_presets_parse_to_their_filters(preset):
    config = InspectorConfig(output=preset)
    assert config.output_filters == InspectorConfig.OUTPUT_PRESETS[preset]
