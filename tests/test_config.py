"""Tests for settings loading."""

import pytest

from netlens.config import LayoutSettings, Settings, load_settings
from netlens.errors import ConfigError
from netlens.graph.layout import ForceLayout


SAMPLE_CONFIG = """log_level: debug
batch:
  max_workers: 2
arbitration:
  classifier_lines: 200
  sample_lines: 10
rules:
  cpu_high: 70
  errors_high: 5000
layout:
  width: 1024
  iterations: 50
  seed: 7
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("NETLENS_LOG_LEVEL", raising=False)
    monkeypatch.delenv("NETLENS_MAX_WORKERS", raising=False)


def _write(tmp_path, text):
    path = tmp_path / "netlens.yaml"
    path.write_text(text)
    return path


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings()
        assert isinstance(settings, Settings)
        assert settings.log_level == "INFO"
        assert settings.max_workers == 4
        assert settings.classifier_lines == 500
        assert settings.sample_lines == 30
        assert settings.rules.cpu_high == 80.0
        assert settings.layout.iterations == 300

    def test_yaml_values(self, tmp_path):
        settings = load_settings(_write(tmp_path, SAMPLE_CONFIG))
        assert settings.log_level == "DEBUG"
        assert settings.max_workers == 2
        assert settings.classifier_lines == 200
        assert settings.sample_lines == 10
        assert settings.rules.cpu_high == 70.0
        assert settings.rules.errors_high == 5000
        assert isinstance(settings.rules.errors_high, int)
        assert settings.layout.width == 1024.0
        assert settings.layout.iterations == 50
        assert settings.layout.seed == 7

    def test_empty_file(self, tmp_path):
        settings = load_settings(_write(tmp_path, ""))
        assert settings.max_workers == 4

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NETLENS_LOG_LEVEL", "warning")
        monkeypatch.setenv("NETLENS_MAX_WORKERS", "8")
        settings = load_settings(_write(tmp_path, SAMPLE_CONFIG))
        assert settings.log_level == "WARNING"
        assert settings.max_workers == 8

    def test_force_layout(self):
        layout = LayoutSettings(width=400, height=300, iterations=10, seed=3).force_layout()
        assert isinstance(layout, ForceLayout)
        assert (layout.width, layout.height, layout.iterations, layout.seed) == (400, 300, 10, 3)


class TestInvalidSettings:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "absent.yaml")

    def test_root_not_mapping(self, tmp_path):
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(_write(tmp_path, "- one\n- two\n"))

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(_write(tmp_path, "rules: [unclosed\n"))

    def test_unknown_key(self, tmp_path):
        with pytest.raises(ConfigError, match="rules.cpu_hihg"):
            load_settings(_write(tmp_path, "rules:\n  cpu_hihg: 50\n"))

    def test_negative_value(self, tmp_path):
        with pytest.raises(ConfigError, match="negative"):
            load_settings(_write(tmp_path, "layout:\n  width: -5\n"))

    def test_non_numeric_value(self, tmp_path):
        with pytest.raises(ConfigError, match="number"):
            load_settings(_write(tmp_path, "rules:\n  cpu_high: lots\n"))

    def test_bad_log_level(self, tmp_path):
        with pytest.raises(ConfigError, match="log_level"):
            load_settings(_write(tmp_path, "log_level: LOUD\n"))

    def test_zero_workers(self, tmp_path):
        with pytest.raises(ConfigError, match="at least 1"):
            load_settings(_write(tmp_path, "batch:\n  max_workers: 0\n"))

    def test_section_not_mapping(self, tmp_path):
        with pytest.raises(ConfigError, match="batch"):
            load_settings(_write(tmp_path, "batch: 5\n"))

    def test_bad_env_override(self, monkeypatch):
        monkeypatch.setenv("NETLENS_MAX_WORKERS", "many")
        with pytest.raises(ConfigError, match="NETLENS_MAX_WORKERS"):
            load_settings()
