"""
Tests for configuration loading and validation
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ConfigManager, ConfigurationError, DEFAULT_DELTAS, get_config


def write_config(tmp_path, body):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def reset_singleton():
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


class TestDefaults:

    def test_missing_file_uses_defaults(self, tmp_path):
        config = ConfigManager(str(tmp_path / "absent.yaml"))
        assert config.matching.baseline_threshold == 0.5
        assert config.matching.authoritative_threshold == 0.25
        assert config.classification.green_min == 86
        assert config.scoring.delta('wanted') == 75
        assert config.providers.retry_attempts == 2

    def test_bundled_config_loads(self):
        config = ConfigManager(str(Path(__file__).parent.parent / "config.yaml"))
        assert config.providers.timeout_for('icij_offshore') == 15
        assert config.providers.timeout_for('gleif') == 10
        assert 'opensanctions' in config.providers.enabled

    def test_unknown_delta_is_zero(self, tmp_path):
        config = ConfigManager(str(tmp_path / "absent.yaml"))
        assert config.scoring.delta('not_a_signal') == 0


class TestLoading:

    def test_delta_overrides_merge(self, tmp_path):
        path = write_config(tmp_path, "scoring:\n  deltas:\n    pep: 25\n")
        config = ConfigManager(str(path))
        assert config.scoring.delta('pep') == 25
        assert config.scoring.delta('sanctions') == DEFAULT_DELTAS['sanctions']

    def test_provider_settings(self, tmp_path):
        path = write_config(tmp_path, (
            "providers:\n"
            "  enabled: [opensanctions, gleif]\n"
            "  timeout_seconds: 4\n"
            "  timeouts:\n"
            "    gleif: 2\n"
        ))
        config = ConfigManager(str(path))
        assert config.providers.enabled == ['opensanctions', 'gleif']
        assert config.providers.timeout_for('gleif') == 2.0
        assert config.providers.timeout_for('opensanctions') == 4.0

    def test_api_key_read_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENSANCTIONS_API_KEY", "secret")
        config = ConfigManager(str(tmp_path / "absent.yaml"))
        assert config.providers.api_key('opensanctions') == "secret"
        assert config.providers.api_key('gleif') == ""

    def test_to_dict_has_no_keys(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENSANCTIONS_API_KEY", "secret")
        config = ConfigManager(str(tmp_path / "absent.yaml"))
        assert "secret" not in str(config.to_dict())


class TestValidation:

    @pytest.mark.parametrize("body", [
        "matching:\n  baseline_threshold: 1.5\n",
        "matching:\n  baseline_threshold: 0.2\n  authoritative_threshold: 0.3\n",
        "matching:\n  max_edit_distance: 0\n",
        "classification:\n  green_min: 50\n",
        "classification:\n  critical_score_cap: 40\n",
        "scoring:\n  deltas:\n    pep: high\n",
        "providers:\n  timeout_seconds: 0\n",
        "providers:\n  retry_attempts: 0\n",
        "monitoring:\n  slow_call_threshold_ms: 0\n",
    ])
    def test_invalid_values_rejected(self, tmp_path, body):
        with pytest.raises(ConfigurationError):
            ConfigManager(str(write_config(tmp_path, body)))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager(str(write_config(tmp_path, "matching: [unclosed\n")))

    def test_top_level_must_be_mapping(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager(str(write_config(tmp_path, "- just\n- a list\n")))


class TestSingleton:

    def test_get_config_returns_same_instance(self, tmp_path):
        path = str(tmp_path / "absent.yaml")
        assert get_config(path) is get_config(path)

    def test_reset_instance(self, tmp_path):
        path = str(tmp_path / "absent.yaml")
        first = get_config(path)
        ConfigManager.reset_instance()
        assert get_config(path) is not first
