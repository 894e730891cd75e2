"""
Tests for provider call monitoring
"""

import logging
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

import monitoring
from config_manager import ConfigManager, MonitoringConfig
from monitoring import configure_monitoring, get_provider_metrics, provider_timer, reset_metrics
from orchestrator import DiligenceEngine


@pytest.fixture(autouse=True)
def clean_stats():
    reset_metrics()
    yield
    reset_metrics()
    configure_monitoring()


class TestProviderTimer:

    def test_success_recorded(self):
        with provider_timer("gleif"):
            pass
        stats = get_provider_metrics()["gleif"]
        assert stats["calls"] == 1
        assert stats["failures"] == 0
        assert stats["last_called"] is not None

    def test_failure_recorded_and_reraised(self):
        with pytest.raises(RuntimeError):
            with provider_timer("gleif"):
                raise RuntimeError("boom")
        assert get_provider_metrics()["gleif"]["failures"] == 1

    def test_slow_call_logged(self, caplog):
        configure_monitoring(MonitoringConfig(slow_call_threshold_ms=-1))
        with caplog.at_level(logging.WARNING, logger=monitoring.__name__):
            with provider_timer("opensanctions"):
                pass
        assert "SLOW PROVIDER: opensanctions" in caplog.text

    def test_slow_call_logging_disabled(self, caplog):
        configure_monitoring(MonitoringConfig(slow_call_threshold_ms=-1, enable_logging=False))
        with caplog.at_level(logging.WARNING, logger=monitoring.__name__):
            with provider_timer("opensanctions"):
                pass
        assert "SLOW PROVIDER" not in caplog.text

    def test_reset(self):
        with provider_timer("gleif"):
            pass
        reset_metrics()
        assert get_provider_metrics() == {}


class TestMonitoringConfig:

    def test_engine_applies_monitoring_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("monitoring:\n  slow_call_threshold_ms: 250\n  enable_logging: false\n", encoding="utf-8")
        config = ConfigManager(str(path))

        with patch("orchestrator.get_audit_logger"):
            engine = DiligenceEngine.from_config(config)
        engine.close()

        assert monitoring._config.slow_call_threshold_ms == 250
        assert monitoring._config.enable_logging is False

    def test_reset_to_defaults(self):
        configure_monitoring(MonitoringConfig(slow_call_threshold_ms=1))
        configure_monitoring()
        assert monitoring._config == MonitoringConfig()
