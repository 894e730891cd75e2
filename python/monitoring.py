"""
Provider Call Monitoring for the Trade Diligence Risk Engine

This module provides:
- Provider call timing context manager with slow-call detection
- Prometheus metrics for provider latency, failures and verdicts
- In-process per-provider statistics (exposed by the health endpoint)

Usage:
    from monitoring import provider_timer

    with provider_timer("opensanctions"):
        candidates = provider.query("Acme Trading LLC")
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from prometheus_client import Counter, Histogram

from config_manager import MonitoringConfig

logger = logging.getLogger(__name__)


# ============================================
# CONFIGURATION
# ============================================

_config = MonitoringConfig()


def configure_monitoring(config: Optional[MonitoringConfig] = None) -> None:
    """Apply the monitoring section of the configuration; None restores defaults"""
    global _config
    _config = config or MonitoringConfig()


# ============================================
# PROMETHEUS METRICS
# ============================================

provider_call_duration = Histogram(
    'diligence_provider_call_duration_seconds',
    'Screening provider call duration in seconds',
    ['provider', 'status'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0)
)

provider_failures_total = Counter(
    'diligence_provider_failures_total',
    'Recovered screening provider failures',
    ['provider', 'kind']
)

verdicts_total = Counter(
    'diligence_verdicts_total',
    'Issued verdicts by risk level',
    ['level']
)

run_duration = Histogram(
    'diligence_run_duration_seconds',
    'End-to-end diligence run duration in seconds',
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0)
)


# ============================================
# CALL STATS TRACKING
# ============================================

@dataclass
class ProviderStats:
    """Statistics for one provider."""
    provider: str
    calls: int = 0
    failures: int = 0
    total_time_ms: float = 0.0
    max_time_ms: float = 0.0
    last_called: Optional[datetime] = None

    @property
    def avg_time_ms(self) -> float:
        return self.total_time_ms / self.calls if self.calls > 0 else 0.0

    def record(self, duration_ms: float, error: bool = False) -> None:
        self.calls += 1
        self.total_time_ms += duration_ms
        self.max_time_ms = max(self.max_time_ms, duration_ms)
        self.last_called = datetime.now()
        if error:
            self.failures += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider': self.provider,
            'calls': self.calls,
            'failures': self.failures,
            'avg_time_ms': round(self.avg_time_ms, 2),
            'max_time_ms': round(self.max_time_ms, 2),
            'last_called': self.last_called.isoformat() if self.last_called else None
        }


class ProviderStatsCollector:
    """Thread-safe collector; provider calls run on executor threads."""

    def __init__(self):
        self._stats: Dict[str, ProviderStats] = {}
        self._lock = threading.Lock()

    def record(self, provider: str, duration_ms: float, error: bool = False) -> None:
        with self._lock:
            if provider not in self._stats:
                self._stats[provider] = ProviderStats(provider=provider)
            self._stats[provider].record(duration_ms, error)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {name: stats.to_dict() for name, stats in self._stats.items()}

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()


_stats_collector = ProviderStatsCollector()


def get_provider_metrics() -> Dict[str, Any]:
    return _stats_collector.get_stats()


def reset_metrics() -> None:
    _stats_collector.reset()


def record_provider_failure(provider: str, error: Exception) -> None:
    provider_failures_total.labels(provider=provider, kind=type(error).__name__).inc()


def record_verdict(level: str, duration_seconds: float) -> None:
    verdicts_total.labels(level=level).inc()
    run_duration.observe(duration_seconds)


# ============================================
# PROVIDER TIMER
# ============================================

@contextmanager
def provider_timer(provider: str):
    """
    Context manager to time a provider call.

    Records latency by outcome and logs calls slower than the configured
    threshold. Exceptions propagate unchanged.
    """
    start_time = time.perf_counter()
    error_occurred = False

    try:
        yield
    except Exception:
        error_occurred = True
        raise
    finally:
        duration = time.perf_counter() - start_time
        duration_ms = duration * 1000

        _stats_collector.record(provider, duration_ms, error=error_occurred)
        status = "error" if error_occurred else "success"
        provider_call_duration.labels(provider=provider, status=status).observe(duration)

        if _config.enable_logging and duration_ms > _config.slow_call_threshold_ms:
            logger.warning(
                f"SLOW PROVIDER: {provider} took {duration_ms:.2f}ms "
                f"(threshold: {_config.slow_call_threshold_ms}ms)"
            )
