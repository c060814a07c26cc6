"""
Defines and manages Prometheus metrics for the application.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog
from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram
from prometheus_client import start_http_server

if TYPE_CHECKING:
    from wanderer.config.config import MonitoringConfig

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Re-importing this module (as the test suite does) must not register the
# same collector names twice.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            # Registration lost the race, fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Gauge = _duplicate_safe_factory(_OrigGauge)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    # Counter names are registered without the "_total" suffix, which
    # prometheus_client appends on exposition.
    return {
        "requests_total": Counter(
            "wanderer_requests",
            "Crawl requests by mode and terminal outcome",
            ["mode", "outcome"],
        ),
        "fetch_latency_seconds": Histogram(
            "wanderer_fetch_latency_seconds",
            "Time taken by the extraction engine per attempt",
            ["mode"],
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
        ),
        "in_flight_requests": Gauge(
            "wanderer_in_flight_requests",
            "Requests currently being processed by workers",
        ),
        "sessions_active": Gauge(
            "wanderer_sessions_active",
            "Sessions currently in the pool",
        ),
        "sessions_evicted_total": Counter(
            "wanderer_sessions_evicted",
            "Sessions removed from the pool",
            ["reason"],
        ),
        "proxy_fallback_total": Counter(
            "wanderer_proxy_fallback",
            "Proxy assignments that degraded to the direct tier",
        ),
        "documents_persisted_total": Counter(
            "wanderer_documents_persisted",
            "Documents written to the datastore",
            ["status"],
        ),
        "documents_rejected_total": Counter(
            "wanderer_documents_rejected",
            "Documents the datastore refused individually",
        ),
        "batch_flushes_total": Counter(
            "wanderer_batch_flushes",
            "Batch flushes by trigger",
            ["trigger"],
        ),
        "persistence_failures_total": Counter(
            "wanderer_persistence_failures",
            "Batch writes that failed after all retries",
        ),
        "documents_classified_total": Counter(
            "wanderer_documents_classified",
            "Documents classified by category",
            ["category"],
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


class MetricsManager:
    """Manages the lifecycle of the Prometheus exporter."""

    def __init__(self, config: MonitoringConfig) -> None:
        self.config = config
        self._started = False

    def start(self) -> None:
        """Starts the Prometheus server if a port is configured."""
        if self.config.prometheus_port and not self._started:
            logger.info("Starting Prometheus metrics server", port=self.config.prometheus_port)
            start_http_server(self.config.prometheus_port)
            self._started = True

    def get_current_metrics(self) -> Dict[str, Any]:
        """Get current sample values as a flat dictionary."""
        data: Dict[str, Any] = {}
        for metric in METRICS.values():
            for family in metric.collect():
                for sample in family.samples:
                    if sample.name.endswith("_created"):
                        continue
                    label_suffix = ",".join(f"{k}={v}" for k, v in sorted(sample.labels.items()))
                    key = f"{sample.name}{{{label_suffix}}}" if label_suffix else sample.name
                    data[key] = sample.value
        return data


_metrics_manager: Optional[MetricsManager] = None


def get_metrics_manager() -> Optional[MetricsManager]:
    """Get the global metrics manager instance."""
    return _metrics_manager


def set_metrics_manager(manager: MetricsManager) -> None:
    """Set the global metrics manager instance."""
    global _metrics_manager
    _metrics_manager = manager
