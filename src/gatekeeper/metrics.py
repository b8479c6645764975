"""Prometheus metrics for Gatekeeper."""

from prometheus_client import Counter, Gauge, Histogram, Info

from gatekeeper import __version__


class GatekeeperMetrics:
    """Metrics collection for Gatekeeper."""

    def __init__(self) -> None:
        # Application info
        self.info = Info("gatekeeper", "Gatekeeper request security gate")
        self.info.info({"version": __version__, "algorithm": "fixed_window"})

        # Decision counters
        self.decisions_total = Counter(
            "gatekeeper_decisions_total",
            "Total number of gate decisions",
            ["verdict", "reason"],
        )

        self.http_requests_total = Counter(
            "gatekeeper_http_requests_total",
            "Total HTTP requests seen by the host application",
            ["method", "status"],
        )

        # Latency histograms
        self.check_duration = Histogram(
            "gatekeeper_check_duration_seconds",
            "Duration of a full gate evaluation",
            buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1],
        )

        # Store metrics
        self.store_operations_total = Counter(
            "gatekeeper_store_operations_total",
            "Total rate-limit store operations",
            ["operation", "status"],
        )

        self.store_keys = Gauge(
            "gatekeeper_store_keys",
            "Number of live rate-limit windows held in memory",
        )

        self.store_evictions_total = Counter(
            "gatekeeper_store_evictions_total",
            "Expired rate-limit windows removed by sweeps",
        )


# Singleton instance
metrics = GatekeeperMetrics()
