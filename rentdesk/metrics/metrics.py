from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY
from typing import Optional

# =====================================
# METRICS COLLECTOR
# =====================================

class MetricsCollector:
    """Prometheus metrics for the monthly report job"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        registry = registry or REGISTRY
        self.registry = registry

        self.report_runs_total = Counter(
            "report_runs_total",
            "Monthly report runs by outcome",
            ["status"],  # status=sent|partial|failed|skipped
            registry=registry,
        )

        self.report_emails_total = Counter(
            "report_emails_total",
            "Report emails by delivery outcome",
            ["status"],  # status=sent|failed
            registry=registry,
        )

        self.report_run_duration = Histogram(
            "report_run_duration_seconds",
            "Wall time of a monthly report run",
            registry=registry,
        )

    def record_run(self, status: str, duration: Optional[float] = None):
        self.report_runs_total.labels(status=status).inc()
        if duration is not None:
            self.report_run_duration.observe(duration)

    def record_email(self, status: str):
        self.report_emails_total.labels(status=status).inc()

# Global metrics instance
_metrics_collector = MetricsCollector()

def get_metrics() -> MetricsCollector:
    """Dependency to get metrics collector"""
    return _metrics_collector
