"""
Prometheus metrics collection.

The CLI is short-lived, so metrics are not served over HTTP; set
PARALLELIZER_METRICS_TEXTFILE to have them written for the node-exporter
textfile collector when a command finishes.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    write_to_textfile,
)

from parallelizer.constants import (
    METRIC_LEASE_RENEWALS,
    METRIC_MESSAGES_SKIPPED,
    METRIC_QUEUE_DEPTH,
    METRIC_TASK_DURATION,
    METRIC_TASKS_ENQUEUED,
    METRIC_TASKS_FINISHED,
)

_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """Counters and gauges for enqueueing, task outcomes, lease renewals and drain."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self._registry = registry or REGISTRY

        self.tasks_enqueued = Counter(
            METRIC_TASKS_ENQUEUED,
            "Total number of tasks sent to the queue",
            ["task_list_id"],
            registry=self._registry,
        )

        self.tasks_finished = Counter(
            METRIC_TASKS_FINISHED,
            "Total number of tasks that reached a terminal state",
            ["task_list_id", "status"],
            registry=self._registry,
        )

        self.task_duration = Histogram(
            METRIC_TASK_DURATION,
            "Task execution duration in seconds",
            ["task_list_id", "status"],
            buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0),
            registry=self._registry,
        )

        self.lease_renewals = Counter(
            METRIC_LEASE_RENEWALS,
            "Total number of lease renewal attempts",
            ["worker_id", "outcome"],
            registry=self._registry,
        )

        self.messages_skipped = Counter(
            METRIC_MESSAGES_SKIPPED,
            "Messages acknowledged without execution because the task was already completed",
            ["task_list_id"],
            registry=self._registry,
        )

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Last approximate queue depth observed by a draining worker",
            ["task_list_id"],
            registry=self._registry,
        )

    def record_tasks_enqueued(self, task_list_id: str, count: int) -> None:
        """Record tasks sent to the queue."""
        self.tasks_enqueued.labels(task_list_id=task_list_id).inc(count)

    def record_task_finished(
        self,
        task_list_id: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a task reaching COMPLETED or FAILED."""
        self.tasks_finished.labels(task_list_id=task_list_id, status=status).inc()
        self.task_duration.labels(task_list_id=task_list_id, status=status).observe(
            duration_seconds
        )

    def record_lease_renewal(self, worker_id: str, success: bool) -> None:
        """Record a lease renewal attempt."""
        outcome = "success" if success else "error"
        self.lease_renewals.labels(worker_id=worker_id, outcome=outcome).inc()

    def record_message_skipped(self, task_list_id: str) -> None:
        """Record a duplicate delivery acknowledged without execution."""
        self.messages_skipped.labels(task_list_id=task_list_id).inc()

    def update_queue_depth(self, task_list_id: str, depth: int) -> None:
        """Update the observed queue depth."""
        self.queue_depth.labels(task_list_id=task_list_id).set(depth)

    def write_textfile(self, path: str) -> None:
        """Write all metrics to a file for the textfile collector."""
        write_to_textfile(path, self._registry)


def setup_metrics(registry: CollectorRegistry | None = None) -> MetricsCollector:
    """Create the process-wide collector on the given registry (the default one if None)."""
    global _metrics
    _metrics = MetricsCollector(registry)
    return _metrics


def get_metrics() -> MetricsCollector:
    """The process-wide collector, created on first use."""
    return _metrics if _metrics is not None else setup_metrics()
