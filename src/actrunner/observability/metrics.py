"""Prometheus metrics for actrunner."""
from prometheus_client import Counter, Gauge, Histogram, Info
from actrunner.core.enums import JobOutcome, RunnerState, StepStatus


# Job metrics
jobs_total = Counter(
    'actrunner_jobs_total',
    'Total number of finished jobs',
    ['outcome']
)

job_duration_seconds = Histogram(
    'actrunner_job_duration_seconds',
    'Job execution duration in seconds',
    ['outcome'],
    buckets=[1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 1800.0, 3600.0, 7200.0]
)

# Step metrics
steps_total = Counter(
    'actrunner_steps_total',
    'Total number of finished steps',
    ['status']
)

step_duration_seconds = Histogram(
    'actrunner_step_duration_seconds',
    'Step execution duration in seconds',
    ['status'],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0]
)

# Controller communication
poll_failures_total = Counter(
    'actrunner_poll_failures_total',
    'Total number of failed job polls'
)

report_failures_total = Counter(
    'actrunner_report_failures_total',
    'Total number of failed status reports'
)

# Runner state, one gauge series per state (1 for the current one)
runner_state = Gauge(
    'actrunner_state',
    'Current runner lifecycle state',
    ['state']
)

runner_info = Info(
    'actrunner_runner',
    'Runner identity information'
)


def record_step(status: StepStatus, duration: float = None) -> None:
    """Record a finished step."""
    steps_total.labels(status=status.value).inc()
    if duration is not None:
        step_duration_seconds.labels(status=status.value).observe(duration)


def record_job(outcome: JobOutcome, duration: float = None) -> None:
    """Record a finished job."""
    jobs_total.labels(outcome=outcome.value).inc()
    if duration is not None:
        job_duration_seconds.labels(outcome=outcome.value).observe(duration)


def record_poll_failure() -> None:
    """Record a failed poll attempt."""
    poll_failures_total.inc()


def record_report_failure() -> None:
    """Record a status report that could not be delivered."""
    report_failures_total.inc()


def set_runner_state(state: RunnerState) -> None:
    """Flip the state gauge to the given state."""
    for candidate in RunnerState:
        runner_state.labels(state=candidate.value).set(1 if candidate == state else 0)


def init_runner_info(version: str, runner_id: str, name: str, labels) -> None:
    """
    Initialize runner information metric.

    Args:
        version: Application version
        runner_id: Controller-assigned runner ID
        name: Runner name
        labels: Runner labels
    """
    runner_info.info({
        'version': version,
        'id': runner_id,
        'name': name,
        'labels': ','.join(sorted(labels)),
    })
