"""Prometheus metrics for workflow transitions, drawdowns and notification delivery"""

from prometheus_client import Counter, Histogram

# Workflow metrics
transition_counter = Counter(
    "tradecredit_transition_total",
    "Committed credit application transitions",
    ["transition"],  # e.g. pre_analysis.pre_approved | financial.approved | final.finalized
)

transition_conflict_counter = Counter(
    "tradecredit_transition_conflicts_total",
    "Transitions that lost an optimistic version check",
)

# Drawdown metrics
drawdown_counter = Counter(
    "tradecredit_drawdown_total",
    "Drawdown attempts by outcome",
    ["outcome"],  # approved | insufficient_credit | cash
)

drawdown_value_histogram = Histogram(
    "tradecredit_drawdown_value_cents",
    "Value of approved credit drawdowns",
    buckets=[100_000, 1_000_000, 5_000_000, 10_000_000, 50_000_000, 100_000_000],
)

# Notification webhook metrics
notification_latency_histogram = Histogram(
    "notification_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Failed notification deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(transition: str) -> None:
    transition_counter.labels(transition=transition).inc()


def record_drawdown(outcome: str, value_cents: int = 0) -> None:
    """Record drawdown outcome; only approved credit draws feed the value histogram"""
    drawdown_counter.labels(outcome=outcome).inc()
    if outcome == "approved":
        drawdown_value_histogram.observe(value_cents)
