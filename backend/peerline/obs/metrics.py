"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


REQUEST_COUNTER = Counter(
	"peerline_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"peerline_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

ESC_OPENED_TOTAL = Counter(
	"esc_opened_total",
	"Escalation records accepted from detection",
	["level"],
)

ESC_TRANSITIONS_TOTAL = Counter(
	"esc_transitions_total",
	"Escalation lifecycle transitions committed",
	["transition"],
)

ESC_REJECTIONS_TOTAL = Counter(
	"esc_rejections_total",
	"Escalation operations rejected by lifecycle rules",
	["operation", "error"],
)

ESC_CONFLICTS_TOTAL = Counter(
	"esc_write_conflicts_total",
	"Conditional escalation writes that lost a race",
	["operation"],
)

ESC_EVENT_PUBLISH_FAILURES = Counter(
	"esc_event_publish_failures_total",
	"Lifecycle events that could not be published",
)

# Hours-scale buckets; crisis escalations are expected to resolve within a day
ESC_RESPONSE_SECONDS = Histogram(
	"esc_response_time_seconds",
	"Time from detection to resolution for resolved escalations",
	["level"],
	buckets=(300, 900, 1800, 3600, 7200, 14400, 28800, 86400, 172800, 604800),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)
