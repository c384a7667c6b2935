"""Prometheus metrics for payments, orders, exports and regeneration."""

from prometheus_client import Counter, Histogram

webhook_events_total = Counter(
    "webhook_events_total",
    "Payment webhook events by type and outcome",
    ["type", "outcome"],
)

order_transitions_total = Counter(
    "order_transitions_total",
    "Order status transitions",
    ["from_status", "to_status"],
)

export_requests_total = Counter(
    "export_requests_total",
    "Export requests by kind and outcome",
    ["kind", "outcome"],
)

export_render_latency_ms = Histogram(
    "export_render_latency_ms",
    "Export render latency in milliseconds",
    ["kind"],
    buckets=[100, 250, 500, 1000, 2500, 5000, 10000, 25000, 60000],
)

export_placeholder_slots_total = Counter(
    "export_placeholder_slots_total",
    "Archive slots replaced by a placeholder document",
    ["slot"],
)

regenerations_total = Counter(
    "regenerations_total",
    "Section regeneration attempts",
    ["section", "outcome"],
)


class PrometheusMetrics:
    """Prometheus-based metrics implementation."""

    def inc_webhook(self, event_type: str, outcome: str) -> None:
        webhook_events_total.labels(type=event_type, outcome=outcome).inc()

    def inc_transition(self, from_status: str, to_status: str) -> None:
        order_transitions_total.labels(from_status=from_status, to_status=to_status).inc()

    def inc_export(self, kind: str, outcome: str) -> None:
        export_requests_total.labels(kind=kind, outcome=outcome).inc()

    def record_render_latency(self, kind: str, latency_ms: float) -> None:
        export_render_latency_ms.labels(kind=kind).observe(latency_ms)

    def inc_placeholder(self, slot: str) -> None:
        export_placeholder_slots_total.labels(slot=slot).inc()

    def inc_regeneration(self, section: str, outcome: str) -> None:
        regenerations_total.labels(section=section, outcome=outcome).inc()


metrics = PrometheusMetrics()
