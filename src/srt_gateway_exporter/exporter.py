from __future__ import annotations

from collections import defaultdict

from prometheus_client import CollectorRegistry, Gauge

from srt_gateway_exporter.service import PollResult


class GatewayMetricsPublisher:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry
        self._known_statistics: dict[str, set[tuple[str, str]]] = defaultdict(set)

        self.poll_success = Gauge(
            "srt_gateway_poll_success",
            "Latest poll status (1=success, 0=failure)",
            ["target"],
            registry=self.registry,
        )
        self.poll_duration_seconds = Gauge(
            "srt_gateway_poll_duration_seconds",
            "Duration of the last gateway poll in seconds",
            ["target"],
            registry=self.registry,
        )
        self.poll_timestamp_seconds = Gauge(
            "srt_gateway_poll_timestamp_seconds",
            "Unix timestamp of the last successful gateway poll",
            ["target"],
            registry=self.registry,
        )
        self.routes_total = Gauge(
            "srt_gateway_routes_total",
            "Total routes reported by the gateway route list",
            ["target"],
            registry=self.registry,
        )
        self.statistic_info = Gauge(
            "srt_gateway_statistic_info",
            "Flattened gateway statistic, value carried in the value label",
            ["target", "field", "value"],
            registry=self.registry,
        )

    def apply_poll_result(self, *, target: str, result: PollResult) -> None:
        self.poll_success.labels(target=target).set(1.0 if result.success else 0.0)
        if result.poll_duration_seconds is not None:
            self.poll_duration_seconds.labels(target=target).set(result.poll_duration_seconds)
        if not result.success:
            return

        if result.observed_at is not None:
            self.poll_timestamp_seconds.labels(target=target).set(result.observed_at)
        if result.routes_total is not None:
            self.routes_total.labels(target=target).set(float(result.routes_total))

        current_statistics: set[tuple[str, str]] = set()
        for field_name, value in result.statistics.items():
            self.statistic_info.labels(target=target, field=field_name, value=value).set(1.0)
            current_statistics.add((field_name, value))

        stale_statistics = self._known_statistics[target] - current_statistics
        for stale_field, stale_value in stale_statistics:
            self.statistic_info.remove(target, stale_field, stale_value)
        self._known_statistics[target] = current_statistics
