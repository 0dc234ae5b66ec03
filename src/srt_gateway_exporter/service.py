from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from srt_gateway_exporter.catalog import (
    DESTINATION_PREFIX,
    DEVICE_FIELDS,
    DEVICE_ID,
    ENDPOINT_ADDRESS,
    ENDPOINT_FIELDS,
    HASH,
    LAST_CONNECTED,
    NONE,
    PORT_FIELD,
    RAW_ROUTE_FIELDS,
    ROUTE_DESTINATIONS,
    ROUTE_FIELDS,
    ROUTE_SOURCE,
    ROUTE_UPTIME,
    SERIAL_NUMBER,
    SOURCE_PREFIX,
    route_key,
)
from srt_gateway_exporter.client import GatewayClient, GatewayConfig, GatewayError, UnreachableError


LOGGER = logging.getLogger("srt_gateway_exporter.service")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class PollConfig:
    gateway: GatewayConfig
    route_page_size: int = 500
    include_all_routes: str | None = None
    route_name_filter: str | None = None


@dataclass(frozen=True)
class PollResult:
    success: bool
    observed_at: float | None = None
    poll_duration_seconds: float | None = None
    statistics: dict[str, str] = field(default_factory=dict)
    routes_total: int | None = None
    error: str | None = None


def json_value_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return ""
    return str(value)


def capitalize_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def default_for_null(value: str | None) -> str:
    if not value or value.lower() == "null":
        return NONE
    return capitalize_first(value)


def format_epoch_millis(value: str) -> str:
    """Render epoch milliseconds as e.g. ``Aug 14, 2024, 8:00 AM`` in UTC."""
    if value == NONE:
        return value
    try:
        moment = _EPOCH + timedelta(milliseconds=int(value))
    except (ValueError, OverflowError):
        LOGGER.error("unable to convert %r to a date", value)
        return NONE
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{_MONTHS[moment.month - 1]} {moment.day}, {moment.year}, {hour}:{moment.minute:02d} {meridiem}"


def format_uptime(value: str) -> str:
    if value == NONE:
        return value
    parts = value.split(":")
    if len(parts) < 2:
        return NONE
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
    except ValueError:
        LOGGER.error("unable to parse route uptime %r", value)
        return NONE

    days = hours // 24
    # TODO: confirm with product whether this should be hours % 24; the
    # gateway dashboards currently show hours // 60.
    hours = hours // 60
    return f"{days} day(s) {hours} hour(s) {minutes} minute(s)"


def is_enabled(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY


def parse_route_filter(value: str) -> list[str]:
    names = [name.strip() for name in value.split(",")]
    return list(dict.fromkeys(name for name in names if name))


def select_route_names(
    include_all_routes: str | None,
    route_name_filter: str | None,
    all_route_names: list[str],
) -> list[str]:
    if is_enabled(include_all_routes):
        return list(all_route_names)
    if not route_name_filter or not route_name_filter.strip():
        return []
    return parse_route_filter(route_name_filter)


def fetch_device(client: GatewayClient) -> tuple[str, dict[str, str]]:
    try:
        payload = client.fetch_device_list()
    except GatewayError as error:
        raise UnreachableError("Error when retrieving device info") from error
    if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
        raise UnreachableError("Error when retrieving device info: expected a non-empty device list")

    device = payload[0]
    device_id = device.get(DEVICE_ID.field)
    if device_id is None:
        raise UnreachableError("Error when retrieving device info: device has no id")

    entries: dict[str, str] = {}
    for item in DEVICE_FIELDS:
        if item.field in device:
            entries[item.name] = json_value_text(device[item.field])
    return json_value_text(device_id), entries


def fetch_routes(client: GatewayClient, device_id: str, page_size: int) -> tuple[dict[str, str], list[str]]:
    try:
        payload = client.fetch_route_page(device_id, page_size)
    except GatewayError as error:
        raise UnreachableError("Error when retrieving route info") from error
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        raise UnreachableError("Error when retrieving route info: response has no data list")

    entries: dict[str, str] = {}
    route_names: list[str] = []
    for route in payload["data"]:
        if not isinstance(route, dict) or route.get("name") is None:
            LOGGER.warning("skipping route without a name: %r", route)
            continue
        route_name = json_value_text(route["name"])
        if route_name not in route_names:
            route_names.append(route_name)
        for item in ROUTE_FIELDS:
            if item.field not in route:
                continue
            raw_value = route[item.field]
            if item in RAW_ROUTE_FIELDS:
                text = json.dumps(raw_value, separators=(",", ":"))
            else:
                text = json_value_text(raw_value)
            entries[route_key(route_name, item.name)] = default_for_null(text)
    return entries, route_names


def flatten_device(cache: dict[str, str]) -> dict[str, str]:
    stats: dict[str, str] = {}
    for item in DEVICE_FIELDS:
        value = default_for_null(cache.get(item.name))
        if item == LAST_CONNECTED:
            stats[item.name] = format_epoch_millis(value)
        elif item == SERIAL_NUMBER:
            stats[item.name] = value.replace(" ", "")
        else:
            stats[item.name] = value
    return stats


def flatten_endpoint(stats: dict[str, str], key_prefix: str, endpoint: dict[str, Any]) -> None:
    for item in ENDPOINT_FIELDS:
        if item.field not in endpoint:
            continue
        value = default_for_null(json_value_text(endpoint[item.field]))
        if item == ENDPOINT_ADDRESS:
            port = json_value_text(endpoint[PORT_FIELD])
            value = f"{value}:{port}"
        stats[f"{key_prefix}{item.name}"] = value


def _load_endpoint_json(raw: str, *, route_name: str, kind: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        LOGGER.error("unable to parse %s config of route %s", kind, route_name)
        return None


def flatten_source(stats: dict[str, str], route_name: str, raw: str) -> None:
    if raw.lower() == NONE.lower():
        return
    node = _load_endpoint_json(raw, route_name=route_name, kind="source")
    if not isinstance(node, dict):
        return
    try:
        flatten_endpoint(stats, f"{route_name}{HASH}{SOURCE_PREFIX}", node)
    except KeyError as error:
        LOGGER.error("source config of route %s is missing %s", route_name, error)


def flatten_destinations(stats: dict[str, str], route_name: str, raw: str) -> None:
    if raw.lower() == NONE.lower():
        return
    nodes = _load_endpoint_json(raw, route_name=route_name, kind="destination")
    if not isinstance(nodes, list):
        return
    for index, node in enumerate(nodes, start=1):
        if not isinstance(node, dict):
            continue
        suffix = "" if len(nodes) == 1 else str(index)
        try:
            flatten_endpoint(stats, f"{route_name}{HASH}{DESTINATION_PREFIX}{suffix}", node)
        except KeyError as error:
            LOGGER.error("destination %d of route %s is missing %s", index, route_name, error)


def flatten_routes(cache: dict[str, str], route_names: list[str]) -> dict[str, str]:
    stats: dict[str, str] = {}
    for route_name in route_names:
        for item in ROUTE_FIELDS:
            key = route_key(route_name, item.name)
            value = default_for_null(cache.get(key))
            if item == ROUTE_SOURCE:
                flatten_source(stats, route_name, value)
            elif item == ROUTE_DESTINATIONS:
                flatten_destinations(stats, route_name, value)
            elif item == ROUTE_UPTIME:
                stats[key] = format_uptime(value)
            else:
                stats[key] = value
    return stats


class GatewayPoller:
    """Runs one serialized poll cycle at a time and keeps the last good snapshot."""

    def __init__(self, config: PollConfig, client: GatewayClient | None = None) -> None:
        self.config = config
        self.include_all_routes = config.include_all_routes
        self.route_name_filter = config.route_name_filter
        self._client = client if client is not None else GatewayClient(config.gateway)
        self._lock = threading.Lock()
        self._cache: dict[str, str] = {}
        self._route_names: list[str] = []
        self._last_snapshot: PollResult | None = None
        self._skip_next_poll = False

    @property
    def client(self) -> GatewayClient:
        return self._client

    @property
    def last_snapshot(self) -> PollResult | None:
        return self._last_snapshot

    def request_skip(self) -> None:
        self._skip_next_poll = True

    def poll(self) -> PollResult:
        with self._lock:
            if self._skip_next_poll:
                self._skip_next_poll = False
                LOGGER.info("poll skipped; returning previous statistics")
                if self._last_snapshot is None:
                    return PollResult(success=False, error="no statistics collected yet")
                return self._last_snapshot

            started_at = time.time()
            monotonic_start = time.monotonic()

            self._client.ensure_authenticated()
            device_id, device_entries = fetch_device(self._client)
            route_entries, route_names = fetch_routes(self._client, device_id, self.config.route_page_size)

            cache = {key: value for key, value in self._cache.items() if HASH not in key}
            cache.update(device_entries)
            cache.update(route_entries)
            self._cache = cache
            self._route_names = route_names

            statistics = flatten_device(cache)
            selected = select_route_names(self.include_all_routes, self.route_name_filter, route_names)
            statistics.update(flatten_routes(cache, selected))

            self._last_snapshot = PollResult(
                success=True,
                observed_at=started_at,
                poll_duration_seconds=time.monotonic() - monotonic_start,
                statistics=statistics,
                routes_total=len(route_names),
            )
            return self._last_snapshot

    def close(self) -> None:
        with self._lock:
            self._client.close()
            self._cache.clear()
            self._route_names = []
            self._last_snapshot = None
