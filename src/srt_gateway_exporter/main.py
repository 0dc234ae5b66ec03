from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from dataclasses import dataclass

from prometheus_client import start_http_server

from srt_gateway_exporter.client import GatewayConfig, GatewayError
from srt_gateway_exporter.exporter import GatewayMetricsPublisher
from srt_gateway_exporter.service import GatewayPoller, PollConfig, PollResult


LOGGER = logging.getLogger("srt_gateway_exporter")


@dataclass(frozen=True)
class AppConfig:
    poll: PollConfig
    poll_interval_seconds: float
    listen_address: str
    listen_port: int
    run_once: bool
    log_level: str


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    return float(value)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    return int(value)


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prometheus exporter for Haivision SRT gateway statistics")
    parser.add_argument(
        "--host",
        default=os.getenv("SRT_GATEWAY_HOST"),
        required=os.getenv("SRT_GATEWAY_HOST") is None,
        help="gateway hostname or IP address",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=_int_env("SRT_GATEWAY_PORT", 443),
        help="gateway REST API port",
    )
    parser.add_argument(
        "--protocol",
        default=os.getenv("SRT_GATEWAY_PROTOCOL", "https"),
        choices=("http", "https"),
        help="gateway REST API scheme",
    )
    parser.add_argument(
        "--username",
        default=os.getenv("SRT_GATEWAY_USERNAME", ""),
        help="gateway login name",
    )
    parser.add_argument(
        "--password",
        default=os.getenv("SRT_GATEWAY_PASSWORD", ""),
        help="gateway login password",
    )
    parser.add_argument(
        "--verify-tls",
        action=argparse.BooleanOptionalAction,
        default=_bool_env("SRT_GATEWAY_VERIFY_TLS", False),
        help="verify the gateway TLS certificate",
    )
    parser.add_argument(
        "--timeout-seconds",
        type=float,
        default=_float_env("SRT_GATEWAY_TIMEOUT_SECONDS", 30.0),
        help="timeout for each gateway HTTP request",
    )
    parser.add_argument(
        "--route-page-size",
        type=int,
        default=_int_env("SRT_GATEWAY_ROUTE_PAGE_SIZE", 500),
        help="number of routes requested in the single route list page",
    )
    parser.add_argument(
        "--include-all-routes",
        default=os.getenv("SRT_GATEWAY_INCLUDE_ALL_ROUTES"),
        help='"true" to report every route; otherwise --route-name-filter applies',
    )
    parser.add_argument(
        "--route-name-filter",
        default=os.getenv("SRT_GATEWAY_ROUTE_NAME_FILTER"),
        help="comma-separated route names to report",
    )
    parser.add_argument(
        "--poll-interval-seconds",
        type=float,
        default=_float_env("SRT_GATEWAY_POLL_INTERVAL_SECONDS", 60.0),
        help="interval between gateway polls",
    )
    parser.add_argument(
        "--listen-address",
        default=os.getenv("SRT_GATEWAY_LISTEN_ADDRESS", "0.0.0.0"),
        help="http bind address for /metrics endpoint",
    )
    parser.add_argument(
        "--listen-port",
        type=int,
        default=_int_env("SRT_GATEWAY_LISTEN_PORT", 9119),
        help="http bind port for /metrics endpoint",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single poll, print the statistics as JSON and exit",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("SRT_GATEWAY_LOG_LEVEL", "INFO"),
        help="python logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def load_config(argv: list[str] | None = None) -> AppConfig:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    gateway_config = GatewayConfig(
        host=args.host,
        port=args.port,
        protocol=args.protocol,
        username=args.username,
        password=args.password,
        verify_tls=bool(args.verify_tls),
        timeout_seconds=args.timeout_seconds,
    )
    poll_config = PollConfig(
        gateway=gateway_config,
        route_page_size=args.route_page_size,
        include_all_routes=args.include_all_routes,
        route_name_filter=args.route_name_filter,
    )
    return AppConfig(
        poll=poll_config,
        poll_interval_seconds=args.poll_interval_seconds,
        listen_address=args.listen_address,
        listen_port=args.listen_port,
        run_once=bool(args.once),
        log_level=args.log_level,
    )


def run_poll_cycle(*, poller: GatewayPoller, metrics: GatewayMetricsPublisher, target: str) -> PollResult:
    monotonic_start = time.monotonic()
    try:
        result = poller.poll()
    except GatewayError as error:
        result = PollResult(
            success=False,
            poll_duration_seconds=time.monotonic() - monotonic_start,
            error=str(error),
        )
    metrics.apply_poll_result(target=target, result=result)
    if result.success:
        LOGGER.info(
            "gateway poll successful: %d statistics, %s routes",
            len(result.statistics),
            result.routes_total,
        )
    else:
        LOGGER.warning("gateway poll failed: %s", result.error)
    return result


def main() -> None:
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    target = config.poll.gateway.host
    poller = GatewayPoller(config.poll)
    metrics = GatewayMetricsPublisher()

    try:
        if config.run_once:
            result = run_poll_cycle(poller=poller, metrics=metrics, target=target)
            json.dump(result.statistics, sys.stdout, indent=2, sort_keys=True)
            sys.stdout.write("\n")
            if not result.success:
                sys.exit(1)
            return

        start_http_server(
            port=config.listen_port,
            addr=config.listen_address,
            registry=metrics.registry,
        )
        LOGGER.info("metrics server listening on http://%s:%d/metrics", config.listen_address, config.listen_port)

        LOGGER.info("running initial poll on startup")
        run_poll_cycle(poller=poller, metrics=metrics, target=target)
        next_poll_at = time.monotonic() + config.poll_interval_seconds

        while True:
            sleep_for = max(0.0, next_poll_at - time.monotonic())
            time.sleep(sleep_for)
            run_poll_cycle(poller=poller, metrics=metrics, target=target)
            next_poll_at += config.poll_interval_seconds
    except KeyboardInterrupt:
        LOGGER.info("shutdown requested, exiting")
    finally:
        poller.close()


if __name__ == "__main__":
    main()
