from __future__ import annotations

import json
from typing import Any, Callable

import pytest
import requests

from srt_gateway_exporter.client import GatewayClient, GatewayConfig


def make_response(status_code: int = 200, payload: Any = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = b"" if payload is None else json.dumps(payload).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    return response


class FakeHttpSession:
    """Scripted stand-in for requests.Session keyed by (method, path)."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[requests.Response | Callable[[], requests.Response]]] = {}
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def add(self, method: str, path: str, *responses: requests.Response | Callable[[], requests.Response]) -> None:
        self.routes.setdefault((method, path), []).extend(responses)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        path = url.split("://", 1)[1].split("/", 1)[1]
        self.calls.append({"method": method, "path": path, **kwargs})
        queue = self.routes.get((method, path))
        if not queue:
            raise requests.ConnectionError(f"no scripted response for {method} {path}")
        handler = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(handler):
            return handler()
        return handler

    def paths(self, method: str | None = None) -> list[str]:
        return [call["path"] for call in self.calls if method is None or call["method"] == method]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def http() -> FakeHttpSession:
    return FakeHttpSession()


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(host="gw.local", username="admin", password="s3cr3t")


@pytest.fixture
def client(gateway_config: GatewayConfig, http: FakeHttpSession) -> GatewayClient:
    return GatewayClient(gateway_config, http_session=http)
