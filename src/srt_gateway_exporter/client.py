from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests
import urllib3


SESSION_PATH = "api/session"
DEVICES_PATH = "api/devices"
ROUTES_PATH = "api/gateway/{device_id}/routes"
LOGGER = logging.getLogger("srt_gateway_exporter.client")


class GatewayError(Exception):
    """Base error for gateway communication failures."""


class AuthenticationError(GatewayError):
    """The gateway rejected the configured credentials."""


class UnreachableError(GatewayError):
    """The gateway could not be reached or answered with an unusable payload."""


class SessionState(Enum):
    ABSENT = "absent"
    UNVERIFIED = "unverified"
    VERIFIED = "verified"


@dataclass(frozen=True)
class GatewayConfig:
    host: str
    port: int = 443
    protocol: str = "https"
    username: str = ""
    password: str = ""
    verify_tls: bool = False
    timeout_seconds: float = 30.0

    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"


def _extract_session_id(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    response = payload.get("response")
    if not isinstance(response, dict):
        return None
    session_id = response.get("sessionID")
    if session_id is None:
        return None
    session_id = str(session_id).strip()
    return session_id or None


class GatewayClient:
    """REST client for the gateway API, holding a single cookie session."""

    def __init__(self, config: GatewayConfig, http_session: requests.Session | None = None) -> None:
        self.config = config
        self._http = http_session if http_session is not None else requests.Session()
        self._token: str | None = None
        self._state = SessionState.ABSENT
        if not config.verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def state(self) -> SessionState:
        return self._state

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Cookie"] = f"sessionID={self._token}"
        return headers

    def request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        url = f"{self.config.base_url()}/{path.lstrip('/')}"
        try:
            response = self._http.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.config.timeout_seconds,
                verify=self.config.verify_tls,
            )
        except requests.RequestException as error:
            raise UnreachableError(f"{method} {path} failed: {error}") from error

        if response.status_code in (401, 403):
            raise AuthenticationError(f"{method} {path} rejected with HTTP {response.status_code}")
        if response.status_code >= 400:
            raise UnreachableError(f"{method} {path} returned HTTP {response.status_code}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as error:
            raise UnreachableError(f"{method} {path} returned a non-JSON body") from error

    def _clear_token(self) -> None:
        self._token = None
        self._state = SessionState.ABSENT

    def login(self) -> str:
        self._clear_token()
        credentials = {"username": self.config.username, "password": self.config.password}
        try:
            payload = self.request("POST", SESSION_PATH, credentials)
        except AuthenticationError as error:
            raise AuthenticationError("Unable to login. Please check device credentials") from error
        except GatewayError as error:
            raise UnreachableError("Unable to retrieve the authorization token, endpoint not reachable") from error

        session_id = _extract_session_id(payload)
        if session_id is None:
            raise UnreachableError("Unable to retrieve the authorization token, endpoint not reachable")
        self._token = session_id
        self._state = SessionState.VERIFIED
        LOGGER.debug("created gateway session on %s", self.config.host)
        return session_id

    def validate(self) -> bool:
        try:
            payload = self.request("GET", SESSION_PATH)
        except GatewayError as error:
            LOGGER.info("session validation failed: %s", error)
            return False
        if payload is None:
            return False
        if isinstance(payload, dict) and "error" in payload:
            return False
        return True

    def ensure_authenticated(self) -> str:
        if self._state is SessionState.ABSENT or not self._token:
            return self.login()

        self._state = SessionState.UNVERIFIED
        if self.validate():
            self._state = SessionState.VERIFIED
            return self._token
        LOGGER.info("gateway session %s is no longer valid; logging in again", self._token)
        return self.login()

    def logout(self) -> None:
        if not self._token:
            return
        try:
            self.request("DELETE", SESSION_PATH)
            LOGGER.info("deleted gateway session %s", self._token)
        except GatewayError as error:
            LOGGER.info("failed to delete gateway session %s: %s", self._token, error)
        finally:
            self._clear_token()

    def close(self) -> None:
        self.logout()
        self._http.close()

    def fetch_device_list(self) -> Any:
        return self.request("GET", DEVICES_PATH)

    def fetch_route_page(self, device_id: str, page_size: int) -> Any:
        path = ROUTES_PATH.format(device_id=device_id)
        return self.request("GET", f"{path}?page=1&pageSize={page_size}")
