import logging

import pytest
import requests

from conftest import FakeHttpSession, make_response
from srt_gateway_exporter.client import (
    AuthenticationError,
    GatewayClient,
    GatewayConfig,
    SessionState,
    UnreachableError,
)


def test_base_url_uses_protocol_host_and_port() -> None:
    config = GatewayConfig(host="10.0.0.5", port=8443, protocol="https")
    assert config.base_url() == "https://10.0.0.5:8443"


def test_login_stores_session_id_and_sends_credentials(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add("POST", "api/session", make_response(200, {"response": {"sessionID": "abc123"}}))

    assert client.login() == "abc123"
    assert client.token == "abc123"
    assert client.state is SessionState.VERIFIED
    login_call = http.calls[0]
    assert login_call["json"] == {"username": "admin", "password": "s3cr3t"}
    assert login_call["headers"] == {"Content-Type": "application/json"}
    assert login_call["verify"] is False


def test_requests_carry_session_cookie_once_logged_in(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add("POST", "api/session", make_response(200, {"response": {"sessionID": "abc123"}}))
    http.add("GET", "api/devices", make_response(200, [{"_id": "dev1"}]))

    client.login()
    assert client.fetch_device_list() == [{"_id": "dev1"}]
    assert http.calls[-1]["headers"] == {
        "Content-Type": "application/json",
        "Cookie": "sessionID=abc123",
    }


def test_login_rejected_credentials_raise_authentication_error(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add("POST", "api/session", make_response(401, {"error": "bad credentials"}))

    with pytest.raises(AuthenticationError, match="check device credentials"):
        client.login()
    assert client.token is None
    assert client.state is SessionState.ABSENT


def test_login_without_session_id_is_unreachable(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add("POST", "api/session", make_response(200, {"response": {}}))

    with pytest.raises(UnreachableError, match="authorization token"):
        client.login()
    assert client.token is None


def test_login_transport_failure_is_unreachable(client: GatewayClient, http: FakeHttpSession) -> None:
    def refuse() -> requests.Response:
        raise requests.ConnectionError("connection refused")

    http.add("POST", "api/session", refuse)

    with pytest.raises(UnreachableError):
        client.login()


def test_login_server_error_is_unreachable(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add("POST", "api/session", make_response(500, {"error": "boom"}))

    with pytest.raises(UnreachableError):
        client.login()


def test_ensure_authenticated_logs_in_when_no_session(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add("POST", "api/session", make_response(200, {"response": {"sessionID": "abc123"}}))

    assert client.ensure_authenticated() == "abc123"
    assert http.paths() == ["api/session"]
    assert http.calls[0]["method"] == "POST"


def test_ensure_authenticated_keeps_valid_session(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add("POST", "api/session", make_response(200, {"response": {"sessionID": "abc123"}}))
    http.add("GET", "api/session", make_response(200, {"response": {"user": "admin"}}))

    client.ensure_authenticated()
    assert client.ensure_authenticated() == "abc123"
    assert [call["method"] for call in http.calls] == ["POST", "GET"]
    assert client.state is SessionState.VERIFIED


def test_ensure_authenticated_relogs_when_session_reports_error(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add(
        "POST",
        "api/session",
        make_response(200, {"response": {"sessionID": "first"}}),
        make_response(200, {"response": {"sessionID": "second"}}),
    )
    http.add("GET", "api/session", make_response(200, {"error": "session expired"}))

    client.ensure_authenticated()
    assert client.ensure_authenticated() == "second"
    assert [call["method"] for call in http.calls] == ["POST", "GET", "POST"]


def test_ensure_authenticated_relogs_when_validation_raises(
    client: GatewayClient,
    http: FakeHttpSession,
    caplog,
) -> None:
    http.add(
        "POST",
        "api/session",
        make_response(200, {"response": {"sessionID": "first"}}),
        make_response(200, {"response": {"sessionID": "second"}}),
    )
    http.add("GET", "api/session", make_response(401, {"error": "unauthorized"}))

    client.ensure_authenticated()
    with caplog.at_level(logging.INFO, logger="srt_gateway_exporter.client"):
        assert client.ensure_authenticated() == "second"
    assert "session validation failed" in caplog.text


def test_ensure_authenticated_relogs_on_empty_validation_body(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add(
        "POST",
        "api/session",
        make_response(200, {"response": {"sessionID": "first"}}),
        make_response(200, {"response": {"sessionID": "second"}}),
    )
    http.add("GET", "api/session", make_response(200))

    client.ensure_authenticated()
    assert client.ensure_authenticated() == "second"


def test_logout_clears_token_even_when_delete_fails(client: GatewayClient, http: FakeHttpSession, caplog) -> None:
    http.add("POST", "api/session", make_response(200, {"response": {"sessionID": "abc123"}}))
    http.add("DELETE", "api/session", make_response(500))

    client.login()
    with caplog.at_level(logging.INFO, logger="srt_gateway_exporter.client"):
        client.logout()

    assert client.token is None
    assert client.state is SessionState.ABSENT
    assert "failed to delete gateway session abc123" in caplog.text


def test_logout_without_session_does_not_call_gateway(client: GatewayClient, http: FakeHttpSession) -> None:
    client.logout()
    assert http.calls == []


def test_close_logs_out_and_closes_http_session(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add("POST", "api/session", make_response(200, {"response": {"sessionID": "abc123"}}))
    http.add("DELETE", "api/session", make_response(200))

    client.login()
    client.close()

    assert http.paths("DELETE") == ["api/session"]
    assert http.calls[-1]["headers"]["Cookie"] == "sessionID=abc123"
    assert http.closed is True
    assert client.token is None


def test_route_page_uses_device_id_and_page_size(client: GatewayClient, http: FakeHttpSession) -> None:
    http.add("GET", "api/gateway/dev1/routes?page=1&pageSize=25", make_response(200, {"data": []}))

    assert client.fetch_route_page("dev1", 25) == {"data": []}


def test_non_json_body_is_unreachable(client: GatewayClient, http: FakeHttpSession) -> None:
    response = make_response(200)
    response._content = b"<html>maintenance</html>"
    http.add("GET", "api/devices", response)

    with pytest.raises(UnreachableError, match="non-JSON"):
        client.fetch_device_list()
