"""Tests for the operator CLI's HTTP helper."""

import httpx
import pytest

from tradebench.client import cli
from tradebench.client.cli import (
    ApiError,
    build_parser,
    call_api,
)

BASE = "http://control.test"


def test_call_api_returns_json() -> None:
    """Successful replies are decoded."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/window/adhoc"
        return httpx.Response(200, json={"ok": True})

    result = call_api(
        "POST",
        "/window/adhoc",
        {"duration_minutes": 5},
        base_url=BASE,
        transport=httpx.MockTransport(handler),
    )
    assert result == {"ok": True}


def test_call_api_surfaces_detail() -> None:
    """Error replies raise ApiError carrying the API's detail."""

    transport = httpx.MockTransport(
        lambda request: httpx.Response(400, json={"detail": ["bad window"]})
    )
    with pytest.raises(ApiError) as info:
        call_api("PUT", "/schedule", {"windows": ["x"]}, base_url=BASE, transport=transport)
    assert "bad window" in str(info.value)


def test_call_api_retries_refused_connections(monkeypatch: pytest.MonkeyPatch) -> None:
    """Refused connections are retried with backoff before giving up."""

    attempts = []
    delays = []
    monkeypatch.setattr(cli.time, "sleep", delays.append)

    def refuse(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ApiError):
        call_api(
            "GET", "/health", base_url=BASE, max_retries=3, transport=httpx.MockTransport(refuse)
        )
    assert len(attempts) == 3
    assert delays == [0.5, 1.0]


def test_parser_commands() -> None:
    """Every operator command is available."""

    parser = build_parser()
    args = parser.parse_args(["schedule", "--windows", "08:00,12:00", "--duration", "5"])
    assert args.func is cli.cmd_schedule
    assert args.duration == 5
    assert parser.parse_args(["open-adhoc", "--minutes", "7"]).minutes == 7
    assert parser.parse_args(["close-adhoc"]).func is cli.cmd_close_adhoc
    assert parser.parse_args(["status"]).func is cli.cmd_status
