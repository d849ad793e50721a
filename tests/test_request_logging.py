from __future__ import annotations

import json
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from launchcurve.api.structured_logging import RequestLogMiddleware, RequestLogSettings


def _app(settings: RequestLogSettings) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestLogMiddleware, settings=settings)

    @app.get("/v1/tokens/{token}")
    def token(token: str):
        return {"ok": True, "token": token}

    return app


def _lines(caplog: pytest.LogCaptureFixture):
    return [(r.levelno, json.loads(r.getMessage())) for r in caplog.records if r.name == "launchcurve.http"]


def test_request_line_carries_token_and_request_id(caplog: pytest.LogCaptureFixture) -> None:
    client = TestClient(_app(RequestLogSettings(headers=("user-agent",))))

    with caplog.at_level(logging.INFO, logger="launchcurve.http"):
        r = client.get("/v1/tokens/tok", headers={"x-request-id": "req-1", "user-agent": "curl/8.5"})

    assert r.headers["x-request-id"] == "req-1"
    [(level, line)] = _lines(caplog)
    assert level == logging.INFO
    assert line["event"] == "http_request"
    assert line["token"] == "tok"
    assert line["status"] == 200
    assert line["request_id"] == "req-1"
    assert line["headers"] == {"user-agent": "curl/8.5"}


def test_slow_requests_log_at_warning(caplog: pytest.LogCaptureFixture) -> None:
    client = TestClient(_app(RequestLogSettings(slow_ms=1)))

    with caplog.at_level(logging.INFO, logger="launchcurve.http"):
        client.get("/v1/tokens/tok")

    # duration can round down to 0ms, so only the level/flag pairing is fixed
    [(level, line)] = _lines(caplog)
    assert (level == logging.WARNING) == bool(line.get("slow"))


def test_disabled_settings_emit_nothing(caplog: pytest.LogCaptureFixture) -> None:
    client = TestClient(_app(RequestLogSettings(enabled=False)))

    with caplog.at_level(logging.INFO, logger="launchcurve.http"):
        assert client.get("/v1/tokens/tok").status_code == 200

    assert _lines(caplog) == []


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LAUNCHCURVE_LOG_REQUESTS", "off")
    monkeypatch.setenv("LAUNCHCURVE_LOG_REQUEST_HEADERS", "1")
    monkeypatch.setenv("LAUNCHCURVE_SLOW_REQUEST_MS", "bad")

    s = RequestLogSettings.from_env()

    assert s.enabled is False
    assert "user-agent" in s.headers
    assert s.slow_ms == 0
