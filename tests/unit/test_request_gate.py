"""Tests for the request gate and its ASGI middleware."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route

from cvsite.gate.cors import CORSPolicy
from cvsite.gate.limiter import RateLimiter
from cvsite.gate.middleware import GateMiddleware, RequestGate
from cvsite.models import AuditEventType, RateLimitConfig

CONFIG = RateLimitConfig(window_ms=60_000, max_requests=3)
CORS_KEYS = (
    "access-control-allow-origin",
    "access-control-allow-methods",
    "access-control-allow-headers",
    "access-control-max-age",
)
BASE_TIME = 1_700_000_000.0


def _direct_app(gate: RequestGate, config: RateLimitConfig = CONFIG) -> Starlette:
    """App whose handler uses the admit/add_cors_headers contract by hand."""

    async def handler(request: Request) -> Response:
        short_circuit = gate.admit(request, config)
        if short_circuit is not None:
            return short_circuit
        return gate.add_cors_headers(PlainTextResponse("OK"), request)

    return Starlette(routes=[
        Route("/api/x", handler, methods=["GET", "POST", "OPTIONS"]),
        Route("/api/y", handler, methods=["GET"]),
    ])


def _middleware_app(gate: RequestGate) -> GateMiddleware:
    async def ok(request: Request) -> Response:
        return PlainTextResponse("OK")

    app = Starlette(routes=[
        Route("/api/x", ok, methods=["GET", "POST"]),
        Route("/api/webhook/cv", ok, methods=["POST"]),
        Route("/public", ok),
    ])
    return GateMiddleware(
        app,
        gate=gate,
        routes=[
            ("/api", CONFIG),
            ("/api/webhook", RateLimitConfig(window_ms=60_000, max_requests=1)),
        ],
    )


def _client(app: object) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")  # type: ignore[arg-type]


class TestAdmit:
    def test_limiter_injectable(self) -> None:
        limiter = RateLimiter()
        assert RequestGate(limiter=limiter).limiter is limiter

    @pytest.mark.asyncio
    async def test_admitted_response_has_cors(self) -> None:
        async with _client(_direct_app(RequestGate())) as client:
            resp = await client.get("/api/x")
        assert resp.status_code == 200
        for key in CORS_KEYS:
            assert key in resp.headers

    @pytest.mark.asyncio
    async def test_fourth_request_rejected(self) -> None:
        headers = {"x-forwarded-for": "1.2.3.4"}
        async with _client(_direct_app(RequestGate())) as client:
            for _ in range(3):
                assert (await client.get("/api/x", headers=headers)).status_code == 200
            resp = await client.get("/api/x", headers=headers)
        assert resp.status_code == 429
        assert resp.headers["x-ratelimit-remaining"] == "0"
        assert resp.headers["x-ratelimit-limit"] == "3"
        assert int(resp.headers["retry-after"]) in (59, 60)
        assert resp.headers["x-ratelimit-reset"].endswith("Z")
        body = resp.json()
        assert body == {
            "error": "Too many requests",
            "retryAfter": int(resp.headers["retry-after"]),
            "limit": 3,
            "windowMs": 60_000,
        }

    @pytest.mark.asyncio
    async def test_rejection_carries_cors(self) -> None:
        config = RateLimitConfig(window_ms=60_000, max_requests=1)
        async with _client(_direct_app(RequestGate(), config)) as client:
            await client.get("/api/x")
            resp = await client.get("/api/x")
        assert resp.status_code == 429
        for key in CORS_KEYS:
            assert key in resp.headers

    @pytest.mark.asyncio
    async def test_custom_message(self) -> None:
        config = RateLimitConfig(window_ms=60_000, max_requests=1, message="Slow down")
        async with _client(_direct_app(RequestGate(), config)) as client:
            await client.get("/api/x")
            resp = await client.get("/api/x")
        assert resp.json()["error"] == "Slow down"

    @pytest.mark.asyncio
    async def test_preflight_never_consumes_quota(self) -> None:
        config = RateLimitConfig(window_ms=60_000, max_requests=1)
        async with _client(_direct_app(RequestGate(), config)) as client:
            for _ in range(5):
                resp = await client.options("/api/x")
                assert resp.status_code == 200
                assert resp.content == b""
                assert resp.headers["access-control-max-age"] == "86400"
            assert (await client.get("/api/x")).status_code == 200

    @pytest.mark.asyncio
    async def test_paths_accounted_separately(self) -> None:
        config = RateLimitConfig(window_ms=60_000, max_requests=1)
        async with _client(_direct_app(RequestGate(), config)) as client:
            assert (await client.get("/api/x")).status_code == 200
            assert (await client.get("/api/y")).status_code == 200
            assert (await client.get("/api/x")).status_code == 429

    @pytest.mark.asyncio
    async def test_clients_accounted_separately(self) -> None:
        config = RateLimitConfig(window_ms=60_000, max_requests=1)
        async with _client(_direct_app(RequestGate(), config)) as client:
            a = {"x-forwarded-for": "1.1.1.1"}
            b = {"x-forwarded-for": "2.2.2.2"}
            assert (await client.get("/api/x", headers=a)).status_code == 200
            assert (await client.get("/api/x", headers=a)).status_code == 429
            assert (await client.get("/api/x", headers=b)).status_code == 200

    @pytest.mark.asyncio
    async def test_window_reset_with_mock_time(self) -> None:
        headers = {"x-forwarded-for": "1.2.3.4"}
        async with _client(_direct_app(RequestGate())) as client:
            with patch("cvsite.gate.limiter.time") as mock_time:
                mock_time.time.return_value = BASE_TIME
                for _ in range(3):
                    await client.get("/api/x", headers=headers)
                assert (await client.get("/api/x", headers=headers)).status_code == 429
                mock_time.time.return_value = BASE_TIME + 61
                assert (await client.get("/api/x", headers=headers)).status_code == 200

    @pytest.mark.asyncio
    async def test_rejection_audited(self) -> None:
        audit = MagicMock()
        config = RateLimitConfig(window_ms=60_000, max_requests=1)
        gate = RequestGate(audit_logger=audit)
        async with _client(_direct_app(gate, config)) as client:
            await client.get("/api/x", headers={"x-real-ip": "9.9.9.9"})
            await client.get("/api/x", headers={"x-real-ip": "9.9.9.9"})
        events = [c[0][0] for c in audit.log.call_args_list]
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.RATE_LIMITED
        assert events[0].source_ip == "9.9.9.9"


class TestGateMiddleware:
    @pytest.mark.asyncio
    async def test_gated_response_gets_cors(self) -> None:
        async with _client(_middleware_app(RequestGate())) as client:
            resp = await client.get("/api/x")
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_ungated_path_untouched(self) -> None:
        config_gate = RequestGate()
        async with _client(_middleware_app(config_gate)) as client:
            for _ in range(10):
                resp = await client.get("/public")
                assert resp.status_code == 200
        assert "access-control-allow-origin" not in resp.headers

    @pytest.mark.asyncio
    async def test_longest_prefix_wins(self) -> None:
        async with _client(_middleware_app(RequestGate())) as client:
            assert (await client.post("/api/webhook/cv")).status_code == 200
            resp = await client.post("/api/webhook/cv")
        assert resp.status_code == 429
        assert resp.json()["limit"] == 1

    @pytest.mark.asyncio
    async def test_preflight_answered_before_routing(self) -> None:
        async with _client(_middleware_app(RequestGate())) as client:
            resp = await client.options("/api/x")
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-methods"] == "GET, POST, PUT, DELETE, OPTIONS"

    @pytest.mark.asyncio
    async def test_not_found_under_gated_prefix_gets_cors(self) -> None:
        async with _client(_middleware_app(RequestGate())) as client:
            resp = await client.get("/api/missing")
        assert resp.status_code == 404
        assert "access-control-allow-origin" in resp.headers

    def test_config_for_prefix_boundaries(self) -> None:
        mw = _middleware_app(RequestGate())
        assert mw.config_for("/api") == CONFIG
        assert mw.config_for("/apiary") is None
        assert mw.config_for("/api/webhook/cv").max_requests == 1  # type: ignore[union-attr]


class TestCORSPolicy:
    def test_wildcard_default(self) -> None:
        headers = CORSPolicy().headers("https://anything.example")
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert headers["Access-Control-Allow-Headers"] == (
            "Content-Type, Authorization, X-Signature-256, X-Timestamp"
        )
        assert "Vary" not in headers

    def test_single_origin(self) -> None:
        policy = CORSPolicy(["https://cv.example.com"])
        assert policy.allow_origin("https://evil.example") == "https://cv.example.com"

    def test_multiple_origins_echo_match(self) -> None:
        policy = CORSPolicy(["https://a.example", "https://b.example"])
        assert policy.allow_origin("https://b.example") == "https://b.example"
        assert policy.allow_origin("https://evil.example") == "https://a.example"
        assert policy.headers()["Vary"] == "Origin"

    def test_empty_list_means_wildcard(self) -> None:
        assert CORSPolicy([]).allow_origin() == "*"
