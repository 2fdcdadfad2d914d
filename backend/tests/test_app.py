"""
API Server - HTTP Application Tests
=====================================

What:  End-to-end tests of the assembled FastAPI app through httpx's ASGITransport.

What we test:
    ✅ GET / liveness response
    ✅ /api/v1/* delegated to the mounted sub-router (default or injected)
    ✅ Middleware installed in cors → cookies → json-body order
    ✅ CORS, cookie and JSON body parsing as seen by a handler
    ✅ Request ID sanitizing and area-tagged access log lines
    ✅ App refuses to build before the database is connected
"""

import json
from urllib.parse import quote

import pytest
from fastapi import APIRouter, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import ServerSelectionTimeoutError

from apiserver.context import AppContext
from apiserver.database import DatabaseConnector, get_database
from apiserver.main import create_app
from apiserver.middleware import MIDDLEWARE_CHAIN
from apiserver.middleware.cookies import CookieParserMiddleware, sign_cookie
from apiserver.middleware.json_body import JSONBodyMiddleware
from apiserver.middleware.logging import RequestLoggingMiddleware
from apiserver.middleware.request_id import RequestIDMiddleware

from conftest import build_client, make_settings


class TestAppAssembly:
    def test_refuses_unconnected_database(self):
        context = AppContext(settings=make_settings(), connector=DatabaseConnector())
        with pytest.raises(RuntimeError):
            create_app(context)

    @pytest.mark.asyncio
    async def test_middleware_execution_order(self, app_context):
        app = create_app(app_context)
        # user_middleware lists the outermost layer first
        classes = [m.cls for m in app.user_middleware]
        assert classes == [
            RequestIDMiddleware,
            RequestLoggingMiddleware,
            CORSMiddleware,
            CookieParserMiddleware,
            JSONBodyMiddleware,
        ]
        assert MIDDLEWARE_CHAIN == ("cors", "cookies", "json_body")

    @pytest.mark.asyncio
    async def test_context_attached_to_app(self, app_context):
        app = create_app(app_context)
        assert app.state.context is app_context


class TestLiveness:
    @pytest.mark.asyncio
    async def test_root_returns_working(self, test_client):
        response = await test_client.get("/")
        assert response.status_code == 200
        assert response.text == "Working"
        assert response.headers["content-type"].startswith("text/plain")

    @pytest.mark.asyncio
    async def test_root_does_not_touch_database(self, test_client, mock_motor_client):
        mock_motor_client.admin.command.reset_mock()
        await test_client.get("/")
        mock_motor_client.admin.command.assert_not_awaited()


class TestVersionedRouter:
    @pytest.mark.asyncio
    async def test_default_status_route(self, test_client):
        response = await test_client.get("/api/v1/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "connected"

    @pytest.mark.asyncio
    async def test_status_route_reports_lost_database(self, test_client, mock_motor_client):
        mock_motor_client.admin.command.side_effect = ServerSelectionTimeoutError("gone")
        response = await test_client.get("/api/v1/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unavailable"

    @pytest.mark.asyncio
    async def test_injected_sub_router_is_mounted_under_prefix(self, app_context, echo_router):
        async with build_client(create_app(app_context, echo_router)) as client:
            assert (await client.get("/api/v1/echo")).status_code == 200
            # Only the prefix reaches the sub-router
            assert (await client.get("/echo")).status_code == 404
            # The default sub-router is replaced, not merged
            assert (await client.get("/api/v1/health")).status_code == 404

    @pytest.mark.asyncio
    async def test_sub_router_receives_connected_database(self, app_context, mock_motor_client):
        mock_motor_client.get_default_database.return_value.name = "appdb"
        router = APIRouter()

        @router.get("/db")
        async def db_name(db=Depends(get_database)):
            return {"database": db.name}

        async with build_client(create_app(app_context, router)) as client:
            response = await client.get("/api/v1/db")
        assert response.json() == {"database": "appdb"}

    @pytest.mark.asyncio
    async def test_unknown_v1_path_is_404(self, test_client):
        response = await test_client.get("/api/v1/does-not-exist")
        assert response.status_code == 404


class TestRequestId:
    @pytest.mark.asyncio
    async def test_generated_when_absent(self, test_client):
        response = await test_client.get("/")
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_client_value_echoed(self, test_client):
        response = await test_client.get("/", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("client_id", ["has space", "x" * 65, "semi;colon"])
    async def test_malformed_client_value_replaced(self, test_client, client_id):
        response = await test_client.get("/", headers={"X-Request-ID": client_id})
        rid = response.headers["X-Request-ID"]
        assert rid != client_id
        assert len(rid) == 8

    @pytest.mark.asyncio
    async def test_available_to_handlers(self, app_context):
        router = APIRouter()

        @router.get("/whoami")
        async def whoami(request: Request):
            return {"request_id": request.state.request_id}

        async with build_client(create_app(app_context, router)) as client:
            response = await client.get("/api/v1/whoami", headers={"X-Request-ID": "req-9"})
        assert response.json() == {"request_id": "req-9"}


class TestAccessLog:
    @pytest.mark.asyncio
    async def test_v1_request_logged_with_area(self, test_client, caplog):
        caplog.set_level("INFO", logger="apiserver.access")
        await test_client.get("/api/v1/health", headers={"X-Request-ID": "log-1"})

        records = [r for r in caplog.records if r.name == "apiserver.access"]
        assert len(records) == 1
        assert records[0].area == "api/v1"
        assert records[0].status == 200
        assert "[log-1] GET /api/v1/health -> 200" in records[0].getMessage()

    @pytest.mark.asyncio
    async def test_missing_route_logged_as_warning_in_root_area(self, test_client, caplog):
        caplog.set_level("INFO", logger="apiserver.access")
        await test_client.get("/nowhere")

        (record,) = [r for r in caplog.records if r.name == "apiserver.access"]
        assert record.levelname == "WARNING"
        assert record.area == "root"
        assert record.status == 404

    @pytest.mark.asyncio
    async def test_liveness_probe_not_logged(self, test_client, caplog):
        caplog.set_level("INFO", logger="apiserver.access")
        await test_client.get("/")
        assert not [r for r in caplog.records if r.name == "apiserver.access"]


class TestCors:
    @pytest.mark.asyncio
    async def test_permissive_by_default(self, test_client):
        response = await test_client.get("/", headers={"Origin": "http://elsewhere.example"})
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_preflight_answered_before_routing(self, test_client):
        response = await test_client.options(
            "/api/v1/anything",
            headers={
                "Origin": "http://elsewhere.example",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert "POST" in response.headers["access-control-allow-methods"]

    @pytest.mark.asyncio
    async def test_restricted_origins(self, connector):
        context = AppContext(
            settings=make_settings(cors_origins="http://app.example"), connector=connector
        )
        async with build_client(create_app(context)) as client:
            allowed = await client.get("/", headers={"Origin": "http://app.example"})
            other = await client.get("/", headers={"Origin": "http://evil.example"})
        assert allowed.headers["access-control-allow-origin"] == "http://app.example"
        assert allowed.headers["access-control-allow-credentials"] == "true"
        assert "access-control-allow-origin" not in other.headers


class TestCookieParsing:
    @pytest.mark.asyncio
    async def test_plain_and_json_cookies(self, app_context, echo_router):
        async with build_client(create_app(app_context, echo_router)) as client:
            response = await client.get(
                "/api/v1/echo",
                headers={"Cookie": 'theme=dark; prefs=j:{"lang":"en"}'},
            )
        cookies = response.json()["cookies"]
        assert cookies["theme"] == "dark"
        assert cookies["prefs"] == {"lang": "en"}

    @pytest.mark.asyncio
    async def test_signed_cookies_with_secret(self, connector, echo_router):
        context = AppContext(settings=make_settings(cookie_secret="k3y"), connector=connector)
        good = sign_cookie("user-42", "k3y")
        bad = sign_cookie("user-42", "wrong")
        async with build_client(create_app(context, echo_router)) as client:
            response = await client.get(
                "/api/v1/echo", headers={"Cookie": f"sid={good}; forged={bad}; plain=1"}
            )
        body = response.json()
        assert body["signed_cookies"] == {"sid": "user-42", "forged": False}
        assert body["cookies"] == {"plain": "1"}

    @pytest.mark.asyncio
    async def test_url_encoded_cookies_decoded(self, connector, echo_router):
        context = AppContext(settings=make_settings(cookie_secret="k3y"), connector=connector)
        signed = quote(sign_cookie("user-42", "k3y"), safe="")
        prefs = quote('j:{"lang":"en"}', safe="")
        async with build_client(create_app(context, echo_router)) as client:
            response = await client.get(
                "/api/v1/echo", headers={"Cookie": f"sid={signed}; prefs={prefs}; name=a%20b"}
            )
        body = response.json()
        assert body["signed_cookies"] == {"sid": "user-42"}
        assert body["cookies"] == {"prefs": {"lang": "en"}, "name": "a b"}

    @pytest.mark.asyncio
    async def test_no_cookie_header(self, app_context, echo_router):
        async with build_client(create_app(app_context, echo_router)) as client:
            response = await client.get("/api/v1/echo")
        assert response.json()["cookies"] == {}


class TestJsonBody:
    @pytest.mark.asyncio
    async def test_parsed_before_handler(self, app_context, echo_router):
        async with build_client(create_app(app_context, echo_router)) as client:
            response = await client.post("/api/v1/echo", json={"title": "note", "tags": [1, 2]})
        assert response.status_code == 200
        assert response.json()["json"] == {"title": "note", "tags": [1, 2]}

    @pytest.mark.asyncio
    async def test_handler_can_still_read_body(self, app_context, echo_router):
        async with build_client(create_app(app_context, echo_router)) as client:
            response = await client.post("/api/v1/raw", json=[1, 2, 3])
        assert response.json() == {"body": [1, 2, 3]}

    @pytest.mark.asyncio
    async def test_malformed_json_is_400(self, app_context, echo_router):
        async with build_client(create_app(app_context, echo_router)) as client:
            response = await client.post(
                "/api/v1/echo",
                content=b'{"title": ',
                headers={"Content-Type": "application/json", "X-Request-ID": "bad-json"},
            )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["request_id"] == "bad-json"

    @pytest.mark.asyncio
    async def test_scalar_json_is_400(self, app_context, echo_router):
        async with build_client(create_app(app_context, echo_router)) as client:
            response = await client.post(
                "/api/v1/echo", content=b'"just a string"',
                headers={"Content-Type": "application/json"},
            )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_oversized_body_is_413(self, connector, echo_router):
        context = AppContext(settings=make_settings(json_body_limit=32), connector=connector)
        payload = json.dumps({"text": "x" * 64})
        async with build_client(create_app(context, echo_router)) as client:
            response = await client.post(
                "/api/v1/echo", content=payload, headers={"Content-Type": "application/json"}
            )
        assert response.status_code == 413
        assert response.json()["error"] == "payload_too_large"

    @pytest.mark.asyncio
    async def test_non_json_passes_through(self, app_context, echo_router):
        async with build_client(create_app(app_context, echo_router)) as client:
            response = await client.post(
                "/api/v1/echo", content=b"a=1", headers={"Content-Type": "text/plain"}
            )
        assert response.status_code == 200
        assert response.json()["json"] == {}
