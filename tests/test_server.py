"""
restlayer — Server Assembly Tests
==================================

What we test:
    ✅ Registration after build raises AssemblyError
    ✅ add_use() accepts only starlette Middleware, keeps registration order
    ✅ Feature toggles drop proxy/CORS/compression; session only when configured
    ✅ build_app() is idempotent and never binds a socket
    ✅ listen() hands the app to uvicorn with the configured host and port
"""

from unittest.mock import patch

import pytest
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from restlayer import AssemblyError, create_server
from restlayer.config import load_options
from restlayer.routing import Router
from restlayer.server import application_middleware


class TagMiddleware:
    """ASGI middleware that appends its tag to a response header."""

    def __init__(self, app, tag):
        self.app = app
        self.tag = tag

    async def __call__(self, scope, receive, send):
        async def tagged_send(message):
            if message["type"] == "http.response.start":
                message["headers"] = list(message.get("headers", [])) + [
                    (b"x-tag", self.tag.encode())
                ]
            await send(message)

        await self.app(scope, receive, tagged_send)


def middleware_classes(options):
    return [m.cls for m in application_middleware(options, [])]


class TestApplicationMiddleware:

    def test_all_features_on_by_default(self):
        options = load_options({"port": 8080})
        assert middleware_classes(options) == [
            ProxyHeadersMiddleware,
            CORSMiddleware,
            GZipMiddleware,
        ]

    def test_toggles_remove_features(self):
        options = load_options(
            {"port": 8080, "noCors": True, "noCompression": True, "noTrustProxy": True}
        )
        assert middleware_classes(options) == []

    def test_session_when_configured(self):
        options = load_options({"port": 8080, "session": {"secret_key": "k"}})
        assert middleware_classes(options)[-1] is SessionMiddleware

    def test_uses_come_first(self):
        options = load_options({"port": 8080})
        use = Middleware(TagMiddleware, tag="a")
        assert application_middleware(options, [use])[0] is use


class TestRegistration:

    def test_add_use_rejects_plain_callables(self, server):
        with pytest.raises(TypeError):
            server.add_use(lambda app: app)

    def test_route_decorator_registers(self, server):
        @server.route("GET", "/ping")
        async def ping(request, response):
            response.send("pong")

        assert server.build_pipeline().describe()[-2] == "GET /ping"

    def test_add_model_returns_router(self, server, invoices):
        router = server.add_model(invoices, url_prefix="/v2/")
        assert isinstance(router, Router)
        assert router.routes[0].path == "/v2/billing/invoices"

    @pytest.mark.parametrize(
        "register",
        [
            lambda s: s.add_route("GET", "/late", lambda request, response: None),
            lambda s: s.add_router(Router()),
            lambda s: s.add_pre_route_middleware(lambda request, response, call_next: None),
            lambda s: s.add_post_route_middleware(lambda request, response, call_next: None),
            lambda s: s.add_use(Middleware(TagMiddleware, tag="late")),
        ],
    )
    def test_registration_after_build_fails(self, server, register):
        server.build_app()
        with pytest.raises(AssemblyError):
            register(server)

    def test_add_model_after_build_fails(self, server, invoices):
        server.build_app()
        with pytest.raises(AssemblyError):
            server.add_model(invoices)


class TestBuild:

    def test_build_app_is_idempotent(self, server):
        assert server.build_app() is server.build_app()

    def test_app_exposes_pipeline(self, server):
        app = server.build_app()
        assert app.state.pipeline.describe()[-1] == "handle_uncaught_error"

    def test_build_pipeline_has_no_side_effects(self, server):
        first = server.build_pipeline()
        second = server.build_pipeline()
        assert first.describe() == second.describe()
        server.add_route("GET", "/still-open", lambda request, response: None)

    def test_listen_runs_uvicorn(self):
        server = create_server({"rest_api": {"port": 8181, "host": "127.0.0.1"}})
        with patch("restlayer.server.uvicorn.run") as run:
            server.listen()

        run.assert_called_once()
        app = run.call_args.args[0]
        assert app is server.build_app()
        assert run.call_args.kwargs["host"] == "127.0.0.1"
        assert run.call_args.kwargs["port"] == 8181


class TestLiveMiddleware:

    @pytest.mark.asyncio
    async def test_uses_wrap_every_response(self, server, api_client):
        server.add_use(Middleware(TagMiddleware, tag="outer"))

        async with api_client(server) as client:
            response = await client.get("/unmatched")

        assert response.status_code == 404
        assert response.headers["x-tag"] == "outer"

    @pytest.mark.asyncio
    async def test_cors_exposes_request_id(self, server, api_client):
        async def handler(request, response):
            response.send("ok")

        server.add_route("GET", "/x", handler)

        async with api_client(server) as client:
            response = await client.get("/x", headers={"Origin": "http://example.com"})

        assert response.headers["access-control-allow-origin"] == "*"
        assert "x-request-id" in response.headers["access-control-expose-headers"].lower()

    @pytest.mark.asyncio
    async def test_large_responses_are_compressed(self, server, api_client):
        async def handler(request, response):
            response.json({"data": "x" * 4096})

        server.add_route("GET", "/large", handler)

        async with api_client(server) as client:
            response = await client.get("/large", headers={"Accept-Encoding": "gzip"})

        assert response.headers["content-encoding"] == "gzip"
        assert len(response.json()["data"]) == 4096

    @pytest.mark.asyncio
    async def test_compression_can_be_disabled(self, api_client):
        server = create_server({"rest_api": {"port": 8080, "noCompression": True}})

        async def handler(request, response):
            response.json({"data": "x" * 4096})

        server.add_route("GET", "/large", handler)

        async with api_client(server) as client:
            response = await client.get("/large", headers={"Accept-Encoding": "gzip"})

        assert "content-encoding" not in response.headers
