"""
restlayer — Server Assembler
=============================

What:  Collects routes, routers, models and middleware, assembles them into a
       FastAPI application in a fixed order, and runs it with uvicorn.
How:   Registration only appends to ordered lists. ``build_pipeline()`` is a
       pure composition of those lists; ``build_app()`` wraps the pipeline in
       the application-level middleware and freezes the server;
       ``listen()`` is the only call that binds a socket.

Assembly order (earliest to latest):
    ┌────────────────────────────────────────────────────────────────────┐
    │ ASGI middleware (outermost first)                                  │
    │   1. add_use() attachments, registration order                     │
    │   2. ProxyHeaders → CORS → GZip → Session   (unless no_* / absent)  │
    ├────────────────────────────────────────────────────────────────────┤
    │ Pipeline stages                                                    │
    │   3. URL-encoded parser → JSON parser       (size-limited)         │
    │   4. caller pre-route middleware, registration order               │
    │   5. request ID → request log → instrumentation → response log     │
    │   6. routes / routers / models, registration order                 │
    │   7. caller post-route middleware, registration order              │
    │   8. terminal error handler (uncaught errors only)                 │
    └────────────────────────────────────────────────────────────────────┘

Usage:
    server = create_server({"rest_api": {"port": 8080}})
    server.add_model(invoice_service)
    server.add_route("GET", "/ping", ping)
    server.listen()            # blocking
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, List, Mapping, Optional, Union

import uvicorn
from fastapi import FastAPI
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from restlayer.config import CONFIG_SECTION, ServerOptions, load_options
from restlayer.exceptions import AssemblyError
from restlayer.middleware.body_parser import json_body_parser, urlencoded_body_parser
from restlayer.middleware.errors import handle_uncaught_error
from restlayer.middleware.instrumentation import instrument_response
from restlayer.middleware.logging import RequestLogger, ResponseLogger
from restlayer.middleware.request_id import REQUEST_ID_HEADER, assign_request_id
from restlayer.pipeline import Pipeline, Stage, build_pipeline
from restlayer.routes.model_cruds import model_cruds_router
from restlayer.routing import Handler, Route, Router

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: Union[str, int] = "INFO") -> None:
    """
    Configure root logging for a server process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Structured fields travel on the record (``extra=``) for handlers that
    serialize them.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # Request logging already covers access logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application-Level Middleware
# ══════════════════════════════════════════════════════════════════════════

def application_middleware(options: ServerOptions, uses: List[Middleware]) -> List[Middleware]:
    """ASGI middleware list, outermost first: caller attachments, then toggles."""
    middleware = list(uses)

    if not options.no_trust_proxy:
        middleware.append(Middleware(ProxyHeadersMiddleware, trusted_hosts="*"))

    if not options.no_cors:
        middleware.append(
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
                expose_headers=[REQUEST_ID_HEADER],
            )
        )

    if not options.no_compression:
        middleware.append(Middleware(GZipMiddleware, minimum_size=1024))

    if options.session is not None:
        middleware.append(Middleware(SessionMiddleware, **options.session))

    return middleware


# ══════════════════════════════════════════════════════════════════════════
# Server
# ══════════════════════════════════════════════════════════════════════════

class RestServer:
    """
    Ordered registry of everything the server will serve.

    All ``add_*`` methods append; nothing is reordered or deduplicated.
    After ``build_app()`` the server is frozen and further registration
    raises AssemblyError.
    """

    def __init__(self, options: ServerOptions):
        self.options = options
        self._uses: List[Middleware] = []
        self._pre_route: List[Stage] = []
        self._routes: List[Stage] = []
        self._post_route: List[Stage] = []
        self._app: Optional[FastAPI] = None

    # ── Registration ──────────────────────────────────────────────────────

    def _ensure_open(self, what: str) -> None:
        if self._app is not None:
            raise AssemblyError(
                f"Cannot add {what} after the application was built",
                context={"what": what},
            )

    def add_use(self, middleware: Middleware) -> None:
        """Register an application-level ASGI middleware (runs before everything)."""
        self._ensure_open("application middleware")
        if not isinstance(middleware, Middleware):
            raise TypeError("add_use() expects a starlette.middleware.Middleware")
        self._uses.append(middleware)

    def add_route(self, method: str, path: str, handler: Handler) -> Route:
        self._ensure_open("a route")
        route = Route(method, path, handler)
        self._routes.append(route)
        return route

    def route(self, method: str, path: str) -> Callable[[Handler], Handler]:
        """Decorator form of ``add_route``."""

        def decorator(handler: Handler) -> Handler:
            self.add_route(method, path, handler)
            return handler

        return decorator

    def add_router(self, router: Stage) -> None:
        """Mount a pre-built router (or any stage) at the current position."""
        self._ensure_open("a router")
        self._routes.append(router)

    def add_pre_route_middleware(self, middleware: Stage) -> None:
        self._ensure_open("pre-route middleware")
        self._pre_route.append(middleware)

    def add_post_route_middleware(self, middleware: Stage) -> None:
        self._ensure_open("post-route middleware")
        self._post_route.append(middleware)

    def add_model(
        self,
        cruds: Any,
        url_prefix: Optional[str] = None,
        flat_names: bool = False,
    ) -> Router:
        """Derive and mount the CRUD routes for one model collaborator."""
        self._ensure_open("a model")
        router = model_cruds_router(
            cruds,
            url_prefix=url_prefix if url_prefix is not None else self.options.url_prefix,
            flat_names=flat_names,
        )
        self._routes.append(router)
        return router

    # ── Assembly ──────────────────────────────────────────────────────────

    def framework_pre_route(self) -> List[Stage]:
        return [
            assign_request_id,
            RequestLogger(self.options.logging),
            instrument_response,
            ResponseLogger(self.options.logging),
        ]

    def build_pipeline(self) -> Pipeline:
        """Compose the request pipeline from the current registrations."""
        return build_pipeline(
            body_parsers=[
                urlencoded_body_parser(self.options.encoded_body_limit_bytes),
                json_body_parser(self.options.json_body_limit_bytes),
            ],
            pre_route=self._pre_route,
            framework_pre_route=self.framework_pre_route(),
            routes=self._routes,
            post_route=self._post_route,
            error_handler=handle_uncaught_error,
        )

    def build_app(self) -> FastAPI:
        """
        Build the ASGI application without binding a socket.

        Idempotent: the first call freezes the server, later calls return the
        same application.
        """
        if self._app is not None:
            return self._app

        pipeline = self.build_pipeline()
        app = FastAPI(
            title="restlayer",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            middleware=application_middleware(self.options, self._uses),
            lifespan=self._lifespan,
        )
        app.mount("/", pipeline, name="pipeline")
        app.state.pipeline = pipeline

        logger.info(
            "Assembled REST pipeline with %d stages",
            len(pipeline.stages),
            extra={"stages": pipeline.describe()},
        )
        self._app = app
        return app

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("REST server listening on %s:%d", self.options.host, self.options.port)
        yield
        logger.info("REST server shut down")

    def listen(self) -> None:
        """Build the app and serve it until the process is stopped (blocking)."""
        app = self.build_app()
        uvicorn.run(
            app,
            host=self.options.host,
            port=self.options.port,
            proxy_headers=False,
            log_config=None,
        )


def create_server(
    config: Union[ServerOptions, Mapping[str, Any], None],
    section: str = CONFIG_SECTION,
) -> RestServer:
    """
    Validate configuration and return an empty RestServer.

    Raises:
        ConfigurationError: config, section or port missing/invalid. Raised
            here, before any registration or socket binding.
    """
    options = load_options(config, section=section)
    return RestServer(options)
