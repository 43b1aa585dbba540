"""
restlayer — Routes and Routers
===============================

What:  Explicit (method, path, handler) routes and Router, an ordered group of
       routes that is mounted into the pipeline as a single opaque stage.
How:   Paths use Starlette's path syntax and are compiled with Starlette's
       ``compile_path``, so ``/items/{id}`` and ``/items/{id:int}`` both work.
       A route is itself a pipeline stage: when method and path match it runs
       its handler (inside a route log scope) and ends the chain; otherwise it
       calls next.

Handlers:
    async def handler(request, response): ...     # def also accepted

    Path parameters are in ``request.path_params``, the decoded body in
    ``request.state.body`` and the route's log scope in ``request.state.log``.

GET routes also answer HEAD requests.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

from starlette.convertors import Convertor
from starlette.routing import compile_path

from restlayer.middleware.logging import invoke_route
from restlayer.pipeline import Exchange, Stage, run_stages

HTTP_METHODS = frozenset({"GET", "PUT", "POST", "DELETE", "PATCH", "HEAD"})

Handler = Callable[[Any, Any], Any]


def normalize_method(method: str) -> str:
    upper = str(method).upper()
    if upper not in HTTP_METHODS:
        raise ValueError(f"Unsupported HTTP method '{method}'. Must be one of: {sorted(HTTP_METHODS)}")
    return upper


def join_paths(prefix: str, path: str) -> str:
    if not prefix:
        return path
    return prefix.rstrip("/") + "/" + path.lstrip("/")


@dataclass(frozen=True)
class Route:
    """An immutable (method, path, handler) triple, identified by (method, path)."""

    method: str
    path: str
    handler: Handler = field(compare=False)
    _regex: Pattern = field(init=False, repr=False, compare=False)
    _convertors: Dict[str, Convertor] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", normalize_method(self.method))
        regex, _, convertors = compile_path(self.path)
        object.__setattr__(self, "_regex", regex)
        object.__setattr__(self, "_convertors", convertors)

    @property
    def label(self) -> str:
        return f"{self.method} {self.path}"

    def match(self, method: str, path: str) -> Optional[Dict[str, Any]]:
        """Path parameters if this route answers ``method path``, else None."""
        if method != self.method and not (method == "HEAD" and self.method == "GET"):
            return None
        matched = self._regex.match(path)
        if matched is None:
            return None
        return {
            key: self._convertors[key].convert(value)
            for key, value in matched.groupdict().items()
        }

    async def __call__(self, request, response, call_next):
        params = self.match(request.method, request.url.path)
        if params is None:
            return await call_next()
        request.scope["path_params"] = {**request.scope.get("path_params", {}), **params}
        await invoke_route(self.label, self.handler, request, response)


class Router:
    """
    Ordered routes and nested routers, mounted as one stage.

    Entries run in registration order. If none of them answers the request
    the router calls next, so the surrounding chain continues.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        self._entries: List[Stage] = []

    @property
    def label(self) -> str:
        return f"Router({self.prefix or '/'}, {len(self._entries)} entries)"

    def add_route(self, method: str, path: str, handler: Handler) -> Route:
        route = Route(method, join_paths(self.prefix, path), handler)
        self._entries.append(route)
        return route

    def include_router(self, router: "Router") -> None:
        self._entries.append(router)

    def route(self, method: str, path: str) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(method, path, handler)
            return handler

        return decorator

    def get(self, path: str):
        return self.route("GET", path)

    def post(self, path: str):
        return self.route("POST", path)

    def put(self, path: str):
        return self.route("PUT", path)

    def patch(self, path: str):
        return self.route("PATCH", path)

    def delete(self, path: str):
        return self.route("DELETE", path)

    def head(self, path: str):
        return self.route("HEAD", path)

    @property
    def routes(self) -> Tuple[Route, ...]:
        """Every explicit route, nested routers flattened, in match order."""
        found: List[Route] = []
        for entry in self._entries:
            if isinstance(entry, Route):
                found.append(entry)
            elif isinstance(entry, Router):
                found.extend(entry.routes)
        return tuple(found)

    async def __call__(self, request, response, call_next):
        exchange = Exchange(response)
        entries = tuple(self._entries)

        async def fall_through() -> None:
            await call_next(exchange.response)

        await run_stages(entries, request, exchange, done=fall_through)
