"""
restlayer — Request Pipeline
=============================

What:  The ordered middleware/route chain every request runs through, and the
       pure function that composes it.
How:   ``build_pipeline`` concatenates explicit ordered sequences into one
       immutable tuple of stages. ``Pipeline`` is the ASGI app that runs those
       stages for each request, hands uncaught errors to the terminal error
       handler, renders the response, and finally runs the request's finish
       callbacks.

Stage signatures:
    stage(request, response, call_next)
    error_handler(error, request, response, call_next)

``call_next()`` continues with the same response object; ``call_next(other)``
continues with ``other`` in its place (this is how the instrumentation stage
hands a recorder to everything after it). A stage that does not call
``call_next`` ends the chain. Sync stages may ``return call_next()``.

Chain order (see build_pipeline):
    body parsers → caller pre-route → framework pre-route → routes/sub-routers
    → caller post-route → [error handler, only on uncaught errors]
"""

from dataclasses import dataclass
from itertools import chain
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple

from starlette.requests import Request
from starlette.types import Receive, Scope, Send

from restlayer._invoke import invoke
from restlayer.context import get_context
from restlayer.http import ResponseWriter


CallNext = Callable[..., Awaitable[None]]
Stage = Callable[[Any, Any, CallNext], Any]
ErrorStage = Callable[[BaseException, Any, Any, CallNext], Any]


class Exchange:
    """Holds the response object currently travelling down a chain."""

    __slots__ = ("response",)

    def __init__(self, response: Any):
        self.response = response


async def run_stages(
    stages: Sequence[Stage],
    request: Any,
    exchange: Exchange,
    done: Optional[Callable[[], Awaitable[None]]] = None,
) -> None:
    """
    Run ``stages`` in order; call ``done`` if the last stage calls next.

    Each stage gets its own continuation bound to the following index.
    """

    async def dispatch(index: int) -> None:
        if index >= len(stages):
            if done is not None:
                await done()
            return

        async def call_next(response: Any = None) -> None:
            if response is not None:
                exchange.response = response
            await dispatch(index + 1)

        await invoke(stages[index], request, exchange.response, call_next)

    await dispatch(0)


def stage_name(stage: Any) -> str:
    label = getattr(stage, "label", None)
    if label:
        return str(label)
    return getattr(stage, "__name__", None) or type(stage).__name__


@dataclass(frozen=True)
class Pipeline:
    """
    Immutable, ready-to-serve request chain.

    Attributes:
        stages:        Every stage in execution order
        error_handler: Terminal handler for errors escaping any stage
    """

    stages: Tuple[Stage, ...]
    error_handler: ErrorStage

    def describe(self) -> Tuple[str, ...]:
        """Stage names in execution order, for auditing the assembly."""
        return tuple(stage_name(stage) for stage in self.stages) + (
            stage_name(self.error_handler),
        )

    async def handle(self, request: Request) -> Any:
        """Run the chain for one request; return the response object to render."""
        exchange = Exchange(ResponseWriter())
        try:
            await run_stages(self.stages, request, exchange)
        except Exception as exc:
            await invoke(self.error_handler, exc, request, exchange.response, _end_of_chain)

        response = exchange.response
        if not response.touched:
            response.status(404).send(f"Cannot {request.method} {request.url.path}")
        return response

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            if scope["type"] == "websocket":
                await send({"type": "websocket.close", "code": 1000})
            return

        request = Request(scope, receive)
        response = await self.handle(request)
        await response.to_response()(scope, receive, send)

        # Equivalent of the connection "finish" event.
        context = get_context(request)
        if context is not None:
            await context.finish()


async def _end_of_chain(response: Any = None) -> None:
    return None


def build_pipeline(
    *,
    error_handler: ErrorStage,
    body_parsers: Sequence[Stage] = (),
    pre_route: Sequence[Stage] = (),
    framework_pre_route: Sequence[Stage] = (),
    routes: Sequence[Stage] = (),
    post_route: Sequence[Stage] = (),
) -> Pipeline:
    """
    Compose the ordered sequences into a Pipeline.

    Pure: inputs are copied into a tuple, never mutated, and nothing is
    reordered or deduplicated.
    """
    stages = tuple(
        chain(body_parsers, pre_route, framework_pre_route, routes, post_route)
    )
    return Pipeline(stages=stages, error_handler=error_handler)
