"""
restlayer — Per-Request Context and Log Scopes
===============================================

What:  The state one in-flight request owns: its correlation ID, the log scope
       bound to that ID, what the instrumented response recorded, and the
       callbacks to run once the response has been sent.
How:   A RequestContext is created by the request-ID stage and attached to
       ``request.state.context``. Everything downstream reads it from there;
       nothing is stored in module globals or context variables, so two
       interleaved requests never see each other's state.

Log scopes:
    LogScope is a LoggerAdapter whose ``extra`` fields are merged into every
    record it emits. ``child()`` nests a scope:

        request scope     {"request_id": "9f1c..."}
        └── route scope   {"request_id": "9f1c...", "call_id": "04ab...",
                           "route": "GET /billing/invoices/{id}"}
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, MutableMapping, Optional, Tuple

from restlayer._invoke import invoke

logger = logging.getLogger("restlayer.request")

FinishCallback = Callable[[], Any]

# LogRecord attributes an ``extra`` key may not overwrite.
_RESERVED_FIELDS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def _safe_fields(fields: Mapping[str, Any]) -> dict:
    return {
        (f"data_{key}" if key in _RESERVED_FIELDS else key): value
        for key, value in fields.items()
    }


class LogScope(logging.LoggerAdapter):
    """
    Logger adapter carrying structured fields.

    Unlike the stdlib adapter, fields passed per call through ``extra=`` are
    merged with the scope's own fields instead of replacing them.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[MutableMapping[str, Any]] = None):
        super().__init__(logger, dict(extra or {}))

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = _safe_fields({**self.extra, **(kwargs.get("extra") or {})})
        return msg, kwargs

    def child(self, **fields: Any) -> "LogScope":
        """Return a nested scope whose fields extend this one's."""
        return LogScope(self.logger, {**self.extra, **fields})

    @property
    def fields(self) -> dict:
        return dict(self.extra)


def new_request_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ResponseRecord:
    """
    What the response recorder observed, last call wins.

    Attributes:
        status_code:   Final status (200/302 defaults apply when never set)
        payload:       JSON body, or {"text": raw} for raw sends
        redirect_path: Target of the last redirect, if any
    """

    status_code: Optional[int] = None
    payload: Any = None
    redirect_path: Optional[str] = None


@dataclass
class RequestContext:
    request_id: str
    log: LogScope
    record: ResponseRecord = field(default_factory=ResponseRecord)
    _finish_callbacks: List[FinishCallback] = field(default_factory=list, repr=False)

    @classmethod
    def create(cls, base: Optional[logging.Logger] = None) -> "RequestContext":
        request_id = new_request_id()
        return cls(
            request_id=request_id,
            log=LogScope(base or logger, {"request_id": request_id}),
        )

    def on_finish(self, callback: FinishCallback) -> None:
        """Register a callback to run after the response has been sent."""
        self._finish_callbacks.append(callback)

    async def finish(self) -> None:
        """Run finish callbacks in registration order, then drop them."""
        callbacks, self._finish_callbacks = self._finish_callbacks, []
        for callback in callbacks:
            try:
                await invoke(callback)
            except Exception as e:
                # The response is already on the wire; nothing left to answer
                self.log.error("Finish callback failed: %s", e, exc_info=e)


def get_context(request: Any) -> Optional[RequestContext]:
    """Context attached by the request-ID stage, or None before it ran."""
    return getattr(request.state, "context", None)
