"""
restlayer — Response Instrumentation
=====================================

What:  Records the final status, payload and redirect target of every
       response without changing what goes on the wire.
How:   ResponseRecorder decorates the native ResponseWriter. Each call is
       recorded on the request's ResponseRecord and then forwarded unchanged.
       The writer itself is never patched.
When:  Installed by ``instrument_response``, a framework pre-route stage that
       runs before any route handler; everything downstream receives the
       recorder in place of the writer.

Recording rules (last call wins):
    status(code)          → status_code = code (sticky for later sends)
    json(body)            → payload = body, status_code = explicit or 200
    send(raw)             → payload = {"text": raw} (dicts and lists as-is),
                            status_code = explicit or 200
    redirect(path)        → redirect_path = path, status_code = explicit or 302
"""

import logging
from typing import Any, Optional

from restlayer.context import ResponseRecord, get_context

logger = logging.getLogger(__name__)


class ResponseRecorder:
    """
    Decorator around a response writer.

    Return values of the wrapped writer are passed back unchanged, except that
    when the writer returns itself (chaining) the recorder is returned instead
    so ``header(...).status(404).json(...)`` stays instrumented. Anything not
    intercepted (to_response(), touched, ...) is delegated as-is.

    The recorded status is the writer's own ``status_code`` after each call,
    so codes set before the recorder was installed, or kept from an earlier
    redirect, are reported as they go on the wire.
    """

    def __init__(self, inner: Any, record: ResponseRecord):
        self._inner = inner
        self._record = record
        self._explicit_status: Optional[int] = None
        if getattr(inner, "touched", False) is True:
            self._record.status_code = self._wire_status(200)

    @property
    def record(self) -> ResponseRecord:
        return self._record

    def _chain(self, result: Any) -> Any:
        return self if result is self._inner else result

    def _wire_status(self, default: int) -> int:
        actual = getattr(self._inner, "status_code", None)
        if isinstance(actual, int):
            return actual
        # Writers without a readable status fall back to the recording rules
        return self._explicit_status or default

    def status(self, code: int) -> Any:
        self._explicit_status = int(code)
        result = self._inner.status(code)
        self._record.status_code = self._wire_status(self._explicit_status)
        return self._chain(result)

    def header(self, name: str, value: str) -> Any:
        return self._chain(self._inner.header(name, value))

    def json(self, body: Any) -> Any:
        result = self._inner.json(body)
        self._record.status_code = self._wire_status(200)
        self._record.payload = body
        return self._chain(result)

    def send(self, body: Any = None) -> Any:
        result = self._inner.send(body)
        self._record.status_code = self._wire_status(200)
        self._record.payload = body if isinstance(body, (dict, list)) else {"text": body}
        return self._chain(result)

    def redirect(self, path: str) -> Any:
        result = self._inner.redirect(path)
        self._record.status_code = self._wire_status(302)
        self._record.redirect_path = path
        return self._chain(result)

    def reset(self) -> Any:
        self._explicit_status = None
        self._record.status_code = None
        self._record.payload = None
        self._record.redirect_path = None
        return self._chain(self._inner.reset())

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)


async def instrument_response(request, response, call_next):
    """Swap the writer for a recorder bound to this request's context."""
    context = get_context(request)
    if context is None:
        # Request-ID stage did not run; nothing to record against.
        logger.warning("No request context; response left uninstrumented")
        return await call_next()
    return await call_next(ResponseRecorder(response, context.record))
