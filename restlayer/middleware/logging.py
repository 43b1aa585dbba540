"""
restlayer — Request / Response / Route Logging
===============================================

What:  Structured log events for every request, every response, and every
       route invocation, all tagged with the request's correlation ID.
How:   Three pieces, all logging through the request's LogScope:

    RequestLogger    pre-route stage, "Request received"
                     fields: method, url, body (+ request_log_data_callback)
    ResponseLogger   pre-route stage that registers a finish callback,
                     "Request completed" once the response is on the wire
                     fields: status_code, payload, redirect_path
                     (+ response_log_data_callback)
    invoke_route     wraps a single route handler call in a child scope
                     tagged call_id/route: "Executing route",
                     "Executed route" or "Error executing route"

Payload ceiling:
    Successful responses (status < 400) whose compact JSON serialization is
    LOG_PAYLOAD_CHARACTER_LIMIT characters or longer are logged without their
    payload (payload_omitted=True). Error responses are always logged in full.
"""

import json
import logging
import uuid
from typing import Any, Mapping, Optional

from fastapi.encoders import jsonable_encoder

from restlayer._invoke import invoke
from restlayer.config import LoggingOptions
from restlayer.context import LogScope, ResponseRecord, get_context

logger = logging.getLogger("restlayer.access")

LOG_PAYLOAD_CHARACTER_LIMIT = 8192


def _callback_fields(callback, request, log: LogScope) -> Mapping[str, Any]:
    if callback is None:
        return {}
    try:
        return dict(callback(request) or {})
    except Exception as e:
        log.error("Log data callback failed: %s", e, exc_info=e)
        return {}


def serialized_length(payload: Any) -> int:
    try:
        return len(json.dumps(jsonable_encoder(payload), separators=(",", ":"), ensure_ascii=False))
    except (TypeError, ValueError):
        return len(str(payload))


def loggable_payload(record: ResponseRecord) -> tuple:
    """Return (payload, omitted) for the completion event."""
    if record.payload is None:
        return None, False
    status = record.status_code or 200
    if status >= 400:
        return record.payload, False
    if serialized_length(record.payload) >= LOG_PAYLOAD_CHARACTER_LIMIT:
        return None, True
    return record.payload, False


def scope_for(request) -> LogScope:
    """The request's log scope, or an untagged one before the ID stage ran."""
    log = getattr(request.state, "log", None)
    if log is not None:
        return log
    context = get_context(request)
    if context is not None:
        return context.log
    return LogScope(logger)


class RequestLogger:
    """Logs the inbound request."""

    label = "request_logger"

    def __init__(self, options: Optional[LoggingOptions] = None):
        self.options = options or LoggingOptions()

    async def __call__(self, request, response, call_next):
        fields = {
            "method": request.method,
            "url": str(request.url),
            "body": getattr(request.state, "body", None),
        }
        log = scope_for(request)
        fields.update(_callback_fields(self.options.request_log_data_callback, request, log))
        log.log(self.options.request_log_level, "Request received", extra=fields)
        await call_next()


class ResponseLogger:
    """Logs the outcome once the response has been sent."""

    label = "response_logger"

    def __init__(self, options: Optional[LoggingOptions] = None):
        self.options = options or LoggingOptions()

    async def __call__(self, request, response, call_next):
        context = get_context(request)
        if context is not None:
            context.on_finish(lambda: self.log_completion(request, context.record, context.log))
        await call_next()

    def log_completion(self, request, record: ResponseRecord, log: LogScope) -> None:
        payload, omitted = loggable_payload(record)
        fields = {
            "method": request.method,
            "url": str(request.url),
            "status_code": record.status_code,
            "payload": payload,
            "redirect_path": record.redirect_path,
        }
        if omitted:
            fields["payload_omitted"] = True
        fields.update(_callback_fields(self.options.response_log_data_callback, request, log))
        log.log(self.options.response_log_level, "Request completed", extra=fields)


async def invoke_route(label: str, handler, request, response) -> Any:
    """
    Call one route handler inside its own log scope.

    The scope is exposed to the handler as ``request.state.log`` for the
    duration of the call. Errors are logged and re-raised so the terminal
    error handler still answers the request.
    """
    parent = scope_for(request)
    log = parent.child(call_id=str(uuid.uuid4()), route=label)
    request.state.log = log
    log.info("Executing route")
    try:
        result = await invoke(handler, request, response)
    except Exception as e:
        log.error("Error executing route: %s", e, exc_info=e)
        raise
    finally:
        request.state.log = parent
    log.info("Executed route")
    return result
