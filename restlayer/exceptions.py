"""
restlayer — Exception Hierarchy
================================

What:  Application-specific exceptions raised while assembling or running the
       request pipeline.
How:   Each exception carries a message and an optional context dict. The
       message may be shown to an operator; the context is only ever logged.
       Nothing from an exception is serialized to the client; the pipeline
       answers with fixed error envelopes (see restlayer.schemas.errors).

Exception Hierarchy:
    RestLayerError (base)
    ├── ConfigurationError      → raised at assembly time, aborts startup
    ├── AssemblyError           → registration after the app was built
    └── RequestBodyError        → raised by the body parsers
        ├── PayloadTooLargeError  → 413 Payload Too Large
        └── MalformedBodyError    → 400 Bad Request
"""

from typing import Any, Dict, Optional


class RestLayerError(Exception):
    """
    Base exception for all restlayer errors.

    Attributes:
        message:  Human-readable error description
        context:  Additional debug info (logged, never returned to a client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(RestLayerError):
    """
    Raised when required server options are missing or invalid.

    When:  create_server() / RestServer construction, before any socket is bound.
    Never retried: the process is expected to abort.
    """

    def __init__(
        self,
        message: str = "Server configuration is invalid",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AssemblyError(RestLayerError):
    """Raised when routes or middleware are registered after the app was built."""

    def __init__(
        self,
        message: str = "The request pipeline has already been built",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RequestBodyError(RestLayerError):
    """
    Base for errors raised while reading or decoding a request body.

    Attributes:
        status_code:  HTTP status answered by the body parser stage
        code:         Error code placed in the client-facing envelope
    """

    status_code = 400
    code = "BadRequest"


class PayloadTooLargeError(RequestBodyError):
    """Request body exceeds the configured megabyte ceiling."""

    status_code = 413
    code = "PayloadTooLarge"

    def __init__(
        self,
        limit_bytes: int,
        received_bytes: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["limit_bytes"] = limit_bytes
        if received_bytes is not None:
            ctx["received_bytes"] = received_bytes
        super().__init__(
            message=f"Request body exceeds the {limit_bytes} byte limit",
            context=ctx,
        )
        self.limit_bytes = limit_bytes
        self.received_bytes = received_bytes


class MalformedBodyError(RequestBodyError):
    """Request body could not be decoded for its declared content type."""

    def __init__(
        self,
        content_type: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["content_type"] = content_type
        super().__init__(
            message=f"Request body is not valid {content_type}",
            context=ctx,
        )
        self.content_type = content_type
