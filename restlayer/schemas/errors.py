"""
restlayer — Error Envelope Schemas
===================================

What:  Pydantic models for the only error shape a client ever sees:
       {"error": {"code": ..., "message": ...}}
Why:   Handlers never serialize exceptions. Every failure path builds one of
       these envelopes so cause and stack detail stay in the log sink.
"""

from pydantic import BaseModel, Field

INTERNAL_SERVER_ERROR = "InternalServerError"
OVERALL_EXCEPTION = "OverallException"

GENERIC_ROUTE_MESSAGE = "An internal server error occurred"
GENERIC_PIPELINE_MESSAGE = "An internal error occurred"


class ErrorDetail(BaseModel):
    code: str = Field(description="Stable machine-readable error code")
    message: str = Field(description="Generic human-readable message")


class ErrorEnvelope(BaseModel):
    """
    What:  Client-facing error body.
    Who:   Built by generated model controllers (InternalServerError), the
           terminal error handler (OverallException) and the body parsers.
    """

    error: ErrorDetail

    model_config = {"extra": "forbid"}


def error_envelope(code: str, message: str) -> dict:
    """Build a plain-dict envelope ready to pass to ``response.json()``."""
    return ErrorEnvelope(error=ErrorDetail(code=code, message=message)).model_dump()
