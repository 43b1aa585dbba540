"""
restlayer — Terminal Error Handler
===================================

What:  Last stop for any error escaping caller middleware, routes or
       sub-routers.
How:   Logs the error with full detail through the request's log scope, then
       replaces whatever the response held with a generic 500 envelope:

           {"error": {"code": "OverallException",
                      "message": "An internal error occurred"}}

Security: the exception message, type and traceback go to the log sink only.
"""

from restlayer.middleware.logging import scope_for
from restlayer.schemas.errors import GENERIC_PIPELINE_MESSAGE, OVERALL_EXCEPTION, error_envelope


async def handle_uncaught_error(error, request, response, call_next):
    scope_for(request).error(
        "Unhandled error in request pipeline: %s",
        error,
        exc_info=error,
        extra={
            "method": request.method,
            "url": str(request.url),
            "error_type": type(error).__name__,
            "error_context": getattr(error, "context", None),
        },
    )
    response.reset()
    response.status(500).json(error_envelope(OVERALL_EXCEPTION, GENERIC_PIPELINE_MESSAGE))
