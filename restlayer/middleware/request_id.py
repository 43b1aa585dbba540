"""
restlayer — Request ID Stage
=============================

What:  Gives every request a random UUID and the RequestContext built on it.
How:   Creates the context, attaches it to ``request.state.context`` (and the
       bare ID to ``request.state.request_id`` for handlers), and returns the
       ID in the X-Request-ID response header.
When:  First framework-owned pre-route stage. Caller pre-route middleware runs
       before it and therefore sees no context yet.

The ID is generated server-side only and never changes for the lifetime of
the request; a client-sent X-Request-ID header is ignored.
"""

from restlayer.context import RequestContext

REQUEST_ID_HEADER = "X-Request-ID"


async def assign_request_id(request, response, call_next):
    context = RequestContext.create()
    request.state.context = context
    request.state.request_id = context.request_id
    request.state.log = context.log

    response.header(REQUEST_ID_HEADER, context.request_id)

    await call_next()
