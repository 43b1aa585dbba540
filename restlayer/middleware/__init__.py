"""
restlayer — Pipeline Middleware
================================

Framework-owned stages, in the order the server installs them:

    Request → [URL-encoded parser] → [JSON parser] → (caller pre-route)
            → [Request ID] → [Request log] → [Instrumentation] → [Response log]
            → routes → (caller post-route)

    Uncaught error anywhere after the parsers → [Terminal error handler]

The response log is written from a finish callback, after the response has
been sent, so it sees the final status even when the error handler answered.
"""
