"""
restlayer — Native Response Writer
===================================

What:  The response object handed to middleware and route handlers.
How:   Handlers describe the response with chainable calls; nothing touches
       the wire until the pipeline renders it with ``to_response()`` once the
       middleware chain has unwound.

    response.status(201).json({"id": 1})
    response.send("plain text")
    response.status(301).redirect("/elsewhere")
    response.status(404)               # empty body

Defaults:
    json()/send() without a prior status() → 200
    redirect() without a prior status()   → 302
    status() is sticky: later sends keep the explicit code.
"""

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from starlette.responses import JSONResponse, Response

_JSON = "json"
_RAW = "raw"


class ResponseWriter:
    """Chainable, render-later HTTP response."""

    def __init__(self) -> None:
        self.status_code: int = 200
        self.headers: Dict[str, str] = {}
        self._explicit_status = False
        self._kind: Optional[str] = None
        self._content: Any = None

    # ── Chainable API ─────────────────────────────────────────────────────

    def status(self, code: int) -> "ResponseWriter":
        self.status_code = int(code)
        self._explicit_status = True
        return self

    def header(self, name: str, value: str) -> "ResponseWriter":
        self.headers[name.lower()] = value
        return self

    def json(self, body: Any) -> "ResponseWriter":
        self._kind = _JSON
        self._content = body
        return self

    def send(self, body: Any = None) -> "ResponseWriter":
        # dicts and lists go out as JSON, like json() would
        if isinstance(body, (dict, list)):
            return self.json(body)
        self._kind = _RAW
        self._content = body
        return self

    def redirect(self, path: str) -> "ResponseWriter":
        if not self._explicit_status:
            self.status_code = 302
        self.headers["location"] = path
        self._kind = _RAW
        self._content = None
        return self

    # ── Pipeline API ──────────────────────────────────────────────────────

    @property
    def touched(self) -> bool:
        """True once any handler set a status or a body."""
        return self._explicit_status or self._kind is not None

    def reset(self) -> None:
        """Drop status and body; headers set so far (e.g. X-Request-ID) stay."""
        self.status_code = 200
        self._explicit_status = False
        self._kind = None
        self._content = None
        self.headers.pop("location", None)

    def to_response(self) -> Response:
        if self._kind == _JSON:
            return JSONResponse(
                content=jsonable_encoder(self._content),
                status_code=self.status_code,
                headers=self.headers,
            )
        content = self._content
        if content is None:
            return Response(status_code=self.status_code, headers=self.headers)
        if isinstance(content, (bytes, bytearray)):
            media_type = "application/octet-stream"
        else:
            content = str(content)
            media_type = "text/html"
        return Response(
            content=content,
            status_code=self.status_code,
            headers=self.headers,
            media_type=self.headers.get("content-type", media_type),
        )
