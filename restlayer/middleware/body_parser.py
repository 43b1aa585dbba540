"""
restlayer — Body Parsers
=========================

What:  Size-limited decoding of URL-encoded and JSON request bodies into
       ``request.state.body``.
How:   One stage per content type. Each stage only acts on requests whose
       Content-Type it owns and whose body no earlier parser has decoded; all
       other requests pass straight through. The Content-Length header is
       checked before reading, the actual byte count after.
When:  Ahead of every other stage in the chain.

Failures are answered directly by the parser (the chain stops there):
    body larger than the limit  → 413 {"error": {"code": "PayloadTooLarge", ...}}
    undecodable body            → 400 {"error": {"code": "BadRequest", ...}}

URL-encoded parsing is flat (no nested brackets); a key that repeats becomes
a list. An empty JSON body decodes to {}.
"""

import json
import logging
from typing import Any, Callable, Dict
from urllib.parse import parse_qs

from restlayer.exceptions import MalformedBodyError, PayloadTooLargeError, RequestBodyError
from restlayer.schemas.errors import error_envelope

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
URLENCODED_CONTENT_TYPE = "application/x-www-form-urlencoded"


def get_body(request) -> Any:
    """Decoded body, or None when no parser handled the request."""
    return getattr(request.state, "body", None)


def _media_type(request) -> str:
    return request.headers.get("content-type", "").split(";")[0].strip().lower()


async def read_limited_body(request, limit_bytes: int) -> bytes:
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit_bytes:
        raise PayloadTooLargeError(limit_bytes=limit_bytes, received_bytes=int(declared))
    body = await request.body()
    if len(body) > limit_bytes:
        raise PayloadTooLargeError(limit_bytes=limit_bytes, received_bytes=len(body))
    return body


def decode_json(raw: bytes) -> Any:
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedBodyError(JSON_CONTENT_TYPE, context={"reason": str(e)}) from e


def decode_urlencoded(raw: bytes) -> Dict[str, Any]:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedBodyError(URLENCODED_CONTENT_TYPE, context={"reason": str(e)}) from e
    parsed = parse_qs(text, keep_blank_values=True)
    return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()}


class BodyParser:
    """Decode bodies of one content type, up to ``limit_bytes``."""

    def __init__(
        self,
        name: str,
        limit_bytes: int,
        accepts: Callable[[str], bool],
        decode: Callable[[bytes], Any],
    ):
        self.label = name
        self.limit_bytes = limit_bytes
        self._accepts = accepts
        self._decode = decode

    async def __call__(self, request, response, call_next):
        if getattr(request.state, "body_parsed", False) or not self._accepts(_media_type(request)):
            return await call_next()

        try:
            raw = await read_limited_body(request, self.limit_bytes)
            request.state.body = self._decode(raw)
        except RequestBodyError as e:
            logger.warning(
                "Rejected %s %s body: %s",
                request.method,
                request.url.path,
                e.message,
                extra={"parser": self.label, **e.context},
            )
            response.status(e.status_code).json(error_envelope(e.code, e.message))
            return None

        request.state.body_parsed = True
        await call_next()


def json_body_parser(limit_bytes: int) -> BodyParser:
    return BodyParser(
        "json_body_parser",
        limit_bytes,
        accepts=lambda media_type: media_type == JSON_CONTENT_TYPE or media_type.endswith("+json"),
        decode=decode_json,
    )


def urlencoded_body_parser(limit_bytes: int) -> BodyParser:
    return BodyParser(
        "urlencoded_body_parser",
        limit_bytes,
        accepts=lambda media_type: media_type == URLENCODED_CONTENT_TYPE,
        decode=decode_urlencoded,
    )
