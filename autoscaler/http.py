"""JSON response writers and the small HTTP handlers of the API."""

from __future__ import annotations

import base64
import dataclasses
import json
import os
from typing import Any, Callable, Protocol

from werkzeug.wrappers import Request, Response

from autoscaler.metrics import Registry, default_registry

Handler = Callable[..., Response]

ERR_INVALID_TOKEN = "Invalid or missing token"
ERR_UNAUTHORIZED = "Unauthorized"
ERR_FORBIDDEN = "Forbidden"
ERR_NOT_FOUND = "Not Found"

_JSON_CONTENT_TYPE = "application/json; charset=utf-8"
_METRICS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _parse_bool(text: str | None) -> bool:
    """Interpret a boolean flag; anything unrecognised counts as false."""
    return text in _TRUE_WORDS


_INDENT = _parse_bool(os.environ.get("HTTP_JSON_INDENT"))


class Engine(Protocol):
    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def paused(self) -> bool: ...


def _json_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


def _encode(value: Any, indent: bool) -> str:
    if indent:
        text = json.dumps(value, ensure_ascii=False, default=_json_default,
                          indent=2, separators=(",", ": "))
    else:
        text = json.dumps(value, ensure_ascii=False, default=_json_default,
                          separators=(",", ":"))
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return text + "\n"


def write_json(value: Any, status: int = 200, indent: bool | None = None) -> Response:
    """Return a response holding the JSON encoding of value."""
    use_indent = _INDENT if indent is None else indent
    response = Response(_encode(value, use_indent), status=status,
                        content_type=_JSON_CONTENT_TYPE)
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def write_error_code(err: BaseException | str, status: int) -> Response:
    """Return a JSON error message with the given status code."""
    return write_json({"message": str(err)}, status)


def write_error(err: BaseException | str) -> Response:
    """Return a JSON error message with status 500."""
    return write_error_code(err, 500)


def write_not_found(err: BaseException | str) -> Response:
    """Return a JSON error message with status 404."""
    return write_error_code(err, 404)


def write_unauthorized(err: BaseException | str) -> Response:
    """Return a JSON error message with status 401."""
    return write_error_code(err, 401)


def write_forbidden(err: BaseException | str) -> Response:
    """Return a JSON error message with status 403."""
    return write_error_code(err, 403)


def write_bad_request(err: BaseException | str) -> Response:
    """Return a JSON error message with status 400."""
    return write_error_code(err, 400)


def _plain_error(message: str, status: int) -> Response:
    response = Response(message + "\n", status=status,
                        content_type="text/plain; charset=utf-8")
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def handle_healthz() -> Handler:
    """Return a handler that reports the service as healthy."""

    def handler(request: Request) -> Response:
        return Response("OK", status=200, content_type="text/plain; charset=utf-8")

    return handler


def handle_version(source: str, version: str, commit: str) -> Handler:
    """Return a handler that writes the version and build details."""
    info = {"source": source, "version": version, "commit": commit}
    data = {key: value for key, value in info.items() if value}

    def handler(request: Request) -> Response:
        return write_json(data, 200)

    return handler


def handle_varz(engine: Engine) -> Handler:
    """Return a handler that writes the engine's runtime information."""

    def handler(request: Request) -> Response:
        return write_json({"paused": bool(engine.paused())}, 200)

    return handler


def handle_engine_pause(engine: Engine) -> Handler:
    """Return a handler that pauses the scaling engine."""

    def handler(request: Request) -> Response:
        engine.pause()
        return Response(status=204)

    return handler


def handle_engine_resume(engine: Engine) -> Handler:
    """Return a handler that resumes the scaling engine."""

    def handler(request: Request) -> Response:
        engine.resume()
        return Response(status=204)

    return handler


def handle_metrics(token: str, registry: Registry | None = None) -> Handler:
    """Return a handler that writes metrics, guarded by a bearer token if set."""
    source = registry if registry is not None else default_registry()

    def serve() -> Response:
        return Response(source.exposition(), status=200,
                        content_type=_METRICS_CONTENT_TYPE)

    def handler(request: Request) -> Response:
        if not token:
            return serve()
        header = request.headers.get("Authorization", "")
        if not header or header != "Bearer " + token:
            return _plain_error(ERR_INVALID_TOKEN, 401)
        return serve()

    return handler