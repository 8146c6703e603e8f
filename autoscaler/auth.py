"""Middleware that authorizes API requests against the Drone server."""

from __future__ import annotations

import logging
from typing import Any, Callable

import requests
from werkzeug.wrappers import Request, Response

from autoscaler.http import (
    ERR_FORBIDDEN,
    ERR_INVALID_TOKEN,
    ERR_UNAUTHORIZED,
    Handler,
    write_forbidden,
    write_unauthorized,
)

log = logging.getLogger(__name__)

USERNAME_KEY = "autoscaler.username"

_TIMEOUT = 30.0


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        header = header[len("Bearer "):]
    return header.strip()


def _fetch_user(server: str, token: str) -> dict[str, Any]:
    response = requests.get(
        server + "/api/user",
        headers={"Authorization": "Bearer " + token},
        timeout=_TIMEOUT,
    )
    response.raise_for_status()
    user = response.json()
    if not isinstance(user, dict):
        raise ValueError("unexpected user payload")
    return user


def check_drone(proto: str, host: str) -> Callable[[Handler], Handler]:
    """Return middleware that admits only Drone administrators.

    The bearer token of the incoming request is used to fetch the
    authenticated user from the Drone API; the user must be an admin.
    """
    server = f"{proto}://{host}"

    def middleware(next_handler: Handler) -> Handler:
        def handler(request: Request, *args: Any, **kwargs: Any) -> Response:
            token = _bearer_token(request)
            if not token:
                log.debug("missing authorization header")
                return write_unauthorized(ERR_INVALID_TOKEN)

            try:
                user = _fetch_user(server, token)
            except (requests.RequestException, ValueError) as err:
                log.error("cannot authenticate user: %s", err)
                return write_unauthorized(ERR_UNAUTHORIZED)

            login = str(user.get("login") or "")
            if not user.get("admin"):
                log.error("insufficient privileges (username=%s)", login)
                return write_forbidden(ERR_FORBIDDEN)

            log.debug("user authorized (username=%s)", login)
            request.environ[USERNAME_KEY] = login
            return next_handler(request, *args, **kwargs)

        return handler

    return middleware