"""HTTP handlers that list, find, create and delete servers."""

from __future__ import annotations

import logging
import secrets
import string

from werkzeug.wrappers import Request, Response

from autoscaler.http import Handler, _parse_bool, write_error, write_json, write_not_found
from autoscaler.types import Server, ServerState, ServerStore

log = logging.getLogger(__name__)

_NAME_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits


def _random_suffix(length: int = 8) -> str:
    return "".join(secrets.choice(_NAME_ALPHABET) for _ in range(length))


def handle_server_list(servers: ServerStore) -> Handler:
    """Return a handler that writes the list of all servers."""

    def handler(request: Request) -> Response:
        try:
            items = servers.list()
        except Exception as err:
            log.error("cannot get server list: %s", err)
            return write_error(err)
        return write_json(items, 200)

    return handler


def handle_server_find(servers: ServerStore) -> Handler:
    """Return a handler that writes the named server."""

    def handler(request: Request, name: str) -> Response:
        try:
            server = servers.find(name)
        except Exception as err:
            log.error("cannot get server %s: %s", name, err)
            return write_not_found(err)
        return write_json(server, 200)

    return handler


def handle_server_delete(servers: ServerStore) -> Handler:
    """Return a handler that schedules the named server for shutdown.

    A server stuck in the error state with no instance id, or any errored
    server when force is set, is deleted from the store directly.
    """

    def handler(request: Request, name: str) -> Response:
        force = _parse_bool(request.values.get("force"))
        try:
            server = servers.find(name)
        except Exception as err:
            log.error("cannot get server %s: %s", name, err)
            return write_not_found(err)

        if server.state == ServerState.ERROR and (not server.id or force):
            log.info("force delete server %s from database (state=%s, force=%s)",
                     server.name, server.state, force)
            try:
                servers.delete(server)
            except Exception as err:
                log.error("cannot delete instance %s: %s", server.name, err)
                return write_error(err)
            return Response(status=204)

        log.info("schedule server %s shutdown (state=%s, force=%s)",
                 server.name, server.state, force)
        server.state = ServerState.SHUTDOWN
        try:
            servers.update(server)
        except Exception as err:
            log.error("cannot update server %s to shutdown: %s", server.name, err)
            return write_error(err)
        return write_json(server, 200)

    return handler


def handle_server_create(servers: ServerStore, name_prefix: str, concurrency: int) -> Handler:
    """Return a handler that records a new pending server."""

    def handler(request: Request) -> Response:
        server = Server(
            name=name_prefix + _random_suffix(),
            state=ServerState.PENDING,
            capacity=concurrency,
        )
        try:
            servers.create(server)
        except Exception as err:
            log.error("cannot persist server: %s", err)
            return write_error(err)
        return write_json(server, 200)

    return handler