"""A server store that posts Slack notifications on server state changes."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from autoscaler.types import Server, ServerState, ServerStore

log = logging.getLogger(__name__)

_SECOND = 1
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR
_WEEK = 7 * _DAY
_MONTH = 30 * _DAY
_YEAR = 12 * _MONTH
_LONG_TIME = 37 * _YEAR

# (upper bound, format, divisor) as used for relative times
_MAGNITUDES: tuple[tuple[float, str, int], ...] = (
    (_SECOND, "now", 1),
    (2 * _SECOND, "1 second {label}", 1),
    (_MINUTE, "{n} seconds {label}", _SECOND),
    (2 * _MINUTE, "1 minute {label}", 1),
    (_HOUR, "{n} minutes {label}", _MINUTE),
    (2 * _HOUR, "1 hour {label}", 1),
    (_DAY, "{n} hours {label}", _HOUR),
    (2 * _DAY, "1 day {label}", 1),
    (_WEEK, "{n} days {label}", _DAY),
    (2 * _WEEK, "1 week {label}", 1),
    (_MONTH, "{n} weeks {label}", _WEEK),
    (2 * _MONTH, "1 month {label}", 1),
    (_YEAR, "{n} months {label}", _MONTH),
    (18 * _MONTH, "1 year {label}", 1),
    (2 * _YEAR, "2 years {label}", 1),
    (_LONG_TIME, "{n} years {label}", _YEAR),
    (float("inf"), "a long while {label}", 1),
)

_TIMEOUT = 30.0


def _rel_time(then: int, now: int) -> str:
    diff = abs(now - then)
    for bound, fmt, divisor in _MAGNITUDES:
        if bound > diff:
            return fmt.format(n=diff // divisor, label="")
    return _MAGNITUDES[-1][1].format(label="")


def humanize_time(unix: int) -> str:
    """Describe how long ago a unix timestamp was, e.g. "1 hour"."""
    return _rel_time(int(unix), int(time.time())).strip()


def _field(title: str, value: str) -> dict[str, Any]:
    return {"title": title, "value": value, "short": False}


def _payload(text: str, color: str, fields: list[dict[str, Any]]) -> dict[str, Any]:
    return {"text": text, "attachments": [{"color": color, "fields": fields}]}


class SlackNotifier(ServerStore):
    """Wraps a server store and notifies a Slack webhook on updates."""

    def __init__(
        self,
        base: ServerStore,
        webhook: str,
        create: bool = False,
        destroy: bool = False,
        error: bool = False,
    ) -> None:
        self.base = base
        self.webhook = webhook
        self.notify_create = create
        self.notify_destroy = destroy
        self.notify_error = error

    def find(self, name: str) -> Server:
        return self.base.find(name)

    def list(self) -> list[Server]:
        return self.base.list()

    def list_state(self, state: ServerState) -> list[Server]:
        return self.base.list_state(state)

    def create(self, server: Server) -> None:
        self.base.create(server)

    def delete(self, server: Server) -> None:
        self.base.delete(server)

    def purge(self, before: int) -> None:
        self.base.purge(before)

    def update(self, server: Server) -> None:
        """Update the server, then send a notification for its new state.

        The notification is sent even when the update fails; the update
        error is raised afterwards.
        """
        failure: Exception | None = None
        try:
            self.base.update(server)
        except Exception as err:
            failure = err

        if server.state == ServerState.RUNNING and self.notify_create:
            self._post(self._create_payload(server))
        elif server.state == ServerState.STOPPED and self.notify_destroy:
            self._post(self._destroy_payload(server))
        elif server.state == ServerState.ERROR and self.notify_error:
            self._post(self._error_payload(server))

        if failure is not None:
            raise failure

    @staticmethod
    def _create_payload(server: Server) -> dict[str, Any]:
        return _payload(
            f"Provisioned server instance {server.name}",
            "#00BFA5",
            [
                _field("Name", server.name),
                _field("Size", server.size),
                _field("Region", server.region),
            ],
        )

    @staticmethod
    def _destroy_payload(server: Server) -> dict[str, Any]:
        return _payload(
            f"Terminated server instance {server.name}",
            "#CFD8DC",
            [
                _field("Name", server.name),
                _field("Size", server.size),
                _field("Region", server.region),
                _field("Uptime", humanize_time(server.created)),
            ],
        )

    @staticmethod
    def _error_payload(server: Server) -> dict[str, Any]:
        return _payload(
            f"Problem with server instance {server.name}",
            "#F44336",
            [
                _field("Name", server.name),
                _field("Error", server.error),
            ],
        )

    def _post(self, payload: dict[str, Any]) -> bool:
        try:
            response = requests.post(self.webhook, json=payload, timeout=_TIMEOUT)
        except requests.RequestException as err:
            log.warning("cannot post slack notification: %s", err)
            return False
        if response.status_code != 200:
            log.warning("slack notification failed with status %d", response.status_code)
            return False
        return True