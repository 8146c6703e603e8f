"""Core data types: providers, instances, servers and the store interfaces."""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, TypeVar


class ProviderType(str, Enum):
    """The hosting provider of a server."""

    AMAZON = "amazon"
    AZURE = "azure"
    DIGITALOCEAN = "digitalocean"
    GOOGLE = "google"
    HETZNERCLOUD = "hetznercloud"
    LINODE = "linode"
    OPENSTACK = "openstack"
    PACKET = "packet"
    SCALEWAY = "scaleway"
    VULTR = "vultr"

    def __str__(self) -> str:
        return self.value


class ServerState(str, Enum):
    """The lifecycle state of a server."""

    PENDING = "pending"
    CREATING = "creating"
    CREATED = "created"
    STAGING = "staging"
    RUNNING = "running"
    SHUTDOWN = "shutdown"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


class InstanceNotFound(LookupError):
    """The requested instance does not exist in the cloud provider."""

    def __init__(self, message: str = "Not Found") -> None:
        super().__init__(message)


class ServerNotFound(LookupError):
    """The requested server does not exist in the store."""

    def __init__(self, message: str = "Not Found") -> None:
        super().__init__(message)


@dataclass
class Instance:
    """A server instance as reported by a cloud provider."""

    provider: ProviderType | str = ""
    id: str = ""
    name: str = ""
    address: str = ""
    region: str = ""
    image: str = ""
    size: str = ""
    service_account_email: str = ""
    scopes: list[str] = field(default_factory=list)


@dataclass
class InstanceCreateOpts:
    """Optional instructions for creating a server instance."""

    name: str = ""
    ca_key: bytes = b""
    ca_cert: bytes = b""
    tls_key: bytes = b""
    tls_cert: bytes = b""


class InstanceError(Exception):
    """An error creating an instance, together with the server logs."""

    def __init__(self, err: BaseException | str, logs: bytes = b"") -> None:
        super().__init__(str(err))
        self.err = err
        self.logs = logs

    def __str__(self) -> str:
        return str(self.err)


_E = TypeVar("_E", bound=Enum)

_BYTES_FIELDS = ("ca_key", "ca_cert", "tls_key", "tls_cert")
_STR_FIELDS = (
    "id", "name", "image", "region", "size",
    "platform", "address", "secret", "error",
)
_INT_FIELDS = ("capacity", "created", "updated", "started", "stopped")


def _coerce(enum_type: type[_E], value: Any) -> _E | str:
    if value is None:
        return ""
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        return str(value)


def _enum_text(value: Enum | str) -> str:
    return value.value if isinstance(value, Enum) else value


def _encode_bytes(value: bytes) -> str | None:
    if not value:
        return None
    return base64.b64encode(value).decode("ascii")


def _decode_bytes(value: str | None) -> bytes:
    if not value:
        return b""
    return base64.b64decode(value)


@dataclass
class Server:
    """The stored details of a managed server."""

    id: str = ""
    provider: ProviderType | str = ""
    state: ServerState | str = ""
    name: str = ""
    image: str = ""
    region: str = ""
    size: str = ""
    platform: str = ""
    address: str = ""
    capacity: int = 0
    secret: str = ""
    error: str = ""
    ca_key: bytes = b""
    ca_cert: bytes = b""
    tls_key: bytes = b""
    tls_cert: bytes = b""
    created: int = 0
    updated: int = 0
    started: int = 0
    stopped: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready representation; byte fields are base64."""
        data: dict[str, Any] = {
            "id": self.id,
            "provider": _enum_text(self.provider),
            "state": _enum_text(self.state),
        }
        for name in ("name", "image", "region", "size", "platform", "address"):
            data[name] = getattr(self, name)
        data["capacity"] = self.capacity
        data["secret"] = self.secret
        data["error"] = self.error
        for name in _BYTES_FIELDS:
            data[name] = _encode_bytes(getattr(self, name))
        for name in ("created", "updated", "started", "stopped"):
            data[name] = getattr(self, name)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Server:
        """Build a server from its JSON representation."""
        kwargs: dict[str, Any] = {
            "provider": _coerce(ProviderType, data.get("provider")),
            "state": _coerce(ServerState, data.get("state")),
        }
        for name in _STR_FIELDS:
            kwargs[name] = data.get(name) or ""
        for name in _INT_FIELDS:
            kwargs[name] = int(data.get(name) or 0)
        for name in _BYTES_FIELDS:
            kwargs[name] = _decode_bytes(data.get(name))
        return cls(**kwargs)


class Provider(ABC):
    """A hosting provider responsible for server management."""

    @abstractmethod
    def create(self, opts: InstanceCreateOpts) -> Instance:
        """Create a new server instance."""

    @abstractmethod
    def destroy(self, instance: Instance) -> None:
        """Destroy an existing server instance."""


class ServerStore(ABC):
    """Persists server information."""

    @abstractmethod
    def find(self, name: str) -> Server:
        """Return the server with the given name or raise ServerNotFound."""

    @abstractmethod
    def list(self) -> list[Server]:
        """Return all registered servers."""

    @abstractmethod
    def list_state(self, state: ServerState) -> list[Server]:
        """Return all servers in the given state."""

    @abstractmethod
    def create(self, server: Server) -> None:
        """Create the server record."""

    @abstractmethod
    def update(self, server: Server) -> None:
        """Update the server record."""

    @abstractmethod
    def delete(self, server: Server) -> None:
        """Delete the server record."""

    @abstractmethod
    def purge(self, before: int) -> None:
        """Purge old server records."""