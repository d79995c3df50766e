from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


@dataclass(frozen=True)
class EndpointPort:
    port: int
    name: str | None = None
    protocol: str = "TCP"


@dataclass(frozen=True)
class EndpointSubset:
    addresses: tuple[str, ...] = ()
    ports: tuple[EndpointPort, ...] = ()


@dataclass(frozen=True)
class EndpointRecord:
    """One Endpoints object: a service name and its address/port subsets."""

    name: str
    subsets: tuple[EndpointSubset, ...] = ()


class EventKind(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"

    @property
    def triggers_reconcile(self) -> bool:
        return self in {EventKind.ADDED, EventKind.MODIFIED, EventKind.DELETED}


@dataclass(frozen=True)
class ChangeEvent:
    kind: EventKind
    record: EndpointRecord | None = None


@dataclass(frozen=True)
class PeerEntry:
    address: str
    peer_port: int
    api_port: int

    def __str__(self) -> str:
        return f"{self.address}:{self.peer_port}:{self.api_port}"


# Derivation outcomes. "unavailable" and "empty" both skip the write but are
# kept apart so they can be reported differently.


@dataclass(frozen=True)
class Unavailable:
    reason: str
    kind: str = field(default="unavailable", init=False)


@dataclass(frozen=True)
class Empty:
    kind: str = field(default="empty", init=False)


@dataclass(frozen=True)
class Peers:
    entries: tuple[PeerEntry, ...]
    kind: str = field(default="peers", init=False)

    @property
    def text(self) -> str:
        """Published form: comma-joined entries, snapshot order, no newline."""
        return ",".join(str(e) for e in self.entries)


Outcome = Union[Unavailable, Empty, Peers]


class ReconcilerState(str, Enum):
    STARTING = "starting"
    WATCHING = "watching"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"
