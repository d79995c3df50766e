from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

from .db import utc_now
from .models import Outcome, Peers, ReconcilerState


@dataclass
class PublishedState:
    text: str | None = None
    peers: list[str] = field(default_factory=list)
    published_at: str | None = None


class RuntimeState:
    """In-memory status shared by the reconciler and the status API."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.state = ReconcilerState.STARTING
        self.last_outcome: Outcome | None = None
        self.last_reconcile_at: str | None = None
        self.reconcile_count = 0
        self.resubscribe_count = 0
        self.published = PublishedState()

    def set_state(self, state: ReconcilerState) -> None:
        with self.lock:
            self.state = state

    def get_state(self) -> ReconcilerState:
        with self.lock:
            return self.state

    def record_outcome(self, outcome: Outcome) -> None:
        with self.lock:
            self.last_outcome = outcome
            self.last_reconcile_at = utc_now()
            self.reconcile_count += 1

    def mark_published(self, peers: Peers) -> None:
        with self.lock:
            self.published = PublishedState(
                text=peers.text,
                peers=[str(e) for e in peers.entries],
                published_at=utc_now(),
            )

    def bump_resubscribe(self) -> int:
        with self.lock:
            self.resubscribe_count += 1
            return self.resubscribe_count

    def snapshot(self) -> dict:
        with self.lock:
            return {
                "state": self.state.value,
                "last_outcome": self.last_outcome.kind if self.last_outcome else "none",
                "last_reconcile_at": self.last_reconcile_at,
                "reconcile_count": self.reconcile_count,
                "resubscribe_count": self.resubscribe_count,
                "peers": list(self.published.peers),
                "text": self.published.text,
                "published_at": self.published.published_at,
            }
