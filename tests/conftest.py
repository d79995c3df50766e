import os as _os
import sys
import queue
import threading
import time

import pytest

# Ensure project root is importable (so `import epr` works without installing).
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from epr import db  # noqa: E402
from epr.errors import PublishError, SnapshotUnavailable, SubscriptionError  # noqa: E402
from epr.models import ChangeEvent, EndpointPort, EndpointRecord, EndpointSubset, EventKind  # noqa: E402
from epr.settings import Settings  # noqa: E402


def record(name, addresses, ports):
    return EndpointRecord(
        name=name,
        subsets=(EndpointSubset(addresses=tuple(addresses), ports=tuple(EndpointPort(port=p) for p in ports)),),
    )


def event(kind="MODIFIED", name="ts"):
    return ChangeEvent(kind=EventKind(kind), record=EndpointRecord(name=name))


def wait_for(pred, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return pred()


class FakeSubscription:
    """Yields the given events, then either closes or blocks until stopped."""

    def __init__(self, events=(), hold=False, fail_with=None):
        self.events = list(events)
        self.hold = hold
        self.fail_with = fail_with
        self.stopped = threading.Event()
        self.stop_calls = 0

    def __iter__(self):
        for ev in self.events:
            if self.stopped.is_set():
                return
            yield ev
        if self.fail_with is not None:
            raise self.fail_with
        if self.hold:
            self.stopped.wait(10)

    def stop(self):
        self.stop_calls += 1
        self.stopped.set()


class FeedSubscription:
    """A stream the test feeds one event at a time; ``close()`` ends it."""

    _END = object()

    def __init__(self):
        self._items = queue.Queue()
        self.stopped = threading.Event()

    def push(self, ev):
        self._items.put(ev)

    def close(self):
        self._items.put(self._END)

    def __iter__(self):
        while not self.stopped.is_set():
            try:
                item = self._items.get(timeout=0.05)
            except queue.Empty:
                continue
            if item is self._END:
                return
            yield item

    def stop(self):
        self.stopped.set()


class FakeEndpointsClient:
    """In-memory stand-in for EndpointsClient.

    ``listings`` are returned in order (the last one repeats); an exception
    instance is raised instead. ``subscriptions`` work the same way for watches.
    """

    def __init__(self, listings=None, subscriptions=None):
        self.listings = list(listings or [()])
        self.subscriptions = list(subscriptions or [FakeSubscription(hold=True)])
        self.list_calls = 0
        self.watch_calls = 0

    def list_endpoints(self, namespace):
        self.list_calls += 1
        item = self.listings.pop(0) if len(self.listings) > 1 else self.listings[0]
        if isinstance(item, Exception):
            raise item
        return tuple(item)

    def watch_endpoints(self, namespace):
        self.watch_calls += 1
        item = self.subscriptions.pop(0) if len(self.subscriptions) > 1 else self.subscriptions[0]
        if isinstance(item, Exception):
            raise item
        return item


class RecordingPublisher:
    def __init__(self, fail_times=0):
        self.calls = []
        self.fail_times = fail_times

    def __call__(self, path, payload):
        if self.fail_times > 0:
            self.fail_times -= 1
            raise PublishError(f"failed to write nodes file {path}: disk full")
        self.calls.append((path, payload))


@pytest.fixture
def config(tmp_path):
    return Settings(
        namespace="typesense",
        service="ts",
        peer_port=8107,
        api_port=8108,
        nodes_file=str(tmp_path / "nodes"),
        verbose=True,
        db_path="",
        resubscribe_attempts=1,
    )


@pytest.fixture
def journal(tmp_path):
    db.configure(str(tmp_path / "journal.db"))
    yield db
    db.configure("")


@pytest.fixture(autouse=True)
def _journal_off():
    db.configure("")
    yield
    db.configure("")


__all__ = [
    "FakeEndpointsClient",
    "FakeSubscription",
    "FeedSubscription",
    "RecordingPublisher",
    "SnapshotUnavailable",
    "SubscriptionError",
    "event",
    "record",
    "wait_for",
]
