from __future__ import annotations

import queue
from threading import Event, RLock, Thread
from typing import Callable

from . import db
from .errors import PublishError, SubscriptionError
from .kube import EndpointsClient, Subscription
from .models import ChangeEvent, Empty, Outcome, ReconcilerState, Unavailable
from .peers import reconcile_outcome
from .publisher import publish
from .runtime import RuntimeState
from .settings import Settings

# Marks the end of a subscription's stream in the inbox.
_CLOSED = object()

EXIT_OK = 0
EXIT_STREAM_LOST = 1


class Reconciler:
    """Keeps the nodes file in sync with the service's endpoints.

    One pump thread per subscription feeds change events into an inbox; the
    loop consumes the inbox and reconciles one event at a time, checking the
    stop flag on every iteration.
    """

    def __init__(
        self,
        endpoints: EndpointsClient,
        config: Settings,
        runtime: RuntimeState | None = None,
        publisher: Callable[[str, bytes], None] = publish,
        poll_interval_s: float = 0.5,
        resubscribe_backoff_s: float = 1.0,
    ):
        self.endpoints = endpoints
        self.config = config
        self.runtime = runtime or RuntimeState()
        self.publisher = publisher
        self.poll_interval_s = poll_interval_s
        self.resubscribe_backoff_s = resubscribe_backoff_s
        self.exit_code: int | None = None
        self._stop = Event()
        self._inbox: queue.Queue = queue.Queue()
        # Reentrant: stop() may run from a signal handler on the loop thread.
        self._sub_lock = RLock()
        self._subscription: Subscription | None = None
        self._thr: Thread | None = None

    @property
    def state(self) -> ReconcilerState:
        return self.runtime.get_state()

    def _log(self, level: str, message: str) -> None:
        db.log_event(level, message, service_name=self.config.service, namespace=self.config.namespace)

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        """Run the loop on a background thread (see ``run``)."""
        if self._thr and self._thr.is_alive():
            return
        self._thr = Thread(target=self.run, daemon=True)
        self._thr.start()

    def join(self, timeout: float | None = None) -> int | None:
        if self._thr:
            self._thr.join(timeout)
        return self.exit_code

    def stop(self) -> bool:
        """Ask the loop to stop. Returns False if a stop was already requested."""
        first = not self._stop.is_set()
        self._stop.set()
        with self._sub_lock:
            sub = self._subscription
        if sub is not None:
            sub.stop()
        return first

    # -- reconciliation --------------------------------------------------

    def reconcile(self, trigger: str) -> Outcome:
        """One fetch -> derive -> publish cycle. Never raises for transient failures."""
        cfg = self.config
        outcome = reconcile_outcome(
            self.endpoints,
            cfg.namespace,
            cfg.service,
            cfg.peer_port,
            cfg.api_port,
            verbose=cfg.verbose,
        )
        self.runtime.record_outcome(outcome)

        if isinstance(outcome, Unavailable):
            self._log("WARN", f"{trigger}: no usable endpoints snapshot ({outcome.reason}), skipping write.")
            return outcome
        if isinstance(outcome, Empty):
            self._log("INFO", f"{trigger}: no nodes found for service, skipping write to file.")
            return outcome

        try:
            self.publisher(cfg.nodes_file, outcome.text.encode("utf-8"))
        except PublishError as e:
            self._log("ERROR", f"{trigger}: {e}")
            return outcome
        self.runtime.mark_published(outcome)
        if cfg.verbose:
            self._log("DEBUG", f"{trigger}: new {len(outcome.entries)} node configuration: {outcome.text}")
        return outcome

    # -- watch loop ------------------------------------------------------

    def run(self, initial: bool = True) -> int:
        """Run until stopped. Returns EXIT_OK on a requested stop, EXIT_STREAM_LOST otherwise."""
        self.runtime.set_state(ReconcilerState.STARTING)
        if initial and not self._stop.is_set():
            self.reconcile("initial run")

        if not self._stop.is_set():
            try:
                self._subscribe()
            except SubscriptionError as e:
                self._log("ERROR", str(e))
                return self._finish(EXIT_STREAM_LOST)
            self.runtime.set_state(ReconcilerState.WATCHING)
            self._log("INFO", "Watching endpoints.")
            self._resync("subscribed")

        while not self._stop.is_set():
            try:
                item = self._inbox.get(timeout=self.poll_interval_s)
            except queue.Empty:
                continue
            if self._stop.is_set():
                break
            if item is _CLOSED:
                if not self._resubscribe():
                    return self._finish(EXIT_STREAM_LOST)
                continue
            self._handle(item)

        self._log("INFO", "Watcher stopped.")
        return self._finish(EXIT_OK)

    def _finish(self, code: int) -> int:
        with self._sub_lock:
            sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.stop()
        self.runtime.set_state(ReconcilerState.STOPPED)
        self.exit_code = code
        return code

    def _handle(self, event: ChangeEvent) -> None:
        if not event.kind.triggers_reconcile:
            self._log("DEBUG", f"Ignoring {event.kind.value} watch event.")
            return
        if self.config.verbose and event.record is not None:
            self._log("DEBUG", f"Endpoints {event.record.name} {event.kind.value.lower()}.")
        self.reconcile(f"watch {event.kind.value.lower()}")

    def _subscribe(self) -> None:
        sub = self.endpoints.watch_endpoints(self.config.namespace)
        with self._sub_lock:
            self._subscription = sub
        if self._stop.is_set():
            sub.stop()
            return
        Thread(target=self._pump, args=(sub,), daemon=True).start()

    def _resync(self, trigger: str) -> None:
        # Changes between the last listing and the watch start are not replayed
        # as events; reconcile against a listing taken after the watch opened.
        if not self._stop.is_set():
            self.reconcile(trigger)

    def _pump(self, sub: Subscription) -> None:
        try:
            for event in sub:
                self._inbox.put(event)
        except Exception as e:
            # Transport errors and expired resourceVersions end the stream like a close.
            if not self._stop.is_set():
                self._log("WARN", f"Watch stream failed: {type(e).__name__}: {e}")
        finally:
            self._inbox.put(_CLOSED)

    def _resubscribe(self) -> bool:
        """Reopen the watch after the stream closed. False when every attempt failed."""
        self.runtime.set_state(ReconcilerState.RECONNECTING)
        attempts = max(1, int(self.config.resubscribe_attempts))
        for attempt in range(1, attempts + 1):
            if attempt > 1 and self._stop.wait(self.resubscribe_backoff_s):
                return True
            if self._stop.is_set():
                return True
            self.runtime.bump_resubscribe()
            try:
                self._subscribe()
            except SubscriptionError as e:
                self._log("ERROR", f"Resubscribe attempt {attempt}/{attempts} failed: {e}")
                continue
            self.runtime.set_state(ReconcilerState.WATCHING)
            self._log("INFO", "Watcher channel closed, but successfully reconnected. Continuing...")
            self._resync("resubscribed")
            return True
        self._log("ERROR", "Could not reopen the endpoints watch; topology changes can no longer be tracked.")
        return False
