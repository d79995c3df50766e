from __future__ import annotations

import signal
from threading import RLock
from typing import Any

from . import db
from .reconciler import Reconciler

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """Turns termination requests into a single cooperative reconciler stop.

    The reconciliation in flight is allowed to finish; only the first request
    has any effect.
    """

    def __init__(self, reconciler: Reconciler):
        self.reconciler = reconciler
        self._lock = RLock()
        self._requested = False
        self._previous: dict[int, Any] = {}

    @property
    def requested(self) -> bool:
        return self._requested

    def install(self) -> None:
        """Register SIGINT/SIGTERM handlers. Must be called from the main thread."""
        for sig in STOP_SIGNALS:
            self._previous[sig] = signal.signal(sig, self._handle_signal)

    def uninstall(self) -> None:
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        self.request_stop(f"received signal {signal.Signals(signum).name}")

    def request_stop(self, reason: str) -> bool:
        with self._lock:
            if self._requested:
                return False
            self._requested = True
        self.reconciler.stop()
        # Runs inside a signal handler: stay off the journal, whose connection
        # the interrupted frame may be holding.
        db.logger.info("Shutdown requested (%s), stopping watcher.", reason)
        return True
