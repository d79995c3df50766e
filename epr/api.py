from __future__ import annotations

import sqlite3
from threading import Thread

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from . import __version__, db
from .api_models import EventRow, HealthResponse, PeersResponse
from .models import ReconcilerState
from .runtime import RuntimeState
from .settings import Settings


def create_app(runtime: RuntimeState, config: Settings) -> FastAPI:
    """Read-only status API for probes and operators."""
    app = FastAPI(title="Endpoint Peer Reconciler", version=__version__)

    @app.get("/health", response_model=HealthResponse)
    def health():
        state = runtime.get_state()
        if state is ReconcilerState.STOPPED:
            return JSONResponse(status_code=503, content={"status": "stopped", "state": state.value})
        return HealthResponse(status="healthy", state=state.value)

    @app.get("/peers", response_model=PeersResponse)
    def peers() -> PeersResponse:
        snap = runtime.snapshot()
        return PeersResponse(
            namespace=config.namespace,
            service=config.service,
            peers=snap["peers"],
            text=snap["text"],
            published_at=snap["published_at"],
            last_outcome=snap["last_outcome"],
            last_reconcile_at=snap["last_reconcile_at"],
            reconcile_count=snap["reconcile_count"],
            resubscribe_count=snap["resubscribe_count"],
        )

    @app.get("/events", response_model=list[EventRow])
    def events(limit: int = Query(50, ge=1, le=1000)) -> list[EventRow]:
        try:
            return [EventRow(**row) for row in db.latest_events(limit)]
        except sqlite3.Error as e:
            raise HTTPException(status_code=500, detail=f"journal unavailable: {type(e).__name__}") from e

    return app


class StatusServer:
    """Serves the status API from a daemon thread."""

    def __init__(self, app: FastAPI, host: str, port: int):
        self.server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning", access_log=False))
        self._thr: Thread | None = None

    def start(self) -> None:
        self._thr = Thread(target=self.server.run, daemon=True)
        self._thr.start()

    def stop(self, timeout: float = 5.0) -> None:
        self.server.should_exit = True
        if self._thr:
            self._thr.join(timeout)
