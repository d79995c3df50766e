from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(..., description="healthy|stopped")
    state: str = Field(..., description="starting|watching|reconnecting|stopped")


class PeersResponse(BaseModel):
    namespace: str
    service: str
    peers: list[str] = Field(default_factory=list, description="Last published entries, snapshot order")
    text: str | None = Field(None, description="Last published nodes file content")
    published_at: str | None = None
    last_outcome: str = Field("none", description="peers|empty|unavailable|none")
    last_reconcile_at: str | None = None
    reconcile_count: int = 0
    resubscribe_count: int = 0


class EventRow(BaseModel):
    id: int
    ts: str
    level: str
    namespace: str | None = None
    service_name: str | None = None
    message: str
