from __future__ import annotations

import os
from dataclasses import dataclass


_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _env_bool(name: str, default: bool = False) -> bool:
    """Unset or unrecognised values fall back to ``default``."""
    raw = (os.getenv(name) or "").strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    return int(raw) if raw.lstrip("-").isdigit() else default


@dataclass(frozen=True)
class Settings:
    # Target service
    namespace: str = os.getenv("EPR_NAMESPACE", "typesense")
    service: str = os.getenv("EPR_SERVICE", "ts")
    peer_port: int = _env_int("EPR_PEER_PORT", 8107)
    api_port: int = _env_int("EPR_API_PORT", 8108)

    # Output
    nodes_file: str = os.getenv("EPR_NODES_FILE", "/usr/share/typesense/nodes")
    verbose: bool = _env_bool("EPR_VERBOSE", False)

    # Cluster API. None means ~/.kube/config when present, in-cluster otherwise.
    kubeconfig: str | None = os.getenv("EPR_KUBECONFIG")
    watch_timeout_s: int = _env_int("EPR_WATCH_TIMEOUT_S", 300)
    resubscribe_attempts: int = _env_int("EPR_RESUBSCRIBE_ATTEMPTS", 1)

    # Event journal (sqlite). Empty disables it; events still go to the log.
    db_path: str = os.getenv("EPR_DB_PATH", "")

    # Status API. Port 0 disables it.
    status_host: str = os.getenv("EPR_STATUS_HOST", "0.0.0.0")
    status_port: int = _env_int("EPR_STATUS_PORT", 0)

    def validate(self) -> None:
        if not self.namespace.strip():
            raise ValueError("namespace must not be empty.")
        if not self.service.strip():
            raise ValueError("service must not be empty.")
        for label, port in (("peer_port", self.peer_port), ("api_port", self.api_port)):
            if not 1 <= int(port) <= 65535:
                raise ValueError(f"{label} must be between 1 and 65535 (got {port}).")
        if self.resubscribe_attempts < 1:
            raise ValueError("resubscribe_attempts must be at least 1.")
        if self.status_port and not 1 <= int(self.status_port) <= 65535:
            raise ValueError(f"status_port must be between 1 and 65535 (got {self.status_port}).")


settings = Settings()
