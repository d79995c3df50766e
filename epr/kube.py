from __future__ import annotations

import os
import re
from typing import Any, Iterator

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes import watch
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from .errors import ClientConfigError, SnapshotUnavailable, SubscriptionError
from .models import ChangeEvent, EndpointPort, EndpointRecord, EndpointSubset, EventKind

NAME_RE = re.compile(r"^[a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?$")

# Failures of the API transport that are transient from our point of view.
_API_ERRORS = (ApiException, HTTPError, OSError)


def validate_name(kind: str, value: str) -> None:
    """Namespaces and service names are RFC 1123 DNS labels."""
    if not NAME_RE.match(value or ""):
        raise ValueError(
            f"Invalid {kind} {value!r}. Use lowercase letters/numbers and hyphen (max 63 chars)."
        )


def default_kubeconfig() -> str:
    return os.path.join(os.path.expanduser("~"), ".kube", "config")


def build_client(kubeconfig: str | None = None, watch_timeout_s: int = 300) -> "EndpointsClient":
    """Build an endpoints client from a kubeconfig file, or in-cluster config.

    A kubeconfig is used when ``kubeconfig`` is given or ``~/.kube/config``
    exists; otherwise the pod's service account is used.
    """
    path = kubeconfig or default_kubeconfig()
    try:
        if os.path.exists(path):
            k8s_config.load_kube_config(config_file=path)
        elif kubeconfig:
            raise ClientConfigError(f"kubeconfig {kubeconfig!r} does not exist.")
        else:
            k8s_config.load_incluster_config()
    except ConfigException as e:
        raise ClientConfigError(f"failed to build cluster config: {e}") from e
    return EndpointsClient(k8s_client.CoreV1Api(), watch_timeout_s=watch_timeout_s)


def _to_record(obj: Any) -> EndpointRecord:
    """Convert a V1Endpoints (or its dict form) into an EndpointRecord."""
    if isinstance(obj, dict):
        name = (obj.get("metadata") or {}).get("name", "")
        subsets = []
        for s in obj.get("subsets") or []:
            addresses = tuple(a.get("ip", "") for a in s.get("addresses") or [])
            ports = tuple(
                EndpointPort(port=int(p.get("port", 0)), name=p.get("name"), protocol=p.get("protocol") or "TCP")
                for p in s.get("ports") or []
            )
            subsets.append(EndpointSubset(addresses=addresses, ports=ports))
        return EndpointRecord(name=name, subsets=tuple(subsets))

    name = obj.metadata.name if obj.metadata else ""
    subsets = []
    for s in obj.subsets or []:
        addresses = tuple(a.ip for a in s.addresses or [])
        ports = tuple(EndpointPort(port=int(p.port), name=p.name, protocol=p.protocol or "TCP") for p in s.ports or [])
        subsets.append(EndpointSubset(addresses=addresses, ports=ports))
    return EndpointRecord(name=name, subsets=tuple(subsets))


class Subscription:
    """An open endpoints watch. Iterating yields ChangeEvents until the stream ends."""

    def __init__(self, api: k8s_client.CoreV1Api, namespace: str, resource_version: str | None, timeout_s: int):
        self._watch = watch.Watch()
        self._stream = self._watch.stream(
            api.list_namespaced_endpoints,
            namespace=namespace,
            resource_version=resource_version,
            timeout_seconds=timeout_s,
        )
        self._stopped = False

    def __iter__(self) -> Iterator[ChangeEvent]:
        for raw in self._stream:
            try:
                kind = EventKind(raw.get("type", ""))
            except ValueError:
                continue
            obj = raw.get("object")
            record = _to_record(obj) if obj is not None and kind is not EventKind.ERROR else None
            yield ChangeEvent(kind=kind, record=record)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._watch.stop()


class EndpointsClient:
    """The two cluster operations the reconciler needs: list and watch Endpoints."""

    def __init__(self, api: k8s_client.CoreV1Api, watch_timeout_s: int = 300):
        self.api = api
        self.watch_timeout_s = watch_timeout_s

    def list_endpoints(self, namespace: str) -> tuple[EndpointRecord, ...]:
        try:
            result = self.api.list_namespaced_endpoints(namespace)
        except _API_ERRORS as e:
            raise SnapshotUnavailable(f"failed to list endpoints: {e}") from e
        return tuple(_to_record(item) for item in result.items or [])

    def watch_endpoints(self, namespace: str) -> Subscription:
        # List first so an unreachable API fails here rather than on first read,
        # and so the watch starts from a known resourceVersion.
        try:
            listing = self.api.list_namespaced_endpoints(namespace)
        except _API_ERRORS as e:
            raise SubscriptionError(f"failed to create endpoints watcher: {e}") from e
        rv = listing.metadata.resource_version if listing.metadata else None
        return Subscription(self.api, namespace, rv, self.watch_timeout_s)


def fetch_snapshot(endpoints: EndpointsClient, namespace: str, service: str) -> tuple[EndpointRecord, ...]:
    """Return the namespace's endpoint records named ``service``, in listing order.

    Raises SnapshotUnavailable when the listing fails. An empty tuple is a valid
    answer meaning no endpoints are currently known for the service.
    """
    return tuple(r for r in endpoints.list_endpoints(namespace) if r.name == service)
