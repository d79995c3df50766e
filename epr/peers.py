from __future__ import annotations

import logging
from typing import Iterable

from .errors import SnapshotUnavailable
from .kube import EndpointsClient, fetch_snapshot
from .models import Empty, EndpointRecord, Outcome, PeerEntry, Peers, Unavailable

logger = logging.getLogger(__name__)


def derive_peers(
    records: Iterable[EndpointRecord],
    peer_port: int,
    api_port: int,
    verbose: bool = False,
) -> Empty | Peers:
    """Build the peer list from an already-filtered endpoint snapshot.

    An address contributes one entry per port equal to ``peer_port``. The API
    port is never read from the snapshot. Entries keep snapshot iteration order.
    """
    entries: list[PeerEntry] = []
    for record in records:
        for subset in record.subsets:
            for address in subset.addresses:
                if verbose:
                    logger.debug("Handling address %s", address)
                for port in subset.ports:
                    if port.port == peer_port:
                        entries.append(PeerEntry(address=address, peer_port=peer_port, api_port=api_port))
                    elif verbose:
                        logger.debug("Port %d for address %s does not match peer port %d", port.port, address, peer_port)

    if not entries:
        return Empty()
    return Peers(entries=tuple(entries))


def reconcile_outcome(
    endpoints: EndpointsClient,
    namespace: str,
    service: str,
    peer_port: int,
    api_port: int,
    verbose: bool = False,
) -> Outcome:
    """Fetch the current snapshot and derive the peer list from it."""
    try:
        records = fetch_snapshot(endpoints, namespace, service)
    except SnapshotUnavailable as e:
        return Unavailable(reason=str(e))
    if verbose:
        logger.debug("Found %d endpoint records for service %s", len(records), service)
    return derive_peers(records, peer_port, api_port, verbose=verbose)
