"""Endpoint Peer Reconciler (EPR).

Sidecar that watches the Kubernetes Endpoints of a clustered service and keeps a
plain-text peer list ("nodes file") in sync with them:
 - initial listing of the service's endpoints
 - derivation of the ``address:peer_port:api_port`` peer list
 - atomic publication of that list to a file
 - a watch loop that republishes on every endpoint change and resubscribes
   when the platform severs the stream

The implementation is intentionally small so it can be audited and explained.
"""

__version__ = "0.1.0"
