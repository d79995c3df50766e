from __future__ import annotations


class EprError(Exception):
    pass


class ClientConfigError(EprError):
    """The cluster API client could not be configured (kubeconfig / in-cluster)."""


class SnapshotUnavailable(EprError):
    """Listing the namespace's endpoints failed."""


class SubscriptionError(EprError):
    """The endpoints change stream could not be opened."""


class PublishError(EprError):
    """The nodes file could not be replaced."""
