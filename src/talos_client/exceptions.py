"""Exception types raised while reading node state and issuing upgrades."""

from typing import Optional


class TalosUpdaterError(Exception):
    """Base error for a failed reconciliation pass."""

    transient = False

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step

    def __str__(self) -> str:
        if self.step:
            return f"failed to {self.step}: {self.message}"
        return self.message


class ConfigurationError(TalosUpdaterError):
    """Invalid command line or config file input."""


class ResourceUnavailable(TalosUpdaterError):
    """A node resource is missing or does not have the expected shape."""


class ReferenceParseError(TalosUpdaterError):
    """An image string is not a valid name:tag reference."""


class AnnotationMissing(TalosUpdaterError):
    """The node object carries no schematic annotation."""


class ClusterAPIError(TalosUpdaterError):
    """The Kubernetes API lookup could not be performed."""

    transient = True


class RPCError(TalosUpdaterError):
    """Transport or protocol failure talking to the node management API."""

    transient = True


class UpgradeRejected(TalosUpdaterError):
    """The node declined the upgrade request."""

    transient = True
