"""Talos node updater: one-shot reconciliation of a node's OS image."""

from .client import TalosClient
from .exceptions import (
    AnnotationMissing,
    ClusterAPIError,
    ConfigurationError,
    ReferenceParseError,
    ResourceUnavailable,
    RPCError,
    TalosUpdaterError,
    UpgradeRejected,
)
from .kube import KubernetesClient
from .models import DesiredState, ObservedState, ReconcileOutcome, ReconcileResult, UpdaterConfig
from .reference import ImageReference, parse_reference
from .updater import NodeUpdater, Reconciler, StateReader

__version__ = "0.1.0"
__all__ = [
    "AnnotationMissing",
    "ClusterAPIError",
    "ConfigurationError",
    "DesiredState",
    "ImageReference",
    "KubernetesClient",
    "NodeUpdater",
    "ObservedState",
    "RPCError",
    "ReconcileOutcome",
    "ReconcileResult",
    "Reconciler",
    "ReferenceParseError",
    "ResourceUnavailable",
    "StateReader",
    "TalosClient",
    "TalosUpdaterError",
    "UpdaterConfig",
    "UpgradeRejected",
    "parse_reference",
]
