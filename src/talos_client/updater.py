"""
Single-pass reconciliation of a Talos node against a desired version tag.

The node is considered current only when both its running version tag and
its schematic annotation match; otherwise the configured install image is
retagged and an upgrade is submitted.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from .exceptions import AnnotationMissing, TalosUpdaterError
from .models import (
    SCHEMATIC_ANNOTATION,
    DesiredState,
    NodeIdentity,
    ObservedState,
    ReconcileResult,
    UpgradeRequest,
)
from .reference import ImageReference, parse_reference

logger = logging.getLogger(__name__)

SUBMIT_UPGRADE_STEP = "submit upgrade"


class NodeManagementAPI(Protocol):
    """Capabilities required from the node's own management API."""

    def get_nodename(self) -> str: ...

    def get_install_image(self) -> str: ...

    def get_running_version(self) -> str: ...

    def upgrade(self, request: UpgradeRequest) -> str: ...


class ClusterMetadataAPI(Protocol):
    """Capabilities required from the cluster orchestration API."""

    def get_node_annotation(self, node_name: str, key: str) -> Optional[str]: ...


@contextmanager
def step(description: str) -> Iterator[None]:
    """Attach ``description`` to any updater error raised inside the block."""
    try:
        yield
    except TalosUpdaterError as e:
        if e.step is None:
            e.step = description
        raise


class StateReader:
    """Produces read-only snapshots of a node's current state."""

    def __init__(self, node_api: NodeManagementAPI, cluster_api: ClusterMetadataAPI):
        self.node_api = node_api
        self.cluster_api = cluster_api

    def resolve_node_identity(self) -> NodeIdentity:
        with step("fetch nodename resource"):
            return NodeIdentity(name=self.node_api.get_nodename())

    def resolve_machine_image(self) -> ImageReference:
        with step("fetch machine config"):
            image = self.node_api.get_install_image()
        logger.info(f"machineconfig install image: {image}")
        with step("parse machineconfig install image"):
            return parse_reference(image)

    def resolve_schematic_annotation(self, identity: NodeIdentity) -> str:
        with step("get schematic annotation"):
            value = self.cluster_api.get_node_annotation(identity.name, SCHEMATIC_ANNOTATION)
            if value is None:
                raise AnnotationMissing(f"schematic annotation not found for node {identity.name}")
            return value

    def resolve_running_version(self) -> str:
        with step("fetch version"):
            return self.node_api.get_running_version()

    def read(self) -> ObservedState:
        """Perform the four reads in order and return the snapshot."""
        identity = self.resolve_node_identity()
        logger.info(f"looking at node {identity.name}")

        configured_image = self.resolve_machine_image()
        annotation = self.resolve_schematic_annotation(identity)
        running_tag = self.resolve_running_version()
        logger.info(f"talos version: {running_tag}")

        return ObservedState(
            node=identity,
            configured_image=configured_image,
            annotation_schematic=annotation,
            running_tag=running_tag,
        )


class Reconciler:
    """Decides whether a node needs an upgrade and submits it."""

    def __init__(self, node_api: NodeManagementAPI, dry_run: bool = False):
        self.node_api = node_api
        self.dry_run = dry_run

    @staticmethod
    def is_up_to_date(observed: ObservedState, desired: DesiredState) -> bool:
        return (
            observed.running_tag == desired.target_tag
            and observed.annotation_schematic == observed.configured_schematic
        )

    def reconcile(self, observed: ObservedState, desired: DesiredState) -> ReconcileResult:
        if self.is_up_to_date(observed, desired):
            logger.info(
                f"node is up-to-date (schematic: {observed.annotation_schematic}, tag: {observed.running_tag})"
            )
            return ReconcileResult.no_change()

        try:
            with step("update image tag"):
                new_image = observed.configured_image.with_tag(desired.target_tag)

            request = UpgradeRequest(
                image=new_image,
                stage=desired.staged,
                reboot_mode=desired.reboot_mode,
            )
            if self.dry_run:
                logger.info(f"dry run: would update {observed.node.name} to {new_image}")
                return ReconcileResult.planned(new_image)

            logger.info(f"updating {observed.node.name} to {new_image}")
            with step(SUBMIT_UPGRADE_STEP):
                message = self.node_api.upgrade(request)
        except TalosUpdaterError as e:
            return ReconcileResult.failed(e)

        logger.info(f"update started: {message}")
        return ReconcileResult.issued(new_image, message=message)


class NodeUpdater:
    """Runs one reconciliation pass for a single node."""

    def __init__(
        self,
        node_api: NodeManagementAPI,
        cluster_api: ClusterMetadataAPI,
        desired: DesiredState,
        dry_run: bool = False,
    ):
        self.node_api = node_api
        self.cluster_api = cluster_api
        self.desired = desired
        self.dry_run = dry_run

    def update(self) -> ReconcileResult:
        """Read fresh state and reconcile it; errors are returned, never raised."""
        try:
            observed = StateReader(self.node_api, self.cluster_api).read()
        except TalosUpdaterError as e:
            return ReconcileResult.failed(e)
        return Reconciler(self.node_api, dry_run=self.dry_run).reconcile(observed, self.desired)
