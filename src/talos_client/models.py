"""Data models for the Talos node updater."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import TalosUpdaterError
from .reference import ImageReference

SCHEMATIC_ANNOTATION = "extensions.talos.dev/schematic"


class RebootMode(str, Enum):
    """Reboot modes accepted by ``talosctl upgrade --reboot-mode``."""
    DEFAULT = "default"
    POWERCYCLE = "powercycle"


class ReconcileOutcome(str, Enum):
    """Terminal outcome of a single reconciliation pass."""
    NO_CHANGE = "no_change"
    UPGRADE_ISSUED = "upgrade_issued"
    UPGRADE_PLANNED = "upgrade_planned"
    FAILED = "failed"


@dataclass(frozen=True)
class NodeIdentity:
    """Logical node name as registered with Kubernetes."""
    name: str


def derive_schematic(image: ImageReference) -> str:
    """Return the last path segment of the image repository name."""
    return image.name[image.name.rfind("/") + 1 :]


@dataclass(frozen=True)
class ObservedState:
    """Snapshot of a node's state, read fresh for every pass."""
    node: NodeIdentity
    configured_image: ImageReference
    annotation_schematic: str
    running_tag: str

    @property
    def configured_schematic(self) -> str:
        return derive_schematic(self.configured_image)


class DesiredState(BaseModel):
    """Operator supplied target for the node."""
    model_config = ConfigDict(frozen=True)

    target_tag: str = Field(min_length=1)
    powercycle: bool = False
    staged: bool = False

    @property
    def reboot_mode(self) -> RebootMode:
        return RebootMode.POWERCYCLE if self.powercycle else RebootMode.DEFAULT


@dataclass(frozen=True)
class UpgradeRequest:
    """Payload submitted to the node management API."""
    image: ImageReference
    stage: bool = False
    reboot_mode: RebootMode = RebootMode.DEFAULT
    preserve: bool = True


@dataclass
class ReconcileResult:
    """Outcome of a reconciliation pass."""

    outcome: ReconcileOutcome
    image: Optional[ImageReference] = None
    error: Optional[TalosUpdaterError] = None
    message: Optional[str] = None

    @classmethod
    def no_change(cls) -> "ReconcileResult":
        return cls(outcome=ReconcileOutcome.NO_CHANGE)

    @classmethod
    def issued(cls, image: ImageReference, message: Optional[str] = None) -> "ReconcileResult":
        return cls(outcome=ReconcileOutcome.UPGRADE_ISSUED, image=image, message=message)

    @classmethod
    def planned(cls, image: ImageReference) -> "ReconcileResult":
        return cls(outcome=ReconcileOutcome.UPGRADE_PLANNED, image=image)

    @classmethod
    def failed(cls, error: TalosUpdaterError) -> "ReconcileResult":
        return cls(outcome=ReconcileOutcome.FAILED, error=error)

    @property
    def success(self) -> bool:
        return self.outcome != ReconcileOutcome.FAILED

    @property
    def upgrade_issued(self) -> bool:
        return self.outcome == ReconcileOutcome.UPGRADE_ISSUED


class UpdaterConfig(BaseModel):
    """Run configuration with validation."""
    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    node: str = Field(min_length=1)
    tag: str = Field(min_length=1)
    powercycle: bool = False
    staged: bool = False
    talosconfig: Optional[str] = None
    kubeconfig: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)
    attempts: int = Field(default=1, ge=1)
    wait: bool = True
    dry_run: bool = False

    def desired_state(self) -> DesiredState:
        """Build the desired state for this run."""
        return DesiredState(target_tag=self.tag, powercycle=self.powercycle, staged=self.staged)
