"""Node management client backed by the talosctl CLI."""

import logging
import re
import subprocess
from typing import Any, Dict, List, Optional, Type

import yaml

from .exceptions import ResourceUnavailable, RPCError, TalosUpdaterError, UpgradeRejected
from .models import UpgradeRequest

logger = logging.getLogger(__name__)

NODENAME_RESOURCE = ("k8s", "Nodenames.kubernetes.talos.dev", "nodename")
MACHINE_CONFIG_RESOURCE = ("config", "MachineConfigs.config.talos.dev", "v1alpha1")

# gRPC status codes that mean the node answered and declined the upgrade.
REJECTION_CODES = frozenset(
    {
        "FailedPrecondition",
        "InvalidArgument",
        "AlreadyExists",
        "ResourceExhausted",
        "Aborted",
        "PermissionDenied",
    }
)

_GRPC_CODE_RE = re.compile(r"code = (\w+)")
_SERVER_TAG_RE = re.compile(r"^\s*Tag:\s*(\S+)", re.MULTILINE)


def grpc_code(output: str) -> Optional[str]:
    """Extract the gRPC status code from talosctl error output."""
    match = _GRPC_CODE_RE.search(output or "")
    return match.group(1) if match else None


def parse_server_tag(output: str) -> str:
    """
    Extract the server Tag from ``talosctl version`` output.

    The output has a ``Client:`` section followed by a ``Server:`` section;
    only the latter describes the node.
    """
    _, marker, server_section = output.partition("Server:")
    if not marker:
        raise RPCError("talosctl version output has no Server section")
    match = _SERVER_TAG_RE.search(server_section)
    if not match:
        raise RPCError("talosctl version output has no server Tag")
    return match.group(1)


class TalosClient:
    """Talos node management API accessed through ``talosctl``."""

    def __init__(
        self,
        node: str,
        talosconfig: Optional[str] = None,
        timeout: float = 30.0,
        binary: str = "talosctl",
    ):
        """
        Args:
            node: Address of the node to target
            talosconfig: Optional path to the talosconfig file (talosctl default otherwise)
            timeout: Seconds each talosctl call may take before it is abandoned
            binary: Name or path of the talosctl executable
        """
        self.node = node
        self.talosconfig = talosconfig
        self.timeout = timeout
        self.binary = binary

    def _command(self, args: List[str]) -> List[str]:
        cmd = [self.binary]
        if self.talosconfig:
            cmd.extend(["--talosconfig", self.talosconfig])
        cmd.extend(["--nodes", self.node])
        cmd.extend(args)
        return cmd

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        cmd = self._command(args)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise RPCError(f"talosctl {args[0]} timed out after {self.timeout:g}s")
        except FileNotFoundError:
            raise RPCError(f"{self.binary} not found. Install talosctl and make sure it is on PATH")

    @staticmethod
    def _failure(
        result: subprocess.CompletedProcess,
        default: Type[TalosUpdaterError],
        by_code: Optional[Dict[str, Type[TalosUpdaterError]]] = None,
    ) -> TalosUpdaterError:
        output = (result.stderr or result.stdout or "").strip()
        detail = output.splitlines()[-1] if output else f"talosctl exited with status {result.returncode}"
        code = grpc_code(output)
        error_cls = (by_code or {}).get(code, default) if code else default
        return error_cls(detail)

    def get_resource(self, namespace: str, resource_type: str, resource_id: str) -> Dict[str, Any]:
        """Fetch a single COSI resource as a mapping with ``metadata`` and ``spec``."""
        result = self._run(["get", resource_type, resource_id, "--namespace", namespace, "-o", "yaml"])
        if result.returncode != 0:
            raise self._failure(result, RPCError, {"NotFound": ResourceUnavailable})

        try:
            documents = [doc for doc in yaml.safe_load_all(result.stdout) if doc]
        except yaml.YAMLError as e:
            raise ResourceUnavailable(f"{resource_type}/{resource_id} is not valid YAML: {e}")
        if not documents or not isinstance(documents[0], dict):
            raise ResourceUnavailable(f"{resource_type}/{resource_id} not found")

        resource = documents[0]
        actual_type = (resource.get("metadata") or {}).get("type")
        if actual_type and actual_type.lower() != resource_type.lower():
            raise ResourceUnavailable(f"unexpected resource type {actual_type}")
        return resource

    def get_nodename(self) -> str:
        resource = self.get_resource(*NODENAME_RESOURCE)
        spec = resource.get("spec")
        if not isinstance(spec, dict) or not isinstance(spec.get("nodename"), str) or not spec["nodename"]:
            raise ResourceUnavailable("nodename resource has no spec.nodename")
        return spec["nodename"]

    def get_install_image(self) -> str:
        resource = self.get_resource(*MACHINE_CONFIG_RESOURCE)
        spec = resource.get("spec")

        # The machine config is usually returned as an embedded YAML document.
        if isinstance(spec, str):
            try:
                documents = list(yaml.safe_load_all(spec))
            except yaml.YAMLError as e:
                raise ResourceUnavailable(f"machine config is not valid YAML: {e}")
        else:
            documents = [spec]

        for document in documents:
            if isinstance(document, dict) and isinstance(document.get("machine"), dict):
                install = document["machine"].get("install") or {}
                image = install.get("image") if isinstance(install, dict) else None
                if isinstance(image, str) and image:
                    return image
                raise ResourceUnavailable("machine config has no machine.install.image")
        raise ResourceUnavailable("machine config has no machine section")

    def get_running_version(self) -> str:
        result = self._run(["version"])
        if result.returncode != 0:
            raise self._failure(result, RPCError)
        return parse_server_tag(result.stdout)

    def upgrade(self, request: UpgradeRequest) -> str:
        """Submit an upgrade without waiting for it to complete; returns the node's acknowledgement."""
        result = self._run(
            [
                "upgrade",
                "--image",
                str(request.image),
                f"--preserve={str(request.preserve).lower()}",
                f"--stage={str(request.stage).lower()}",
                "--reboot-mode",
                request.reboot_mode.value,
                "--wait=false",
            ]
        )
        if result.returncode != 0:
            raise self._failure(result, RPCError, {code: UpgradeRejected for code in REJECTION_CODES})
        return result.stdout.strip()
