#!/usr/bin/env python3
"""
Reconcile a Talos node's OS image and extension schematic with a target tag.
"""

import argparse
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from rich.logging import RichHandler
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_exponential

from talos_client.client import TalosClient
from talos_client.exceptions import ConfigurationError, RPCError
from talos_client.kube import KubernetesClient
from talos_client.models import ReconcileResult, UpdaterConfig
from talos_client.updater import SUBMIT_UPGRADE_STEP, NodeUpdater
from talos_client.utils.config import build_updater_config, load_config_file
from talos_client.utils.display import (
    display_error,
    display_result,
    display_run_header,
    display_waiting,
    display_warning,
)
from talos_client.utils.signals import install_termination_handler, wait_for_termination

logger = logging.getLogger(__name__)


def _is_transient_failure(result: ReconcileResult) -> bool:
    error = result.error
    if result.success or error is None or not error.transient:
        return False
    # The node may have accepted an upgrade whose call then failed in transport.
    return not (isinstance(error, RPCError) and error.step == SUBMIT_UPGRADE_STEP)


def _log_retry(retry_state: RetryCallState) -> None:
    result = retry_state.outcome.result()
    logger.warning(f"Attempt {retry_state.attempt_number} failed: {result.error}. Retrying...")


def run_with_retries(
    update: Callable[[], ReconcileResult],
    attempts: int,
    wait: Any = None,
) -> ReconcileResult:
    """
    Run reconciliation passes until one succeeds, fails permanently or attempts run out.

    Every pass re-reads node state. Only transient failures are retried.
    """
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait or wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_result(_is_transient_failure),
        before_sleep=_log_retry,
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
    )
    return retrying(update)


def build_updater(config: UpdaterConfig) -> NodeUpdater:
    node_api = TalosClient(config.node, talosconfig=config.talosconfig, timeout=config.timeout)
    cluster_api = KubernetesClient(kubeconfig=config.kubeconfig, timeout=config.timeout)
    return NodeUpdater(node_api, cluster_api, config.desired_state(), dry_run=config.dry_run)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Upgrade a Talos node when its version tag or extension schematic is out of date.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  talos-node-update --node 10.0.0.2 --tag v1.7.6
  talos-node-update --node 10.0.0.2 --tag v1.7.6 --powercycle --staged
  talos-node-update --config updater.yaml --dry-run
        """,
    )
    parser.add_argument("--node", help="The address of the node to update (required).")
    parser.add_argument("--tag", help="The image tag to update to (required).")
    parser.add_argument(
        "--powercycle",
        action="store_true",
        default=None,
        help="Reboot using powercycle instead of kexec.",
    )
    parser.add_argument(
        "--staged",
        action="store_true",
        default=None,
        help="Perform the upgrade after a reboot.",
    )
    parser.add_argument("--talosconfig", help="Path to the talosconfig file (talosctl default otherwise).")
    parser.add_argument(
        "--kubeconfig",
        help="Path to a kubeconfig file. Defaults to in-cluster config, then ~/.kube/config.",
    )
    parser.add_argument("--timeout", type=float, help="Seconds allowed for each API call (default: 30).")
    parser.add_argument(
        "--attempts",
        type=int,
        help="Reconciliation passes to try when a transient error occurs (default: 1).",
    )
    parser.add_argument(
        "--no-wait",
        dest="wait",
        action="store_false",
        default=None,
        help="Exit right after the upgrade is issued instead of waiting to be terminated.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Show the planned upgrade without calling the upgrade API.",
    )
    parser.add_argument("--config", help="Path to a YAML file with default values for these options.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    keys = (
        "node",
        "tag",
        "powercycle",
        "staged",
        "talosconfig",
        "kubeconfig",
        "timeout",
        "attempts",
        "wait",
        "dry_run",
    )
    return {key: getattr(args, key) for key in keys}


def main(argv: Optional[List[str]] = None, stop_event: Optional[threading.Event] = None) -> int:
    args = parse_arguments(argv)
    configure_logging(verbose=args.verbose)

    try:
        file_values = load_config_file(args.config) if args.config else {}
        config = build_updater_config(file_values, _overrides(args))
    except ConfigurationError as e:
        display_error(f"Configuration Error: {e}")
        return 1

    display_run_header(config)

    updater = build_updater(config)
    result = run_with_retries(updater.update, config.attempts)
    display_result(result)

    if not result.success:
        return 2

    if result.upgrade_issued and config.wait:
        stop_event = stop_event or threading.Event()
        install_termination_handler(stop_event)
        display_waiting()
        wait_for_termination(stop_event)

    return 0


def run() -> None:
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        display_warning("\nNode update interrupted by user.")
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    run()
