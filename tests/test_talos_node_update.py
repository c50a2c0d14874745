import threading
from pathlib import Path
from typing import List

import pytest
from tenacity import wait_none

import talos_node_update
from talos_client.exceptions import ReferenceParseError, RPCError, UpgradeRejected
from talos_client.models import ReconcileResult
from talos_client.reference import parse_reference
from talos_client.updater import SUBMIT_UPGRADE_STEP, NodeUpdater
from talos_node_update import build_updater, main, run_with_retries


class ScriptedUpdater:
    def __init__(self, results: List[ReconcileResult]) -> None:
        self.results = list(results)
        self.calls = 0

    def update(self) -> ReconcileResult:
        self.calls += 1
        return self.results.pop(0)


def _issued() -> ReconcileResult:
    return ReconcileResult.issued(parse_reference("factory.talos.dev/installer/abc123:v1.6.0"), message="ok")


def test_run_with_retries_retries_transient_failures() -> None:
    updater = ScriptedUpdater([ReconcileResult.failed(RPCError("connection refused")), _issued()])

    result = run_with_retries(updater.update, attempts=3, wait=wait_none())

    assert result.upgrade_issued is True
    assert updater.calls == 2


def test_run_with_retries_stops_on_permanent_failure() -> None:
    updater = ScriptedUpdater([ReconcileResult.failed(ReferenceParseError("bad image")), _issued()])

    result = run_with_retries(updater.update, attempts=3, wait=wait_none())

    assert isinstance(result.error, ReferenceParseError)
    assert updater.calls == 1


def test_run_with_retries_returns_last_failure_when_exhausted() -> None:
    updater = ScriptedUpdater(
        [ReconcileResult.failed(UpgradeRejected("busy")), ReconcileResult.failed(UpgradeRejected("still busy"))]
    )

    result = run_with_retries(updater.update, attempts=2, wait=wait_none())

    assert str(result.error) == "still busy"
    assert updater.calls == 2


def test_run_with_retries_single_attempt_by_default() -> None:
    updater = ScriptedUpdater([ReconcileResult.failed(RPCError("connection refused")), _issued()])

    result = run_with_retries(updater.update, attempts=1)

    assert result.success is False
    assert updater.calls == 1


def test_build_updater_wires_config() -> None:
    config = talos_node_update.build_updater_config(
        {}, {"node": "10.0.0.2", "tag": "v1.6.0", "powercycle": True, "timeout": 10, "dry_run": True}
    )

    updater = build_updater(config)

    assert isinstance(updater, NodeUpdater)
    assert updater.node_api.node == "10.0.0.2"
    assert updater.node_api.timeout == 10
    assert updater.cluster_api.timeout == 10
    assert updater.desired.target_tag == "v1.6.0"
    assert updater.desired.powercycle is True
    assert updater.dry_run is True


@pytest.fixture
def scripted(monkeypatch: pytest.MonkeyPatch):
    def _install(*results: ReconcileResult) -> ScriptedUpdater:
        updater = ScriptedUpdater(list(results))
        monkeypatch.setattr(talos_node_update, "build_updater", lambda config: updater)
        return updater

    return _install


@pytest.fixture
def handlers(monkeypatch: pytest.MonkeyPatch) -> List[threading.Event]:
    installed: List[threading.Event] = []
    monkeypatch.setattr(talos_node_update, "install_termination_handler", installed.append)
    return installed


def test_main_requires_node_and_tag(scripted, handlers) -> None:
    updater = scripted()

    assert main(["--tag", "v1.6.0"]) == 1
    assert updater.calls == 0


def test_main_no_change(scripted, handlers) -> None:
    scripted(ReconcileResult.no_change())

    assert main(["--node", "10.0.0.2", "--tag", "v1.6.0"]) == 0
    assert handlers == []


def test_main_failure_exit_code(scripted, handlers) -> None:
    scripted(ReconcileResult.failed(UpgradeRejected("busy")))

    assert main(["--node", "10.0.0.2", "--tag", "v1.6.0"]) == 2


def test_main_waits_after_issuing_upgrade(scripted, handlers) -> None:
    scripted(_issued())
    stop_event = threading.Event()
    timer = threading.Timer(0.05, stop_event.set)
    timer.start()

    try:
        exit_code = main(["--node", "10.0.0.2", "--tag", "v1.6.0"], stop_event=stop_event)
    finally:
        timer.cancel()

    assert exit_code == 0
    assert handlers == [stop_event]
    assert stop_event.is_set()


def test_main_no_wait_returns_immediately(scripted, handlers) -> None:
    scripted(_issued())

    assert main(["--node", "10.0.0.2", "--tag", "v1.6.0", "--no-wait"]) == 0
    assert handlers == []


def test_main_reads_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, handlers) -> None:
    config_path = tmp_path / "updater.yaml"
    config_path.write_text("node: 10.0.0.2\ntag: v1.5.0\nstaged: true\nwait: false\n", encoding="utf-8")
    seen = []

    def _build(config):
        seen.append(config)
        return ScriptedUpdater([_issued()])

    monkeypatch.setattr(talos_node_update, "build_updater", _build)

    assert main(["--config", str(config_path), "--tag", "v1.6.0"]) == 0
    assert seen[0].tag == "v1.6.0"
    assert seen[0].staged is True
    assert seen[0].wait is False
    assert handlers == []


def test_main_dry_run_outcome(scripted, handlers) -> None:
    updater = scripted(ReconcileResult.planned(parse_reference("ghcr.io/siderolabs/installer:v1.6.0")))

    assert main(["--node", "10.0.0.2", "--tag", "v1.6.0", "--dry-run"]) == 0
    assert updater.calls == 1
    assert handlers == []



def test_run_with_retries_does_not_resubmit_after_transport_failure() -> None:
    error = RPCError("talosctl upgrade timed out after 30s", step=SUBMIT_UPGRADE_STEP)
    updater = ScriptedUpdater([ReconcileResult.failed(error), _issued()])

    result = run_with_retries(updater.update, attempts=3, wait=wait_none())

    assert result.error is error
    assert updater.calls == 1


def test_run_with_retries_retries_rejected_submission() -> None:
    rejected = UpgradeRejected("upgrade in progress", step=SUBMIT_UPGRADE_STEP)
    updater = ScriptedUpdater([ReconcileResult.failed(rejected), _issued()])

    result = run_with_retries(updater.update, attempts=3, wait=wait_none())

    assert result.upgrade_issued is True
    assert updater.calls == 2


def test_run_reports_interrupt(monkeypatch: pytest.MonkeyPatch) -> None:
    warnings: List[str] = []

    def _interrupted():
        raise KeyboardInterrupt

    monkeypatch.setattr(talos_node_update, "main", _interrupted)
    monkeypatch.setattr(talos_node_update, "display_warning", warnings.append)

    with pytest.raises(SystemExit) as excinfo:
        talos_node_update.run()

    assert excinfo.value.code == 1
    assert warnings == ["\nNode update interrupted by user."]
