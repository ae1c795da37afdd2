import types

import pytest

from rkeupgrader.core import RkeUpgrader
from rkeupgrader.errors import ApplyFailedError, SnapshotError, UpgraderError
from rkeupgrader.models import CompatibilityMatch, MatchPolicy, Release, ServerVersion, SupportedVersion


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    (tmp_path / "cluster.yml").write_text("nodes: []\n", encoding="utf-8")
    (tmp_path / "kubeconfig").write_text("apiVersion: v1\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    return tmp_path


def build_upgrader(**kwargs):
    kwargs.setdefault("token", "ghp_token")
    return RkeUpgrader(**kwargs)


def test_defaults_resolve_against_working_directory(workspace):
    upgrader = build_upgrader()

    assert upgrader.cluster_config == str(workspace / "cluster.yml")
    assert upgrader.kubeconfig == str(workspace / "kubeconfig")
    assert upgrader.output_dir == str(workspace / "output")
    assert upgrader.bin_dir == str(workspace / "output" / "bin")
    assert upgrader.probe.kubeconfig == str(workspace / "kubeconfig")


def test_kubectl_calls_use_request_timeout_and_rke_calls_use_command_timeout(workspace):
    upgrader = build_upgrader(request_timeout=15.0, command_timeout=900.0)

    assert upgrader.probe.command_runner.default_timeout == 15.0
    assert upgrader.binary_runner.default_timeout == 900.0


def test_malformed_pinned_rke_version_is_rejected(workspace):
    with pytest.raises(UpgraderError, match="not in the correct format"):
        build_upgrader(rke_version="1.4.6")


def test_operation_returns_error_code_when_cluster_config_missing(workspace):
    (workspace / "cluster.yml").unlink()
    upgrader = build_upgrader()

    assert upgrader.take_snapshot() == 1


def test_snapshot_requires_token(workspace, monkeypatch):
    upgrader = build_upgrader(token=None)
    monkeypatch.setattr(
        upgrader.snapshot_controller,
        "save",
        lambda _name: pytest.fail("snapshot must not run without a token"),
    )

    assert upgrader.take_snapshot() == 1


def test_upgrade_returns_zero_when_orchestrator_completes(workspace, monkeypatch):
    upgrader = build_upgrader()
    captured = {}

    class FakeOrchestrator:
        def run(self, target_version):
            captured["target_version"] = target_version
            return types.SimpleNamespace(session=types.SimpleNamespace(output_dir=upgrader.output_dir))

    monkeypatch.setattr(upgrader, "build_orchestrator", lambda: FakeOrchestrator())

    assert upgrader.upgrade("v1.26.1") == 0
    assert captured["target_version"] == "v1.26.1"


@pytest.mark.parametrize("error", [ApplyFailedError("rke up failed"), KeyboardInterrupt(), ValueError("boom")])
def test_upgrade_failures_return_to_caller_with_error_code(workspace, monkeypatch, error):
    upgrader = build_upgrader()

    class FailingOrchestrator:
        def run(self, _target_version):
            raise error

    monkeypatch.setattr(upgrader, "build_orchestrator", lambda: FailingOrchestrator())

    assert upgrader.upgrade() == 1


def test_restore_failure_returns_error_code(workspace, monkeypatch):
    upgrader = build_upgrader()

    def fail(_name):
        raise SnapshotError("etcd snapshot-restore failed")

    monkeypatch.setattr(upgrader.snapshot_controller, "restore", fail)

    assert upgrader.restore_snapshot("snapshot_20261017093005") == 1


def test_export_cluster_state_writes_next_to_cluster_config(workspace, monkeypatch):
    upgrader = build_upgrader(token=None)
    destinations = []
    monkeypatch.setattr(upgrader.probe, "export_cluster_state", destinations.append)

    assert upgrader.export_cluster_state() == 0
    assert destinations == [str(workspace / "cluster.rkestate")]


def test_resolve_reports_compatible_release(workspace, monkeypatch):
    upgrader = build_upgrader()
    match = CompatibilityMatch(
        release=Release(tag="v1.5.0", body=""),
        matched_versions=(SupportedVersion(full="v1.25.4-rancher1-1", base="1.25.4"),),
        policy=MatchPolicy.ANY,
    )
    calls = []
    monkeypatch.setattr(upgrader.probe, "server_version", lambda: ServerVersion(1, 25, 4))
    monkeypatch.setattr(
        upgrader.resolver,
        "find",
        lambda version, policy, pinned_tag=None: calls.append((version, policy)) or match,
    )

    assert upgrader.resolve(MatchPolicy.ANY) == 0
    assert calls == [(ServerVersion(1, 25, 4), MatchPolicy.ANY)]


def test_resolve_without_match_returns_error_code(workspace, monkeypatch):
    upgrader = build_upgrader()
    monkeypatch.setattr(upgrader.probe, "server_version", lambda: ServerVersion(1, 30, 0))
    monkeypatch.setattr(upgrader.resolver, "find", lambda *_args, **_kwargs: None)

    assert upgrader.resolve(MatchPolicy.DUAL_MINOR) == 1


def test_upgrade_rejects_malformed_target_without_touching_cluster(workspace, monkeypatch):
    upgrader = build_upgrader()
    monkeypatch.setattr(
        upgrader, "build_orchestrator", lambda: pytest.fail("orchestrator must not be built")
    )

    assert upgrader.upgrade("latest") == 1
