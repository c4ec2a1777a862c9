from pathlib import Path

from talos_setup import orchestrator
from talos_setup.config import ActionInputs, ReadinessConfig
from talos_setup.models import ReadinessSummary


def test_export_paths_writes_outputs_and_env(monkeypatch, tmp_path):
    monkeypatch.setenv("GITHUB_OUTPUT", str(tmp_path / "output"))
    monkeypatch.setenv("GITHUB_ENV", str(tmp_path / "env"))

    orchestrator.export_paths(Path("/home/runner/.talos/config"), Path("/home/runner/.kube/config"))

    assert (tmp_path / "output").read_text() == (
        "talosconfig=/home/runner/.talos/config\nkubeconfig=/home/runner/.kube/config\n")
    assert (tmp_path / "env").read_text() == (
        "TALOSCONFIG=/home/runner/.talos/config\nKUBECONFIG=/home/runner/.kube/config\n")


class StubVerifier:
    def __init__(self, cfg, clock=None):
        self.cfg = cfg

    def run(self, on_kubeconfig=None):
        if on_kubeconfig:
            on_kubeconfig()
        return ReadinessSummary(expected_nodes=self.cfg.expected_nodes)


def test_run_verify_exports_once_kubeconfig_exists(monkeypatch, tmp_path):
    monkeypatch.setattr(orchestrator, "ReadinessVerifier", StubVerifier)
    monkeypatch.setenv("GITHUB_OUTPUT", str(tmp_path / "output"))
    monkeypatch.delenv("GITHUB_ENV", raising=False)
    cfg = ReadinessConfig(talosconfig=tmp_path / "tc", kubeconfig=tmp_path / "kc", expected_nodes=3)

    summary = orchestrator.run_verify(cfg)

    assert summary.expected_nodes == 3
    assert f"kubeconfig={tmp_path / 'kc'}" in (tmp_path / "output").read_text()


def test_run_verify_without_export(monkeypatch, tmp_path):
    monkeypatch.setattr(orchestrator, "ReadinessVerifier", StubVerifier)
    monkeypatch.setenv("GITHUB_OUTPUT", str(tmp_path / "output"))

    orchestrator.run_verify(ReadinessConfig(), export=False)

    assert not (tmp_path / "output").exists()


def test_run_create_installs_talosctl_before_using_it(monkeypatch):
    steps: list[tuple] = []
    monkeypatch.setattr(orchestrator, "check_prerequisites", lambda p: steps.append(("prereqs", p)))
    monkeypatch.setattr(orchestrator, "install_talosctl", lambda v: steps.append(("install", v)) or "v1.9.2")
    monkeypatch.setattr(orchestrator, "log_talosctl_version", lambda v: steps.append(("version", v)))
    monkeypatch.setattr(orchestrator, "create_cluster", lambda inputs: steps.append(("create",)))
    monkeypatch.setattr(orchestrator, "show_cluster_status", lambda host: steps.append(("status",)))

    orchestrator.run_create(ActionInputs(version="latest", provisioner="docker"))

    assert steps == [
        ("prereqs", "docker"),
        ("install", "latest"),
        ("version", "v1.9.2"),
        ("create",),
        ("status",),
    ]
