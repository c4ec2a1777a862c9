from pathlib import Path
from types import SimpleNamespace

import pytest
import requests

from talos_setup import cluster
from talos_setup.cluster import (
    build_create_args,
    check_prerequisites,
    create_cluster,
    install_talosctl,
    resolve_talos_version,
    talosctl_arch,
)
from talos_setup.config import ActionInputs
from talos_setup.errors import ClusterCreateError, SetupError
from talos_setup.utils import CommandResult, talosctl_download_url


class FakeErrorReturnCode(Exception):
    def __init__(self, exit_code: int) -> None:
        super().__init__(f"exit {exit_code}")
        self.exit_code = exit_code


@pytest.fixture
def fake_sh(monkeypatch):
    calls: list[tuple] = []
    state = {"fail": False}

    def talosctl(*args, **kwargs):
        calls.append(("talosctl", *args))
        if state["fail"]:
            raise FakeErrorReturnCode(1)
        return ""

    def sudo(*args, **kwargs):
        calls.append(("sudo", *args))
        if args[0] == "install":
            state["installed"] = Path(args[3]).read_bytes()
        return ""

    fake = SimpleNamespace(talosctl=talosctl, sudo=sudo, ErrorReturnCode=FakeErrorReturnCode)
    monkeypatch.setattr(cluster, "sh", fake)
    return SimpleNamespace(calls=calls, state=state)


def test_docker_create_args():
    args = build_create_args(ActionInputs(provisioner="docker", nodes=0))
    assert args == [
        "cluster", "create",
        "--name", "talos-ci",
        "--wait=false",
        "--provisioner=docker",
        "--docker-disable-ipv6",
    ]


def test_qemu_create_args_include_resources_and_uefi():
    args = build_create_args(ActionInputs(provisioner="qemu", cpus=4, memory=4096, disk=10240))
    assert "--provisioner=qemu" in args
    assert args[args.index("--cpus") + 1] == "4"
    assert args[args.index("--memory") + 1] == "4096"
    assert args[args.index("--disk") + 1] == "10240"
    assert "--with-uefi" in args
    assert "--docker-disable-ipv6" not in args


def test_qemu_without_uefi():
    assert "--with-uefi" not in build_create_args(ActionInputs(provisioner="qemu", with_uefi=False))


def test_workers_kubernetes_version_and_extra_args():
    inputs = ActionInputs(
        nodes=2,
        kubernetes_version="1.31.2",
        talosctl_args="--mtu 1400 --registry-mirror 'docker.io=http://10.5.0.1:5000'",
    )

    args = build_create_args(inputs)

    assert args[args.index("--workers") + 1] == "2"
    assert args[args.index("--kubernetes-version") + 1] == "1.31.2"
    assert args[-4:] == ["--mtu", "1400", "--registry-mirror", "docker.io=http://10.5.0.1:5000"]


def test_create_cluster_docker_runs_talosctl_directly(fake_sh):
    create_cluster(ActionInputs(provisioner="docker"))
    assert fake_sh.calls == [("talosctl", *build_create_args(ActionInputs(provisioner="docker")))]


def test_create_cluster_qemu_uses_sudo_and_copies_talosconfig(fake_sh):
    create_cluster(ActionInputs(provisioner="qemu"))

    assert fake_sh.calls[0][:3] == ("sudo", "-E", "talosctl")
    assert [c[1] for c in fake_sh.calls[1:]] == ["mkdir", "cp", "chown"]


def test_create_cluster_failure(fake_sh):
    fake_sh.state["fail"] = True
    with pytest.raises(ClusterCreateError, match="exit code 1"):
        create_cluster(ActionInputs(provisioner="docker"))


def test_prerequisites_for_docker(monkeypatch):
    checked: list[str] = []
    monkeypatch.setattr(cluster, "require_command", checked.append)

    check_prerequisites("docker")

    assert checked == ["kubectl", "docker"]


def test_qemu_prerequisites_require_kvm(monkeypatch, tmp_path):
    checked: list[str] = []
    monkeypatch.setattr(cluster, "require_command", checked.append)

    with pytest.raises(SetupError, match="KVM"):
        check_prerequisites("qemu", kvm_device=tmp_path / "kvm")

    assert "qemu-system-x86_64" in checked


# ============================================================================
# talosctl install
# ============================================================================

class FakeResponse:
    def __init__(self, payload=None, chunks=(), status=200):
        self.payload = payload
        self.chunks = list(chunks)
        self.status = status
        self.headers = {"Content-Length": str(sum(len(c) for c in self.chunks))}

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload

    def iter_content(self, chunk_size=1):
        return iter(self.chunks)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.mark.parametrize(
    ("machine", "arch"),
    [("x86_64", "amd64"), ("amd64", "amd64"), ("aarch64", "arm64"), ("arm64", "arm64")],
)
def test_talosctl_arch(machine, arch):
    assert talosctl_arch(machine) == arch


def test_talosctl_arch_unsupported():
    with pytest.raises(SetupError, match="riscv64"):
        talosctl_arch("riscv64")


def test_talosctl_download_url():
    assert talosctl_download_url("v1.9.0", "arm64") == (
        "https://github.com/siderolabs/talos/releases/download/v1.9.0/talosctl-linux-arm64")


def test_pinned_version_is_not_looked_up(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(cluster.requests, "get", fail)

    assert resolve_talos_version("v1.8.3") == "v1.8.3"


def test_latest_version_resolved_from_github(monkeypatch):
    seen = {}

    def fake_get(url, headers=None, timeout=None):
        seen["url"] = url
        seen["headers"] = headers
        return FakeResponse({"tag_name": "v1.9.2"})

    monkeypatch.setattr(cluster.requests, "get", fake_get)
    monkeypatch.setenv("GITHUB_TOKEN", "ghs_token")

    assert resolve_talos_version("latest") == "v1.9.2"
    assert seen["url"] == "https://api.github.com/repos/siderolabs/talos/releases/latest"
    assert seen["headers"]["Authorization"] == "Bearer ghs_token"


@pytest.mark.parametrize(
    "response",
    [FakeResponse({}, status=403), FakeResponse({"message": "Not Found"})],
)
def test_latest_version_lookup_failure(monkeypatch, response):
    monkeypatch.setattr(cluster.requests, "get", lambda *args, **kwargs: response)

    with pytest.raises(SetupError, match="latest Talos version"):
        resolve_talos_version("latest")


def test_latest_version_network_error(monkeypatch):
    def fake_get(*args, **kwargs):
        raise requests.ConnectionError("no route to host")

    monkeypatch.setattr(cluster.requests, "get", fake_get)

    with pytest.raises(SetupError):
        resolve_talos_version("latest")


def test_install_downloads_binary_for_host_arch(monkeypatch, fake_sh, tmp_path):
    requested: list[str] = []

    def fake_get(url, stream=False, timeout=None):
        requested.append(url)
        return FakeResponse(chunks=[b"\x7fELF", b"binary"])

    monkeypatch.setattr(cluster.requests, "get", fake_get)
    monkeypatch.setattr(cluster.platform, "machine", lambda: "aarch64")
    monkeypatch.setattr(cluster, "run_cmd", lambda argv: CommandResult(False, "", "talosctl: not found"))
    dest = tmp_path / "bin" / "talosctl"

    assert install_talosctl("v1.9.0", dest=dest) == "v1.9.0"

    assert requested == [talosctl_download_url("v1.9.0", "arm64")]
    install = fake_sh.calls[-1]
    assert install[:4] == ("sudo", "install", "-m", "755")
    assert install[5] == str(dest)
    assert fake_sh.state["installed"] == b"\x7fELFbinary"
    assert not Path(install[4]).exists()


def test_install_skipped_when_version_present(monkeypatch, fake_sh):
    monkeypatch.setattr(cluster, "run_cmd", lambda argv: CommandResult(True, "Client:\n\tTag:         v1.9.0\n"))

    assert install_talosctl("v1.9.0") == "v1.9.0"
    assert fake_sh.calls == []


def test_install_download_failure(monkeypatch, fake_sh):
    monkeypatch.setattr(cluster.requests, "get", lambda *args, **kwargs: FakeResponse(status=404))
    monkeypatch.setattr(cluster.platform, "machine", lambda: "x86_64")
    monkeypatch.setattr(cluster, "run_cmd", lambda argv: CommandResult(False))

    with pytest.raises(SetupError, match="download"):
        install_talosctl("v1.9.0")

    assert fake_sh.calls == []
