"""Shared fakes for talosctl, kubectl, the host, and the clock."""

from __future__ import annotations

import pytest

from talos_setup.constants import LABEL_COREDNS, PROVISIONER_DOCKER
from talos_setup.models import NodeInfo, PodInfo
from talos_setup.utils import CommandResult


class FakeClock:
    """Clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.t = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.t

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds


class FakeTalos:
    def __init__(
        self,
        version_ok_after: int | None = 0,
        bootstrap_ok: bool = True,
        etcd_running_after: int | None = 0,
        kubeconfig_ok: bool = True,
    ) -> None:
        # *_after: number of failed polls before success; None never succeeds
        self.version_ok_after = version_ok_after
        self.bootstrap_ok = bootstrap_ok
        self.etcd_running_after = etcd_running_after
        self.kubeconfig_ok = kubeconfig_ok
        self.calls: list[str] = []

    def _ready(self, name: str, after: int | None) -> bool:
        return after is not None and self.calls.count(name) > after

    def version(self) -> CommandResult:
        self.calls.append("version")
        if self._ready("version", self.version_ok_after):
            return CommandResult(True, "Client:\n\tTag: v1.9.0\nServer:\n\tTag: v1.9.0\n")
        return CommandResult(False, "", "rpc error: connection refused")

    def bootstrap(self) -> CommandResult:
        self.calls.append("bootstrap")
        if self.bootstrap_ok:
            return CommandResult(True)
        return CommandResult(False, "", "etcd data directory is not empty")

    def service(self, name: str) -> CommandResult:
        self.calls.append(f"service {name}")
        state = "Running" if self._ready(f"service {name}", self.etcd_running_after) else "Preparing"
        return CommandResult(True, f"NODE     10.5.0.2\nID       {name}\nSTATE    {state}\nHEALTH   ?\n")

    def services(self) -> CommandResult:
        self.calls.append("services")
        return CommandResult(
            True,
            "NODE       SERVICE   STATE     HEALTH\n"
            "10.5.0.2   apid      Running   OK\n"
            "10.5.0.2   etcd      Running   OK\n"
            "10.5.0.2   kubelet   Running   OK\n",
        )

    def kubeconfig(self, path, force: bool = True) -> CommandResult:
        self.calls.append("kubeconfig")
        return CommandResult(self.kubeconfig_ok, "", "" if self.kubeconfig_ok else "connection refused")

    def health(self, wait_timeout: str = "10s") -> CommandResult:
        self.calls.append("health")
        return CommandResult(False, "", "waiting for all k8s nodes to report ready: timeout")


class FakeKube:
    def __init__(
        self,
        nodes: list[NodeInfo] | None = None,
        coredns: list[PodInfo] | None = None,
        system_pods: list[PodInfo] | None = None,
        nslookup_ok: bool = True,
        probe_wait_ok: bool = True,
        nodes_ok: bool = True,
    ) -> None:
        self.nodes = nodes if nodes is not None else []
        self.coredns = coredns if coredns is not None else []
        self.system_pods = system_pods if system_pods is not None else list(self.coredns)
        self.nslookup_ok = nslookup_ok
        self.probe_wait_ok = probe_wait_ok
        self.nodes_ok = nodes_ok
        self.probe_exists = False
        self.calls: list[tuple] = []

    def list_nodes(self) -> list[NodeInfo] | None:
        self.calls.append(("list_nodes",))
        return list(self.nodes) if self.nodes_ok else None

    def list_pods(self, namespace: str = "kube-system", selector: str | None = None) -> list[PodInfo] | None:
        self.calls.append(("list_pods", namespace, selector))
        if selector == LABEL_COREDNS:
            return list(self.coredns)
        return list(self.system_pods)

    def get_text(self, *args: str) -> CommandResult:
        self.calls.append(("get", *args))
        return CommandResult(True, "NAME   STATUS\nfake   Ready\n")

    def pod_names(self, namespace: str, selector: str) -> list[str]:
        if selector == LABEL_COREDNS:
            return [f"pod/{p.name}" for p in self.coredns]
        return []

    def describe_pods(self, namespace: str, selector: str) -> CommandResult:
        return CommandResult(True, f"Name: pods matching {selector}\n")

    def logs(self, pod, namespace, tail, previous=False, all_containers=False) -> CommandResult:
        return CommandResult(True, "[INFO] plugin/reload: Running configuration\n")

    def events(self, namespace: str) -> CommandResult:
        return CommandResult(True, "LAST SEEN   TYPE      REASON\n1m          Warning   FailedScheduling\n")

    def run_pod(self, name, image, command) -> CommandResult:
        self.calls.append(("run_pod", name))
        self.probe_exists = True
        return CommandResult(True, f"pod/{name} created\n")

    def wait(self, target, condition, timeout_seconds, namespace=None, selector=None) -> CommandResult:
        self.calls.append(("wait", target))
        if target.startswith("pod/") and not self.probe_wait_ok:
            return CommandResult(False, "", "timed out waiting for the condition")
        return CommandResult(True, "condition met\n")

    def exec(self, pod, command) -> CommandResult:
        self.calls.append(("exec", pod, *command))
        if self.nslookup_ok:
            return CommandResult(True, "Name:\tkubernetes.default.svc.cluster.local\nAddress: 10.96.0.1\n")
        return CommandResult(False, "", ";; connection timed out; no servers could be reached\n")

    def delete_pod(self, name, ignore_not_found: bool = True) -> CommandResult:
        self.calls.append(("delete_pod", name))
        self.probe_exists = False
        return CommandResult(True)


class FakeHost:
    provisioner = PROVISIONER_DOCKER

    def machines(self) -> CommandResult:
        return CommandResult(True, "NAMES                      STATUS\ntalos-ci-controlplane-1    running\n")


def node(name: str, status: str = "Ready") -> NodeInfo:
    return NodeInfo(name=name, status=status)


def pod(name: str, status: str = "Running", ready: bool = True, phase: str | None = None) -> PodInfo:
    return PodInfo(name=name, phase=phase or ("Running" if status == "Running" else "Pending"),
                   status=status, ready=ready)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def healthy_coredns() -> list[PodInfo]:
    return [pod("coredns-64b67fc8fd-abcde"), pod("coredns-64b67fc8fd-fghij")]
