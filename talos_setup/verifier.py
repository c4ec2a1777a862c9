# /*
# Copyright 2026 The talos-setup Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Readiness verification for a freshly created Talos cluster.

Stages run strictly in order and share one deadline:

1. Talos API reachability
2. etcd bootstrap (failure tolerated)
3. etcd health
4. kubeconfig retrieval
5. full cluster readiness (optional)
6. in-cluster DNS resolution probe (optional)
"""

from __future__ import annotations

import re
from collections.abc import Callable

from rich.markup import escape
from rich.panel import Panel

from talos_setup import actions, console, logger
from talos_setup.clients import HostInspector, KubeClient, TalosClient
from talos_setup.config import ReadinessConfig
from talos_setup.constants import (
    API_POLL_INTERVAL_SECONDS,
    COREDNS_WAIT_TIMEOUT_SECONDS,
    DNS_PROBE_COMMAND,
    DNS_PROBE_IMAGE,
    DNS_PROBE_LOOKUP,
    DNS_PROBE_POD,
    DNS_PROBE_WAIT_TIMEOUT_SECONDS,
    ETCD_POLL_INTERVAL_SECONDS,
    ETCD_SERVICE,
    KUBECONFIG_POLL_INTERVAL_SECONDS,
    LABEL_COREDNS,
    NS_KUBE_SYSTEM,
    READY_POLL_INTERVAL_SECONDS,
    STAGE_BOOTSTRAP,
    STAGE_CLUSTER_READY,
    STAGE_DNS,
    STAGE_ETCD,
    STAGE_KUBERNETES_API,
    STAGE_TALOS_API,
    STATUS_POD_HEAD,
    STATUS_PRINT_INTERVAL_SECONDS,
    STATUS_SERVICE_PATTERN,
    TOKEN_RUNNING,
)
from talos_setup.diagnostics import cluster_diagnostics, host_diagnostics, services_diagnostics
from talos_setup.errors import DnsResolutionError, FunctionalFailure
from talos_setup.models import ReadinessSummary, StageResult, count_failing_pods, count_ready_nodes
from talos_setup.polling import Clock, PollState, SystemClock, poll_until
from talos_setup.utils import head, tokens


def _print_raw(text: str) -> None:
    # command tables: no markup, no wrapping at the console width
    console.print(escape(text), highlight=False, soft_wrap=True)


def service_running(output: str) -> bool:
    """Return True if ``talosctl service`` output reports ``STATE Running``."""
    for line in output.splitlines():
        toks = tokens(line)
        if toks and toks[0] == "STATE" and TOKEN_RUNNING in toks[1:]:
            return True
    return False


class ReadinessVerifier:
    """Polls a new cluster through each readiness stage in order.

    Args:
        cfg: Immutable run configuration.
        talos: talosctl client, built from *cfg* when omitted.
        kube: kubectl client, built from *cfg* when omitted.
        host: Container/VM inspector, built from *cfg* when omitted.
        clock: Time source; tests pass a fake one to avoid sleeping.
    """

    def __init__(
        self,
        cfg: ReadinessConfig,
        talos: TalosClient | None = None,
        kube: KubeClient | None = None,
        host: HostInspector | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.cfg = cfg
        self.talos = talos or TalosClient(cfg.talosconfig, cfg.control_plane_node)
        self.kube = kube or KubeClient(cfg.kubeconfig)
        self.host = host or HostInspector(cfg.provisioner)
        self.clock = clock or SystemClock()
        self.summary = ReadinessSummary(expected_nodes=cfg.expected_nodes)

    def run(self, on_kubeconfig: Callable[[], None] | None = None) -> ReadinessSummary:
        """Run every enabled stage against one shared deadline.

        Args:
            on_kubeconfig: Called once the kubeconfig has been written, before
                full readiness is awaited.

        Returns:
            Summary of the confirmed stages.

        Raises:
            ReadinessTimeout: If any polled stage outlives the deadline.
            FunctionalFailure: If the DNS probe cannot run or resolve.
        """
        state = PollState(timeout=self.cfg.timeout, clock=self.clock)

        with actions.group("Bootstrapping cluster"):
            self.wait_for_talos_api(state)
            self.bootstrap()
            self.wait_for_etcd(state)

        with actions.group("Configuring kubectl"):
            self.wait_for_kubeconfig(state)
            if on_kubeconfig is not None:
                on_kubeconfig()

        if self.cfg.wait_for_ready:
            with actions.group("Waiting for cluster ready"):
                self.wait_for_cluster_ready(state)

        if self.cfg.dns_readiness_check:
            with actions.group("Testing DNS readiness"):
                self.check_dns()

        self.summary.elapsed = state.elapsed
        console.print(f"[green]✅ Cluster verified in {int(self.summary.elapsed)}s[/green]")
        return self.summary

    def _confirm(self, stage: str) -> None:
        self.summary.stages.append(stage)

    # ------------------------------------------------------------------
    # Talos control plane
    # ------------------------------------------------------------------

    def wait_for_talos_api(self, state: PollState) -> None:
        """Poll ``talosctl version`` until the control-plane API answers.

        Args:
            state: Shared poll state holding the run deadline.

        Raises:
            ReadinessTimeout: If the API does not answer before the deadline;
                carries the container or VM list.
        """
        console.print("[yellow]ℹ️  Waiting for Talos API to be ready...[/yellow]")
        poll_until(
            state, STAGE_TALOS_API,
            lambda: StageResult(self.talos.version().ok),
            API_POLL_INTERVAL_SECONDS,
            diagnose=lambda: host_diagnostics(self.host),
        )
        console.print("[green]✅ Talos API is responding[/green]")
        self._confirm(STAGE_TALOS_API)

    def bootstrap(self) -> None:
        """Bootstrap etcd once; a failure usually means it already was."""
        console.print("[yellow]ℹ️  Bootstrapping etcd...[/yellow]")
        result = self.talos.bootstrap()
        if result.ok:
            console.print("[green]✅ Bootstrap initiated[/green]")
        else:
            console.print("[yellow]⚠️  Bootstrap command returned non-zero (may already be bootstrapped)[/yellow]")
            logger.info("bootstrap output: %s", result.output.strip())
        self._confirm(STAGE_BOOTSTRAP)

    def wait_for_etcd(self, state: PollState) -> None:
        """Poll ``talosctl service etcd`` until its STATE line reports Running.

        Args:
            state: Shared poll state holding the run deadline.

        Raises:
            ReadinessTimeout: If etcd is not running before the deadline;
                carries the Talos service list.
        """
        console.print("[yellow]ℹ️  Waiting for etcd to be healthy...[/yellow]")
        poll_until(
            state, STAGE_ETCD,
            lambda: StageResult(service_running(self.talos.service(ETCD_SERVICE).output)),
            ETCD_POLL_INTERVAL_SECONDS,
            diagnose=lambda: services_diagnostics(self.talos),
        )
        console.print("[green]✅ etcd is running[/green]")
        self._confirm(STAGE_ETCD)

    def wait_for_kubeconfig(self, state: PollState) -> None:
        """Retrieve the admin kubeconfig, overwriting any existing file.

        The parent directory is created first.

        Args:
            state: Shared poll state holding the run deadline.

        Raises:
            ReadinessTimeout: If the Kubernetes API never hands out a
                kubeconfig before the deadline; carries the Talos service list.
        """
        console.print("[yellow]ℹ️  Waiting for Kubernetes API to be available...[/yellow]")
        self.cfg.kubeconfig.parent.mkdir(parents=True, exist_ok=True)
        poll_until(
            state, STAGE_KUBERNETES_API,
            lambda: StageResult(self.talos.kubeconfig(self.cfg.kubeconfig, force=True).ok),
            KUBECONFIG_POLL_INTERVAL_SECONDS,
            diagnose=lambda: services_diagnostics(self.talos),
        )
        console.print(f"[green]✅ Kubeconfig retrieved ({self.cfg.kubeconfig})[/green]")
        self._confirm(STAGE_KUBERNETES_API)

    # ------------------------------------------------------------------
    # Kubernetes readiness
    # ------------------------------------------------------------------

    def _print_status(self, state: PollState) -> None:
        """Print a periodic progress snapshot; never affects readiness."""
        _print_raw(f"\n=== Status at {int(state.elapsed)}s ===")

        services = self.talos.services()
        wanted = [line for line in services.stdout.splitlines() if re.search(STATUS_SERVICE_PATTERN, line)]
        console.print("Talos services:")
        _print_raw("\n".join(wanted) if services.ok and wanted else "  (not available)")

        nodes = self.kube.get_text("nodes", "--no-headers")
        console.print("Nodes:")
        _print_raw(nodes.stdout.rstrip() if nodes.ok else "  (not available yet)")

        pods = self.kube.get_text("pods", "-n", NS_KUBE_SYSTEM, "--no-headers")
        console.print(f"Pods in {NS_KUBE_SYSTEM}:")
        _print_raw(head(pods.stdout, STATUS_POD_HEAD) if pods.ok else "  (not available yet)")
        console.print("")

    def check_cluster_ready(self) -> StageResult:
        """One readiness attempt over nodes, CoreDNS, and kube-system pods."""
        nodes = self.kube.list_nodes()
        if nodes is None:
            return StageResult(False, "kubectl get nodes failed")

        ready_nodes = count_ready_nodes(nodes)
        if ready_nodes == 0:
            return StageResult(False, "No nodes with Ready status found")

        coredns = self.kube.list_pods(NS_KUBE_SYSTEM, LABEL_COREDNS)
        if not coredns:
            return StageResult(False, "No CoreDNS pods found yet")
        if not all(pod.running for pod in coredns):
            return StageResult(False, f"CoreDNS status: {', '.join(pod.status for pod in coredns)}")
        if not all(pod.ready for pod in coredns):
            return StageResult(False, "CoreDNS pods exist but not ready yet")

        system_pods = self.kube.list_pods(NS_KUBE_SYSTEM)
        if system_pods is None:
            return StageResult(False, f"kubectl get pods -n {NS_KUBE_SYSTEM} failed")
        failing = count_failing_pods(system_pods)
        if failing:
            names = ", ".join(f"{p.name} ({p.status})" for p in system_pods if p.failing)
            return StageResult(False, f"{failing} critical pods failing: {names}")

        if ready_nodes < self.cfg.expected_nodes:
            return StageResult(
                False, f"Waiting for all nodes to be ready ({ready_nodes}/{self.cfg.expected_nodes} ready)")

        self.summary.ready_nodes = ready_nodes
        return StageResult(True, f"All {self.cfg.expected_nodes} nodes are ready")

    def wait_for_cluster_ready(self, state: PollState) -> None:
        """Poll ``check_cluster_ready`` every 5s, printing a snapshot every 30s.

        On success the node and pod tables are printed.

        Args:
            state: Shared poll state holding the run deadline.

        Raises:
            ReadinessTimeout: If the cluster is not ready before the deadline;
                carries the full cluster diagnostics.
        """
        console.print(
            f"[yellow]ℹ️  Waiting for Kubernetes cluster to be fully ready "
            f"(timeout: {self.cfg.timeout}s)...[/yellow]"
        )

        def _attempt() -> StageResult:
            if state.status_due(STATUS_PRINT_INTERVAL_SECONDS):
                self._print_status(state)
            return self.check_cluster_ready()

        poll_until(
            state, STAGE_CLUSTER_READY, _attempt,
            READY_POLL_INTERVAL_SECONDS,
            diagnose=lambda: cluster_diagnostics(self.talos, self.kube, self.host),
        )
        console.print(f"[green]✅ All {self.cfg.expected_nodes} nodes are ready, CoreDNS is ready, "
                      f"no critical pods failing[/green]")

        console.print(Panel.fit("Cluster Information", style="bold blue"))
        _print_raw(self.kube.get_text("nodes", "-o", "wide").output.rstrip())
        _print_raw(self.kube.get_text("pods", "-A").output.rstrip())
        console.print("[green]✅ Talos cluster is fully ready![/green]")
        self._confirm(STAGE_CLUSTER_READY)

    # ------------------------------------------------------------------
    # DNS probe
    # ------------------------------------------------------------------

    def _delete_probe(self) -> None:
        result = self.kube.delete_pod(DNS_PROBE_POD, ignore_not_found=True)
        if not result.ok:
            logger.warning("Failed to delete DNS probe pod %s: %s", DNS_PROBE_POD, result.stderr.strip())

    def check_dns(self) -> None:
        """Resolve an in-cluster service name from a throwaway pod.

        The probe pod is deleted on every path out of this method.

        Raises:
            FunctionalFailure: If CoreDNS or the probe pod never become ready.
            DnsResolutionError: If the lookup fails.
        """
        console.print("[yellow]ℹ️  Waiting for CoreDNS to be ready...[/yellow]")
        result = self.kube.wait(
            "pod", "ready", COREDNS_WAIT_TIMEOUT_SECONDS,
            namespace=NS_KUBE_SYSTEM, selector=LABEL_COREDNS,
        )
        if not result.ok:
            actions.error("CoreDNS pods did not become ready")
            raise FunctionalFailure(
                f"CoreDNS not ready after {COREDNS_WAIT_TIMEOUT_SECONDS}s: {result.stderr.strip()}")
        console.print("[green]✅ CoreDNS is ready[/green]")

        self._delete_probe()
        try:
            result = self.kube.run_pod(DNS_PROBE_POD, DNS_PROBE_IMAGE, DNS_PROBE_COMMAND)
            if not result.ok:
                raise FunctionalFailure(f"Failed to create DNS probe pod: {result.stderr.strip()}")

            result = self.kube.wait(f"pod/{DNS_PROBE_POD}", "ready", DNS_PROBE_WAIT_TIMEOUT_SECONDS)
            if not result.ok:
                raise FunctionalFailure(
                    f"DNS probe pod not ready after {DNS_PROBE_WAIT_TIMEOUT_SECONDS}s: {result.stderr.strip()}")

            result = self.kube.exec(DNS_PROBE_POD, ["nslookup", DNS_PROBE_LOOKUP])
            _print_raw(result.output.rstrip())
            if not result.ok:
                actions.error("DNS resolution failed")
                raise DnsResolutionError(f"DNS resolution of {DNS_PROBE_LOOKUP} failed")
            console.print("[green]✅ DNS resolution is working[/green]")
        finally:
            self._delete_probe()
        self._confirm(STAGE_DNS)
