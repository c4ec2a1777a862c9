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

"""Diagnostic snapshots printed when a readiness stage gives up."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rich.markup import escape

from talos_setup import console
from talos_setup.constants import (
    DESCRIBE_TAIL_LINES,
    EVENTS_TAIL_LINES,
    LABEL_COREDNS,
    LABEL_FLANNEL,
    LOG_TAIL_LINES,
    NS_KUBE_SYSTEM,
    PROVISIONER_DOCKER,
)
from talos_setup.utils import CommandResult, tail

if TYPE_CHECKING:
    from talos_setup.clients import HostInspector, KubeClient, TalosClient


@dataclass
class DiagnosticBundle:
    """Ordered (title, output) sections describing cluster state."""

    sections: list[tuple[str, str]] = field(default_factory=list)

    def add(self, title: str, result: CommandResult | str) -> None:
        text = result.output if isinstance(result, CommandResult) else result
        self.sections.append((title, text.rstrip()))

    def extend_from(self, other: DiagnosticBundle) -> None:
        self.sections.extend(other.sections)

    def __bool__(self) -> bool:
        return bool(self.sections)

    def render(self) -> str:
        parts = ["=== Diagnostic Information ==="]
        for title, text in self.sections:
            parts.append(f"--- {title} ---")
            parts.append(text or "(no output)")
            parts.append("")
        return "\n".join(parts)

    def print(self) -> None:
        console.print(escape(self.render()), highlight=False, soft_wrap=True)


def host_diagnostics(host: HostInspector) -> DiagnosticBundle:
    """Container or VM list, for failures before the Talos API is up."""
    bundle = DiagnosticBundle()
    title = "Docker containers" if host.provisioner == PROVISIONER_DOCKER else "QEMU VMs"
    bundle.add(title, host.machines())
    return bundle


def services_diagnostics(talos: TalosClient) -> DiagnosticBundle:
    """Talos service list, for failures while etcd or the Kubernetes API come up."""
    bundle = DiagnosticBundle()
    bundle.add("Talos services", talos.services())
    return bundle


def _pod_logs(kube: KubeClient, selector: str, previous: bool, all_containers: bool) -> str:
    chunks = []
    for pod in kube.pod_names(NS_KUBE_SYSTEM, selector):
        label = "Previous logs" if previous else "Logs"
        result = kube.logs(pod, NS_KUBE_SYSTEM, LOG_TAIL_LINES, previous=previous, all_containers=all_containers)
        chunks.append(f"{label} for {pod}:\n{result.output.rstrip()}")
    return "\n".join(chunks)


def cluster_diagnostics(talos: TalosClient, kube: KubeClient, host: HostInspector) -> DiagnosticBundle:
    """Everything inspectable about a cluster that never became ready.

    Args:
        talos: Client for the control-plane node.
        kube: Client for the retrieved kubeconfig.
        host: Inspector for the provisioner's containers or VMs.

    Returns:
        The collected bundle; individual command failures are recorded as output.
    """
    bundle = DiagnosticBundle()
    bundle.add("Talos cluster health", talos.health())
    bundle.add("Talos services", talos.services())
    bundle.extend_from(host_diagnostics(host))
    bundle.add("Kubernetes nodes", kube.get_text("nodes", "-o", "wide"))
    bundle.add("Kubernetes pods (all namespaces)", kube.get_text("pods", "-A", "-o", "wide"))
    bundle.add("CoreDNS pod details", kube.describe_pods(NS_KUBE_SYSTEM, LABEL_COREDNS))
    bundle.add("CoreDNS logs (current)", _pod_logs(kube, LABEL_COREDNS, previous=False, all_containers=False))
    bundle.add("CoreDNS logs (previous)", _pod_logs(kube, LABEL_COREDNS, previous=True, all_containers=False))
    flannel = kube.describe_pods(NS_KUBE_SYSTEM, LABEL_FLANNEL)
    bundle.add("Flannel pod details", tail(flannel.output, DESCRIBE_TAIL_LINES))
    bundle.add("Flannel logs (current)", _pod_logs(kube, LABEL_FLANNEL, previous=False, all_containers=True))
    bundle.add("Flannel logs (previous)", _pod_logs(kube, LABEL_FLANNEL, previous=True, all_containers=True))
    bundle.add("Recent events", tail(kube.events(NS_KUBE_SYSTEM).output, EVENTS_TAIL_LINES))
    return bundle
