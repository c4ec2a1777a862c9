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

"""Node, pod, and stage result models."""

from __future__ import annotations

from dataclasses import dataclass, field

from talos_setup.constants import CRITICAL_POD_TOKENS, TOKEN_READY, TOKEN_RUNNING
from talos_setup.utils import count_token_lines, has_token


def _condition_status(conditions: list[dict], cond_type: str) -> str | None:
    for cond in conditions or []:
        if cond.get("type") == cond_type:
            return cond.get("status")
    return None


@dataclass(frozen=True)
class NodeInfo:
    """A node as shown by ``kubectl get nodes``.

    Attributes:
        name: Node name.
        status: kubectl STATUS column, e.g. ``Ready`` or ``NotReady,SchedulingDisabled``.
    """

    name: str
    status: str

    @classmethod
    def from_manifest(cls, item: dict) -> NodeInfo:
        ready = _condition_status(item.get("status", {}).get("conditions", []), "Ready")
        status = {"True": "Ready", "False": "NotReady"}.get(ready, "Unknown")
        if item.get("spec", {}).get("unschedulable"):
            status += ",SchedulingDisabled"
        return cls(name=item.get("metadata", {}).get("name", ""), status=status)

    @property
    def ready(self) -> bool:
        return has_token(self.status, TOKEN_READY)


def _container_reason(statuses: list[dict]) -> str | None:
    """Return the most specific waiting/terminated reason across containers."""
    reason = None
    for cs in statuses or []:
        state = cs.get("state", {})
        if state.get("waiting", {}).get("reason"):
            reason = state["waiting"]["reason"]
        elif "terminated" in state:
            term = state["terminated"]
            if term.get("reason"):
                reason = term["reason"]
            elif term.get("signal"):
                reason = f"Signal:{term['signal']}"
            else:
                reason = f"ExitCode:{term.get('exitCode', 0)}"
    return reason


@dataclass(frozen=True)
class PodInfo:
    """A pod as shown by ``kubectl get pods``.

    Attributes:
        name: Pod name.
        phase: ``status.phase`` (Pending, Running, Succeeded, Failed, Unknown).
        status: kubectl STATUS column, e.g. ``Running`` or ``CrashLoopBackOff``.
        ready: Whether the pod's Ready condition is ``True``.
    """

    name: str
    phase: str
    status: str
    ready: bool

    @classmethod
    def from_manifest(cls, item: dict) -> PodInfo:
        metadata = item.get("metadata", {})
        pod_status = item.get("status", {})
        phase = pod_status.get("phase", "Unknown")

        status = pod_status.get("reason") or phase
        init_reason = _container_reason(pod_status.get("initContainerStatuses", []))
        if init_reason and init_reason not in ("Completed", "PodInitializing"):
            status = f"Init:{init_reason}"
        else:
            status = _container_reason(pod_status.get("containerStatuses", [])) or status
        if metadata.get("deletionTimestamp"):
            status = "Terminating"

        ready = _condition_status(pod_status.get("conditions", []), "Ready") == "True"
        return cls(name=metadata.get("name", ""), phase=phase, status=status, ready=ready)

    @property
    def running(self) -> bool:
        return self.phase == TOKEN_RUNNING

    @property
    def failing(self) -> bool:
        return has_token(self.status.replace(":", " "), *CRITICAL_POD_TOKENS)


def count_ready_nodes(nodes: list[NodeInfo]) -> int:
    return count_token_lines((n.status for n in nodes), TOKEN_READY)


def count_failing_pods(pods: list[PodInfo]) -> int:
    return sum(1 for p in pods if p.failing)


@dataclass(frozen=True)
class StageResult:
    """Outcome of one polling attempt; only the latest one matters."""

    ready: bool
    diagnostic: str = ""


@dataclass
class ReadinessSummary:
    """What a successful verification run confirmed.

    Attributes:
        elapsed: Seconds from verifier start to the last confirmed stage.
        ready_nodes: Ready node count seen in the final cluster check, if run.
        expected_nodes: Nodes the cluster was expected to have.
        stages: Stage names in the order they were confirmed.
    """

    elapsed: float = 0.0
    ready_nodes: int | None = None
    expected_nodes: int = 1
    stages: list[str] = field(default_factory=list)
