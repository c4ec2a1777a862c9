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

"""Thin wrappers over talosctl, kubectl, and the container/VM host."""

from __future__ import annotations

import json
from pathlib import Path

import docker

from talos_setup import logger
from talos_setup.constants import (
    KUBECTL_TIMEOUT_SECONDS,
    NS_KUBE_SYSTEM,
    PROVISIONER_DOCKER,
    TALOS_HEALTH_WAIT_TIMEOUT,
    TALOSCTL_TIMEOUT_SECONDS,
)
from talos_setup.models import NodeInfo, PodInfo
from talos_setup.utils import CommandResult, run_cmd


# ============================================================================
# talosctl
# ============================================================================

class TalosClient:
    """talosctl bound to one node and one talosconfig file."""

    def __init__(self, talosconfig: Path, node: str, timeout: int = TALOSCTL_TIMEOUT_SECONDS) -> None:
        self.talosconfig = talosconfig
        self.node = node
        self.timeout = timeout

    def _run(self, *args: str, timeout: int | None = None) -> CommandResult:
        argv = ["talosctl", "--talosconfig", str(self.talosconfig), "--nodes", self.node, *args]
        return run_cmd(argv, timeout=timeout or self.timeout)

    def version(self) -> CommandResult:
        return self._run("version")

    def bootstrap(self) -> CommandResult:
        return self._run("bootstrap")

    def service(self, name: str) -> CommandResult:
        return self._run("service", name)

    def services(self) -> CommandResult:
        return self._run("services")

    def kubeconfig(self, path: Path, force: bool = True) -> CommandResult:
        """Write the cluster admin kubeconfig to *path*, overwriting when *force*."""
        args = ["kubeconfig", str(path)]
        if force:
            args.append("--force")
        return self._run(*args)

    def health(self, wait_timeout: str = TALOS_HEALTH_WAIT_TIMEOUT) -> CommandResult:
        return self._run("health", f"--wait-timeout={wait_timeout}", timeout=self.timeout + 30)


# ============================================================================
# kubectl
# ============================================================================

class KubeClient:
    """kubectl bound to one kubeconfig file.

    Structured queries use ``-o json`` and return parsed models; the text
    helpers return kubectl's own table output for humans.
    """

    def __init__(self, kubeconfig: Path, timeout: int = KUBECTL_TIMEOUT_SECONDS) -> None:
        self.kubeconfig = kubeconfig
        self.timeout = timeout

    def run(self, *args: str, timeout: int | None = None) -> CommandResult:
        return run_cmd(["kubectl", "--kubeconfig", str(self.kubeconfig), *args], timeout=timeout or self.timeout)

    def _get_items(self, *args: str) -> list[dict] | None:
        result = self.run("get", *args, "-o", "json")
        if not result.ok:
            return None
        try:
            return json.loads(result.stdout).get("items", [])
        except ValueError:
            logger.debug("kubectl returned non-JSON output for get %s", " ".join(args))
            return None

    def list_nodes(self) -> list[NodeInfo] | None:
        """Return all nodes, or None if the API could not be queried."""
        items = self._get_items("nodes")
        if items is None:
            return None
        return [NodeInfo.from_manifest(item) for item in items]

    def list_pods(self, namespace: str = NS_KUBE_SYSTEM, selector: str | None = None) -> list[PodInfo] | None:
        """Return pods in *namespace* matching *selector*, or None on failure."""
        args = ["pods", "-n", namespace]
        if selector:
            args += ["-l", selector]
        items = self._get_items(*args)
        if items is None:
            return None
        return [PodInfo.from_manifest(item) for item in items]

    def get_text(self, *args: str) -> CommandResult:
        """Run ``kubectl get`` and return the table output."""
        return self.run("get", *args)

    def pod_names(self, namespace: str, selector: str) -> list[str]:
        result = self.run("get", "pods", "-n", namespace, "-l", selector, "-o", "name")
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def describe_pods(self, namespace: str, selector: str) -> CommandResult:
        return self.run("describe", "pods", "-n", namespace, "-l", selector)

    def logs(
        self,
        pod: str,
        namespace: str,
        tail: int,
        previous: bool = False,
        all_containers: bool = False,
    ) -> CommandResult:
        args = ["logs", "-n", namespace, pod, f"--tail={tail}"]
        if all_containers:
            args.append("--all-containers")
        if previous:
            args.append("--previous")
        return self.run(*args)

    def events(self, namespace: str) -> CommandResult:
        return self.run("get", "events", "-n", namespace, "--sort-by=.lastTimestamp")

    def run_pod(self, name: str, image: str, command: list[str] | tuple[str, ...]) -> CommandResult:
        return self.run("run", name, f"--image={image}", "--restart=Never", "--", *command)

    def wait(
        self,
        target: str,
        condition: str,
        timeout_seconds: int,
        namespace: str | None = None,
        selector: str | None = None,
    ) -> CommandResult:
        """Block in ``kubectl wait`` until *condition* holds or its timeout expires."""
        args = ["wait", f"--for=condition={condition}", f"--timeout={timeout_seconds}s", target]
        if selector:
            args += ["-l", selector]
        if namespace:
            args += ["-n", namespace]
        return self.run(*args, timeout=timeout_seconds + 10)

    def exec(self, pod: str, command: list[str] | tuple[str, ...]) -> CommandResult:
        return self.run("exec", pod, "--", *command)

    def delete_pod(self, name: str, ignore_not_found: bool = True) -> CommandResult:
        args = ["delete", "pod", name]
        if ignore_not_found:
            args.append("--ignore-not-found")
        return self.run(*args, timeout=self.timeout + 60)


# ============================================================================
# Container / VM host
# ============================================================================

class HostInspector:
    """Lists the containers or VMs backing the cluster, for diagnostics only."""

    def __init__(self, provisioner: str) -> None:
        self.provisioner = provisioner

    def machines(self) -> CommandResult:
        if self.provisioner == PROVISIONER_DOCKER:
            return self._docker_containers()
        return run_cmd(["sudo", "virsh", "list", "--all"])

    def _docker_containers(self) -> CommandResult:
        try:
            client = docker.from_env()
        except docker.errors.DockerException as e:
            return CommandResult(False, "", f"Failed to connect to Docker: {e}")
        try:
            rows = [f"{'NAMES':<40} STATUS"]
            for container in client.containers.list(all=True):
                rows.append(f"{container.name:<40} {container.status}")
            return CommandResult(True, "\n".join(rows) + "\n", "")
        except docker.errors.APIError as e:
            return CommandResult(False, "", f"Docker API error: {e}")
        finally:
            client.close()
