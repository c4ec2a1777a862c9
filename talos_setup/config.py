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

"""Action inputs, readiness configuration, and config resolution/display."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from talos_setup import console, logger
from talos_setup.constants import (
    DEFAULT_CLUSTER_NAME,
    DEFAULT_CONTROL_PLANE_NODE,
    DEFAULT_CPUS,
    DEFAULT_DISK_MB,
    DEFAULT_MEMORY_MB,
    DEFAULT_TALOS_VERSION,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_WORKER_NODES,
    KUBECONFIG_PATH,
    PROVISIONER_DOCKER,
    PROVISIONER_QEMU,
    TALOSCONFIG_PATH,
)
from talos_setup.errors import ConfigError


# ============================================================================
# Configuration classes
# ============================================================================

class ActionInputs(BaseSettings):
    """GitHub Action inputs, auto-loaded from INPUT_* env vars.

    Attributes:
        version: Talos release to use, or ``latest``.
        cluster_name: Name passed to ``talosctl cluster create``.
        kubernetes_version: Kubernetes version override, empty for the Talos default.
        nodes: Number of worker nodes (the control plane is added on top).
        provisioner: ``docker`` or ``qemu``.
        cpus: vCPUs per QEMU VM.
        memory: Memory per QEMU VM in MB.
        disk: Disk per QEMU VM in MB.
        with_uefi: Boot QEMU VMs with UEFI.
        talosctl_args: Extra arguments appended to ``talosctl cluster create``.
        wait_for_ready: Wait for nodes, CoreDNS, and system pods to be ready.
        timeout: Overall readiness budget in seconds, shared by every stage.
        dns_readiness: Run the in-cluster DNS resolution probe.
    """

    model_config = SettingsConfigDict(env_prefix="INPUT_", extra="ignore")

    version: str = DEFAULT_TALOS_VERSION
    cluster_name: str = DEFAULT_CLUSTER_NAME
    kubernetes_version: str = ""
    nodes: int = Field(default=DEFAULT_WORKER_NODES, ge=0)
    provisioner: str = Field(default=PROVISIONER_DOCKER, pattern=rf"^({PROVISIONER_DOCKER}|{PROVISIONER_QEMU})$")
    cpus: int = Field(default=DEFAULT_CPUS, ge=1)
    memory: int = DEFAULT_MEMORY_MB
    disk: int = DEFAULT_DISK_MB
    with_uefi: bool = True
    talosctl_args: str = ""
    wait_for_ready: bool = True
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, ge=1)
    dns_readiness: bool = True


# ============================================================================
# Readiness options
# ============================================================================

@dataclass(frozen=True)
class ReadinessConfig:
    """Immutable input of one readiness verification run.

    Attributes:
        control_plane_node: Address of the control-plane node for talosctl.
        talosconfig: Path to the talosctl client config.
        kubeconfig: Path the admin kubeconfig is written to.
        expected_nodes: Total nodes expected Ready (workers + 1).
        timeout: Overall budget in seconds shared by every stage.
        wait_for_ready: Whether to wait for full cluster readiness.
        dns_readiness_check: Whether to run the DNS resolution probe.
        provisioner: Provisioner backing the nodes, used for diagnostics.
    """

    control_plane_node: str = DEFAULT_CONTROL_PLANE_NODE
    talosconfig: Path = TALOSCONFIG_PATH
    kubeconfig: Path = KUBECONFIG_PATH
    expected_nodes: int = 1
    timeout: int = DEFAULT_TIMEOUT_SECONDS
    wait_for_ready: bool = True
    dns_readiness_check: bool = True
    provisioner: str = PROVISIONER_DOCKER

    @classmethod
    def from_inputs(
        cls,
        inputs: ActionInputs,
        talosconfig: Path = TALOSCONFIG_PATH,
        kubeconfig: Path = KUBECONFIG_PATH,
    ) -> ReadinessConfig:
        return cls(
            talosconfig=talosconfig,
            kubeconfig=kubeconfig,
            expected_nodes=inputs.nodes + 1,
            timeout=inputs.timeout,
            wait_for_ready=inputs.wait_for_ready,
            dns_readiness_check=inputs.dns_readiness,
            provisioner=inputs.provisioner,
        )


# ============================================================================
# Config resolution
# ============================================================================

def resolve_inputs(**overrides: Any) -> ActionInputs:
    """Merge CLI overrides, INPUT_* environment variables, and defaults.

    Resolution priority: CLI arguments > INPUT_* environment variables > defaults.
    Overrides whose value is None are ignored.

    Raises:
        ConfigError: If the merged inputs fail validation.
    """
    update = {key: value for key, value in overrides.items() if value is not None}
    try:
        inputs = ActionInputs()
        if update:
            inputs = ActionInputs.model_validate({**inputs.model_dump(), **update})
    except ValidationError as err:
        raise ConfigError(f"Invalid action inputs: {err}") from err
    validate_inputs(inputs)
    return inputs


def validate_inputs(inputs: ActionInputs) -> None:
    """Warn about input combinations that are valid but probably unintended."""
    if inputs.dns_readiness and not inputs.wait_for_ready:
        logger.warning("dns-readiness is set without wait-for-ready; DNS probe may run before nodes are Ready")
    if inputs.provisioner == PROVISIONER_DOCKER and not inputs.with_uefi:
        logger.warning("with-uefi only applies to the qemu provisioner and is ignored")


# ============================================================================
# Display
# ============================================================================

def display_config(inputs: ActionInputs) -> None:
    """Print the resolved action inputs.

    Args:
        inputs: Resolved action inputs.
    """
    console.print(Panel.fit("Configuration", style="bold blue"))
    console.print("[yellow]Cluster:[/yellow]")
    console.print(f"  version           : {inputs.version}")
    console.print(f"  cluster_name      : {inputs.cluster_name}")
    console.print(f"  kubernetes_version: {inputs.kubernetes_version or '(talos default)'}")
    console.print(f"  nodes             : {inputs.nodes} workers + 1 control plane")
    console.print(f"  provisioner       : {inputs.provisioner}")
    if inputs.provisioner == PROVISIONER_QEMU:
        console.print("[yellow]QEMU:[/yellow]")
        console.print(f"  cpus              : {inputs.cpus}")
        console.print(f"  memory            : {inputs.memory}MB")
        console.print(f"  disk              : {inputs.disk}MB")
        console.print(f"  uefi              : {inputs.with_uefi}")
    console.print("[yellow]Readiness:[/yellow]")
    console.print(f"  wait_for_ready    : {inputs.wait_for_ready}")
    console.print(f"  timeout           : {inputs.timeout}s")
    console.print(f"  dns_readiness     : {inputs.dns_readiness}")
