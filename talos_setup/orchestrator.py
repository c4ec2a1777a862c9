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

"""Orchestration functions that compose domain modules into workflows."""

from __future__ import annotations

from pathlib import Path

from talos_setup import actions, console
from talos_setup.clients import HostInspector
from talos_setup.cluster import (
    check_prerequisites,
    create_cluster,
    install_talosctl,
    log_talosctl_version,
    show_cluster_status,
)
from talos_setup.config import ActionInputs, ReadinessConfig
from talos_setup.constants import (
    ENV_KUBECONFIG,
    ENV_TALOSCONFIG,
    KUBECONFIG_PATH,
    OUTPUT_KUBECONFIG,
    OUTPUT_TALOSCONFIG,
    TALOSCONFIG_PATH,
)
from talos_setup.models import ReadinessSummary
from talos_setup.polling import Clock
from talos_setup.verifier import ReadinessVerifier


def export_paths(talosconfig: Path, kubeconfig: Path) -> None:
    """Publish config paths as step outputs and env vars for later steps.

    Args:
        talosconfig: Path to the talosctl client config.
        kubeconfig: Path to the admin kubeconfig.
    """
    actions.set_output(OUTPUT_TALOSCONFIG, str(talosconfig))
    actions.set_output(OUTPUT_KUBECONFIG, str(kubeconfig))
    actions.export_env(ENV_TALOSCONFIG, str(talosconfig))
    actions.export_env(ENV_KUBECONFIG, str(kubeconfig))
    console.print(f"[green]  ✓ TALOSCONFIG exported: {talosconfig}[/green]")
    console.print(f"[green]  ✓ KUBECONFIG exported: {kubeconfig}[/green]")


def run_create(inputs: ActionInputs) -> None:
    """Check prerequisites, install talosctl, and create the cluster, without verification.

    Args:
        inputs: Resolved action inputs.
    """
    with actions.group("Installing Talos"):
        check_prerequisites(inputs.provisioner)
        version = install_talosctl(inputs.version)
        log_talosctl_version(version)

    with actions.group("Creating Talos cluster"):
        create_cluster(inputs)

    with actions.group("Cluster Status"):
        show_cluster_status(HostInspector(inputs.provisioner))


def run_verify(cfg: ReadinessConfig, clock: Clock | None = None, export: bool = True) -> ReadinessSummary:
    """Verify an existing cluster and optionally export its config paths.

    Args:
        cfg: Readiness configuration.
        clock: Time source override, for tests.
        export: Whether to publish outputs once the kubeconfig is retrieved.

    Returns:
        Summary of the confirmed stages.
    """
    verifier = ReadinessVerifier(cfg, clock=clock)
    on_kubeconfig = (lambda: export_paths(cfg.talosconfig, cfg.kubeconfig)) if export else None
    return verifier.run(on_kubeconfig=on_kubeconfig)


def run_ci_setup(
    inputs: ActionInputs,
    talosconfig: Path = TALOSCONFIG_PATH,
    kubeconfig: Path = KUBECONFIG_PATH,
    clock: Clock | None = None,
) -> ReadinessSummary:
    """Run the whole action: prerequisites, create, verify, export.

    Args:
        inputs: Resolved action inputs.
        talosconfig: Where talosctl keeps its client config.
        kubeconfig: Where the admin kubeconfig is written.
        clock: Time source override, for tests.

    Returns:
        Summary of the confirmed readiness stages.

    Raises:
        SetupError: If any step fails.
    """
    run_create(inputs)
    cfg = ReadinessConfig.from_inputs(inputs, talosconfig=talosconfig, kubeconfig=kubeconfig)
    console.print(f"TALOSCONFIG_PATH: {cfg.talosconfig}")
    summary = run_verify(cfg, clock=clock)
    console.print("[green]✅ Talos setup completed successfully![/green]")
    return summary
