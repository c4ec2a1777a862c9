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

"""Composite setup subcommands (ci)."""

from __future__ import annotations

import typer

from talos_setup.config import display_config, resolve_inputs
from talos_setup.orchestrator import run_ci_setup

app = typer.Typer(help="Composite setup workflows.")


@app.command()
def ci(
    version: str | None = typer.Option(
        None, "--version", help="Talos version (overrides INPUT_VERSION)"),
    cluster_name: str | None = typer.Option(
        None, "--cluster-name", help="Cluster name"),
    kubernetes_version: str | None = typer.Option(
        None, "--kubernetes-version", help="Kubernetes version"),
    nodes: int | None = typer.Option(
        None, "--nodes", help="Worker nodes (the control plane is added on top)"),
    provisioner: str | None = typer.Option(
        None, "--provisioner", help="docker or qemu"),
    timeout: int | None = typer.Option(
        None, "--timeout", help="Overall readiness timeout in seconds"),
    wait_for_ready: bool | None = typer.Option(
        None, "--wait-for-ready/--no-wait-for-ready", help="Wait for nodes, CoreDNS, and system pods"),
    dns_readiness: bool | None = typer.Option(
        None, "--dns-readiness/--no-dns-readiness", help="Probe in-cluster DNS resolution"),
) -> None:
    """Create a Talos cluster, verify it, and export its config paths.

    Every option falls back to the matching INPUT_* environment variable.
    """
    inputs = resolve_inputs(
        version=version,
        cluster_name=cluster_name,
        kubernetes_version=kubernetes_version,
        nodes=nodes,
        provisioner=provisioner,
        timeout=timeout,
        wait_for_ready=wait_for_ready,
        dns_readiness=dns_readiness,
    )
    display_config(inputs)
    run_ci_setup(inputs)
