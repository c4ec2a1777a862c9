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

"""Cluster subcommands (create, verify)."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import typer

from talos_setup.config import ReadinessConfig, display_config, resolve_inputs
from talos_setup.constants import DEFAULT_CONTROL_PLANE_NODE, KUBECONFIG_PATH, TALOSCONFIG_PATH
from talos_setup.orchestrator import run_create, run_verify

app = typer.Typer(help="Create or verify a Talos cluster.")


@app.command()
def create(
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="Cluster name"),
    nodes: int | None = typer.Option(None, "--nodes", help="Worker nodes"),
    provisioner: str | None = typer.Option(None, "--provisioner", help="docker or qemu"),
    kubernetes_version: str | None = typer.Option(None, "--kubernetes-version", help="Kubernetes version"),
) -> None:
    """Create a Talos cluster without waiting for readiness."""
    inputs = resolve_inputs(
        cluster_name=cluster_name,
        nodes=nodes,
        provisioner=provisioner,
        kubernetes_version=kubernetes_version,
    )
    display_config(inputs)
    run_create(inputs)


@app.command()
def verify(
    node: str = typer.Option(DEFAULT_CONTROL_PLANE_NODE, "--node", help="Control-plane node address"),
    talosconfig: Path = typer.Option(TALOSCONFIG_PATH, "--talosconfig", help="talosctl config path"),
    kubeconfig: Path = typer.Option(KUBECONFIG_PATH, "--kubeconfig", help="Where to write the kubeconfig"),
    nodes: int | None = typer.Option(None, "--nodes", help="Worker nodes expected Ready"),
    timeout: int | None = typer.Option(None, "--timeout", help="Overall timeout in seconds"),
    wait_for_ready: bool | None = typer.Option(
        None, "--wait-for-ready/--no-wait-for-ready", help="Wait for nodes, CoreDNS, and system pods"),
    dns_readiness: bool | None = typer.Option(
        None, "--dns-readiness/--no-dns-readiness", help="Probe in-cluster DNS resolution"),
    export: bool = typer.Option(True, "--export/--no-export", help="Write GitHub step outputs and env"),
) -> None:
    """Verify an existing Talos cluster is ready."""
    inputs = resolve_inputs(
        nodes=nodes,
        timeout=timeout,
        wait_for_ready=wait_for_ready,
        dns_readiness=dns_readiness,
    )
    cfg = ReadinessConfig.from_inputs(inputs, talosconfig=talosconfig, kubeconfig=kubeconfig)
    cfg = replace(cfg, control_plane_node=node)
    run_verify(cfg, export=export)
