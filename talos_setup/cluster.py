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

"""Talos cluster creation via ``talosctl cluster create``."""

from __future__ import annotations

import os
import platform
import shlex
import tempfile
from pathlib import Path
from typing import BinaryIO

import requests
import sh
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from talos_setup import actions, console, logger
from talos_setup.clients import HostInspector
from talos_setup.config import ActionInputs
from talos_setup.constants import (
    GITHUB_API_TIMEOUT_SECONDS,
    PROVISIONER_DOCKER,
    PROVISIONER_QEMU,
    ROOT_TALOSCONFIG_PATH,
    TALOS_LATEST_RELEASE_API,
    TALOSCONFIG_PATH,
    TALOSCTL_ARCHES,
    TALOSCTL_DOWNLOAD_CHUNK_BYTES,
    TALOSCTL_DOWNLOAD_TIMEOUT_SECONDS,
    TALOSCTL_INSTALL_PATH,
)
from talos_setup.errors import ClusterCreateError, SetupError
from talos_setup.utils import has_token, require_command, run_cmd, talos_release_url, talosctl_download_url


# ============================================================================
# Prerequisites
# ============================================================================

def check_prerequisites(provisioner: str, kvm_device: Path = Path("/dev/kvm")) -> None:
    """Check that required CLI tools and, for qemu, KVM are available.

    Args:
        provisioner: ``docker`` or ``qemu``.
        kvm_device: KVM device node to check for the qemu provisioner.

    Raises:
        RuntimeError: If a required command is missing.
        SetupError: If qemu is requested on a host without usable KVM.
    """
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    prereqs = ["kubectl"]
    if provisioner == PROVISIONER_DOCKER:
        prereqs.append("docker")
    else:
        prereqs.extend(["qemu-system-x86_64", "qemu-img"])
    for cmd in prereqs:
        require_command(cmd)

    if provisioner == PROVISIONER_QEMU:
        if not kvm_device.exists():
            raise SetupError(
                "KVM is not available. QEMU provisioner requires hardware virtualization support "
                "(nested virtualization or a self-hosted runner with KVM).")
        if not os.access(kvm_device, os.R_OK | os.W_OK):
            raise SetupError(f"Cannot access {kvm_device}. Please ensure your user has access to KVM.")
    console.print("[green]✅ All required tools are available[/green]")


# ============================================================================
# talosctl install
# ============================================================================

def talosctl_arch(machine: str | None = None) -> str:
    """Map a ``uname -m`` machine name to the talosctl release architecture.

    Args:
        machine: Machine name; defaults to the running host's.

    Returns:
        ``amd64`` or ``arm64``.

    Raises:
        SetupError: If there is no talosctl build for the architecture.
    """
    machine = machine or platform.machine()
    try:
        return TALOSCTL_ARCHES[machine.lower()]
    except KeyError:
        actions.error(f"Unsupported architecture: {machine}")
        raise SetupError(f"Unsupported architecture: {machine}") from None


def resolve_talos_version(version: str) -> str:
    """Resolve ``latest`` to a concrete release tag via the GitHub API.

    Args:
        version: Requested Talos version; anything but ``latest`` is returned as is.

    Returns:
        The release tag, e.g. ``v1.9.0``.

    Raises:
        SetupError: If the latest release cannot be looked up.
    """
    if version != "latest":
        return version

    console.print("Resolving latest Talos version...")
    headers = {"Accept": "application/vnd.github+json"}
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        resp = requests.get(TALOS_LATEST_RELEASE_API, headers=headers, timeout=GITHUB_API_TIMEOUT_SECONDS)
        resp.raise_for_status()
        tag = resp.json().get("tag_name")
    except (requests.RequestException, ValueError) as err:
        logger.error("GitHub release lookup failed: %s", err)
        tag = None
    if not tag:
        actions.error("Failed to resolve latest version from GitHub API")
        raise SetupError("Failed to resolve latest Talos version from GitHub API")
    console.print(f"Latest version: {tag}")
    return tag


def _download(url: str, out: BinaryIO) -> None:
    with requests.get(url, stream=True, timeout=TALOSCTL_DOWNLOAD_TIMEOUT_SECONDS) as resp:
        resp.raise_for_status()
        total = int(resp.headers.get("Content-Length", 0)) or None
        with Progress(
            SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
            BarColumn(), TaskProgressColumn(), console=console,
        ) as progress:
            task = progress.add_task("[cyan]Downloading talosctl...", total=total)
            for chunk in resp.iter_content(chunk_size=TALOSCTL_DOWNLOAD_CHUNK_BYTES):
                out.write(chunk)
                progress.advance(task, len(chunk))


def install_talosctl(version: str, dest: Path = TALOSCTL_INSTALL_PATH) -> str:
    """Download the talosctl release binary and install it into *dest*.

    Skipped when the talosctl already on PATH reports the resolved tag.

    Args:
        version: Requested Talos version, or ``latest``.
        dest: Install location; written with ``sudo install -m 755``.

    Returns:
        The resolved release tag.

    Raises:
        SetupError: If the version, architecture, download, or install fails.
    """
    console.print(Panel.fit("Installing talosctl", style="bold blue"))
    resolved = resolve_talos_version(version)

    current = run_cmd(["talosctl", "version", "--client"])
    if current.ok and has_token(current.stdout, resolved):
        console.print(f"[green]✅ talosctl {resolved} already installed[/green]")
        return resolved

    machine = platform.machine()
    arch = talosctl_arch(machine)
    console.print(f"Architecture: {machine} -> {arch}")
    url = talosctl_download_url(resolved, arch)
    console.print(f"[yellow]Downloading talosctl from: {url}[/yellow]")

    fd, tmp_name = tempfile.mkstemp(prefix="talosctl-")
    try:
        with os.fdopen(fd, "wb") as f:
            _download(url, f)
        sh.sudo("install", "-m", "755", tmp_name, str(dest))
    except requests.RequestException as err:
        actions.error(f"Failed to download talosctl {resolved}")
        raise SetupError(f"Failed to download talosctl from {url}: {err}") from err
    except sh.ErrorReturnCode as err:
        raise SetupError(f"Failed to install talosctl to {dest} (exit code {err.exit_code})") from err
    finally:
        Path(tmp_name).unlink(missing_ok=True)

    console.print(f"[green]✅ talosctl {resolved} installed[/green]")
    return resolved


def log_talosctl_version(requested: str) -> None:
    """Print the installed talosctl client version next to the requested one."""
    installed = str(sh.talosctl("version", "--client")).strip()
    console.print(escape(installed), highlight=False, soft_wrap=True)
    if requested != "latest" and requested not in installed:
        actions.warning(
            f"Installed talosctl does not report {requested}; see {talos_release_url(requested)}")


# ============================================================================
# Cluster create
# ============================================================================

def build_create_args(inputs: ActionInputs) -> list[str]:
    """Build the ``talosctl`` argument list for ``cluster create``.

    Built-in waiting is disabled; readiness is checked by the verifier.

    Args:
        inputs: Resolved action inputs.

    Returns:
        Arguments to pass after ``talosctl``.
    """
    args = [
        "cluster", "create",
        "--name", inputs.cluster_name,
        "--wait=false",
        f"--provisioner={inputs.provisioner}",
    ]
    if inputs.provisioner == PROVISIONER_DOCKER:
        args.append("--docker-disable-ipv6")
    else:
        args += ["--cpus", str(inputs.cpus), "--memory", str(inputs.memory), "--disk", str(inputs.disk)]
        if inputs.with_uefi:
            args.append("--with-uefi")
    if inputs.nodes > 0:
        args += ["--workers", str(inputs.nodes)]
    if inputs.kubernetes_version:
        args += ["--kubernetes-version", inputs.kubernetes_version]
    if inputs.talosctl_args:
        args += shlex.split(inputs.talosctl_args)
    return args


def _copy_root_talosconfig(dest: Path = TALOSCONFIG_PATH) -> None:
    """Copy the talosconfig written by ``sudo talosctl`` into the user's home."""
    console.print("[yellow]   Copying talosconfig from root to user home...[/yellow]")
    sh.sudo("mkdir", "-p", str(dest.parent))
    sh.sudo("cp", str(ROOT_TALOSCONFIG_PATH), str(dest))
    sh.sudo("chown", "-R", f"{os.getuid()}:{os.getgid()}", str(dest.parent))


def create_cluster(inputs: ActionInputs) -> None:
    """Create the Talos cluster without waiting for it to become ready.

    The qemu provisioner needs root for CNI and KVM, so it runs under
    ``sudo -E`` and the resulting talosconfig is copied back to the user.

    Args:
        inputs: Resolved action inputs.

    Raises:
        ClusterCreateError: If ``talosctl cluster create`` fails.
    """
    console.print(Panel.fit("Creating Talos cluster", style="bold blue"))
    args = build_create_args(inputs)
    console.print(f"[yellow]Creating cluster with command: talosctl {escape(shlex.join(args))}[/yellow]")

    try:
        if inputs.provisioner == PROVISIONER_QEMU:
            console.print("[yellow]   Starting QEMU cluster creation (this may take several minutes)...[/yellow]")
            sh.sudo("-E", "talosctl", *args, _fg=True)
        else:
            sh.talosctl(*args, _fg=True)
    except sh.ErrorReturnCode as err:
        logger.error("talosctl cluster create exited with %d", err.exit_code)
        raise ClusterCreateError(f"talosctl cluster create failed with exit code {err.exit_code}") from err

    if inputs.provisioner == PROVISIONER_QEMU:
        _copy_root_talosconfig()
    console.print("[green]✅ Talos cluster created[/green]")


def show_cluster_status(host: HostInspector) -> None:
    """Print the containers or VMs that back the new cluster."""
    result = host.machines()
    console.print(escape(result.output.rstrip()) or "(no machines listed)", highlight=False, soft_wrap=True)
