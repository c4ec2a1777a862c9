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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_dependencies() -> dict:
    """Load pinned images and upstream references from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = Path(__file__).resolve().parent / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Provisioners --
PROVISIONER_DOCKER = "docker"
PROVISIONER_QEMU = "qemu"

# -- Action input defaults --
DEFAULT_TALOS_VERSION = "latest"
DEFAULT_CLUSTER_NAME = "talos-ci"
DEFAULT_WORKER_NODES = 0
DEFAULT_CPUS = 2
DEFAULT_MEMORY_MB = 2048
DEFAULT_DISK_MB = 6144
DEFAULT_TIMEOUT_SECONDS = 300

# talosctl places the first control plane at .2 of 10.5.0.0/24 for both provisioners
DEFAULT_CONTROL_PLANE_NODE = "10.5.0.2"

# -- Config paths --
TALOSCONFIG_PATH = Path.home() / ".talos" / "config"
KUBECONFIG_PATH = Path.home() / ".kube" / "config"
ROOT_TALOSCONFIG_PATH = Path("/root/.talos/config")

# -- Poll intervals --
API_POLL_INTERVAL_SECONDS = 3
ETCD_POLL_INTERVAL_SECONDS = 3
KUBECONFIG_POLL_INTERVAL_SECONDS = 3
READY_POLL_INTERVAL_SECONDS = 5
STATUS_PRINT_INTERVAL_SECONDS = 30

# -- Per-command timeouts --
TALOSCTL_TIMEOUT_SECONDS = 30
KUBECTL_TIMEOUT_SECONDS = 30
TALOS_HEALTH_WAIT_TIMEOUT = "10s"

# -- Stage names --
STAGE_TALOS_API = "Talos API"
STAGE_BOOTSTRAP = "bootstrap"
STAGE_ETCD = "etcd"
STAGE_KUBERNETES_API = "Kubernetes API"
STAGE_CLUSTER_READY = "cluster ready"
STAGE_DNS = "DNS readiness"

# -- Kubernetes objects --
NS_KUBE_SYSTEM = "kube-system"
LABEL_COREDNS = "k8s-app=kube-dns"
LABEL_FLANNEL = "app=flannel"
ETCD_SERVICE = "etcd"
STATUS_SERVICE_PATTERN = r"SERVICE|etcd|kubelet|apid"

# -- Status tokens --
TOKEN_READY = "Ready"
TOKEN_RUNNING = "Running"
CRITICAL_POD_TOKENS = ("Error", "CrashLoopBackOff")

# -- DNS probe --
DNS_PROBE_POD = "dns-test"
DNS_PROBE_IMAGE = dep_value("dns_probe", "image", default="busybox:stable")
DNS_PROBE_LOOKUP = dep_value("dns_probe", "lookup_name", default="kubernetes.default.svc.cluster.local")
DNS_PROBE_COMMAND = ("sleep", "300")
COREDNS_WAIT_TIMEOUT_SECONDS = 120
DNS_PROBE_WAIT_TIMEOUT_SECONDS = 60

# -- Diagnostics --
STATUS_POD_HEAD = 10
LOG_TAIL_LINES = 50
DESCRIBE_TAIL_LINES = 100
EVENTS_TAIL_LINES = 30

# -- GitHub Actions outputs --
OUTPUT_TALOSCONFIG = "talosconfig"
OUTPUT_KUBECONFIG = "kubeconfig"
ENV_TALOSCONFIG = "TALOSCONFIG"
ENV_KUBECONFIG = "KUBECONFIG"

TALOS_GITHUB_REPO = dep_value("talos", "github_repo", default="siderolabs/talos")
TALOS_LATEST_RELEASE_API = f"https://api.github.com/repos/{TALOS_GITHUB_REPO}/releases/latest"

# -- talosctl install --
TALOSCTL_INSTALL_PATH = Path("/usr/local/bin/talosctl")
# `uname -m` -> talosctl release asset suffix
TALOSCTL_ARCHES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}
GITHUB_API_TIMEOUT_SECONDS = 30
TALOSCTL_DOWNLOAD_TIMEOUT_SECONDS = 120
TALOSCTL_DOWNLOAD_CHUNK_BYTES = 1024 * 1024
