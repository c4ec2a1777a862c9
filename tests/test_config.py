from pathlib import Path

import pytest

from talos_setup.config import ActionInputs, ReadinessConfig, resolve_inputs
from talos_setup.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_inputs(monkeypatch):
    for name in ("NODES", "PROVISIONER", "TIMEOUT", "WAIT_FOR_READY", "DNS_READINESS", "CLUSTER_NAME"):
        monkeypatch.delenv(f"INPUT_{name}", raising=False)


def test_defaults():
    inputs = resolve_inputs()
    assert inputs.version == "latest"
    assert inputs.cluster_name == "talos-ci"
    assert inputs.nodes == 0
    assert inputs.provisioner == "docker"
    assert inputs.timeout == 300
    assert inputs.wait_for_ready and inputs.dns_readiness


def test_inputs_read_from_environment(monkeypatch):
    monkeypatch.setenv("INPUT_NODES", "2")
    monkeypatch.setenv("INPUT_PROVISIONER", "qemu")
    monkeypatch.setenv("INPUT_DNS_READINESS", "false")

    inputs = resolve_inputs()

    assert inputs.nodes == 2
    assert inputs.provisioner == "qemu"
    assert inputs.dns_readiness is False


def test_overrides_win_over_environment(monkeypatch):
    monkeypatch.setenv("INPUT_NODES", "2")
    monkeypatch.setenv("INPUT_TIMEOUT", "600")

    inputs = resolve_inputs(nodes=3, timeout=None)

    assert inputs.nodes == 3
    assert inputs.timeout == 600


@pytest.mark.parametrize(
    "overrides",
    [{"provisioner": "lxc"}, {"nodes": -1}, {"timeout": 0}],
)
def test_invalid_inputs_raise_config_error(overrides):
    with pytest.raises(ConfigError):
        resolve_inputs(**overrides)


def test_invalid_environment_raises_config_error(monkeypatch):
    monkeypatch.setenv("INPUT_NODES", "two")
    with pytest.raises(ConfigError):
        resolve_inputs()


def test_readiness_config_expects_workers_plus_control_plane():
    inputs = ActionInputs(nodes=2, timeout=120, wait_for_ready=True, dns_readiness=False, provisioner="qemu")

    cfg = ReadinessConfig.from_inputs(inputs, talosconfig=Path("/tmp/tc"), kubeconfig=Path("/tmp/kc"))

    assert cfg.expected_nodes == 3
    assert cfg.timeout == 120
    assert cfg.dns_readiness_check is False
    assert cfg.provisioner == "qemu"
    assert cfg.control_plane_node == "10.5.0.2"
    assert cfg.kubeconfig == Path("/tmp/kc")


def test_sizes_are_passed_through_unchecked():
    inputs = resolve_inputs(nodes=64, memory=256, disk=512)
    assert (inputs.nodes, inputs.memory, inputs.disk) == (64, 256, 512)
