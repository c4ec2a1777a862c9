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

"""Utility functions for command execution, token matching, and command checks."""

from __future__ import annotations

import re
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass

import sh

from talos_setup.constants import TALOS_GITHUB_REPO

_TOKEN_SPLIT = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an external command.

    Attributes:
        ok: True when the command exited with status 0.
        stdout: Captured standard output.
        stderr: Captured standard error, or the transport error message.
    """

    ok: bool
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as a shell ``2>&1`` would show it."""
        return "".join(part for part in (self.stdout, self.stderr) if part)


def talos_release_url(version: str) -> str:
    """Build the GitHub release page URL for a Talos version.

    Args:
        version: Talos release tag (e.g. ``v1.9.0``) or ``latest``.

    Returns:
        Full GitHub release URL.
    """
    if version == "latest":
        return f"https://github.com/{TALOS_GITHUB_REPO}/releases/latest"
    return f"https://github.com/{TALOS_GITHUB_REPO}/releases/tag/{version}"


def talosctl_download_url(version: str, arch: str) -> str:
    """Build the download URL of the Linux talosctl binary for a release.

    Args:
        version: Resolved Talos release tag (e.g. ``v1.9.0``), never ``latest``.
        arch: Release asset architecture, ``amd64`` or ``arm64``.

    Returns:
        Full GitHub release asset URL.
    """
    return f"https://github.com/{TALOS_GITHUB_REPO}/releases/download/{version}/talosctl-linux-{arch}"


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def run_cmd(argv: list[str], timeout: int = 30) -> CommandResult:
    """Run a command via subprocess and capture its output.

    Missing binaries and subprocess timeouts are reported as a failed
    result rather than raised, so pollers can simply try again.

    Args:
        argv: Full command line, binary first.
        timeout: Maximum seconds to wait for the command to complete.

    Returns:
        The command's CommandResult.
    """
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return CommandResult(result.returncode == 0, result.stdout, result.stderr)
    except (subprocess.SubprocessError, OSError) as exc:
        return CommandResult(False, "", str(exc))


def tokens(text: str) -> list[str]:
    """Split a status string on whitespace and commas."""
    return [tok for tok in _TOKEN_SPLIT.split(text) if tok]


def has_token(text: str, *wanted: str) -> bool:
    """Return True if any of *wanted* appears in *text* as a whole token.

    ``NotReady`` and ``NotReady-canary`` do not contain the token ``Ready``;
    ``Ready,SchedulingDisabled`` does.
    """
    return any(tok in wanted for tok in tokens(text))


def count_token_lines(lines: Iterable[str], *wanted: str) -> int:
    """Count lines that contain any of *wanted* as a whole token.

    Empty input counts as zero.
    """
    return sum(1 for line in lines if line.strip() and has_token(line, *wanted))


def head(text: str, n: int) -> str:
    """Return the first *n* lines of *text*."""
    return "\n".join(text.splitlines()[:n])


def tail(text: str, n: int) -> str:
    """Return the last *n* lines of *text*."""
    return "\n".join(text.splitlines()[-n:]) if n > 0 else ""
