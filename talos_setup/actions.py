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

"""GitHub Actions workflow commands: log groups, annotations, outputs, env exports."""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from talos_setup import console, logger


def _command(line: str) -> None:
    # Same stream as the console so groups fold the output printed inside them.
    # Written raw: rich would wrap or style the marker.
    out = console.file
    out.write(line + "\n")
    out.flush()


@contextmanager
def group(title: str) -> Iterator[None]:
    """Fold everything printed inside the block into a collapsible log group."""
    _command(f"::group::{title}")
    try:
        yield
    finally:
        _command("::endgroup::")


def error(message: str) -> None:
    _command(f"::error::{message}")


def warning(message: str) -> None:
    _command(f"::warning::{message}")


def _append(env_var: str, name: str, value: str) -> bool:
    target = os.environ.get(env_var)
    if not target:
        logger.debug("%s is not set, skipping %s=%s", env_var, name, value)
        return False
    with open(Path(target), "a") as f:
        f.write(f"{name}={value}\n")
    return True


def set_output(name: str, value: str) -> bool:
    """Append a step output to ``$GITHUB_OUTPUT``.

    Returns:
        True if the output file exists in this environment and was written.
    """
    return _append("GITHUB_OUTPUT", name, value)


def export_env(name: str, value: str) -> bool:
    """Append an environment variable for later steps to ``$GITHUB_ENV``.

    Returns:
        True if the env file exists in this environment and was written.
    """
    return _append("GITHUB_ENV", name, value)
