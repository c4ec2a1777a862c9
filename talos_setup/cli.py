#!/usr/bin/env python3
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

"""
cli.py - Talos cluster setup for CI.

Subcommands:
    setup      Composite workflows (ci)
    cluster    Individual steps (create, verify)

Environment Variables:
    Action inputs are read from INPUT_* environment variables, as GitHub
    passes them to actions:
    - INPUT_VERSION (default: latest)
    - INPUT_CLUSTER_NAME (default: talos-ci)
    - INPUT_NODES (default: 0 workers)
    - INPUT_PROVISIONER (default: docker)
    - INPUT_TIMEOUT (default: 300)
    - INPUT_WAIT_FOR_READY, INPUT_DNS_READINESS (default: true)
    - And more (see ActionInputs for the full list)

Examples:
    # What the action runs
    talos-setup setup ci

    # Two workers on QEMU
    talos-setup setup ci --nodes 2 --provisioner qemu

    # Re-verify an existing cluster without DNS probing
    talos-setup cluster verify --nodes 2 --no-dns-readiness

For detailed usage information, run: talos-setup --help
"""

from __future__ import annotations

import logging
import sys

import typer

from talos_setup import console
from talos_setup.commands import cluster_cmd, setup_cmd

app = typer.Typer(
    help="Talos cluster setup and readiness verification for CI.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(setup_cmd.app, name="setup")
app.add_typer(cluster_cmd.app, name="cluster")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
