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

"""Exception types raised by cluster setup and readiness verification."""

from __future__ import annotations

from talos_setup.diagnostics import DiagnosticBundle


class SetupError(RuntimeError):
    """Base class for fatal setup failures."""


class ConfigError(SetupError):
    """Invalid action inputs or CLI options."""


class ClusterCreateError(SetupError):
    """``talosctl cluster create`` returned a non-zero exit code."""


class ReadinessTimeout(SetupError):
    """A readiness stage did not succeed before the shared deadline.

    Attributes:
        stage: Name of the stage that was being polled.
        elapsed: Seconds elapsed since the verifier started.
        timeout: The overall timeout budget in seconds.
        diagnostics: Snapshot collected before the error was raised.
    """

    def __init__(
        self,
        stage: str,
        elapsed: float,
        timeout: float,
        diagnostics: DiagnosticBundle | None = None,
    ) -> None:
        super().__init__(f"Timeout waiting for {stage} ({int(elapsed)}s elapsed, timeout {int(timeout)}s)")
        self.stage = stage
        self.elapsed = elapsed
        self.timeout = timeout
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticBundle()


class FunctionalFailure(SetupError):
    """A check ran to completion and returned a wrong answer."""


class DnsResolutionError(FunctionalFailure):
    """The DNS probe pod could not resolve the in-cluster service name."""
