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

"""Deadline-bounded fixed-interval polling with an injectable clock."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from rich.markup import escape
from tenacity import RetryCallState, RetryError, Retrying, retry_if_result, wait_fixed

from talos_setup import actions, console, logger
from talos_setup.diagnostics import DiagnosticBundle
from talos_setup.errors import ReadinessTimeout
from talos_setup.models import StageResult


class Clock(Protocol):
    """Time source used by the poll loop."""

    def now(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Monotonic wall clock with real sleeping."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


@dataclass
class PollState:
    """Shared deadline and bookkeeping for one verification run.

    Every stage measures against the same start instant and timeout.

    Attributes:
        timeout: Overall budget in seconds for all stages together.
        clock: Time source.
        started_at: Clock reading when the run started.
        last_status_at: Clock reading of the last status snapshot, or None.
        stage: Name of the stage currently being polled.
    """

    timeout: float
    clock: Clock = field(default_factory=SystemClock)
    started_at: float | None = None
    last_status_at: float | None = None
    stage: str = ""

    def __post_init__(self) -> None:
        if self.started_at is None:
            self.started_at = self.clock.now()

    @property
    def elapsed(self) -> float:
        return self.clock.now() - self.started_at

    def expired(self) -> bool:
        return self.elapsed > self.timeout

    def status_due(self, interval: float) -> bool:
        """Return True, and reset the timer, if a status snapshot is due."""
        now = self.clock.now()
        if self.last_status_at is None or now - self.last_status_at >= interval:
            self.last_status_at = now
            return True
        return False


def poll_until(
    state: PollState,
    stage: str,
    check: Callable[[], StageResult],
    interval: float,
    diagnose: Callable[[], DiagnosticBundle] | None = None,
) -> StageResult:
    """Call *check* every *interval* seconds until it reports ready.

    Failed attempts are retried until the shared deadline in *state* passes.
    The deadline is checked before each attempt, so a stage entered or
    retried after it has passed never calls *check* and times out.
    On expiry the diagnostics from *diagnose* are printed, then
    ReadinessTimeout is raised carrying them.

    Args:
        state: Shared poll state holding the deadline and clock.
        stage: Stage name used in progress and error messages.
        check: One polling attempt.
        interval: Fixed seconds to sleep between attempts.
        diagnose: Collects the diagnostic bundle on timeout.

    Returns:
        The first ready StageResult.

    Raises:
        ReadinessTimeout: If the deadline passes before *check* is ready.
    """
    state.stage = stage

    def _log_wait(retry_state: RetryCallState) -> None:
        result = retry_state.outcome.result()
        if result.diagnostic:
            console.print(f"[dim]{escape(result.diagnostic)}[/dim]")
        console.print(f"[yellow]   Waiting for {stage}... ({int(state.elapsed)}s)[/yellow]")

    def _attempt() -> StageResult:
        if state.expired():
            return StageResult(False, f"Deadline of {int(state.timeout)}s passed")
        return check()

    retryer = Retrying(
        stop=lambda _: state.expired(),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda r: not r.ready),
        sleep=state.clock.sleep,
        before_sleep=_log_wait,
    )
    try:
        return retryer(_attempt)
    except RetryError:
        elapsed = state.elapsed
        logger.error("Timeout waiting for %s after %ds", stage, int(elapsed))
        actions.error(f"Timeout waiting for {stage}")
        bundle = diagnose() if diagnose else DiagnosticBundle()
        if bundle:
            bundle.print()
        raise ReadinessTimeout(stage, elapsed, state.timeout, bundle) from None
