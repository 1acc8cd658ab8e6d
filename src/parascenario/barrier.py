"""Completion barrier.

Polls the process registry until every registered process is done, or fails
once the deadline has passed. The registry is re-read on every poll, so
processes registering after the barrier started are still waited for.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from .errors import ProcessTimeoutError
from .registry import ProcessRegistry, ProcessState
from .shared.logging import get_logger

logger = get_logger(__name__)

PollCallback = Callable[[int, set[int]], None]


@dataclass
class BarrierResult:
    """Outcome of a resolved barrier."""

    polls: int
    elapsed_seconds: float
    finished_ids: set[int]
    failed_ids: set[int]


class CompletionBarrier:
    """Wait for every registered process to reach a done state."""

    def __init__(
        self,
        registry: ProcessRegistry,
        poll_interval: float = 1.0,
        timeout: float = 600.0,
        failed_is_terminal: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize completion barrier.

        Args:
            registry: Registry to poll
            poll_interval: Seconds between polls
            timeout: Seconds before the barrier fails
            failed_is_terminal: Count FAILED processes as done. When False only
                FINISHED counts and a failed process stalls the barrier until
                the timeout.
            clock: Monotonic time source
        """
        self.registry = registry
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.failed_is_terminal = failed_is_terminal
        self.clock = clock

    def pending_ids(self) -> set[int]:
        """Registered ids that are not done yet."""
        done = self.registry.ids_in_state(ProcessState.FINISHED)
        if self.failed_is_terminal:
            done |= self.registry.ids_in_state(ProcessState.FAILED)
        return self.registry.registered_ids() - done

    async def wait(self, on_poll: PollCallback | None = None) -> BarrierResult:
        """Poll until all processes are done.

        Args:
            on_poll: Optional callback called with (poll, pending_ids) after
                every unsuccessful poll, for progress reporting

        Returns:
            BarrierResult once no process is pending

        Raises:
            ProcessTimeoutError: If processes are still pending at the deadline
        """
        start = self.clock()
        poll = 0

        while True:
            poll += 1
            pending = self.pending_ids()
            elapsed = self.clock() - start

            if not pending:
                logger.info("barrier_resolved", polls=poll, elapsed=round(elapsed, 3))
                return BarrierResult(
                    polls=poll,
                    elapsed_seconds=elapsed,
                    finished_ids=self.registry.ids_in_state(ProcessState.FINISHED),
                    failed_ids=self.registry.ids_in_state(ProcessState.FAILED),
                )

            logger.debug("barrier_poll", poll=poll, pending=sorted(pending))
            if on_poll:
                on_poll(poll, pending)

            if elapsed >= self.timeout:
                logger.error("barrier_timeout", pending=sorted(pending), elapsed=round(elapsed, 3))
                raise ProcessTimeoutError(
                    data={
                        "pending_ids": sorted(pending),
                        "timeout_seconds": self.timeout,
                        "polls": poll,
                    },
                )

            await asyncio.sleep(self.poll_interval)
