"""Device process: drives one device through one scenario.

A process registers itself in the process registry before it runs, then
reports every lifecycle transition there. The registry is its only channel to
the completion barrier.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import ProcessStateError
from .registry import ProcessRegistry, ProcessState
from .shared.logging import get_logger

if TYPE_CHECKING:
    from .devices.base import Device, ScenarioOutcome
    from .scenario import TestScenario

logger = get_logger(__name__)


class DeviceProcess:
    """Run-time unit bound to one device and one scenario."""

    def __init__(
        self,
        id: int,
        device: Device,
        test_scenario: TestScenario,
        registry: ProcessRegistry | None = None,
    ):
        """Initialize device process.

        Args:
            id: 1-based sequence index, also the registry key
            device: Device owned by this process
            test_scenario: Orchestrator that spawned the process
            registry: Registry to report to (default: the orchestrator's)
        """
        self.id = id
        self.device = device
        self.test_scenario = test_scenario
        self.registry = registry or test_scenario.registry
        self.state = ProcessState.CREATED
        self.outcome: ScenarioOutcome | None = None
        self.error: str | None = None
        self._registered = False
        self._task: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"DeviceProcess(id={self.id}, device={self.device!r}, state={self.state.value})"

    @property
    def feature_path(self) -> Path | None:
        return self.test_scenario.feature_file.file_path

    @property
    def actor_tag(self) -> str | None:
        scenarios = self.test_scenario.feature_file.scenarios
        if 0 < self.id <= len(scenarios):
            return scenarios[self.id - 1].actor_tag
        return None

    @property
    def scratch_dir(self) -> Path:
        return self.test_scenario.paths.scratch_dir / str(self.id)

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def register_process_to_directory(self) -> None:
        """Register in the process registry. Repeated calls are no-ops."""
        if self._registered:
            return
        self.registry.register(self.id, device=self.device.device_id)
        self._registered = True

    def run(self) -> asyncio.Task:
        """Start driving the scenario without waiting for it.

        Must be called from a running event loop.

        Returns:
            The task executing the scenario

        Raises:
            ProcessStateError: If the process is not registered or already started
        """
        if not self._registered:
            raise ProcessStateError(
                message=f"Process {self.id} must be registered before it runs",
                data={"process_id": self.id},
            )
        if self._task is not None:
            raise ProcessStateError(
                message=f"Process {self.id} was already started",
                data={"process_id": self.id},
            )

        self._task = asyncio.create_task(self._execute(), name=f"device-process-{self.id}")
        return self._task

    async def _execute(self) -> None:
        log = logger.bind(process_id=self.id, device=self.device.device_id)
        self._set_state(ProcessState.RUNNING)
        log.info("process_started")

        try:
            self.outcome = await self.device.run_scenario(self)
        except asyncio.CancelledError:
            self.error = "cancelled"
            self.state = ProcessState.FAILED
            log.warning("process_cancelled")
            raise
        except Exception as e:
            # Infrastructure failures end the process; they never reach the orchestrator
            self.error = str(e)
            self._set_state(ProcessState.FAILED)
            log.error("process_failed", error=str(e), error_type=type(e).__name__)
        else:
            self._set_state(ProcessState.FINISHED)
            log.info("process_finished", passed=self.outcome.passed)
        finally:
            await self.device.stop()

    def _set_state(self, state: ProcessState) -> None:
        self.registry.set_state(self.id, state)
        self.state = state

    @staticmethod
    def registered_process_ids(registry: ProcessRegistry) -> set[int]:
        """Ids present in a registry."""
        return registry.registered_ids()

    @staticmethod
    def processes_in_state(registry: ProcessRegistry, state: ProcessState) -> set[int]:
        """Ids currently marked with state in a registry."""
        return registry.ids_in_state(state)
