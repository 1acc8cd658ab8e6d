"""Scenario orchestrator.

Runs every scenario of one feature file on its own device:

1. Validate the feature file (one unique @user tag per scenario)
2. Delete leftovers, allocate devices, register one process per device
3. Spawn the processes in index order, staggered
4. Wait on the completion barrier
5. Delete transient artifacts, save the report, notify the parent application
"""

from __future__ import annotations

import asyncio
import secrets
from typing import TYPE_CHECKING, Protocol

from structlog.contextvars import bound_contextvars

from .barrier import BarrierResult, CompletionBarrier, PollCallback
from .config import OrchestratorConfig
from .devices.allocator import DeviceAllocator, DeviceFactory, device_factory_for
from .errors import feature_syntax_error
from .process import DeviceProcess
from .registry import ProcessRegistry
from .reporter import Reporter
from .shared.logging import get_logger
from .shared.paths import ArtifactPaths

if TYPE_CHECKING:
    from .devices.base import Device
    from .feature import FeatureFile

logger = get_logger(__name__)


class ScenarioListener(Protocol):
    """Parent application notified when a run is over."""

    def on_test_scenario_finished(self, test_scenario: TestScenario) -> None: ...


class TestScenario:
    """Coordinates one feature file across one device per scenario."""

    # Not a pytest test class
    __test__ = False

    def __init__(
        self,
        feature_file: FeatureFile,
        app: ScenarioListener,
        config: OrchestratorConfig | None = None,
        device_factory: DeviceFactory | None = None,
        reporter: Reporter | None = None,
        execution_id: str | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            feature_file: Parsed feature file to run
            app: Parent application to notify once the run is over
            config: Run configuration (default: built-in defaults)
            device_factory: Creates one device per call (default: from config.device_type)
            reporter: Report writer (default: Reporter under config.report_dir)
            execution_id: Run token (default: random)
        """
        self.feature_file = feature_file
        self.app = app
        self.config = config or OrchestratorConfig()
        self.execution_id = execution_id or secrets.token_hex(10)
        self.paths = ArtifactPaths.for_execution(self.config.work_dir, self.execution_id)
        self.registry = ProcessRegistry(self.paths)
        self.allocator = DeviceAllocator(device_factory or device_factory_for(self.config))
        self.reporter = reporter or Reporter(self, self.config.report_dir)
        self.devices: list[Device] = []
        self.processes: list[DeviceProcess] = []
        self.barrier_result: BarrierResult | None = None

    async def run(self, on_poll: PollCallback | None = None) -> BarrierResult:
        """Run every scenario and wait for all of them.

        Args:
            on_poll: Optional barrier progress callback

        Returns:
            The resolved barrier result

        Raises:
            FeatureSyntaxError: Before anything is allocated
            DeviceAllocationError: If a device cannot be created
            ProcessTimeoutError: If processes are still running at the deadline

        Spawned processes are cancelled and the run artifacts deleted whenever
        the run ends with an exception, including its own cancellation.
        """
        if not self.feature_file.has_right_syntax():
            raise feature_syntax_error(
                str(self.feature_file.file_path), self.feature_file.syntax_problems()
            )

        # Every event logged during the run, process tasks included, carries the id
        with bound_contextvars(execution_id=self.execution_id):
            logger.info("scenario_run_started", feature=str(self.feature_file.file_path))
            self.before_execute()

            try:
                await self.execute()
                self.barrier_result = await self.all_processes_finished(on_poll)
            except BaseException as e:
                await self._abort(reason=type(e).__name__)
                raise

            await self._collect_tasks()
            self.after_execute()
        return self.barrier_result

    def before_execute(self) -> None:
        self.delete_support_files_and_directories()

        self.devices = self.sample_devices()
        for index, device in enumerate(self.devices, 1):
            process = DeviceProcess(index, device, self, registry=self.registry)
            process.register_process_to_directory()
            self.processes.append(process)

        self.registry.write_dictionary(
            {
                p.id: {"device": p.device.device_id, "kind": p.device.kind, "actor_tag": p.actor_tag}
                for p in self.processes
            }
        )
        self.reporter.create_report_folder_requirements()

    async def execute(self) -> None:
        """Spawn every process, pausing between spawns."""
        for position, process in enumerate(self.processes):
            process.run()
            logger.info("process_spawned", process_id=process.id)
            if position < len(self.processes) - 1:
                await asyncio.sleep(self.config.spawn_stagger)

    def after_execute(self) -> None:
        self.delete_support_files_and_directories()
        self.reporter.save_report()
        self.notify_scenario_finished()

    def notify_scenario_finished(self) -> None:
        logger.info("scenario_run_finished")
        self.app.on_test_scenario_finished(self)

    def delete_support_files_and_directories(self) -> None:
        """Delete the run's transient artifacts. Safe to call repeatedly."""
        self.paths.delete_all()

    def sample_devices(self) -> list[Device]:
        """One device per scenario of the feature file."""
        return self.allocator.allocate(len(self.feature_file.scenarios))

    async def all_processes_finished(self, on_poll: PollCallback | None = None) -> BarrierResult:
        barrier = CompletionBarrier(
            self.registry,
            poll_interval=self.config.poll_interval,
            timeout=self.config.process_timeout,
            failed_is_terminal=self.config.failed_is_terminal,
        )
        return await barrier.wait(on_poll)

    async def _collect_tasks(self) -> None:
        # Processes may still be releasing their device after reporting a final state
        tasks = [p.task for p in self.processes if p.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _abort(self, reason: str) -> None:
        pending = [p.task for p in self.processes if p.task is not None and not p.task.done()]
        logger.error("scenario_run_aborted", reason=reason, pending=len(pending))
        for task in pending:
            task.cancel()
        await self._collect_tasks()
        self.delete_support_files_and_directories()
