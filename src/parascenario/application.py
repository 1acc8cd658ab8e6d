"""Parascenario application - runs feature files one after another."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

from .barrier import PollCallback
from .config import OrchestratorConfig
from .devices.allocator import DeviceFactory
from .feature import FeatureFile
from .scenario import TestScenario
from .shared.logging import get_logger

logger = get_logger(__name__)


class ParascenarioApp:
    """
    Parent application of the scenario orchestrators.

    Each feature file gets its own TestScenario. The next file starts once the
    current run has reported back through on_test_scenario_finished.
    """

    def __init__(
        self,
        feature_paths: Sequence[str | Path],
        config: OrchestratorConfig | None = None,
        device_factory: DeviceFactory | None = None,
        on_poll: PollCallback | None = None,
        on_started: Callable[[TestScenario], None] | None = None,
    ):
        """Initialize application.

        Args:
            feature_paths: Feature files to run, in order
            config: Configuration shared by every run
            device_factory: Device factory override (default: from config)
            on_poll: Barrier progress callback passed to every run
            on_started: Called with each TestScenario before it runs
        """
        self.feature_paths = [Path(p) for p in feature_paths]
        self.config = config or OrchestratorConfig()
        self.device_factory = device_factory
        self.on_poll = on_poll
        self.on_started = on_started
        self.finished: list[TestScenario] = []
        self._current: TestScenario | None = None

    @property
    def current(self) -> TestScenario | None:
        """Scenario run in progress, if any."""
        return self._current

    def build_scenario(self, feature_path: Path) -> TestScenario:
        feature_file = FeatureFile.load(feature_path)
        return TestScenario(
            feature_file,
            self,
            config=self.config,
            device_factory=self.device_factory,
        )

    async def run(self) -> list[TestScenario]:
        """Run every feature file.

        Returns:
            The finished scenario runs, in order

        Raises:
            ParascenarioError: From the first run that fails; later files are skipped
        """
        for feature_path in self.feature_paths:
            self._current = self.build_scenario(feature_path)
            if self.on_started:
                self.on_started(self._current)
            await self._current.run(self.on_poll)
        self._current = None
        return self.finished

    def on_test_scenario_finished(self, test_scenario: TestScenario) -> None:
        """Record a finished run."""
        self.finished.append(test_scenario)
        logger.info(
            "feature_finished",
            feature=str(test_scenario.feature_file.file_path),
            remaining=len(self.feature_paths) - len(self.finished),
        )
