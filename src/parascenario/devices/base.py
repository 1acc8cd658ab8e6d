"""Device base classes.

A device is one isolated execution endpoint (a browser instance, an Android
phone) that can be driven through exactly one scenario.
"""

from __future__ import annotations

import asyncio
import os
import shlex
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import DeviceError
from ..shared.logging import get_logger

if TYPE_CHECKING:
    from ..config import OrchestratorConfig
    from ..process import DeviceProcess

logger = get_logger(__name__)

# Output kept per scenario for the report
MAX_OUTPUT_CHARS = 4000


@dataclass
class ScenarioOutcome:
    """Result of driving one scenario on a device.

    A scenario that ran to completion always yields an outcome, even when its
    steps failed; infrastructure problems raise DeviceError instead.
    """

    passed: bool
    exit_code: int | None = None
    duration_seconds: float = 0.0
    output: str | None = None


class Device(ABC):
    """An endpoint that can be driven to execute one scenario."""

    kind = "device"

    def __init__(self, device_id: str):
        self.device_id = device_id

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.device_id!r})"

    @abstractmethod
    async def run_scenario(self, process: DeviceProcess) -> ScenarioOutcome:
        """Drive the device through the scenario owned by process."""

    async def stop(self) -> None:
        """Release the device. Called once by the owning process."""


class CommandDevice(Device):
    """Device driven by an external automation command.

    The command is the configured scenario command, e.g.
    ``behave {feature} --tags={tag}``. Placeholders are substituted per token so
    paths with spaces survive. The command learns which device and registry to
    use from PARASCENARIO_* environment variables.
    """

    def __init__(self, device_id: str, config: OrchestratorConfig):
        super().__init__(device_id)
        self.config = config
        self._proc: asyncio.subprocess.Process | None = None

    def environment(self, process: DeviceProcess) -> dict[str, str]:
        """Device specific environment variables for the automation command."""
        return {}

    def build_command(self, process: DeviceProcess) -> list[str]:
        """Expand the scenario command for one process."""
        values = {
            "feature": str(process.feature_path),
            "tag": process.actor_tag or "",
            "index": str(process.id),
            "device": self.device_id,
        }
        return [token.format(**values) for token in shlex.split(self.config.scenario_command)]

    async def run_scenario(self, process: DeviceProcess) -> ScenarioOutcome:
        argv = self.build_command(process)
        env = dict(os.environ)
        env.update(
            {
                "PARASCENARIO_PROCESS_ID": str(process.id),
                "PARASCENARIO_DEVICE_ID": self.device_id,
                "PARASCENARIO_DEVICE_KIND": self.kind,
                "PARASCENARIO_RUN_DIR": str(process.registry.run_dir),
                "PARASCENARIO_ACTOR_TAG": process.actor_tag or "",
            }
        )
        env.update(self.environment(process))

        workdir = process.scratch_dir
        workdir.mkdir(parents=True, exist_ok=True)

        logger.info("scenario_command_started", process_id=process.id, argv=argv)
        start = time.monotonic()
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=env,
                cwd=str(workdir),
            )
            stdout, _ = await self._proc.communicate()
        except OSError as e:
            raise DeviceError(
                message=f"Could not run scenario command on {self.device_id}: {e}",
                data={"device": self.device_id, "argv": argv},
            ) from e

        exit_code = self._proc.returncode
        output = stdout.decode(errors="replace") if stdout else ""
        return ScenarioOutcome(
            passed=exit_code == 0,
            exit_code=exit_code,
            duration_seconds=time.monotonic() - start,
            output=output[-MAX_OUTPUT_CHARS:],
        )

    async def stop(self) -> None:
        if self._proc is not None and self._proc.returncode is None:
            logger.warning("scenario_command_killed", device=self.device_id)
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass  # Already exited
            await self._proc.wait()
        self._proc = None
