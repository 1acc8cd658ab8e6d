"""Android devices reachable through adb."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from typing import TYPE_CHECKING

from ..errors import DeviceAllocationError
from ..shared.logging import get_logger
from .base import CommandDevice

if TYPE_CHECKING:
    from ..config import OrchestratorConfig
    from ..process import DeviceProcess

logger = get_logger(__name__)

ADB_TIMEOUT_SECONDS = 10


def connected_devices(adb: str = "adb") -> list[str]:
    """List serials of the Android devices adb reports as ready.

    Returns:
        Serial numbers, in adb order

    Raises:
        DeviceAllocationError: If adb is missing or fails
    """
    try:
        result = subprocess.run(
            [adb, "devices"],
            capture_output=True,
            text=True,
            timeout=ADB_TIMEOUT_SECONDS,
        )
    except FileNotFoundError as e:
        raise DeviceAllocationError(message="adb not found on PATH") from e
    except subprocess.TimeoutExpired as e:
        raise DeviceAllocationError(message="adb devices timed out") from e

    if result.returncode != 0:
        raise DeviceAllocationError(
            message=f"adb devices failed: {result.stderr.strip()}",
            data={"returncode": result.returncode},
        )

    serials = []
    # First line is the "List of devices attached" header
    for line in result.stdout.splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 2 and parts[1] == "device":
            serials.append(parts[0])
    return serials


class AndroidDevice(CommandDevice):
    """One Android phone or emulator, identified by its adb serial."""

    kind = "android"

    def __init__(self, serial: str, config: OrchestratorConfig):
        super().__init__(serial, config)
        self.serial = serial

    def environment(self, process: DeviceProcess) -> dict[str, str]:
        return {"ANDROID_SERIAL": self.serial}


def android_factory(config: OrchestratorConfig) -> Callable[[], AndroidDevice]:
    """Build a factory handing out one connected device per call.

    adb is queried on the first call, so building the factory never fails.
    """
    serials: list[str] | None = None

    def create() -> AndroidDevice:
        nonlocal serials
        if serials is None:
            serials = connected_devices()
            logger.info("android_devices_found", count=len(serials))
        if not serials:
            raise DeviceAllocationError(message="Not enough Android devices connected")
        return AndroidDevice(serials.pop(0), config)

    return create
