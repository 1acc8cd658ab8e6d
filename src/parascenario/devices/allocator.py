"""Device allocation: one device per scenario."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from ..shared.logging import get_logger
from .android import android_factory
from .base import Device
from .web import WebDevice

if TYPE_CHECKING:
    from ..config import OrchestratorConfig

logger = get_logger(__name__)

DeviceFactory = Callable[[], Device]


def device_factory_for(config: OrchestratorConfig) -> DeviceFactory:
    """Factory matching the configured device type.

    Raises:
        ValueError: If the device type is unknown
    """
    if config.device_type == "web":
        return lambda: WebDevice.factory_create(config)
    if config.device_type == "android":
        return android_factory(config)
    raise ValueError(f"Unsupported device type: {config.device_type}")


class DeviceAllocator:
    """Produces one device handle per scenario."""

    def __init__(self, factory: DeviceFactory):
        self.factory = factory

    def allocate(self, count: int) -> list[Device]:
        """Create count devices.

        Args:
            count: Number of scenarios (0 yields an empty list)

        Returns:
            Exactly count devices

        Raises:
            DeviceAllocationError: Propagated from the factory; remaining
                devices are not created
        """
        if count < 0:
            raise ValueError(f"Scenario count must be >= 0, got {count}")

        devices = [self.factory() for _ in range(count)]
        logger.info("devices_allocated", count=len(devices))
        return devices
