"""Browser devices."""

from __future__ import annotations

import shutil
import uuid
from typing import TYPE_CHECKING

from ..errors import DeviceAllocationError
from .base import CommandDevice

if TYPE_CHECKING:
    from ..config import OrchestratorConfig
    from ..process import DeviceProcess

# Browser binaries looked up on PATH, in order of preference
BROWSER_CANDIDATES = (
    "google-chrome",
    "chrome",
    "chromium",
    "chromium-browser",
    "firefox",
)


def find_browser() -> str | None:
    """Path of the first browser binary found on PATH."""
    for name in BROWSER_CANDIDATES:
        path = shutil.which(name)
        if path:
            return path
    return None


class WebDevice(CommandDevice):
    """One browser session."""

    kind = "web"

    def __init__(self, browser_path: str, config: OrchestratorConfig):
        super().__init__(f"web-{uuid.uuid4().hex[:8]}", config)
        self.browser_path = browser_path

    @classmethod
    def factory_create(cls, config: OrchestratorConfig) -> WebDevice:
        """Create a browser device.

        Raises:
            DeviceAllocationError: If no browser binary is installed
        """
        browser = find_browser()
        if not browser:
            raise DeviceAllocationError(
                message="No browser found. Install one of: " + ", ".join(BROWSER_CANDIDATES),
                data={"candidates": list(BROWSER_CANDIDATES)},
            )
        return cls(browser, config)

    def environment(self, process: DeviceProcess) -> dict[str, str]:
        return {"PARASCENARIO_BROWSER": self.browser_path}
