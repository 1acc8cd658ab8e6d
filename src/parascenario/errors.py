"""Error taxonomy for scenario runs.

Every fatal condition surfaces to the caller of TestScenario.run() as a
ParascenarioError subclass. Device process failures are recorded in the
process registry instead of being raised.
"""

from dataclasses import dataclass, field
from typing import Any

# Error codes (also used as CLI exit detail)
FEATURE_SYNTAX_ERROR = "FEATURE_SYNTAX"
DEVICE_ALLOCATION_ERROR = "DEVICE_ALLOCATION"
DEVICE_ERROR = "DEVICE_FAILURE"
PROCESS_STATE_ERROR = "PROCESS_STATE"
PROCESS_TIMEOUT_ERROR = "PROCESS_TIMEOUT"


@dataclass
class ParascenarioError(Exception):
    """Base error class for parascenario errors."""

    code: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to a serialisable error object."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data:
            error["data"] = self.data
        return error


@dataclass
class FeatureSyntaxError(ParascenarioError):
    """Feature file does not carry one unique actor tag per scenario."""

    code: str = FEATURE_SYNTAX_ERROR
    message: str = "Feature file has invalid syntax"


@dataclass
class DeviceAllocationError(ParascenarioError):
    """No device could be obtained for a scenario."""

    code: str = DEVICE_ALLOCATION_ERROR
    message: str = "Could not allocate a device"


@dataclass
class DeviceError(ParascenarioError):
    """Infrastructure failure while driving a device (crash, lost connection)."""

    code: str = DEVICE_ERROR
    message: str = "Device failed"


@dataclass
class ProcessStateError(ParascenarioError):
    """Invalid process lifecycle transition or unknown process id."""

    code: str = PROCESS_STATE_ERROR
    message: str = "Invalid process state"


@dataclass
class ProcessTimeoutError(ParascenarioError):
    """Completion barrier deadline exceeded."""

    code: str = PROCESS_TIMEOUT_ERROR
    message: str = "Timeout, a process took more time than expected"


def feature_syntax_error(file_path: str | None, problems: list[str] | None = None) -> FeatureSyntaxError:
    """Build the validation error raised before a run starts.

    Args:
        file_path: Path of the offending feature file
        problems: Human-readable syntax problems, if known

    Returns:
        FeatureSyntaxError naming the file
    """
    return FeatureSyntaxError(
        message=(
            f"Verify feature file {file_path} has one unique @user tag for each scenario"
        ),
        data={"file_path": file_path, "problems": problems or []},
    )
