"""Path management for parascenario.

Manages the ~/.parascenario/ directory and the transient artifacts of a
scenario run.
"""

import shutil
from dataclasses import dataclass
from pathlib import Path

from .logging import get_logger

logger = get_logger(__name__)

# Base directory for user-level parascenario data
PARASCENARIO_DIR = Path.home() / ".parascenario"

# Persistent CLI configuration
CONFIG_FILE = PARASCENARIO_DIR / "config.yaml"

# Default location of run artifacts (relative to the current directory)
DEFAULT_WORK_DIR = Path(".parascenario")

# Default location of saved reports
DEFAULT_REPORT_DIR = Path("reports")

# Registry layout inside a run directory
DIRECTORY_NAME = "directory"
DICTIONARY_NAME = "dictionary.yaml"
STATES_NAME = "states"
SCRATCH_NAME = "scratch"


def ensure_dirs() -> None:
    """Create the user directory if missing (mode 0o700)."""
    PARASCENARIO_DIR.mkdir(mode=0o700, exist_ok=True)


def delete_path_if_exists(path: Path) -> bool:
    """Delete a file or directory tree.

    Args:
        path: File or directory to remove

    Returns:
        True if something was removed, False if the path did not exist
    """
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
        return True
    if path.exists() or path.is_symlink():
        path.unlink(missing_ok=True)
        return True
    return False


@dataclass(frozen=True)
class ArtifactPaths:
    """Well-known transient paths of one scenario run.

    Every path is namespaced by the execution id so that concurrent runs
    sharing a work directory never see each other's registry.
    """

    run_dir: Path
    directory_dir: Path
    dictionary_file: Path
    states_dir: Path
    scratch_dir: Path

    @classmethod
    def for_execution(cls, work_dir: Path, execution_id: str) -> "ArtifactPaths":
        """Build the artifact layout for one execution.

        Args:
            work_dir: Base work directory shared by all runs
            execution_id: Token identifying the run

        Returns:
            ArtifactPaths rooted at work_dir/execution_id
        """
        run_dir = Path(work_dir) / execution_id
        return cls(
            run_dir=run_dir,
            directory_dir=run_dir / DIRECTORY_NAME,
            dictionary_file=run_dir / DICTIONARY_NAME,
            states_dir=run_dir / STATES_NAME,
            scratch_dir=Path(work_dir) / SCRATCH_NAME / execution_id,
        )

    def state_dir(self, state: str) -> Path:
        """Get the directory holding the markers of one process state."""
        return self.states_dir / state

    def delete_all(self) -> None:
        """Delete every artifact of the run. Safe to call repeatedly."""
        for path in (self.directory_dir, self.dictionary_file, self.states_dir):
            delete_path_if_exists(path)
        delete_path_if_exists(self.run_dir)
        delete_path_if_exists(self.scratch_dir)
        logger.debug("artifacts_deleted", run_dir=str(self.run_dir))
