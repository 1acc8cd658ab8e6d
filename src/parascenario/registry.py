"""File-backed process registry.

The registry is the single source of truth for "is everything done". Device
processes (or out-of-process automation workers that only know the run
directory) write their state to disk; the completion barrier reads it.

Layout under the run directory::

    directory/<id>          one YAML record per registered process
    dictionary.yaml         id -> device / actor tag lookup
    states/<state>/<id>     one marker per process, in exactly one state

Only the owning process writes the entry of its id, so entries are never
written concurrently and no locking is needed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import ProcessStateError
from .shared.logging import get_logger
from .shared.paths import DIRECTORY_NAME, ArtifactPaths

logger = get_logger(__name__)


class ProcessState(Enum):
    """Lifecycle states of a device process."""

    CREATED = "created"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessState.FINISHED, ProcessState.FAILED)


class ProcessRegistry:
    """Persisted id -> state mapping for one scenario run."""

    def __init__(self, paths: ArtifactPaths):
        """Initialize registry.

        Args:
            paths: Artifact layout of the run owning this registry
        """
        self.paths = paths

    @property
    def run_dir(self) -> Path:
        return self.paths.run_dir

    def _record_path(self, process_id: int) -> Path:
        return self.paths.directory_dir / str(process_id)

    def _marker_path(self, process_id: int, state: ProcessState) -> Path:
        return self.paths.state_dir(state.value) / str(process_id)

    def register(self, process_id: int, device: str | None = None) -> bool:
        """Register a process in state CREATED.

        Args:
            process_id: Process id (1-based sequence index)
            device: Identifier of the device driven by the process

        Returns:
            True if the process was registered, False if it already was
        """
        record_path = self._record_path(process_id)
        if record_path.exists():
            return False

        record_path.parent.mkdir(parents=True, exist_ok=True)
        record = {
            "id": process_id,
            "device": device,
            "registered_at": datetime.now(timezone.utc).isoformat(),
        }
        record_path.write_text(yaml.safe_dump(record, default_flow_style=False))
        self._write_marker(process_id, ProcessState.CREATED)

        logger.debug("process_registered", process_id=process_id, device=device)
        return True

    def set_state(self, process_id: int, state: ProcessState) -> None:
        """Overwrite the state of a registered process (last write wins).

        Raises:
            ProcessStateError: If the process is not registered
        """
        if not self._record_path(process_id).exists():
            raise ProcessStateError(
                message=f"Process {process_id} is not registered",
                data={"process_id": process_id, "state": state.value},
            )

        self._write_marker(process_id, state)
        logger.debug("process_state_changed", process_id=process_id, state=state.value)

    def _write_marker(self, process_id: int, state: ProcessState) -> None:
        marker = self._marker_path(process_id, state)
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(datetime.now(timezone.utc).isoformat())

        for other in ProcessState:
            if other is not state:
                self._marker_path(process_id, other).unlink(missing_ok=True)

    def registered_ids(self) -> set[int]:
        """Ids currently present in the registry."""
        return _ids_in(self.paths.directory_dir)

    def ids_in_state(self, state: ProcessState) -> set[int]:
        """Ids currently marked with a state (point-in-time snapshot)."""
        return _ids_in(self.paths.state_dir(state.value))

    def state_of(self, process_id: int) -> ProcessState | None:
        """Current state of a process, None if it has no state marker."""
        for state in ProcessState:
            if self._marker_path(process_id, state).exists():
                return state
        return None

    def snapshot(self) -> dict[int, ProcessState | None]:
        """State of every registered process."""
        return {pid: self.state_of(pid) for pid in sorted(self.registered_ids())}

    def read_record(self, process_id: int) -> dict[str, Any]:
        """Registration record of a process (empty if unknown)."""
        record_path = self._record_path(process_id)
        if not record_path.exists():
            return {}
        return yaml.safe_load(record_path.read_text()) or {}

    def write_dictionary(self, mapping: dict[int, dict[str, Any]]) -> None:
        """Write the id -> device lookup shared with automation workers."""
        self.paths.dictionary_file.parent.mkdir(parents=True, exist_ok=True)
        self.paths.dictionary_file.write_text(
            yaml.safe_dump(mapping, default_flow_style=False, sort_keys=True)
        )

    def read_dictionary(self) -> dict[int, dict[str, Any]]:
        """Read the id -> device lookup (empty if not written yet)."""
        if not self.paths.dictionary_file.exists():
            return {}
        return yaml.safe_load(self.paths.dictionary_file.read_text()) or {}


def _ids_in(directory: Path) -> set[int]:
    if not directory.is_dir():
        return set()
    ids = set()
    for entry in directory.iterdir():
        # Ignore editor droppings and partially written temp files
        if entry.name.isdigit():
            ids.add(int(entry.name))
    return ids


def find_registries(work_dir: Path) -> list[ProcessRegistry]:
    """Registries of every run found under a work directory.

    Args:
        work_dir: Base work directory

    Returns:
        One registry per run directory, sorted by execution id
    """
    work_dir = Path(work_dir)
    if not work_dir.is_dir():
        return []

    registries = []
    for run_dir in sorted(work_dir.iterdir()):
        if (run_dir / DIRECTORY_NAME).is_dir():
            registries.append(ProcessRegistry(ArtifactPaths.for_execution(work_dir, run_dir.name)))
    return registries
