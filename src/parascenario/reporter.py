"""Run report writer."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .shared.logging import get_logger

if TYPE_CHECKING:
    from .scenario import TestScenario

logger = get_logger(__name__)

REPORT_FILE_NAME = "report.json"


class Reporter:
    """Writes one report per scenario run under report_dir/<execution_id>/."""

    def __init__(self, test_scenario: TestScenario, report_dir: str | Path):
        self.test_scenario = test_scenario
        self.report_dir = Path(report_dir)

    @property
    def execution_dir(self) -> Path:
        return self.report_dir / self.test_scenario.execution_id

    @property
    def report_file(self) -> Path:
        return self.execution_dir / REPORT_FILE_NAME

    def create_report_folder_requirements(self) -> None:
        """Create the report folder before processes start."""
        self.execution_dir.mkdir(parents=True, exist_ok=True)

    def build_report(self) -> dict[str, Any]:
        scenario = self.test_scenario
        feature = scenario.feature_file
        processes = []
        for process in scenario.processes:
            outcome = process.outcome
            processes.append(
                {
                    "id": process.id,
                    "device": process.device.device_id,
                    "device_kind": process.device.kind,
                    "actor_tag": process.actor_tag,
                    "state": process.state.value,
                    "passed": outcome.passed if outcome else False,
                    "exit_code": outcome.exit_code if outcome else None,
                    "duration_seconds": round(outcome.duration_seconds, 3) if outcome else None,
                    "error": process.error,
                    "output": outcome.output if outcome else None,
                }
            )

        return {
            "execution_id": scenario.execution_id,
            "feature": str(feature.file_path) if feature.file_path else None,
            "feature_name": feature.name,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "passed": all(p["passed"] for p in processes),
            "processes": processes,
        }

    def save_report(self) -> Path:
        """Write the report file.

        Returns:
            Path of the written report
        """
        self.create_report_folder_requirements()
        report = self.build_report()
        self.report_file.write_text(json.dumps(report, indent=2))
        logger.info("report_saved", path=str(self.report_file), passed=report["passed"])
        return self.report_file
