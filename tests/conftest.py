"""Shared test fixtures for parascenario tests.

Fixtures here wire the mock collaborators from tests.mocks:
- config: fast OrchestratorConfig rooted in a temp directory
- make_feature: writes and parses a feature file
- device_factory / app: fake devices and a recording parent application
"""

from pathlib import Path

import pytest

from parascenario.config import ENV_VARS, OrchestratorConfig
from parascenario.feature import FeatureFile
from tests.mocks import FakeDeviceFactory, RecordingApp


def feature_text(count: int, name: str = "Chat between users") -> str:
    """Feature file text with count correctly tagged scenarios."""
    lines = [f"Feature: {name}", ""]
    for index in range(1, count + 1):
        lines += [
            f"  @user{index}",
            f"  Scenario: user {index} sends a message",
            "    Given I open the chat",
            f'    When I send "hello from {index}"',
            "",
        ]
    return "\n".join(lines)


@pytest.fixture
def make_feature(tmp_path: Path):
    """Write a feature file and parse it."""

    def _make(count: int = 1, text: str | None = None, name: str = "chat.feature") -> FeatureFile:
        path = tmp_path / name
        path.write_text(text if text is not None else feature_text(count))
        return FeatureFile.load(path)

    return _make


@pytest.fixture
def config(tmp_path: Path) -> OrchestratorConfig:
    """Fast configuration rooted in a temp directory."""
    return OrchestratorConfig(
        poll_interval=0.01,
        spawn_stagger=0.0,
        process_timeout=2.0,
        work_dir=tmp_path / "work",
        report_dir=tmp_path / "reports",
    )


@pytest.fixture
def device_factory() -> FakeDeviceFactory:
    return FakeDeviceFactory()


@pytest.fixture
def app() -> RecordingApp:
    return RecordingApp()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path: Path):
    """Keep tests away from the user's config file and environment."""
    for var in ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("parascenario.shared.paths.PARASCENARIO_DIR", tmp_path / "home")
    monkeypatch.setattr("parascenario.config.CONFIG_FILE", tmp_path / "home" / "config.yaml")
