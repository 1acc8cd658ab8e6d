"""Unit tests for the TestScenario orchestrator."""

import asyncio
import contextlib
import itertools
import time
from unittest.mock import MagicMock

import pytest
from structlog.contextvars import get_contextvars

from parascenario.errors import DeviceAllocationError, FeatureSyntaxError, ProcessTimeoutError
from parascenario.feature import FeatureFile
from parascenario.process import DeviceProcess
from parascenario.registry import ProcessState
from parascenario.scenario import TestScenario
from tests.conftest import feature_text
from tests.mocks import FakeBehavior, FakeDevice, FakeDeviceFactory

BAD_FEATURE = """Feature: Broken

  Scenario: nobody
    Given nothing
"""


class TestConstruction:
    """Tests for TestScenario construction."""

    def test_execution_id_is_random_hex(self, make_feature, app, config, device_factory):
        first = TestScenario(make_feature(1), app, config=config, device_factory=device_factory)
        second = TestScenario(make_feature(1), app, config=config, device_factory=device_factory)

        assert len(first.execution_id) == 20
        int(first.execution_id, 16)
        assert first.execution_id != second.execution_id

    def test_registry_is_namespaced_by_execution_id(self, make_feature, app, config, device_factory):
        scenario = TestScenario(
            make_feature(1), app, config=config, device_factory=device_factory, execution_id="run1"
        )

        assert scenario.registry.run_dir == config.work_dir / "run1"

    def test_nothing_allocated_on_construction(self, make_feature, app, config, device_factory):
        TestScenario(make_feature(3), app, config=config, device_factory=device_factory)

        assert device_factory.calls == 0


class TestValidation:
    """Tests for feature syntax validation."""

    @pytest.mark.asyncio
    async def test_invalid_feature_raises_before_allocation(self, make_feature, app, config, device_factory):
        scenario = TestScenario(
            make_feature(text=BAD_FEATURE), app, config=config, device_factory=device_factory
        )

        with pytest.raises(FeatureSyntaxError, match="one unique @user tag") as exc_info:
            await scenario.run()

        assert device_factory.calls == 0
        assert scenario.processes == []
        assert app.finished == []
        assert exc_info.value.data["problems"]


class TestRun:
    """Tests for a full orchestrated run."""

    @pytest.mark.asyncio
    async def test_all_processes_finish(self, make_feature, app, config, device_factory):
        scenario = TestScenario(make_feature(3), app, config=config, device_factory=device_factory)

        result = await scenario.run()

        assert device_factory.calls == 3
        assert [p.id for p in scenario.processes] == [1, 2, 3]
        assert all(p.state == ProcessState.FINISHED for p in scenario.processes)
        assert result.finished_ids == {1, 2, 3}
        assert app.finished == [scenario]
        assert scenario.reporter.report_file.exists()
        assert not scenario.paths.run_dir.exists()
        assert not scenario.paths.scratch_dir.exists()

    @pytest.mark.asyncio
    async def test_cleanup_report_and_notify_once_in_order(self, make_feature, app, config, device_factory):
        scenario = TestScenario(make_feature(2), app, config=config, device_factory=device_factory)
        calls = []
        scenario.delete_support_files_and_directories = MagicMock(
            side_effect=lambda: calls.append("cleanup")
        )
        scenario.reporter = MagicMock()
        scenario.reporter.save_report.side_effect = lambda: calls.append("report")
        scenario.app = MagicMock()
        scenario.app.on_test_scenario_finished.side_effect = lambda s: calls.append("notify")

        await scenario.run()

        # One cleanup before the run, then cleanup/report/notify exactly once each
        assert calls == ["cleanup", "cleanup", "report", "notify"]
        scenario.reporter.create_report_folder_requirements.assert_called_once()
        scenario.app.on_test_scenario_finished.assert_called_once_with(scenario)

    @pytest.mark.asyncio
    async def test_processes_registered_before_spawn(self, make_feature, app, config):
        registered_at_spawn = []

        factory = FakeDeviceFactory()
        scenario = TestScenario(make_feature(3), app, config=config, device_factory=factory)

        original_execute = scenario.execute

        async def spying_execute():
            registered_at_spawn.append(scenario.registry.registered_ids())
            await original_execute()

        scenario.execute = spying_execute
        await scenario.run()

        assert registered_at_spawn == [{1, 2, 3}]

    @pytest.mark.asyncio
    async def test_dictionary_written_for_workers(self, make_feature, app, config, device_factory):
        scenario = TestScenario(make_feature(2), app, config=config, device_factory=device_factory)
        scenario.before_execute()

        lookup = scenario.registry.read_dictionary()

        assert lookup[1] == {"device": "fake-1", "kind": "fake", "actor_tag": "@user1"}
        assert lookup[2]["actor_tag"] == "@user2"

    @pytest.mark.asyncio
    async def test_zero_scenarios_completes_trivially(self, make_feature, app, config, device_factory):
        scenario = TestScenario(
            make_feature(text="Feature: Empty\n"), app, config=config, device_factory=device_factory
        )

        result = await scenario.run()

        assert result.polls == 1
        assert scenario.devices == []
        assert app.finished == [scenario]

    @pytest.mark.asyncio
    async def test_failed_process_does_not_raise(self, make_feature, app, config):
        factory = FakeDeviceFactory(
            behaviors=[FakeBehavior(), FakeBehavior(error=OSError("connection lost"))]
        )
        scenario = TestScenario(make_feature(2), app, config=config, device_factory=factory)

        result = await scenario.run()

        assert result.failed_ids == {2}
        assert scenario.processes[1].state == ProcessState.FAILED
        assert app.finished == [scenario]

    @pytest.mark.asyncio
    async def test_spawns_are_staggered(self, make_feature, app, config, monkeypatch):
        config.spawn_stagger = 0.05
        scenario = TestScenario(
            make_feature(3), app, config=config, device_factory=FakeDeviceFactory()
        )

        spawn_times = []
        original_run = DeviceProcess.run

        def timed_run(process):
            spawn_times.append(time.monotonic())
            return original_run(process)

        monkeypatch.setattr(DeviceProcess, "run", timed_run)
        await scenario.run()

        gaps = [b - a for a, b in zip(spawn_times, spawn_times[1:])]
        assert len(gaps) == 2
        assert all(gap >= 0.045 for gap in gaps)

    @pytest.mark.asyncio
    async def test_stagger_does_not_block_event_loop(self, make_feature, app, config):
        config.spawn_stagger = 0.1
        scenario = TestScenario(
            make_feature(2), app, config=config, device_factory=FakeDeviceFactory()
        )
        ticks = 0

        async def ticker():
            nonlocal ticks
            while True:
                ticks += 1
                await asyncio.sleep(0.01)

        task = asyncio.create_task(ticker())
        await scenario.run()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        assert ticks >= 5


class TestFeatureContent:
    """Tests for how the parsed feature drives allocation."""

    @pytest.mark.asyncio
    async def test_doc_string_lines_do_not_allocate_devices(self, make_feature, app, config, device_factory):
        text = (
            "Feature: Transcripts\n"
            "  @user1\n"
            "  Scenario: Alice pastes a transcript\n"
            "    Given I paste:\n"
            '      """\n'
            "      Scenario: not a real scenario\n"
            "      @user2\n"
            '      """\n'
        )
        scenario = TestScenario(
            make_feature(text=text), app, config=config, device_factory=device_factory
        )

        await scenario.run()

        assert device_factory.calls == 1
        assert [p.actor_tag for p in scenario.processes] == ["@user1"]

    @pytest.mark.asyncio
    async def test_rule_scenarios_get_devices(self, make_feature, app, config, device_factory):
        text = (
            "Feature: Rooms\n"
            "  @user1\n"
            "  Scenario: Alice creates a room\n"
            "  @moderation\n"
            "  Rule: Moderators can mute users\n"
            "    @user2\n"
            "    Scenario: Bob mutes Alice\n"
        )
        scenario = TestScenario(
            make_feature(text=text), app, config=config, device_factory=device_factory
        )

        await scenario.run()

        assert device_factory.calls == 2
        assert [p.actor_tag for p in scenario.processes] == ["@user1", "@user2"]


class TestLogContext:
    """Tests for the execution id bound while a run is in progress."""

    @pytest.mark.asyncio
    async def test_process_tasks_see_execution_id(self, make_feature, app, config):
        seen = []

        class ContextDevice(FakeDevice):
            async def run_scenario(self, process):
                seen.append(get_contextvars().get("execution_id"))
                return await super().run_scenario(process)

        numbers = itertools.count(1)

        def factory():
            return ContextDevice(f"ctx-{next(numbers)}", FakeBehavior())

        scenario = TestScenario(
            make_feature(2), app, config=config, device_factory=factory, execution_id="ctx1"
        )

        await scenario.run()

        assert seen == ["ctx1", "ctx1"]
        assert "execution_id" not in get_contextvars()


class TestAllocationFailure:
    """Tests for device allocation errors."""

    @pytest.mark.asyncio
    async def test_allocation_error_propagates(self, make_feature, app, config):
        factory = FakeDeviceFactory(fail_after=1)
        scenario = TestScenario(make_feature(3), app, config=config, device_factory=factory)

        with pytest.raises(DeviceAllocationError):
            await scenario.run()

        assert factory.calls == 2
        assert scenario.processes == []
        assert app.finished == []


class TestTimeout:
    """Tests for the timeout path."""

    @pytest.mark.asyncio
    async def test_stuck_process_times_out(self, make_feature, app, config):
        config.process_timeout = 0.3
        config.poll_interval = 0.05
        factory = FakeDeviceFactory(default=FakeBehavior(hang=True))
        scenario = TestScenario(make_feature(1), app, config=config, device_factory=factory)

        start = time.monotonic()
        with pytest.raises(ProcessTimeoutError):
            await scenario.run()
        elapsed = time.monotonic() - start

        assert 0.3 <= elapsed <= 0.3 + 0.05 + 0.3
        assert app.finished == []
        assert not scenario.reporter.report_file.exists()
        # Outstanding processes are cancelled and artifacts removed
        assert scenario.processes[0].task.cancelled()
        assert factory.devices[0].stopped is True
        assert not scenario.paths.run_dir.exists()

    @pytest.mark.asyncio
    async def test_failed_stalls_when_not_terminal(self, make_feature, app, config):
        config.process_timeout = 0.2
        config.failed_is_terminal = False
        factory = FakeDeviceFactory(default=FakeBehavior(error=OSError("device crashed")))
        scenario = TestScenario(make_feature(1), app, config=config, device_factory=factory)

        with pytest.raises(ProcessTimeoutError):
            await scenario.run()

        assert scenario.processes[0].state == ProcessState.FAILED
        assert app.finished == []


class TestAbort:
    """Tests for runs ending with an exception other than the timeout."""

    @pytest.mark.asyncio
    async def test_cancelled_while_waiting(self, make_feature, app, config):
        factory = FakeDeviceFactory(default=FakeBehavior(hang=True))
        scenario = TestScenario(make_feature(2), app, config=config, device_factory=factory)

        run_task = asyncio.create_task(scenario.run())
        await asyncio.sleep(0.1)
        run_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run_task

        assert all(p.task.cancelled() for p in scenario.processes)
        assert all(device.stopped for device in factory.devices)
        assert not scenario.paths.run_dir.exists()
        assert app.finished == []

    @pytest.mark.asyncio
    async def test_cancelled_between_spawns(self, make_feature, app, config):
        config.spawn_stagger = 5.0
        factory = FakeDeviceFactory(default=FakeBehavior(hang=True))
        scenario = TestScenario(make_feature(3), app, config=config, device_factory=factory)

        run_task = asyncio.create_task(scenario.run())
        await asyncio.sleep(0.1)
        run_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run_task

        # Only the first process was spawned before the pause
        assert scenario.processes[0].task.cancelled()
        assert scenario.processes[1].task is None
        assert factory.devices[0].stopped is True
        assert not scenario.paths.run_dir.exists()

    @pytest.mark.asyncio
    async def test_failing_progress_callback(self, make_feature, app, config):
        factory = FakeDeviceFactory(default=FakeBehavior(hang=True))
        scenario = TestScenario(make_feature(1), app, config=config, device_factory=factory)

        def on_poll(poll, pending):
            raise RuntimeError("progress display closed")

        with pytest.raises(RuntimeError, match="progress display closed"):
            await scenario.run(on_poll)

        assert scenario.processes[0].task.cancelled()
        assert not scenario.paths.run_dir.exists()
        assert app.finished == []


class TestCleanup:
    """Tests for artifact deletion."""

    def test_delete_twice_never_raises(self, make_feature, app, config, device_factory):
        scenario = TestScenario(make_feature(1), app, config=config, device_factory=device_factory)
        scenario.registry.register(1)
        scenario.paths.scratch_dir.mkdir(parents=True)

        scenario.delete_support_files_and_directories()
        scenario.delete_support_files_and_directories()

        assert not scenario.paths.run_dir.exists()
        assert not scenario.paths.scratch_dir.exists()

    @pytest.mark.asyncio
    async def test_leftovers_removed_before_run(self, make_feature, app, config, device_factory):
        scenario = TestScenario(
            make_feature(1), app, config=config, device_factory=device_factory, execution_id="fixed"
        )
        # Stale entry from an earlier run with the same id
        scenario.registry.register(5)

        result = await scenario.run()

        assert result.finished_ids == {1}

    @pytest.mark.asyncio
    async def test_concurrent_runs_do_not_interfere(self, tmp_path, app, config):
        first_path = tmp_path / "first.feature"
        first_path.write_text(feature_text(2))
        second_path = tmp_path / "second.feature"
        second_path.write_text(feature_text(1))

        slow = FakeDeviceFactory(default=FakeBehavior(delay=0.1))
        fast = FakeDeviceFactory()
        first = TestScenario(FeatureFile.load(first_path), app, config=config, device_factory=slow)
        second = TestScenario(FeatureFile.load(second_path), app, config=config, device_factory=fast)

        results = await asyncio.gather(first.run(), second.run())

        assert results[0].finished_ids == {1, 2}
        assert results[1].finished_ids == {1}
        assert len(app.finished) == 2
