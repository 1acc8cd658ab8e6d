"""Mock collaborators for parascenario tests.

Provides fake devices and a recording parent application so the orchestrator
can be exercised without browsers, phones or automation commands.
"""

from .fake_devices import FakeBehavior, FakeDevice, FakeDeviceFactory, RecordingApp

__all__ = ["FakeBehavior", "FakeDevice", "FakeDeviceFactory", "RecordingApp"]
