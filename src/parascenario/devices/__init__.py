"""Devices that scenarios run on."""

from .allocator import DeviceAllocator, DeviceFactory, device_factory_for
from .android import AndroidDevice, android_factory, connected_devices
from .base import CommandDevice, Device, ScenarioOutcome
from .web import WebDevice, find_browser

__all__ = [
    "Device",
    "CommandDevice",
    "ScenarioOutcome",
    "WebDevice",
    "find_browser",
    "AndroidDevice",
    "android_factory",
    "connected_devices",
    "DeviceAllocator",
    "DeviceFactory",
    "device_factory_for",
]
