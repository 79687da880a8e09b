"""Resolve simulator names and runtime labels against ``device_set.plist``.

CoreSimulator stores its default devices as::

    DefaultDevices
      com.apple.CoreSimulator.SimRuntime.iOS-12-2
        com.apple.CoreSimulator.SimDeviceType.iPhone-XS -> <UDID>
        ...

Callers use the short trailing names (``iOS-12-2``, ``iPhone-XS``); lookups
are ordinal suffix matches and must be unambiguous.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List

from xnapshot.errors import (
    DeviceAmbiguous,
    DeviceNotFound,
    MalformedDocument,
    VersionAmbiguous,
    VersionNotFound,
)
from xnapshot.tools.plist_parser import PlistNode, load_device_set

DEFAULT_DEVICES_KEY = "DefaultDevices"
DEVICE_SET_RELATIVE_PATH = Path("Library/Developer/CoreSimulator/Devices/device_set.plist")


class DeviceType(str, Enum):
    IPHONE = "iPhone"
    IPAD = "iPad"


@dataclass(frozen=True)
class ResolvedDevice:
    identifier: str
    name: str


def default_device_set_path() -> Path:
    return Path.home() / DEVICE_SET_RELATIVE_PATH


def short_name(key: str) -> str:
    """Return the trailing dotted segment of a fully-qualified catalog key."""
    return key.rsplit(".", 1)[-1]


def list_available_device_names(tree: PlistNode, os_version: str) -> List[str]:
    devices = _devices_for_version(tree, os_version)
    return [short_name(key) for key in devices]


def device_names_of_type(
    tree: PlistNode, os_version: str, device_type: DeviceType
) -> List[str]:
    return [
        name
        for name in list_available_device_names(tree, os_version)
        if name.startswith(DeviceType(device_type).value)
    ]


def resolve_devices(
    tree: PlistNode, os_version: str, requested_names: Iterable[str]
) -> List[ResolvedDevice]:
    """Pair each requested name with its UDID, keeping the request order."""
    devices = _devices_for_version(tree, os_version)
    resolved: List[ResolvedDevice] = []
    for requested in requested_names:
        matches = [key for key in devices if key.endswith(requested)]
        if not matches:
            raise DeviceNotFound(requested, [short_name(key) for key in devices])
        if len(matches) > 1:
            raise DeviceAmbiguous(requested, matches)
        key = matches[0]
        resolved.append(ResolvedDevice(identifier=devices[key], name=short_name(key)))
    return resolved


def _devices_for_version(tree: PlistNode, os_version: str) -> Dict[str, str]:
    if not isinstance(tree, dict):
        raise MalformedDocument("Device set root must be a dictionary")
    runtimes = tree.get(DEFAULT_DEVICES_KEY)
    if not isinstance(runtimes, dict):
        raise MalformedDocument(f"Device set has no {DEFAULT_DEVICES_KEY} dictionary")

    matches = [key for key in runtimes if key.endswith(os_version)]
    if not matches:
        raise VersionNotFound(os_version, list(runtimes))
    if len(matches) > 1:
        raise VersionAmbiguous(os_version, matches)

    devices = runtimes[matches[0]]
    if not isinstance(devices, dict):
        raise MalformedDocument(f"Runtime {matches[0]} does not hold a device dictionary")
    for key, value in devices.items():
        if not isinstance(value, str):
            raise MalformedDocument(f"Device {key} has a non-string identifier")
    return devices


class DeviceCatalog:
    """A parsed device set, queried once per run."""

    def __init__(self, tree: PlistNode) -> None:
        self._tree = tree

    @classmethod
    def from_path(cls, path: Path | None = None) -> "DeviceCatalog":
        return cls(load_device_set(path or default_device_set_path()))

    def available_names(
        self, os_version: str, device_type: DeviceType | None = None
    ) -> List[str]:
        if device_type is None:
            return list_available_device_names(self._tree, os_version)
        return device_names_of_type(self._tree, os_version, device_type)

    def resolve(self, os_version: str, requested_names: Iterable[str]) -> List[ResolvedDevice]:
        return resolve_devices(self._tree, os_version, requested_names)
