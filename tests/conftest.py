from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

from xnapshot.config import RunConfiguration
from xnapshot.session import ImageFile

DEVICE_SET_PLIST = b"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>DefaultDevices</key>
    <dict>
        <key>com.apple.CoreSimulator.SimRuntime.iOS-12-2</key>
        <dict>
            <key>com.apple.CoreSimulator.SimDeviceType.iPhone-XS</key>
            <string>UUID-XS</string>
            <key>com.apple.CoreSimulator.SimDeviceType.iPhone-SE</key>
            <string>UUID-SE</string>
            <key>com.apple.CoreSimulator.SimDeviceType.iPad-Air-2</key>
            <string>UUID-IPAD</string>
        </dict>
        <key>com.apple.CoreSimulator.SimRuntime.watchOS-5-2</key>
        <dict>
            <key>com.apple.CoreSimulator.SimDeviceType.Apple-Watch-Series-4-40mm</key>
            <string>UUID-WATCH</string>
        </dict>
    </dict>
    <key>Version</key>
    <integer>0</integer>
</dict>
</plist>
"""


class FakeSession:
    def __init__(self, driver: "FakeDriver", device_id: str) -> None:
        self.driver = driver
        self.device_id = device_id
        self.state = "launched"

    def capture_screenshot(self, label: str) -> ImageFile:
        self.driver.captures += 1
        path = self.driver.capture_dir / f"{self.device_id}-{label}-{self.driver.captures}.png"
        path.write_text(self.state, encoding="utf-8")
        return ImageFile(path=path)


class FakeDriver:
    def __init__(self, capture_dir: Path, fail_device: Optional[str] = None) -> None:
        self.capture_dir = capture_dir
        self.capture_dir.mkdir(parents=True, exist_ok=True)
        self.fail_device = fail_device
        self.started: List[Tuple[Path, str]] = []
        self.captures = 0
        self.closed = False

    def __enter__(self) -> "FakeDriver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.closed = True

    def start_app(self, bundle_path: Path, device_id: str) -> FakeSession:
        if device_id == self.fail_device:
            raise RuntimeError("simulator refused to boot")
        self.started.append((bundle_path, device_id))
        return FakeSession(self, device_id)


@pytest.fixture
def device_set_path(tmp_path: Path) -> Path:
    path = tmp_path / "device_set.plist"
    path.write_bytes(DEVICE_SET_PLIST)
    return path


@pytest.fixture
def app_bundle(tmp_path: Path) -> Path:
    bundle = tmp_path / "Example.app"
    bundle.mkdir()
    return bundle


@pytest.fixture
def make_config(
    tmp_path: Path, device_set_path: Path, app_bundle: Path
) -> Callable[..., RunConfiguration]:
    def factory(**overrides) -> RunConfiguration:
        values = {
            "output_dir": tmp_path / "screenshots",
            "app_bundle_path": app_bundle,
            "os_version": "iOS-12-2",
            "device_names": ["iPhone-SE", "iPhone-XS"],
            "device_set_path": device_set_path,
        }
        values.update(overrides)
        return RunConfiguration(**values)

    return factory


@pytest.fixture
def fake_driver(tmp_path: Path) -> FakeDriver:
    return FakeDriver(tmp_path / "captures")
