"""Drive screenshot steps across simulators and persist the results.

Devices are processed one at a time. For every device the app is launched
once, then each step runs in ordinal order and is followed by a screenshot
when the capture policy allows it. Screenshot indices keep counting across
devices so file names are globally ordered within a run::

    1 iPhone-SE.png, 2 iPhone-SE.png, 3 iPhone-XS.png, ...
"""
from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from xnapshot.config import RunConfiguration
from xnapshot.errors import SessionStartFailure, StepFailure
from xnapshot.session import AppDriver, AppSession, ImageFile
from xnapshot.steps import ScreenshotStep, ordered_steps
from xnapshot.tools.device_catalog import DeviceCatalog, ResolvedDevice
from xnapshot.tools.image_optimizer import ImageOptimizer
from xnapshot.tools.output_dir import reset_output_directory

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """State owned by a single run."""

    screenshot_index: int = 0

    def next_index(self) -> int:
        self.screenshot_index += 1
        return self.screenshot_index


@dataclass
class DeviceReport:
    device: ResolvedDevice
    steps_run: int = 0
    screenshots: List[Path] = field(default_factory=list)
    failure: Optional[StepFailure] = None

    @property
    def captured(self) -> int:
        return len(self.screenshots)

    @property
    def status(self) -> str:
        return "failed" if self.failure else "passed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.device.name,
            "identifier": self.device.identifier,
            "status": self.status,
            "steps_run": self.steps_run,
            "captured": self.captured,
            "screenshots": [str(path) for path in self.screenshots],
            "failed_step": self.failure.ordinal if self.failure else None,
            "error": str(self.failure) if self.failure else None,
        }


@dataclass
class RunReport:
    devices: List[DeviceReport] = field(default_factory=list)
    final_index: int = 0
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        return all(device.failure is None for device in self.devices)

    def captured_by_device(self) -> Dict[str, int]:
        return {report.device.name: report.captured for report in self.devices}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "final_index": self.final_index,
            "devices": [device.to_dict() for device in self.devices],
        }

    def write(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return path


def screenshot_filename(index: int, device_name: str, extension: str) -> str:
    return f"{index} {device_name}{extension}"


def persist_screenshot(image: ImageFile, index: int, device_name: str, output_dir: Path) -> Path:
    """Move a captured image into ``output_dir`` under its run-unique name."""
    destination = output_dir / screenshot_filename(index, device_name, image.extension)
    shutil.move(str(image.path), str(destination))
    return destination


class ScreenshotRunner:
    def __init__(
        self,
        config: RunConfiguration,
        driver: AppDriver,
        *,
        optimizer: ImageOptimizer | None = None,
        catalog: DeviceCatalog | None = None,
    ) -> None:
        self.config = config
        self.driver = driver
        self.optimizer = optimizer
        self._catalog = catalog

    @property
    def catalog(self) -> DeviceCatalog:
        if self._catalog is None:
            self._catalog = DeviceCatalog.from_path(self.config.device_set_path)
        return self._catalog

    def resolve_devices(self) -> List[ResolvedDevice]:
        return self.catalog.resolve(self.config.os_version, self.config.device_names)

    def run(self, steps: Iterable[ScreenshotStep]) -> RunReport:
        """Take every screenshot for every configured device.

        Resolution errors and session start failures abort the run. A failing
        step only stops the remaining steps of its own device.
        """
        step_list = ordered_steps(steps)
        devices = self.resolve_devices()
        policy = self.config.capture_policy

        if policy.save_screenshots:
            reset_output_directory(self.config.output_dir)
        else:
            logger.info("Dry run: steps will run but no screenshots are saved")

        owns_optimizer = False
        if self.config.optimize_after_save and policy.save_screenshots and self.optimizer is None:
            self.optimizer = ImageOptimizer(self.config.optimizer_bin)
            owns_optimizer = True

        context = RunContext()
        report = RunReport(dry_run=policy.dry_run)
        try:
            for device in devices:
                session = self._start_session(device)
                report.devices.append(self._run_device(device, session, step_list, context))
        finally:
            if owns_optimizer:
                # Let queued optimizations finish in the background.
                self.optimizer.shutdown(wait=False, cancel_pending=False)
                self.optimizer = None
        report.final_index = context.screenshot_index
        return report

    def _start_session(self, device: ResolvedDevice) -> AppSession:
        logger.info("Starting %s on %s (%s)", self.config.app_bundle_path, device.name, device.identifier)
        try:
            return self.driver.start_app(self.config.app_bundle_path, device.identifier)
        except SessionStartFailure as exc:
            # Drivers only know the simulator UDID.
            raise type(exc)(device.name, exc.detail) from exc
        except Exception as exc:
            raise SessionStartFailure(device.name, f"{type(exc).__name__}: {exc}") from exc

    def _run_device(
        self,
        device: ResolvedDevice,
        session: AppSession,
        steps: List[ScreenshotStep],
        context: RunContext,
    ) -> DeviceReport:
        policy = self.config.capture_policy
        device_report = DeviceReport(device=device)
        for step in steps:
            try:
                step.run(session)
                device_report.steps_run += 1
                if policy.allow_capture(step):
                    device_report.screenshots.append(self._capture(session, device, step, context))
            except Exception as exc:
                failure = StepFailure(device.name, step.ordinal, exc)
                logger.error("%s; skipping remaining steps for this device", failure)
                device_report.failure = failure
                break
        return device_report

    def _capture(
        self,
        session: AppSession,
        device: ResolvedDevice,
        step: ScreenshotStep,
        context: RunContext,
    ) -> Path:
        image = session.capture_screenshot(f"step-{step.ordinal}")
        index = context.next_index()
        path = persist_screenshot(image, index, device.name, self.config.output_dir)
        logger.info("Saved %s", path.name)
        if self.config.optimize_after_save and self.optimizer is not None:
            self.optimizer.submit(path)
        return path
