"""App driver backed by ``xcrun simctl``."""
from __future__ import annotations

import logging
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, List

from pydantic import BaseModel, Field, PrivateAttr

from xnapshot.errors import SessionStartFailure, SessionStartTimeout
from xnapshot.session import ImageFile

logger = logging.getLogger(__name__)


def _trim_excerpt(content: str, max_chars: int = 2000) -> str:
    content = (content or "").strip()
    if len(content) <= max_chars:
        return content
    return content[-max_chars:]


class SimctlSession:
    """A launched app on one simulator."""

    def __init__(self, driver: "SimctlAppDriver", device_id: str, screenshot_dir: Path) -> None:
        self.driver = driver
        self.device_id = device_id
        self.screenshot_dir = screenshot_dir
        self._captures = 0

    def capture_screenshot(self, label: str) -> ImageFile:
        self._captures += 1
        safe_label = re.sub(r"[^a-zA-Z0-9_.-]+", "_", label) or "screenshot"
        target = self.screenshot_dir / f"{safe_label}-{self._captures}.png"
        self.driver.simctl("io", self.device_id, "screenshot", str(target))
        return ImageFile(path=target)

    def open_url(self, url: str) -> None:
        self.driver.simctl("openurl", self.device_id, url)

    def terminate(self) -> None:
        self.driver.simctl("terminate", self.device_id, self.driver.app_id)


class SimctlAppDriver(BaseModel):
    """Boots a simulator, installs the bundle and launches the app."""

    app_id: str = Field(description="Bundle identifier of the app under test.")
    xcrun_bin: str = "xcrun"
    command_timeout_seconds: int = Field(default=180, ge=1)
    screenshot_dir: Path | None = None
    _work_dir: Path = PrivateAttr(default=None)
    _owns_work_dir: bool = PrivateAttr(default=False)

    def model_post_init(self, __context: Any) -> None:
        if self.screenshot_dir is not None:
            self.screenshot_dir.mkdir(parents=True, exist_ok=True)
            self._work_dir = self.screenshot_dir
        else:
            self._work_dir = Path(tempfile.mkdtemp(prefix="xnapshot-"))
            self._owns_work_dir = True

    def __enter__(self) -> "SimctlAppDriver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Remove the temporary capture directory. A caller-supplied ``screenshot_dir`` is kept."""
        if self._owns_work_dir and self._work_dir.exists():
            shutil.rmtree(self._work_dir, ignore_errors=True)
        self._owns_work_dir = False

    def simctl(self, *args: str) -> subprocess.CompletedProcess:
        cmd: List[str] = [self.xcrun_bin, "simctl", *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.command_timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise RuntimeError(f"xcrun executable not found: {self.xcrun_bin}") from exc
        if result.returncode != 0:
            output = (result.stdout or "") + "\n" + (result.stderr or "")
            raise RuntimeError(
                f"simctl {args[0]} exited with {result.returncode}: {_trim_excerpt(output)}"
            )
        return result

    def start_app(self, bundle_path: Path, device_id: str) -> SimctlSession:
        steps = [
            ("bootstatus", device_id, "-b"),
            ("install", device_id, str(bundle_path)),
            ("launch", "--terminate-running-process", device_id, self.app_id),
        ]
        for args in steps:
            try:
                self.simctl(*args)
            except subprocess.TimeoutExpired as exc:
                raise SessionStartTimeout(
                    device_id,
                    f"simctl {args[0]} timed out after {self.command_timeout_seconds}s",
                ) from exc
            except RuntimeError as exc:
                raise SessionStartFailure(device_id, str(exc)) from exc
        logger.info("Launched %s on simulator %s", self.app_id, device_id)
        return SimctlSession(self, device_id, self._work_dir)
