"""Run configuration, validated once and frozen afterwards."""
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from xnapshot.policies import CapturePolicy
from xnapshot.tools.device_catalog import default_device_set_path
from xnapshot.tools.output_dir import ensure_output_directory

OS_VERSION_PATTERN = re.compile(r"^[A-Za-z]+-[0-9]+-[0-9]+$")
IMAGEOPTIM_BIN = "/Applications/ImageOptim.app/Contents/MacOS/ImageOptim"
ENV_FLAGS = (
    ("save_screenshots", "XNAPSHOT_SAVE_SCREENSHOTS", True),
    ("optimize_after_save", "XNAPSHOT_OPTIMIZE_AFTER_SAVE", False),
    ("capture_inactive_steps", "XNAPSHOT_CAPTURE_INACTIVE_STEPS", True),
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class RunConfiguration(BaseModel):
    """Everything a screenshot run needs, checked in the order paths, version, devices."""

    model_config = ConfigDict(frozen=True)

    output_dir: Path = Field(description="Directory the screenshots are written to.")
    app_bundle_path: Path = Field(description="Path to the .app bundle under test.")
    os_version: str = Field(description="Simulator runtime label, e.g. iOS-12-2.")
    device_names: List[str] = Field(min_length=1, description="Simulators to run, in order.")
    save_screenshots: bool = True
    optimize_after_save: bool = False
    capture_inactive_steps: bool = True
    device_set_path: Path = Field(default_factory=default_device_set_path)
    optimizer_bin: str = IMAGEOPTIM_BIN

    @field_validator("output_dir")
    @classmethod
    def _create_output_dir(cls, value: Path) -> Path:
        if value.exists() and not value.is_dir():
            raise ValueError(f"Screenshot output path {value} is not a directory")
        return ensure_output_directory(value)

    @field_validator("app_bundle_path")
    @classmethod
    def _bundle_exists(cls, value: Path) -> Path:
        if not value.exists():
            raise ValueError(f"Could not find App bundle at: {value}")
        return value

    @field_validator("os_version")
    @classmethod
    def _check_os_version(cls, value: str) -> str:
        value = value.strip()
        if not OS_VERSION_PATTERN.match(value):
            raise ValueError(
                'os_version must be OS name followed by OS version, separated by "-". '
                f'Example: "iOS-12-2". os_version was: "{value}".'
            )
        return value

    @field_validator("device_names")
    @classmethod
    def _strip_device_names(cls, value: List[str]) -> List[str]:
        names = [name.strip() for name in value]
        if any(not name for name in names):
            raise ValueError("Device names must not be empty")
        return names

    @property
    def capture_policy(self) -> CapturePolicy:
        return CapturePolicy(
            save_screenshots=self.save_screenshots,
            capture_inactive_steps=self.capture_inactive_steps,
        )

    @classmethod
    def from_env(cls, **values: Any) -> "RunConfiguration":
        """Fill unset flags and paths from ``XNAPSHOT_*`` environment variables."""
        for key, env_name, default in ENV_FLAGS:
            if values.get(key) is None:
                values[key] = _env_bool(env_name, default)
        device_set = os.getenv("XNAPSHOT_DEVICE_SET")
        if device_set and values.get("device_set_path") is None:
            values["device_set_path"] = Path(device_set)
        optimizer_bin = os.getenv("XNAPSHOT_OPTIMIZER_BIN")
        if optimizer_bin and values.get("optimizer_bin") is None:
            values["optimizer_bin"] = optimizer_bin
        return cls(**{key: value for key, value in values.items() if value is not None})
