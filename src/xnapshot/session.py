"""Interfaces of the app-driving collaborator."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class ImageFile:
    path: Path

    @property
    def extension(self) -> str:
        return self.path.suffix


class AppSession(Protocol):
    def capture_screenshot(self, label: str) -> ImageFile:
        ...


class AppDriver(Protocol):
    def start_app(self, bundle_path: Path, device_id: str) -> AppSession:
        ...
