"""Capture policies applied by the screenshot runner."""
from __future__ import annotations

from dataclasses import dataclass

from xnapshot.steps import ScreenshotStep


@dataclass(frozen=True)
class CapturePolicy:
    """Decides whether a step is followed by a screenshot.

    A step without a customized action still captures by default, which
    repeats the state left behind by the previous step.
    """

    save_screenshots: bool = True
    capture_inactive_steps: bool = True

    @property
    def dry_run(self) -> bool:
        return not self.save_screenshots

    def allow_capture(self, step: ScreenshotStep) -> bool:
        if not self.save_screenshots:
            return False
        return step.is_customized or self.capture_inactive_steps
