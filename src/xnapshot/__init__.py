"""Automated App Store screenshots on iOS simulators."""
from xnapshot.config import RunConfiguration
from xnapshot.runner import RunReport, ScreenshotRunner
from xnapshot.steps import ScreenshotStep, build_steps

__all__ = ["RunConfiguration", "RunReport", "ScreenshotRunner", "ScreenshotStep", "build_steps"]
__version__ = "0.1.0"
