"""Error taxonomy for screenshot runs."""
from __future__ import annotations

from typing import List, Sequence


class XnapshotError(Exception):
    """Base class for every error raised by the screenshot engine."""


class MalformedDocument(XnapshotError):
    """The device set plist is structurally invalid."""


class DeviceSetNotFound(MalformedDocument):
    """The device set plist does not exist or cannot be read."""


class VersionNotFound(XnapshotError):
    def __init__(self, os_version: str, available: Sequence[str]) -> None:
        self.os_version = os_version
        self.available: List[str] = list(available)
        super().__init__(
            f"No simulator runtime ends with {os_version!r}. "
            f"Available runtimes: {', '.join(self.available) or '<none>'}"
        )


class VersionAmbiguous(XnapshotError):
    def __init__(self, os_version: str, matches: Sequence[str]) -> None:
        self.os_version = os_version
        self.matches: List[str] = list(matches)
        super().__init__(
            f"OS version {os_version!r} matches more than one runtime: {', '.join(self.matches)}"
        )


class DeviceNotFound(XnapshotError):
    """A requested device name has no match in the runtime's catalog."""

    def __init__(self, requested: str, available: Sequence[str]) -> None:
        self.requested = requested
        self.available: List[str] = list(available)
        super().__init__(
            f"Device {requested!r} is not available. "
            f"Available devices: {', '.join(self.available) or '<none>'}"
        )


class DeviceAmbiguous(XnapshotError):
    def __init__(self, requested: str, matches: Sequence[str]) -> None:
        self.requested = requested
        self.matches: List[str] = list(matches)
        super().__init__(
            f"Device {requested!r} matches more than one device type: {', '.join(self.matches)}"
        )


class SessionStartFailure(XnapshotError):
    """The app could not be launched on a simulator. Fatal for the whole run."""

    def __init__(self, device_name: str, detail: str) -> None:
        self.device_name = device_name
        self.detail = detail
        super().__init__(f"Failed to start app on {device_name}: {detail}")


class SessionStartTimeout(SessionStartFailure):
    """A simulator command did not finish within the configured deadline."""


class StepFailure(XnapshotError):
    """An app-preparation step (or its capture) raised for one device."""

    def __init__(self, device_name: str, ordinal: int, cause: BaseException) -> None:
        self.device_name = device_name
        self.ordinal = ordinal
        self.cause = cause
        super().__init__(
            f"Step {ordinal} failed on {device_name}: {type(cause).__name__}: {cause}"
        )


class OptimizationFailure(XnapshotError):
    """The external image optimizer failed. Logged, never raised out of a run."""
