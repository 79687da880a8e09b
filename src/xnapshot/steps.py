"""Ordered "prepare app state" steps run before each screenshot."""
from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping

StepAction = Callable[[Any], None]


def _keep_state(session: Any) -> None:
    """Leave the app in whatever state the previous step produced."""


@dataclass(frozen=True)
class ScreenshotStep:
    """One numbered step. ``action`` receives the running app session."""

    ordinal: int
    action: StepAction = field(default=_keep_state, compare=False)
    is_customized: bool = True

    def __post_init__(self) -> None:
        if self.ordinal < 1:
            raise ValueError(f"Step ordinals start at 1, got {self.ordinal}")
        if not callable(self.action):
            raise TypeError(
                f"Step {self.ordinal} action must be callable, got {type(self.action).__name__}"
            )

    @classmethod
    def inactive(cls, ordinal: int) -> "ScreenshotStep":
        return cls(ordinal=ordinal, action=_keep_state, is_customized=False)

    def run(self, session: Any) -> None:
        self.action(session)


def build_steps(actions: Mapping[int, StepAction], count: int | None = None) -> List[ScreenshotStep]:
    """Build ordinals ``1..count`` from a mapping of customized actions.

    Ordinals without an action become inactive steps. ``count`` defaults to
    the highest customized ordinal.
    """
    for ordinal in actions:
        if ordinal < 1:
            raise ValueError(f"Step ordinals start at 1, got {ordinal}")
    highest = max(actions, default=0)
    if count is None:
        count = highest
    elif count < highest:
        raise ValueError(f"Step count {count} is lower than the highest ordinal {highest}")
    return [
        ScreenshotStep(ordinal, actions[ordinal]) if ordinal in actions else ScreenshotStep.inactive(ordinal)
        for ordinal in range(1, count + 1)
    ]


def ordered_steps(steps: Iterable[ScreenshotStep]) -> List[ScreenshotStep]:
    """Sort by ordinal and reject duplicates."""
    result = sorted(steps, key=lambda step: step.ordinal)
    seen = set()
    for step in result:
        if step.ordinal in seen:
            raise ValueError(f"Duplicate screenshot step ordinal {step.ordinal}")
        seen.add(step.ordinal)
    return result


def coerce_steps(source: Any) -> List[ScreenshotStep]:
    if callable(source) and not isinstance(source, (list, tuple, dict)):
        source = source()
    if isinstance(source, Mapping):
        return build_steps(source)
    if isinstance(source, (list, tuple)):
        for item in source:
            if not isinstance(item, ScreenshotStep):
                raise TypeError(f"Expected ScreenshotStep entries, got {type(item).__name__}")
        return ordered_steps(source)
    raise TypeError(
        "Steps must be a list of ScreenshotStep, a mapping of ordinal to action, "
        "or a factory returning one of them"
    )


def load_steps(reference: str) -> List[ScreenshotStep]:
    """Import steps from ``package.module:attribute``."""
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Step reference must look like 'module:attribute', got {reference!r}")
    module = importlib.import_module(module_name)
    try:
        source = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"Module {module_name} has no attribute {attribute!r}") from exc
    return coerce_steps(source)
