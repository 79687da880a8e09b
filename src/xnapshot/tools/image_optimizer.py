"""Best-effort background optimization of saved screenshots."""
from __future__ import annotations

import logging
import subprocess
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from xnapshot.errors import OptimizationFailure

logger = logging.getLogger(__name__)


class ImageOptimizer:
    """Runs an external optimizer binary on a bounded worker pool.

    ``submit`` never blocks the caller and never raises for optimizer
    problems; failures are logged. ``shutdown`` cancels work that has not
    started yet.
    """

    def __init__(
        self,
        binary: str,
        *,
        max_workers: int = 2,
        timeout_seconds: int = 300,
    ) -> None:
        self.binary = binary
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="xnapshot-optimize"
        )

    def __enter__(self) -> "ImageOptimizer":
        return self

    def __exit__(self, exc_type: object, *exc_info: object) -> None:
        # Queued work is finished on a clean exit and dropped on errors.
        failed = exc_type is not None
        self.shutdown(wait=not failed, cancel_pending=failed)

    def submit(self, path: Path) -> Future:
        return self._executor.submit(self._optimize_logged, path)

    def optimize(self, path: Path) -> None:
        cmd = [self.binary, str(path)]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise OptimizationFailure(f"optimizer binary not found: {self.binary}") from exc
        except subprocess.TimeoutExpired as exc:
            raise OptimizationFailure(
                f"optimizer timed out after {self.timeout_seconds}s on {path}"
            ) from exc
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise OptimizationFailure(
                f"optimizer exited with {result.returncode} on {path}: {detail}"
            )

    def shutdown(self, *, wait: bool = False, cancel_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=cancel_pending)

    def _optimize_logged(self, path: Path) -> bool:
        try:
            self.optimize(path)
        except OptimizationFailure as exc:
            logger.warning("Image optimization skipped: %s", exc)
            return False
        logger.debug("Optimized %s", path)
        return True
