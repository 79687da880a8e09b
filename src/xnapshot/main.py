"""Entry-point CLI for taking simulator screenshots."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from xnapshot.config import RunConfiguration
from xnapshot.errors import XnapshotError
from xnapshot.runner import RunReport, ScreenshotRunner
from xnapshot.steps import load_steps
from xnapshot.tools.device_catalog import DeviceCatalog, DeviceType
from xnapshot.tools.image_optimizer import ImageOptimizer
from xnapshot.tools.simctl_driver import SimctlAppDriver

console = Console()
app = typer.Typer(help="Take App Store screenshots on every configured iOS simulator")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _fail(message: str) -> None:
    console.print(f"[bold red]{escape(message)}[/bold red]")
    raise typer.Exit(code=1)


@app.command()
def run(
    os_version: str = typer.Option(..., help="Simulator runtime label, e.g. iOS-12-2"),
    device: List[str] = typer.Option(..., "--device", help="Simulator name, repeat for more"),
    app_bundle: Path = typer.Option(..., exists=True, help="Path to the .app bundle"),
    app_id: str = typer.Option(..., help="Bundle identifier used to launch the app"),
    steps: str = typer.Option(..., help="Screenshot steps as 'module:attribute'"),
    output: Path = typer.Option(Path("screenshots"), help="Directory for screenshots"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Run every step but save nothing"),
    optimize: bool = typer.Option(False, "--optimize", help="Optimize images after saving"),
    skip_inactive_steps: bool = typer.Option(
        False,
        "--skip-inactive-steps",
        help="Do not take a screenshot after steps without a customized action",
    ),
    device_set: Optional[Path] = typer.Option(None, help="Override the device_set.plist path"),
    report: Optional[Path] = typer.Option(None, help="Write a JSON run report to this path"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Launch the app on each simulator and capture every step."""
    _configure_logging(verbose)
    try:
        config = RunConfiguration.from_env(
            output_dir=output,
            app_bundle_path=app_bundle,
            os_version=os_version,
            device_names=device,
            save_screenshots=False if dry_run else None,
            optimize_after_save=True if optimize else None,
            capture_inactive_steps=False if skip_inactive_steps else None,
            device_set_path=device_set,
        )
        step_list = load_steps(steps)
    except ValidationError as exc:
        _fail(f"Invalid configuration:\n{exc}")
    except (ImportError, ValueError, TypeError) as exc:
        _fail(f"Could not load screenshot steps: {exc}")

    driver = SimctlAppDriver(
        app_id=app_id,
        xcrun_bin=os.getenv("XNAPSHOT_XCRUN", "xcrun"),
    )
    with driver, ImageOptimizer(config.optimizer_bin) as optimizer:
        runner = ScreenshotRunner(config, driver, optimizer=optimizer)
        console.log(f"Taking screenshots for {', '.join(config.device_names)}...")
        try:
            result = runner.run(step_list)
        except XnapshotError as exc:
            _fail(str(exc))

    if report:
        result.write(report)
    _print_summary(result)
    if not result.succeeded:
        raise typer.Exit(code=1)
    console.print("\n[bold green]Screenshots complete[/bold green]")


@app.command()
def devices(
    os_version: str = typer.Option(..., help="Simulator runtime label, e.g. iOS-12-2"),
    device_type: Optional[DeviceType] = typer.Option(None, "--type", help="Only list this device type"),
    device_set: Optional[Path] = typer.Option(None, help="Override the device_set.plist path"),
):
    """List simulator names available for an OS version."""
    try:
        catalog = DeviceCatalog.from_path(device_set)
        names = catalog.available_names(os_version, device_type)
    except XnapshotError as exc:
        _fail(str(exc))
    for name in names:
        console.print(name)


def _print_summary(report: RunReport) -> None:
    title = "Screenshot summary (dry run)" if report.dry_run else "Screenshot summary"
    table = Table(title=title)
    table.add_column("Device")
    table.add_column("Status")
    table.add_column("Steps", justify="right")
    table.add_column("Screenshots", justify="right")
    table.add_column("Error")

    for device in report.devices:
        table.add_row(
            device.device.name,
            device.status,
            str(device.steps_run),
            str(device.captured),
            str(device.failure or ""),
        )

    console.print(table)
    console.print(f"Last screenshot index: {report.final_index}")


if __name__ == "__main__":
    app()
