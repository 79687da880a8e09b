import json
from pathlib import Path
from typing import List
from unittest import mock

import pytest

from conftest import FakeDriver
from xnapshot.errors import DeviceNotFound, SessionStartFailure, SessionStartTimeout, VersionNotFound
from xnapshot.runner import (
    RunContext,
    ScreenshotRunner,
    persist_screenshot,
    screenshot_filename,
)
from xnapshot.session import ImageFile
from xnapshot.steps import ScreenshotStep, build_steps

EXPECTED_FILES = [
    "1 iPhone-SE.png",
    "2 iPhone-SE.png",
    "3 iPhone-SE.png",
    "4 iPhone-XS.png",
    "5 iPhone-XS.png",
    "6 iPhone-XS.png",
]


def _open_settings(session) -> None:
    session.state = "settings"


def _three_steps() -> List[ScreenshotStep]:
    return build_steps({2: _open_settings}, count=3)


def _listing(path: Path) -> List[str]:
    return sorted(entry.name for entry in path.iterdir())


def test_screenshots_are_numbered_across_devices(make_config, fake_driver: FakeDriver) -> None:
    config = make_config()

    report = ScreenshotRunner(config, fake_driver).run(_three_steps())

    assert _listing(config.output_dir) == EXPECTED_FILES
    assert report.final_index == 6
    assert report.captured_by_device() == {"iPhone-SE": 3, "iPhone-XS": 3}
    assert report.succeeded
    assert [device_id for _, device_id in fake_driver.started] == ["UUID-SE", "UUID-XS"]
    assert all(bundle == config.app_bundle_path for bundle, _ in fake_driver.started)


def test_inactive_steps_capture_previous_state(make_config, fake_driver: FakeDriver) -> None:
    config = make_config(device_names=["iPhone-SE"])

    ScreenshotRunner(config, fake_driver).run(_three_steps())

    states = [(config.output_dir / name).read_text(encoding="utf-8") for name in EXPECTED_FILES[:3]]
    assert states == ["launched", "settings", "settings"]


def test_skipping_inactive_steps_only_captures_customized_ones(make_config, fake_driver: FakeDriver) -> None:
    config = make_config(capture_inactive_steps=False)

    report = ScreenshotRunner(config, fake_driver).run(_three_steps())

    assert _listing(config.output_dir) == ["1 iPhone-SE.png", "2 iPhone-XS.png"]
    assert report.final_index == 2
    assert [device.steps_run for device in report.devices] == [3, 3]


def test_steps_run_in_ordinal_order(make_config, fake_driver: FakeDriver) -> None:
    config = make_config(device_names=["iPhone-XS"])
    calls: List[int] = []
    steps = [ScreenshotStep(ordinal, lambda session, n=ordinal: calls.append(n)) for ordinal in (3, 1, 2)]

    ScreenshotRunner(config, fake_driver).run(steps)

    assert calls == [1, 2, 3]


def test_dry_run_executes_steps_without_touching_output(make_config, fake_driver: FakeDriver) -> None:
    config = make_config(save_screenshots=False)
    (config.output_dir / "keep.png").write_bytes(b"old")
    calls: List[str] = []
    steps = build_steps({1: lambda session: calls.append(session.device_id)}, count=3)

    report = ScreenshotRunner(config, fake_driver).run(steps)

    assert calls == ["UUID-SE", "UUID-XS"]
    assert [device.steps_run for device in report.devices] == [3, 3]
    assert fake_driver.captures == 0
    assert _listing(config.output_dir) == ["keep.png"]
    assert (config.output_dir / "keep.png").read_bytes() == b"old"
    assert report.dry_run
    assert report.final_index == 0


def test_second_run_replaces_first_run_files(make_config, fake_driver: FakeDriver) -> None:
    config = make_config()
    runner = ScreenshotRunner(config, fake_driver)

    runner.run(_three_steps())
    (config.output_dir / "stale.png").write_bytes(b"stale")
    report = runner.run(_three_steps())

    assert _listing(config.output_dir) == EXPECTED_FILES
    assert report.final_index == 6


def test_step_failure_only_stops_its_device(make_config, fake_driver: FakeDriver) -> None:
    config = make_config()

    def fail_on_se(session) -> None:
        if session.device_id == "UUID-SE":
            raise RuntimeError("button not found")

    report = ScreenshotRunner(config, fake_driver).run(build_steps({2: fail_on_se}, count=3))

    se, xs = report.devices
    assert se.captured == 1
    assert se.steps_run == 1
    assert se.failure is not None and se.failure.ordinal == 2
    assert isinstance(se.failure.cause, RuntimeError)
    assert xs.captured == 3
    assert xs.failure is None
    assert not report.succeeded
    assert _listing(config.output_dir) == ["1 iPhone-SE.png", "2 iPhone-XS.png", "3 iPhone-XS.png", "4 iPhone-XS.png"]


def test_capture_failure_is_reported_as_step_failure(make_config, fake_driver: FakeDriver) -> None:
    config = make_config(device_names=["iPhone-XS"])

    with mock.patch("conftest.FakeSession.capture_screenshot", side_effect=OSError("disk full")):
        report = ScreenshotRunner(config, fake_driver).run(_three_steps())

    device = report.devices[0]
    assert device.failure is not None and device.failure.ordinal == 1
    assert device.captured == 0
    assert report.final_index == 0


def test_session_start_failure_aborts_run(make_config, tmp_path: Path) -> None:
    driver = FakeDriver(tmp_path / "captures", fail_device="UUID-XS")
    config = make_config()

    with pytest.raises(SessionStartFailure, match="iPhone-XS"):
        ScreenshotRunner(config, driver).run(_three_steps())

    assert _listing(config.output_dir) == EXPECTED_FILES[:3]


def test_driver_start_failure_names_the_device(make_config, fake_driver: FakeDriver) -> None:
    config = make_config()

    with mock.patch.object(
        fake_driver, "start_app", side_effect=SessionStartTimeout("UUID-SE", "simctl bootstatus timed out")
    ):
        with pytest.raises(SessionStartTimeout) as excinfo:
            ScreenshotRunner(config, fake_driver).run(_three_steps())

    assert excinfo.value.device_name == "iPhone-SE"
    assert excinfo.value.detail == "simctl bootstatus timed out"
    assert "Failed to start app on iPhone-SE" in str(excinfo.value)
    assert "UUID-SE" not in str(excinfo.value)


@pytest.mark.parametrize(
    "overrides, error",
    [
        ({"device_names": ["iPhone-SE", "iPhone-7"]}, DeviceNotFound),
        ({"os_version": "iOS-9-2"}, VersionNotFound),
    ],
)
def test_resolution_errors_happen_before_side_effects(
    make_config, fake_driver: FakeDriver, overrides, error
) -> None:
    config = make_config(**overrides)
    (config.output_dir / "keep.png").write_bytes(b"old")

    with pytest.raises(error):
        ScreenshotRunner(config, fake_driver).run(_three_steps())

    assert fake_driver.started == []
    assert _listing(config.output_dir) == ["keep.png"]


def test_optimizer_receives_every_saved_screenshot(make_config, fake_driver: FakeDriver) -> None:
    config = make_config(optimize_after_save=True, device_names=["iPhone-SE"])
    optimizer = mock.Mock()

    ScreenshotRunner(config, fake_driver, optimizer=optimizer).run(_three_steps())

    submitted = [call.args[0].name for call in optimizer.submit.call_args_list]
    assert submitted == EXPECTED_FILES[:3]


def test_optimizer_not_used_when_disabled(make_config, fake_driver: FakeDriver) -> None:
    optimizer = mock.Mock()

    ScreenshotRunner(make_config(), fake_driver, optimizer=optimizer).run(_three_steps())

    optimizer.submit.assert_not_called()


def test_runner_creates_and_releases_its_own_optimizer(make_config, fake_driver: FakeDriver) -> None:
    config = make_config(optimize_after_save=True, device_names=["iPhone-SE"])

    with mock.patch("xnapshot.runner.ImageOptimizer") as optimizer_cls:
        runner = ScreenshotRunner(config, fake_driver)
        runner.run(_three_steps())

    optimizer_cls.assert_called_once_with(config.optimizer_bin)
    assert optimizer_cls.return_value.submit.call_count == 3
    optimizer_cls.return_value.shutdown.assert_called_once_with(wait=False, cancel_pending=False)
    assert runner.optimizer is None


def test_report_serializes_to_json(make_config, fake_driver: FakeDriver, tmp_path: Path) -> None:
    report = ScreenshotRunner(make_config(device_names=["iPhone-XS"]), fake_driver).run(_three_steps())

    path = report.write(tmp_path / "reports" / "run.json")
    data = json.loads(path.read_text(encoding="utf-8"))

    assert data["final_index"] == 3
    assert data["dry_run"] is False
    assert data["devices"][0]["name"] == "iPhone-XS"
    assert data["devices"][0]["identifier"] == "UUID-XS"
    assert data["devices"][0]["status"] == "passed"
    assert data["devices"][0]["captured"] == 3
    assert data["devices"][0]["failed_step"] is None


def test_persist_screenshot_keeps_extension(tmp_path: Path) -> None:
    source = tmp_path / "temp.jpeg"
    source.write_bytes(b"jpeg")
    output = tmp_path / "out"
    output.mkdir()

    path = persist_screenshot(ImageFile(path=source), 12, "iPad-Air-2", output)

    assert path == output / "12 iPad-Air-2.jpeg"
    assert path.read_bytes() == b"jpeg"
    assert not source.exists()
    assert screenshot_filename(1, "iPhone-XS", ".png") == "1 iPhone-XS.png"


def test_run_context_counts_up() -> None:
    context = RunContext()

    assert [context.next_index() for _ in range(3)] == [1, 2, 3]
    assert context.screenshot_index == 3
