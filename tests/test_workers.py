import time

import pytest

pytest.importorskip("PyQt6.QtCore")

from PyQt6.QtCore import QCoreApplication, QThreadPool  # noqa: E402

from u3d_auth.workers import BackgroundRunner, SessionTask  # noqa: E402


def _collect(task: SessionTask) -> dict:
    seen: dict = {"result": [], "error": [], "finished": 0}
    task.signals.result.connect(seen["result"].append)
    task.signals.error.connect(seen["error"].append)

    def finished() -> None:
        seen["finished"] += 1

    task.signals.finished.connect(finished)
    return seen


def test_task_emits_result_then_finished() -> None:
    task = SessionTask("auto-login", lambda value: value * 2, 21)
    seen = _collect(task)

    task.run()

    assert seen == {"result": [42], "error": [], "finished": 1}


def test_task_reports_errors_instead_of_raising() -> None:
    def fail():
        raise RuntimeError("offline")

    task = SessionTask("login", fail)
    seen = _collect(task)

    task.run()

    assert seen["result"] == []
    assert [str(exc) for exc in seen["error"]] == ["offline"]
    assert seen["finished"] == 1


@pytest.fixture
def qt_app():
    return QCoreApplication.instance() or QCoreApplication([])


def _pump_until(condition, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not condition() and time.monotonic() < deadline:
        QCoreApplication.processEvents()
        time.sleep(0.01)


def test_runner_delivers_callbacks_and_releases_tasks(qt_app) -> None:
    pool = QThreadPool()
    runner = BackgroundRunner(pool)
    results: list = []
    finished: list = []

    task = runner.submit(
        "profile",
        lambda name: f"hello {name}",
        "neo",
        on_result=results.append,
        on_finished=lambda: finished.append(True),
    )
    assert task in runner.active

    pool.waitForDone(5000)
    _pump_until(lambda: finished)

    assert results == ["hello neo"]
    assert finished == [True]
    assert runner.active == set()


def test_runner_routes_failures_to_the_error_callback(qt_app) -> None:
    pool = QThreadPool()
    runner = BackgroundRunner(pool)
    errors: list = []
    finished: list = []

    def fail() -> None:
        raise RuntimeError("offline")

    runner.submit("login", fail, on_error=errors.append, on_finished=lambda: finished.append(True))

    pool.waitForDone(5000)
    _pump_until(lambda: finished)

    assert [str(exc) for exc in errors] == ["offline"]
    assert runner.active == set()
