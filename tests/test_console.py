"""Tests for the Rich console reporter and the arrow-key prompt."""

import pytest

import vvecon_setup
from vvecon_setup import ConsoleReporter, console, select_with_arrows
from vvecon_setup.runner import (
    ProductionEnvironmentError,
    RunResult,
    SelectionCancelled,
    Step,
    StepFailure,
    cmd,
)

OPTIONS = {"no": "No, skip it", "yes": "Yes, let's do it"}


def press(monkeypatch, *keys):
    """Feed keypresses to the prompt; an exception instance is raised instead."""
    pending = iter(keys)

    def _get_key():
        key = next(pending)
        if isinstance(key, BaseException):
            raise key
        return key

    monkeypatch.setattr(vvecon_setup, "get_key", _get_key)


class TestSelectWithArrows:
    def test_enter_selects_default(self, monkeypatch):
        press(monkeypatch, "enter")

        assert select_with_arrows(OPTIONS, "Build?", "no") == "no"

    def test_arrow_moves_selection(self, monkeypatch):
        press(monkeypatch, "down", "enter")

        assert select_with_arrows(OPTIONS, "Build?", "no") == "yes"

    def test_up_wraps_around(self, monkeypatch):
        press(monkeypatch, "up", "enter")

        assert select_with_arrows(OPTIONS, "Build?", "no") == "yes"

    def test_escape_cancels_selection(self, monkeypatch):
        press(monkeypatch, "escape")

        with pytest.raises(SelectionCancelled):
            select_with_arrows(OPTIONS, "Build?", "no")

    def test_ctrl_c_is_not_a_cancellation(self, monkeypatch):
        press(monkeypatch, "down", KeyboardInterrupt())

        with pytest.raises(KeyboardInterrupt):
            select_with_arrows(OPTIONS, "Build?", "no")


class TestConsoleReporter:
    def make_reporter(self):
        reporter = ConsoleReporter(animate=False, fun=False)
        reporter.run_started(10)
        return reporter

    def test_guard_failure_prints_no_step_tree(self):
        reporter = self.make_reporter()
        error = ProductionEnvironmentError("production", ".env")
        result = RunResult(total=10, failure=StepFailure(index=0, label="Environment check", cause=error))

        with console.capture() as capture:
            reporter.guard_failed(error)
            reporter.run_finished(result)

        output = capture.get()
        assert "PRODUCTION ENVIRONMENT DETECTED" in output
        assert "VVECON Project Setup" not in output

    def test_step_failure_prints_step_tree(self):
        reporter = self.make_reporter()
        step = Step("install", "Installing dependencies", lambda ctx: None)
        reporter.step_started(1, 10, step)
        reporter.step_failed(1, step, RuntimeError("boom"))

        with console.capture() as capture:
            reporter.run_finished(RunResult(total=10, failure=StepFailure(1, step.title, RuntimeError("boom"))))

        output = capture.get()
        assert "VVECON Project Setup" in output
        assert "Installing dependencies" in output

    def test_command_text_is_not_markup(self):
        reporter = self.make_reporter()

        with console.capture() as capture:
            reporter.command_started(2, cmd("php", "artisan", "[bold]x", text="Running"))

        assert "[bold]x" in capture.get()
