"""Shared fixtures for setup runner tests."""

from pathlib import Path

import pytest

from vvecon_setup.runner import CommandError, Reporter, RunConfig

ENV_TEMPLATE = "APP_NAME=VVECON\nAPP_ENV=local\nAPP_KEY=\nDB_CONNECTION=sqlite\n"


class RecordingExecutor:
    """Fake executor that records argv and fails on request."""

    def __init__(self, fail_on=None, returncode=1, spawn_error_on=None):
        self.calls = []
        self.fail_on = tuple(fail_on) if fail_on else None
        self.returncode = returncode
        self.spawn_error_on = tuple(spawn_error_on) if spawn_error_on else None

    @staticmethod
    def _matches(argv, prefix):
        return prefix is not None and tuple(argv[: len(prefix)]) == prefix

    def __call__(self, argv, config):
        argv = tuple(argv)
        self.calls.append(argv)
        if self._matches(argv, self.spawn_error_on):
            raise CommandError(argv, reason=f"{argv[0]} not found")
        if self._matches(argv, self.fail_on):
            return self.returncode
        return 0

    def count(self, *prefix):
        return sum(1 for c in self.calls if c[: len(prefix)] == prefix)


class CannedChooser:
    """Answers prompts from a dict, falling back to each prompt's default."""

    def __init__(self, answers=None):
        self.answers = answers or {}
        self.asked = []

    def __call__(self, key, options, prompt_text, default_key):
        self.asked.append(key)
        return self.answers.get(key, default_key)


class RecordingReporter(Reporter):
    def __init__(self):
        self.events = []

    def guard_passed(self, detail):
        self.events.append(("guard_passed", detail))

    def guard_failed(self, error):
        self.events.append(("guard_failed", error))

    def step_started(self, index, total, step):
        self.events.append(("started", index, step.key))

    def step_finished(self, index, step, outcome):
        self.events.append(("finished", index, step.key, outcome.status))

    def step_failed(self, index, step, error):
        self.events.append(("failed", index, step.key))

    def progress(self, done, total):
        self.events.append(("progress", done, total))

    def of(self, kind):
        return [e[1:] for e in self.events if e[0] == kind]


@pytest.fixture(autouse=True)
def _no_ambient_app_env(monkeypatch):
    monkeypatch.delenv("APP_ENV", raising=False)


@pytest.fixture
def project(tmp_path) -> Path:
    """Project directory holding only an env template."""
    (tmp_path / ".env.example").write_text(ENV_TEMPLATE)
    return tmp_path


@pytest.fixture
def config(project) -> RunConfig:
    return RunConfig(project_dir=project)


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def chooser():
    return CannedChooser()


@pytest.fixture
def reporter():
    return RecordingReporter()
