"""Sequential step runner with fail-fast semantics.

A run walks an ordered list of steps. Each step either touches the
filesystem directly or delegates to external commands. The first failure
stops the run; nothing is retried and nothing is rolled back. The runner
never exits the process itself, it hands a RunResult back to the caller.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)


class SetupError(Exception):
    """Base class for failures that abort a setup run."""


class FilesystemError(SetupError):
    def __init__(self, path: Path, cause: OSError):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"{path}: {cause.strerror or cause}")


class CommandError(SetupError):
    """External command exited non-zero or could not be spawned.

    returncode is None when the process never started.
    """

    def __init__(self, argv: Sequence[str], returncode: Optional[int] = None, reason: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.reason = reason
        if returncode is None:
            msg = f"Could not run {_fmt_argv(self.argv)}: {reason or 'spawn failed'}"
        else:
            msg = f"Command failed ({returncode}): {_fmt_argv(self.argv)}"
        super().__init__(msg)


class SelectionCancelled(SetupError):
    def __init__(self, prompt: str = ""):
        self.prompt = prompt
        super().__init__("Selection cancelled")


class ProductionEnvironmentError(SetupError):
    def __init__(self, app_env: str, source: str = ""):
        self.app_env = app_env
        self.source = source
        super().__init__(f"APP_ENV={app_env} ({source or 'environment'})")


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


@dataclass(frozen=True)
class RunConfig:
    """Everything a run needs to know about where it executes."""

    project_dir: Path
    search_path: Optional[str] = None
    env_file: str = ".env"
    env_template: str = ".env.example"
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))

    def path(self, *parts: str) -> Path:
        return self.project_dir.joinpath(*parts)

    @property
    def env_path(self) -> Path:
        return self.path(self.env_file)

    @property
    def template_path(self) -> Path:
        return self.path(self.env_template)


@dataclass(frozen=True)
class Command:
    argv: Tuple[str, ...]
    text: str = ""

    @property
    def name(self) -> str:
        return self.argv[0]


def cmd(*argv: str, text: str = "") -> Command:
    return Command(argv=tuple(argv), text=text)


@dataclass(frozen=True)
class StepOutcome:
    status: str = "done"  # done | skipped
    detail: str = ""


DONE = StepOutcome("done")


@dataclass(frozen=True)
class StepFailure:
    index: int
    label: str
    cause: BaseException


@dataclass
class RunResult:
    total: int
    finished: List[int] = field(default_factory=list)
    failure: Optional[StepFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def progress(self) -> int:
        return len(self.finished)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


class Executor(Protocol):
    def __call__(self, argv: Sequence[str], config: RunConfig) -> int:
        ...


class Chooser(Protocol):
    def __call__(
        self,
        key: str,
        options: Dict[str, str],
        prompt_text: str,
        default_key: Optional[str],
    ) -> str:
        ...


class Reporter:
    """Receives run events. The base class ignores all of them."""

    def run_started(self, total: int) -> None:
        pass

    def guard_passed(self, detail: str) -> None:
        pass

    def guard_failed(self, error: BaseException) -> None:
        pass

    def step_started(self, index: int, total: int, step: "Step") -> None:
        pass

    def command_started(self, index: int, command: Command) -> None:
        pass

    def command_finished(self, index: int, command: Command, ok: bool) -> None:
        pass

    def note(self, message: str, style: str = "green") -> None:
        pass

    def step_finished(self, index: int, step: "Step", outcome: StepOutcome) -> None:
        pass

    def step_failed(self, index: int, step: "Step", error: BaseException) -> None:
        pass

    def progress(self, done: int, total: int) -> None:
        pass

    def run_finished(self, result: RunResult) -> None:
        pass


class SubprocessExecutor:
    """Spawn commands with the parent's stdio, resolved against the configured search path."""

    def __call__(self, argv: Sequence[str], config: RunConfig) -> int:
        argv = list(argv)
        search_path = config.search_path if config.search_path is not None else config.environ.get("PATH")
        resolved = shutil.which(argv[0], path=search_path)
        if resolved is None:
            raise CommandError(argv, reason=f"{argv[0]} not found")

        env = dict(config.environ)
        if config.search_path is not None:
            env["PATH"] = config.search_path

        try:
            proc = subprocess.run([resolved, *argv[1:]], cwd=str(config.project_dir), env=env)
        except OSError as e:
            raise CommandError(argv, reason=e.strerror or str(e)) from e
        return proc.returncode


class StepContext:
    """What a step action may do: run commands, ask questions, report notes."""

    def __init__(
        self,
        *,
        index: int,
        total: int,
        config: RunConfig,
        executor: Executor,
        chooser: Chooser,
        reporter: Reporter,
    ):
        self.index = index
        self.total = total
        self.config = config
        self._executor = executor
        self._chooser = chooser
        self.reporter = reporter

    def path(self, *parts: str) -> Path:
        return self.config.path(*parts)

    def run(self, command: Command) -> None:
        logger.info("CMD %s", _fmt_argv(command.argv))
        self.reporter.command_started(self.index, command)
        try:
            returncode = self._executor(command.argv, self.config)
        except CommandError:
            self.reporter.command_finished(self.index, command, ok=False)
            raise
        if returncode != 0:
            self.reporter.command_finished(self.index, command, ok=False)
            raise CommandError(command.argv, returncode)
        self.reporter.command_finished(self.index, command, ok=True)

    def choose(self, key: str, options: Dict[str, str], prompt_text: str, default_key: Optional[str] = None) -> str:
        selected = self._chooser(key, options, prompt_text, default_key)
        if selected not in options:
            raise SelectionCancelled(prompt_text)
        logger.info("Choice %s -> %s", key, selected)
        return selected

    def note(self, message: str, style: str = "green") -> None:
        self.reporter.note(message, style)


StepAction = Callable[[StepContext], Optional[StepOutcome]]


@dataclass(frozen=True)
class Step:
    key: str
    title: str
    action: StepAction


@dataclass(frozen=True)
class Choice:
    key: str
    label: str
    commands: Tuple[Command, ...] = ()
    skip_message: str = ""


def command_step(key: str, title: str, *commands: Command) -> Step:
    """Step that runs a fixed list of commands."""

    def action(ctx: StepContext) -> StepOutcome:
        for command in commands:
            ctx.run(command)
        return DONE

    return Step(key=key, title=title, action=action)


def choice_step(key: str, title: str, prompt_text: str, choices: Sequence[Choice], default_key: Optional[str] = None) -> Step:
    """Step that asks first, then runs the commands mapped to the answer.

    An answer that maps to no commands is a successful, skipped step.
    """
    by_key = {c.key: c for c in choices}
    options = {c.key: c.label for c in choices}

    def action(ctx: StepContext) -> StepOutcome:
        selected = by_key[ctx.choose(key, options, prompt_text, default_key)]
        if not selected.commands:
            if selected.skip_message:
                ctx.note(selected.skip_message, "yellow")
            return StepOutcome("skipped", selected.label)
        for command in selected.commands:
            ctx.run(command)
        return StepOutcome("done", selected.label)

    return Step(key=key, title=title, action=action)


Guard = Callable[[RunConfig], Optional[str]]


def run_steps(
    steps: Sequence[Step],
    config: RunConfig,
    *,
    chooser: Chooser,
    executor: Optional[Executor] = None,
    reporter: Optional[Reporter] = None,
    guards: Sequence[Guard] = (),
) -> RunResult:
    """Run steps in declared order, stopping at the first failure."""

    executor = executor or SubprocessExecutor()
    reporter = reporter or Reporter()
    total = len(steps)
    result = RunResult(total=total)

    reporter.run_started(total)

    for guard in guards:
        try:
            detail = guard(config)
        except (SetupError, OSError) as e:
            logger.error("Guard %s failed: %s", getattr(guard, "__name__", guard), e)
            reporter.guard_failed(e)
            result.failure = StepFailure(index=0, label="Environment check", cause=e)
            reporter.run_finished(result)
            return result
        if detail:
            reporter.guard_passed(detail)

    for index, step in enumerate(steps, start=1):
        logger.info("Running step %d/%d %s", index, total, step.key)
        reporter.step_started(index, total, step)
        ctx = StepContext(
            index=index,
            total=total,
            config=config,
            executor=executor,
            chooser=chooser,
            reporter=reporter,
        )
        try:
            outcome = step.action(ctx) or DONE
        except (SetupError, OSError) as e:
            logger.error("Step %s failed: %s", step.key, e)
            reporter.step_failed(index, step, e)
            result.failure = StepFailure(index=index, label=step.title, cause=e)
            reporter.run_finished(result)
            return result

        result.finished.append(index)
        reporter.step_finished(index, step, outcome)
        reporter.progress(result.progress, total)

    reporter.run_finished(result)
    return result
