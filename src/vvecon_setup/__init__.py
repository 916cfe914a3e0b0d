#!/usr/bin/env python3
"""
VVECON Setup - project setup wizard for VVECON (Laravel) applications

Usage:
    vvecon-setup setup
    vvecon-setup setup --migrate migrate --no-build --no-optimize
    vvecon-setup check

Runs, in order: composer install, .env provisioning, storage link
recreation, database migration, icon caching, frontend build and
production cache warming. The first failing step aborts the run.
"""

import logging
import os
import random
import shutil
import sys
import time
from pathlib import Path
from typing import Dict, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.text import Text
from rich.live import Live
from rich.align import Align
from rich.table import Table
from rich.tree import Tree
from typer.core import TyperGroup

# For cross-platform keyboard input
import readchar

from .logging_utils import configure_logging
from .runner import (
    Chooser,
    Command,
    ProductionEnvironmentError,
    Reporter,
    RunConfig,
    RunResult,
    SelectionCancelled,
    Step,
    StepOutcome,
    run_steps,
)
from .steps import MIGRATION_CHOICES, REQUIRED_TOOLS, build_steps, check_environment

logger = logging.getLogger(__name__)

# ASCII Art Banner
BANNER = """
██╗   ██╗██╗   ██╗███████╗ ██████╗ ██████╗ ███╗   ██╗
██║   ██║██║   ██║██╔════╝██╔════╝██╔═══██╗████╗  ██║
██║   ██║██║   ██║█████╗  ██║     ██║   ██║██╔██╗ ██║
╚██╗ ██╔╝╚██╗ ██╔╝██╔══╝  ██║     ██║   ██║██║╚██╗██║
 ╚████╔╝  ╚████╔╝ ███████╗╚██████╗╚██████╔╝██║ ╚████║
  ╚═══╝    ╚═══╝  ╚══════╝ ╚═════╝ ╚═════╝ ╚═╝  ╚═══╝
"""

TAGLINE = "VVECON Project Setup Wizard"

MOTIVATION = [
    "🔥 Keep it up!",
    "🚀 Almost there!",
    "💡 Great choice!",
    "✨ Magic is happening...",
    "🎉 You are doing awesome!",
    "🏆 Victory is near!",
    "💪 You've got this!",
    "🌟 Shining bright!",
    "⚡ Powering through!",
    "📈 Progress unlocked!",
    "🎯 Right on target!",
    "🥇 Champion mindset!",
    "🧩 Every step counts!",
    "🌈 Keep pushing forward!",
    "🕹️ Leveling up!",
    "🌍 You're making it happen!",
    "⏳ Patience pays off!",
    "🔥 Crushing it!",
    "🛠️ Building greatness!",
    "🚴 Keep moving forward!",
]

TYPE_DELAY = 0.02

STATUS_SYMBOLS = {
    "pending": "[green dim]○[/green dim]",
    "running": "[cyan]○[/cyan]",
    "done": "[green]●[/green]",
    "error": "[red]●[/red]",
    "skipped": "[yellow]○[/yellow]",
}


class StepTracker:
    """Keep the status of each setup step and render it as a tree."""

    def __init__(self, title: str):
        self.title = title
        self.steps: list[dict] = []

    def _find(self, key: str) -> Optional[dict]:
        return next((s for s in self.steps if s["key"] == key), None)

    def add(self, key: str, label: str):
        if self._find(key) is None:
            self.steps.append({"key": key, "label": label, "status": "pending", "detail": ""})

    def start(self, key: str, detail: str = ""):
        self._update(key, "running", detail)

    def complete(self, key: str, detail: str = ""):
        self._update(key, "done", detail)

    def error(self, key: str, detail: str = ""):
        self._update(key, "error", detail)

    def skip(self, key: str, detail: str = ""):
        self._update(key, "skipped", detail)

    def _update(self, key: str, status: str, detail: str):
        step = self._find(key)
        if step is None:
            step = {"key": key, "label": key, "status": status, "detail": ""}
            self.steps.append(step)
        step["status"] = status
        if detail:
            step["detail"] = detail

    def render(self):
        tree = Tree(f"[cyan]{self.title}[/cyan]", guide_style="grey50")
        for step in self.steps:
            symbol = STATUS_SYMBOLS.get(step["status"], " ")
            label = step["label"]
            detail = step["detail"].strip()
            if step["status"] == "pending":
                text = f"{label} ({detail})" if detail else label
                tree.add(f"{symbol} [bright_black]{text}[/bright_black]")
            elif detail:
                tree.add(f"{symbol} [white]{label}[/white] [bright_black]({detail})[/bright_black]")
            else:
                tree.add(f"{symbol} [white]{label}[/white]")
        return tree


def get_key():
    """Get a single keypress in a cross-platform way using readchar."""
    key = readchar.readkey()

    if key == readchar.key.UP:
        return 'up'
    if key == readchar.key.DOWN:
        return 'down'
    if key == readchar.key.ENTER:
        return 'enter'
    if key == readchar.key.ESC:
        return 'escape'
    if key == readchar.key.CTRL_C:
        raise KeyboardInterrupt

    return key


def select_with_arrows(options: Dict[str, str], prompt_text: str = "Select an option", default_key: str = None) -> str:
    """
    Interactive selection using arrow keys with Rich Live display.

    Args:
        options: Dict with keys as option keys and values as labels
        prompt_text: Text to show above the options
        default_key: Default option key to start with

    Returns:
        Selected option key

    Raises:
        SelectionCancelled: on Esc
        KeyboardInterrupt: on Ctrl+C
    """
    option_keys = list(options.keys())
    selected_index = option_keys.index(default_key) if default_key in option_keys else 0

    def create_selection_panel():
        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", justify="left", width=3)
        table.add_column(style="white", justify="left")

        for i, key in enumerate(option_keys):
            marker = "▶" if i == selected_index else " "
            table.add_row(marker, f"[cyan]{options[key]}[/cyan] [dim]({key})[/dim]")

        table.add_row("", "")
        table.add_row("", "[dim]Use ↑/↓ to navigate, Enter to select, Esc to cancel[/dim]")

        return Panel(
            table,
            title=f"[bold]{prompt_text}[/bold]",
            border_style="cyan",
            padding=(1, 2)
        )

    console.print()

    with Live(create_selection_panel(), console=console, transient=True, auto_refresh=False) as live:
        while True:
            # Ctrl+C surfaces from get_key as KeyboardInterrupt and ends the run.
            key = get_key()
            if key == 'up':
                selected_index = (selected_index - 1) % len(option_keys)
            elif key == 'down':
                selected_index = (selected_index + 1) % len(option_keys)
            elif key == 'enter':
                break
            elif key == 'escape':
                console.print("\n[yellow]Selection cancelled[/yellow]")
                raise SelectionCancelled(prompt_text)

            live.update(create_selection_panel(), refresh=True)

    selected_key = option_keys[selected_index]
    console.print(f"[cyan]{prompt_text}[/cyan] {options[selected_key]}")
    return selected_key


def make_chooser(answers: Dict[str, Optional[str]], interactive: bool) -> Chooser:
    """Answer from CLI options first, then the arrow-key prompt, then the default."""

    def choose(key: str, options: Dict[str, str], prompt_text: str, default_key: Optional[str]) -> str:
        answer = answers.get(key)
        if answer is not None:
            return answer
        if interactive:
            return select_with_arrows(options, prompt_text, default_key)
        return default_key if default_key in options else next(iter(options))

    return choose


console = Console()


def typewriter(message: str, style: str = "", animate: bool = True, delay: float = TYPE_DELAY):
    """Print message one character at a time."""
    if not animate or not console.is_terminal:
        console.print(message, style=style, highlight=False, markup=False)
        return
    for char in message:
        console.print(char, style=style, end="", highlight=False, markup=False)
        time.sleep(delay)
    console.print()


class ConsoleReporter(Reporter):
    """Render run events on the Rich console."""

    def __init__(self, animate: bool = True, fun: bool = True):
        self.animate = animate
        self.fun = fun
        self.tracker = StepTracker("VVECON Project Setup")
        self._total = 0

    def _beep(self, count: int = 1):
        if self.fun:
            for _ in range(count):
                console.bell()

    def _motivate(self):
        if self.fun:
            console.print()
            typewriter(random.choice(MOTIVATION), "bright_cyan", self.animate)
            console.print()

    def guard_passed(self, detail: str) -> None:
        typewriter(f"✓ {detail}", "green", self.animate)

    def guard_failed(self, error: BaseException) -> None:
        self._beep(2)
        if isinstance(error, ProductionEnvironmentError):
            panel = Panel(
                f"APP_ENV is [bold]{error.app_env}[/bold] (from {error.source}).\n"
                "This setup script is designed for development environments only.\n"
                "Running this script in production may cause data loss or system issues.\n\n"
                "[yellow]If you are sure you want to continue, set APP_ENV=local[/yellow]",
                title="[red]🚨 PRODUCTION ENVIRONMENT DETECTED 🚨[/red]",
                border_style="red",
                padding=(1, 2),
            )
            console.print()
            console.print(panel)
        else:
            console.print(f"[red]Environment check failed:[/red] {error}")

    def step_started(self, index: int, total: int, step: Step) -> None:
        self.tracker.add(step.key, step.title)
        self.tracker.start(step.key)
        console.print()
        console.print(f" STEP [{index}/{total}] ", style="bold white on blue", highlight=False, markup=False)
        typewriter(f"→ {step.title}", "bold", self.animate)
        console.print("─" * 50, style="bright_black")

    def command_started(self, index: int, command: Command) -> None:
        text = command.text or f"Running {command.name}"
        console.print(f"[cyan]›[/cyan] {text} [dim]({escape(' '.join(command.argv))})[/dim]", highlight=False)

    def command_finished(self, index: int, command: Command, ok: bool) -> None:
        label = f"\\[{index}/{self._total}]"
        if ok:
            console.print(f"[green]{label} ✅ {command.name} completed[/green]", highlight=False)
            self._beep()
        else:
            console.print(f"[red]{label} ❌ {command.name} failed[/red]", highlight=False)
        console.print()

    def note(self, message: str, style: str = "green") -> None:
        prefix = "✓ " if style == "green" else "⏩ " if style == "yellow" else ""
        typewriter(prefix + message, style, self.animate)

    def step_finished(self, index: int, step: Step, outcome: StepOutcome) -> None:
        if outcome.status == "skipped":
            self.tracker.skip(step.key, outcome.detail)
        else:
            self.tracker.complete(step.key, outcome.detail)
        self._motivate()

    def step_failed(self, index: int, step: Step, error: BaseException) -> None:
        self.tracker.error(step.key, "failed")
        console.print(f"[red]\\[{index}/{self._total}] ✗ {step.title} failed[/red]", highlight=False)
        self._beep(2)

    def run_started(self, total: int) -> None:
        self._total = total

    def progress(self, done: int, total: int) -> None:
        pct = int(done * 100 / total) if total else 100
        grid = Table.grid(padding=(0, 1))
        grid.add_row(
            "Progress",
            ProgressBar(total=total, completed=done, width=40),
            f"{pct}% || Step {done}/{total}",
        )
        console.print()
        console.print(grid)
        console.print()

    def run_finished(self, result: RunResult) -> None:
        if result.failure is not None and result.failure.index == 0:
            return
        console.print()
        console.print(self.tracker.render())


class BannerGroup(TyperGroup):
    """Custom group that shows banner before help."""

    def format_help(self, ctx, formatter):
        show_banner()
        super().format_help(ctx, formatter)


app = typer.Typer(
    name="vvecon-setup",
    help="Setup wizard for VVECON (Laravel) development projects",
    add_completion=False,
    invoke_without_command=True,
    cls=BannerGroup,
)


def show_banner():
    """Display the ASCII art banner."""
    banner_lines = BANNER.strip().split('\n')
    colors = ["bright_blue", "blue", "cyan", "bright_cyan", "white", "bright_white"]

    styled_banner = Text()
    for i, line in enumerate(banner_lines):
        styled_banner.append(line + "\n", style=colors[i % len(colors)])

    console.print(Align.center(styled_banner))
    console.print(Align.center(Text(TAGLINE, style="italic bright_yellow")))
    console.print()


@app.callback()
def callback(ctx: typer.Context):
    """Show banner when no subcommand is provided."""
    if ctx.invoked_subcommand is None and "--help" not in sys.argv and "-h" not in sys.argv:
        show_banner()
        console.print(Align.center("[dim]Run 'vvecon-setup --help' for usage information[/dim]"))
        console.print()


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    project_path = Path(project_dir).resolve() if project_dir else Path.cwd()
    if not project_path.is_dir():
        console.print(Panel(
            f"Directory '[cyan]{project_path}[/cyan]' does not exist",
            title="[red]Project Directory[/red]",
            border_style="red",
            padding=(1, 2)
        ))
        raise typer.Exit(1)
    return project_path


@app.command()
def setup(
    project_dir: Optional[str] = typer.Option(None, "--project-dir", help="Project root to set up (defaults to the current directory)"),
    search_path: Optional[str] = typer.Option(None, "--path", help="Command search path used to find composer, php and npm (defaults to PATH)"),
    migrate: Optional[str] = typer.Option(None, "--migrate", help="Migration option: none, migrate, migrate:fresh, seed, seed:fresh"),
    build: Optional[bool] = typer.Option(None, "--build/--no-build", help="Build frontend assets without asking"),
    optimize: Optional[bool] = typer.Option(None, "--optimize/--no-optimize", help="Run production optimizations without asking"),
    plain: bool = typer.Option(False, "--plain", help="No typing animation, motivation lines or beeps"),
    debug: bool = typer.Option(False, "--debug", help="Log diagnostics to stderr"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write diagnostics to this file"),
):
    """
    Run the project setup wizard.

    Steps:
    1. Clean composer.lock
    2. composer install (no scripts)
    3. Create .env from .env.example and generate APP_KEY if needed
    4. composer install (with scripts)
    5. Remove public/storage
    6. php artisan storage:link
    7. Database migration (optional)
    8. php artisan icon:cache
    9. npm run build (optional)
    10. Production cache warming (optional)

    The run refuses to start when APP_ENV is production.

    Examples:
        vvecon-setup setup
        vvecon-setup setup --migrate seed --build --no-optimize
        vvecon-setup setup --project-dir ../my-app --plain
    """
    level = logging.DEBUG if debug else logging.INFO if log_file else logging.WARNING
    configure_logging(level=level, log_path=log_file, also_console=debug)

    valid_migrations = [c.key for c in MIGRATION_CHOICES]
    if migrate is not None and migrate not in valid_migrations:
        console.print(f"[red]Error:[/red] Invalid migration option '{migrate}'. Choose from: {', '.join(valid_migrations)}")
        raise typer.Exit(1)

    if not plain:
        console.clear()
    show_banner()

    project_path = _resolve_project_dir(project_dir)
    config = RunConfig(project_dir=project_path, search_path=search_path, environ=dict(os.environ))

    setup_lines = [
        "[cyan]🚀 Welcome to VVECON Project Setup Wizard![/cyan]",
        "",
        f"{'Project':<15} [green]{escape(project_path.name)}[/green]",
        f"{'Project Path':<15} [dim]{escape(str(project_path))}[/dim]",
    ]
    if search_path:
        setup_lines.append(f"{'Search Path':<15} [dim]{escape(search_path)}[/dim]")
    console.print(Panel("\n".join(setup_lines), border_style="cyan", padding=(1, 2)))

    answers = {
        "migrate": migrate,
        "build": None if build is None else ("yes" if build else "no"),
        "optimize": None if optimize is None else ("yes" if optimize else "no"),
    }
    chooser = make_chooser(answers, interactive=sys.stdin.isatty())
    reporter = ConsoleReporter(animate=not plain, fun=not plain)

    result = run_steps(
        build_steps(),
        config,
        chooser=chooser,
        reporter=reporter,
        guards=[check_environment],
    )
    if not result.ok:
        logger.error("Setup aborted at step %d (%s)", result.failure.index, result.failure.label)
        raise typer.Exit(result.exit_code)

    console.print()
    typewriter("🎉 VVECON setup completed successfully! 🎉", "bold bright_magenta", not plain)
    steps_lines = [
        '1. Run [cyan]composer run dev[/cyan] to start the development server',
        "2. Visit your app in the browser",
        "3. Explore README documentation",
    ]
    console.print()
    console.print(Panel("\n".join(steps_lines), title="Next Steps", border_style="cyan", padding=(1, 2)))
    console.print("\n[bold green]💻 Happy coding with VVECON![/bold green]")


@app.command()
def check(
    search_path: Optional[str] = typer.Option(None, "--path", help="Command search path to check (defaults to PATH)"),
):
    """Check that composer, php and npm are installed."""
    show_banner()
    console.print("[bold]Checking for installed tools...[/bold]\n")

    tracker = StepTracker("Check Available Tools")
    for tool in REQUIRED_TOOLS:
        tracker.add(tool, tool)

    missing = []
    lookup_path = search_path if search_path is not None else os.environ.get("PATH")
    for tool, hint in REQUIRED_TOOLS.items():
        found = shutil.which(tool, path=lookup_path)
        if found:
            tracker.complete(tool, escape(found))
        else:
            tracker.error(tool, "not found")
            missing.append((tool, hint))

    console.print(tracker.render())

    if missing:
        console.print()
        for tool, hint in missing:
            console.print(f"[dim]Install {tool}: [cyan]{hint}[/cyan][/dim]")
        raise typer.Exit(1)

    console.print("\n[bold green]All tools available. Ready to run setup![/bold green]")


def main():
    app()


if __name__ == "__main__":
    main()
