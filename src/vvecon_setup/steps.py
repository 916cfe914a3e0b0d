"""The Laravel project setup sequence and its filesystem helpers."""

from __future__ import annotations

import io
import logging
import re
import shutil
from pathlib import Path
from typing import List

from dotenv import dotenv_values

from .runner import (
    DONE,
    Choice,
    FilesystemError,
    ProductionEnvironmentError,
    RunConfig,
    Step,
    StepContext,
    StepOutcome,
    choice_step,
    cmd,
    command_step,
)

logger = logging.getLogger(__name__)

APP_KEY_RE = re.compile(r"^APP_KEY=.+$", re.MULTILINE)
PRODUCTION_ENVS = {"production"}
DEFAULT_APP_ENV = "local"

KEY_GENERATE = cmd("php", "artisan", "key:generate", text="Generating APP_KEY...")

MIGRATION_CHOICES = [
    Choice("none", "No", skip_message="Skipping database migration"),
    Choice("migrate", "Run migrations only", (cmd("php", "artisan", "migrate", text="Running migrations..."),)),
    Choice(
        "migrate:fresh",
        "Run fresh migrations (wipe database)",
        (cmd("php", "artisan", "migrate:fresh", text="Running fresh migrations..."),),
    ),
    Choice(
        "seed",
        "Run migrations with seeding",
        (
            cmd("php", "artisan", "migrate", text="Running migrations..."),
            cmd("php", "artisan", "db:seed", text="Seeding database..."),
        ),
    ),
    Choice(
        "seed:fresh",
        "Run fresh migrations with seeding",
        (cmd("php", "artisan", "migrate:fresh", "--seed", text="Running fresh migrations with seed..."),),
    ),
]

BUILD_CHOICES = [
    Choice("no", "No, skip it", skip_message="Skipping frontend build"),
    Choice("yes", "Yes, let's do it", (cmd("npm", "run", "build", text="Building frontend assets..."),)),
]

OPTIMIZE_CHOICES = [
    Choice("no", "No, skip it", skip_message="Skipping production optimizations"),
    Choice(
        "yes",
        "Yes, optimize",
        tuple(
            cmd("php", "artisan", name, text="Optimizing production...")
            for name in ("config:cache", "route:cache", "view:cache", "optimize", "filament:cache-components")
        ),
    ),
]

REQUIRED_TOOLS = {
    "composer": "https://getcomposer.org/download/",
    "php": "https://www.php.net/downloads",
    "npm": "https://nodejs.org/en/download",
}


def remove_path(path: Path) -> bool:
    """Remove a file, symlink or directory tree. Returns False if nothing was there."""
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
        else:
            return False
    except OSError as e:
        raise FilesystemError(path, e) from e
    logger.info("Removed %s", path)
    return True


def ensure_env_file(config: RunConfig) -> bool:
    """Copy the env template into place unless the env file already exists.

    Returns True when a copy was made.
    """
    target = config.env_path
    if target.exists():
        return False
    try:
        shutil.copyfile(config.template_path, target)
    except OSError as e:
        raise FilesystemError(config.template_path, e) from e
    logger.info("Copied %s -> %s", config.template_path, target)
    return True


def read_env_text(path: Path) -> str:
    """Read an env file, replacing bytes that are not valid UTF-8."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise FilesystemError(path, e) from e


def has_app_key(path: Path) -> bool:
    return APP_KEY_RE.search(read_env_text(path)) is not None


def read_app_env(config: RunConfig) -> tuple[str, str]:
    """Resolve APP_ENV and where it came from.

    A variable already set in the run's environment wins, as with a
    non-overriding dotenv load. Otherwise the live env file is read, or
    before it exists, the template it would be copied from.
    """
    if config.environ.get("APP_ENV"):
        return config.environ["APP_ENV"].strip(), "environment"
    for candidate in (config.env_path, config.template_path):
        if candidate.is_file():
            value = dotenv_values(stream=io.StringIO(read_env_text(candidate))).get("APP_ENV")
            return (value or DEFAULT_APP_ENV).strip(), candidate.name
    return DEFAULT_APP_ENV, "default"


def check_environment(config: RunConfig) -> str:
    app_env, source = read_app_env(config)
    if app_env.lower() in PRODUCTION_ENVS:
        raise ProductionEnvironmentError(app_env, source)
    return f"Environment check passed ({app_env})"


def _clean_composer_lock(ctx: StepContext) -> StepOutcome:
    if remove_path(ctx.path("composer.lock")):
        ctx.note("composer.lock deleted")
        return StepOutcome("done", "deleted")
    ctx.note("No composer.lock found", "yellow")
    return StepOutcome("skipped", "not found")


def _setup_env(ctx: StepContext) -> StepOutcome:
    config = ctx.config
    if ensure_env_file(config):
        ctx.note(f"{config.env_file} created")
        ctx.note(f"Remember to update your {config.env_file} settings!", "yellow")
        ctx.run(KEY_GENERATE)
        return StepOutcome("done", "created")
    if not has_app_key(config.env_path):
        ctx.note("APP_KEY is empty or invalid, generating...", "yellow")
        ctx.run(KEY_GENERATE)
        return StepOutcome("done", "key generated")
    ctx.note(f"{config.env_file} exists and APP_KEY is valid")
    return DONE


def _clean_public_storage(ctx: StepContext) -> StepOutcome:
    if remove_path(ctx.path("public", "storage")):
        ctx.note("Removed public/storage")
        return StepOutcome("done", "removed")
    ctx.note("public/storage not found", "yellow")
    return StepOutcome("skipped", "not found")


def build_steps() -> List[Step]:
    """The full sequence, in execution order. Every choice defaults to its skip option."""
    return [
        Step("composer-lock", "Cleaning composer.lock", _clean_composer_lock),
        command_step(
            "composer-install",
            "Installing Composer dependencies (no-scripts)",
            cmd("composer", "install", "--no-scripts", "--no-interaction", "--no-ansi", text="Installing PHP dependencies..."),
        ),
        Step("env", "Setting up .env", _setup_env),
        command_step(
            "composer-scripts",
            "Re-running Composer install (with scripts)",
            cmd("composer", "install", "--no-interaction", "--no-ansi", text="Running composer scripts..."),
        ),
        Step("public-storage", "Cleaning public/storage", _clean_public_storage),
        command_step(
            "storage-link",
            "Creating storage symlink",
            cmd("php", "artisan", "storage:link", text="Creating storage symlink..."),
        ),
        choice_step("migrate", "Database migration", "Select database migration option:", MIGRATION_CHOICES, "none"),
        command_step("icons", "Caching icons", cmd("php", "artisan", "icon:cache", text="Caching icons...")),
        choice_step("build", "Frontend asset build", "Do you want to build frontend assets?", BUILD_CHOICES, "no"),
        choice_step(
            "optimize",
            "Production optimizations",
            "Do you want to run production optimizations?",
            OPTIMIZE_CHOICES,
            "no",
        ),
    ]
