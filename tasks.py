"""Invoke tasks for environment setup, testing, and static checks.

Every task shells out to the `uv` CLI so local runs match CI.
"""

from __future__ import annotations

import shlex
import shutil
from collections.abc import Sequence
from pathlib import Path

from invoke import Collection, Context, task

PROJECT_ROOT = Path(__file__).parent
DIST_DIR = PROJECT_ROOT / "dist"


def _uv(ctx: Context, args: Sequence[str], *, echo: bool = True) -> None:
    """Run ``uv`` with the given arguments inside a PTY.

    Args:
        ctx: Invoke execution context.
        args: Arguments appended after the `uv` executable.
        echo: Whether to echo the command before running it.
    """
    ctx.run(shlex.join(("uv", *args)), echo=echo, pty=True)


@task(help={"dev": "Install the test and dev extras as well."})
def sync(ctx: Context, dev: bool = True) -> None:
    """Create or refresh the virtual environment."""
    args = ["sync"]
    if dev:
        args.extend(["--extra", "test", "--extra", "dev"])
    _uv(ctx, args)


@task(help={"clean": "Empty dist/ before building."})
def build(ctx: Context, clean: bool = False) -> None:
    """Build sdist and wheel into `dist/`."""
    if clean and DIST_DIR.exists():
        shutil.rmtree(DIST_DIR)
    _uv(ctx, ["build"])


@task(
    help={
        "k": "pytest -k expression for test selection.",
        "path": "Path or module to test (defaults to tests/).",
        "options": "Additional flags forwarded verbatim to pytest.",
    }
)
def tests(ctx: Context, k: str = "", path: str = "tests", options: str = "") -> None:
    """Run the pytest suite.

    Args:
        ctx: Invoke execution context.
        k: `pytest -k` expression to select tests.
        path: Target path for pytest discovery.
        options: Extra CLI arguments appended to the pytest call.
    """
    args: list[str] = ["run", "pytest"]
    if k:
        args.extend(["-k", k])
    if options:
        args.extend(shlex.split(options))
    args.append(path)
    _uv(ctx, args)


@task(help={"fix": "Apply Ruff auto-fixes.", "check_format": "Also run `ruff format --check`."})
def lint(ctx: Context, fix: bool = False, check_format: bool = False) -> None:
    """Run Ruff lint (and optionally format) checks over src/ and tests/."""
    if check_format:
        _uv(ctx, ["run", "ruff", "format", "--check", "src", "tests"])
    args: list[str] = ["run", "ruff", "check", "src", "tests"]
    if fix:
        args.append("--fix")
    _uv(ctx, args)


@task
def mypy(ctx: Context) -> None:
    """Type-check the package."""
    _uv(ctx, ["run", "mypy", "src"])


@task
def ci(ctx: Context) -> None:
    """Run lint, type checks, and tests in CI order."""
    ctx.invoke(lint, check_format=True)
    ctx.invoke(mypy)
    ctx.invoke(tests)


namespace = Collection(sync, build, tests, lint, mypy, ci)
