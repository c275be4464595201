"""Nox sessions for preview-tui development tasks."""

from __future__ import annotations

from pathlib import Path

import nox


ROOT = Path(__file__).parent

nox.options.error_on_missing_interpreters = False


def _has_mypy_config() -> bool:
    pyproject = ROOT / "pyproject.toml"
    if pyproject.is_file():
        return "[tool.mypy]" in pyproject.read_text(encoding="utf-8")
    return (ROOT / "mypy.ini").is_file()


@nox.session
def lint(session: nox.Session) -> None:
    """Run ruff linting and formatting checks."""
    session.install("ruff")
    session.run("ruff", "check", ".")
    session.run("ruff", "format", "--check", ".")


@nox.session(name="lint-fix")
def lint_fix(session: nox.Session) -> None:
    """Apply ruff fixes and formatting."""
    session.install("ruff")
    session.run("ruff", "check", "--fix", ".")
    session.run("ruff", "format", ".")


@nox.session
def tests(session: nox.Session) -> None:
    """Run pytest; process-spawning tests are skipped under PREVIEW_TUI_CI."""
    session.install("-e", ".[dev]")
    session.env["PREVIEW_TUI_CI"] = "1"
    try:
        session.run("pytest", "-q", *session.posargs)
    finally:
        session.env.pop("PREVIEW_TUI_CI", None)


@nox.session(name="tests-full")
def tests_full(session: nox.Session) -> None:
    """Run every test, including ones that spawn real processes."""
    session.install("-e", ".[dev]")
    session.run("pytest", "-q", *session.posargs)


@nox.session
def typecheck(session: nox.Session) -> None:
    """Run mypy when a config is present."""
    if not _has_mypy_config():
        session.skip("mypy config not found")
    session.install("-e", ".", "mypy")
    session.run("mypy", "src/preview_tui")


@nox.session
def coverage(session: nox.Session) -> None:
    """Run coverage reporting."""
    session.install("-e", ".[dev]")
    session.install("coverage")
    session.run("coverage", "run", "--source=preview_tui", "-m", "pytest")
    session.run("coverage", "report", "--fail-under=80", "-m")


@nox.session(name="tests-dev", venv_backend="none")
def tests_dev(session: nox.Session) -> None:
    """Fast local pytest using the active venv."""
    session.run("python", "-m", "pytest", "-q", *session.posargs, external=True)
