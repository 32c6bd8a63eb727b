"""Nox sessions for the cache layer test suite."""

import nox

nox.options.sessions = ["unit", "integration"]
nox.options.default_venv_backend = "uv"

PYTHONS = ["3.10", "3.11", "3.12", "3.13"]


@nox.session(python=PYTHONS)
def unit(session):
    """Mock-based tests; no Redis needed."""
    session.install(".[dev]")
    session.run("pytest", "tests/unit", "-q", *session.posargs)


@nox.session(python=PYTHONS)
def integration(session):
    """Lua scripts, pipelines and SCAN loops against fakeredis (lupa runs the scripts)."""
    session.install(".[dev]")
    session.run("pytest", "tests/integration", "-q", *session.posargs)


@nox.session(python="3.12")
def coverage(session):
    session.install(".[dev]")
    session.run(
        "pytest",
        "tests/",
        "--cov=hellen_cache",
        "--cov-report=term-missing",
        *session.posargs,
    )


@nox.session(python="3.12")
def type_check(session):
    """Run mypy type checking."""
    session.install(".[dev]")
    session.install("mypy")
    session.run("mypy", "src/hellen_cache", *session.posargs)
