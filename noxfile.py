"""Nox sessions for the vetting bot."""

import nox

nox.options.sessions = ["tests", "lint"]
PYTHON_VERSIONS = ["3.11", "3.12"]
PACKAGES = ["vetting_bot", "bots"]


def _cov_args() -> list[str]:
    return [f"--cov={package}" for package in PACKAGES]


@nox.session(python=PYTHON_VERSIONS)
def tests(session):
    """Run the suite with a coverage gate."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest",
        *_cov_args(),
        "--cov-report=term-missing",
        "--cov-fail-under=80",
        *session.posargs,
    )


@nox.session(python=PYTHON_VERSIONS[0])
def lint(session):
    session.install("ruff>=0.1.0")
    session.run("ruff", "check", ".")
    session.run("ruff", "format", "--check", ".")


@nox.session(python=PYTHON_VERSIONS[0])
def format_code(session):
    session.install("ruff>=0.1.0")
    session.run("ruff", "format", ".")
    session.run("ruff", "check", "--fix", ".")


@nox.session(python=PYTHON_VERSIONS[0])
def coverage_report(session):
    """Write branch coverage to htmlcov/ and coverage.xml."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest",
        *_cov_args(),
        "--cov-branch",
        "--cov-report=html:htmlcov",
        "--cov-report=xml:coverage.xml",
        "--tb=short",
    )
