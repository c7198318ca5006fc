import nox

PYTHONS = ["3.10", "3.11", "3.12"]
LOCATIONS = ["src", "tests", "noxfile.py"]

nox.options.sessions = ["lint", "type_check", "tests"]


@nox.session(python=PYTHONS)
def tests(session: nox.Session) -> None:
    """Unit and architecture tests."""
    session.install("-e", ".[test]")
    session.run("pytest", *session.posargs)


@nox.session(python=PYTHONS[-1])
def lint(session: nox.Session) -> None:
    """ruff, check only."""
    session.install("ruff")
    session.run("ruff", "check", *LOCATIONS)
    session.run("ruff", "format", "--check", *LOCATIONS)


@nox.session(python=PYTHONS[-1])
def autoformat(session: nox.Session) -> None:
    session.install("ruff")
    session.run("ruff", "check", "--fix", *LOCATIONS)
    session.run("ruff", "format", *LOCATIONS)


@nox.session(python=PYTHONS)
def type_check(session: nox.Session) -> None:
    """mypy over the package, with every optional backend installed."""
    session.install("-e", ".[all,test]", "mypy")
    session.run("mypy", "src")


@nox.session(python=PYTHONS[-1])
def arch_check(session: nox.Session) -> None:
    """Import boundaries between layers (pytest-archon)."""
    session.install("-e", ".[test]")
    session.run("pytest", "tests/architecture", *session.posargs)


@nox.session(python=PYTHONS[-1])
def dead_code(session: nox.Session) -> None:
    session.install("vulture")
    session.run("vulture", "--exclude", ".nox", *LOCATIONS)
