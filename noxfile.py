import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13", "3.14"]


def _install(session: nox.Session) -> None:
    """Install the project with the test extra into the nox virtualenv."""
    session.run(
        "poetry",
        "install",
        "--all-extras",
        external=True,
    )


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run full test suite across Python versions."""
    _install(session)
    session.run("pytest")


@nox.session(python=PYTHON_VERSIONS)
def tests_domain(session: nox.Session) -> None:
    """Run domain-layer tests only (no infrastructure required)."""
    _install(session)
    session.run("pytest", "tests/notifications/domain/")


@nox.session(python=PYTHON_VERSIONS)
def tests_redis(session: nox.Session) -> None:
    """Run the suite against a live Redis (store + fan-out broker)."""
    _install(session)
    session.env.setdefault("NOTIFICATIONS_REDIS_URL", "redis://localhost:6379/15")
    session.run("pytest", "-m", "integration")
