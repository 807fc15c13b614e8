from __future__ import annotations

import os
import shutil

import nox

nox.options.error_on_missing_interpreters = True


def tests_impl(
    session: nox.Session,
    extras: str = "test,brotli",
    integration: bool = False,
    pytest_extra_args: list[str] = [],
) -> None:
    # Install deps and the package itself.
    session.install(f".[{extras}]")

    # Print the Python version and bytesize.
    session.run("python", "--version")
    session.run("python", "-c", "import struct; print(struct.calcsize('P') * 8)")
    # Print OpenSSL information.
    session.run("python", "-c", "import ssl; print(ssl.OPENSSL_VERSION)")

    # Environment variables being passed to the pytest run.
    pytest_session_envvars = {
        "PYTHONWARNINGS": "always::DeprecationWarning",
    }

    # We use parallel mode and then combine in a later CI step
    session.run(
        "python",
        "-m",
        "coverage",
        "run",
        "--parallel-mode",
        "-m",
        "pytest",
        "-v",
        "-ra",
        *(("--integration",) if integration else ()),
        "--tb=native",
        "--durations=10",
        "--strict-config",
        "--strict-markers",
        *pytest_extra_args,
        *(session.posargs or ("test/",)),
        env=pytest_session_envvars,
    )


@nox.session(python=["3.9", "3.10", "3.11", "3.12", "3.13", "pypy3.10"])
def test(session: nox.Session) -> None:
    tests_impl(session)


@nox.session(python="3")
def test_integration(session: nox.Session) -> None:
    """Run integration tests"""
    tests_impl(session, integration=True)


@nox.session(python="3")
def test_without_brotli(session: nox.Session) -> None:
    """Check that 'br' is simply not advertised when no brotli library is
    installed.
    """
    tests_impl(session, extras="test")


@nox.session(python="3.12")
def mypy(session: nox.Session) -> None:
    """Run mypy."""
    session.install("mypy", ".[test,brotli]")
    session.run("mypy", "--version")
    session.run(
        "mypy",
        "-p",
        "dummyserver",
        "-m",
        "noxfile",
        "-p",
        "httpchain",
        "-p",
        "test",
    )


@nox.session
def coverage(session: nox.Session) -> None:
    """Combine the parallel coverage files of the test sessions."""
    session.install("coverage[toml]")
    session.run("coverage", "combine")
    session.run("coverage", "report", "-m")
    if os.path.exists("htmlcov"):
        shutil.rmtree("htmlcov")
    session.run("coverage", "html")
