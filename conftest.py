"""Global pytest configuration.

We explicitly disable auto-loading of external pytest plugins to prevent
environment-provided plugins from interfering with test discovery and capture.
Every test is also checked for leaked child processes, since owning and
reclaiming benchmark processes is what this package does.
"""

import os
import signal

import psutil
import pytest

# Guard against site-wide plugins that can change stdout handling (causing
# Illegal seek/OSError on teardown in CI and local shells).
os.environ.setdefault("PYTEST_DISABLE_PLUGIN_AUTOLOAD", "1")


# -----------------------------------------------------------------------------
# Simple built-in timeout support (pytest-timeout is disabled by plugin block)
# -----------------------------------------------------------------------------
def _parse_timeout(config) -> float:
    try:
        return float(config.getini("timeout"))
    except (TypeError, ValueError):
        return 0.0


def pytest_addoption(parser):
    parser.addini("timeout", "Global per-test timeout (seconds)", default="0")


def pytest_configure(config):
    config._global_timeout = _parse_timeout(config)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_call(item):
    timeout = getattr(item.config, "_global_timeout", 0)
    if not timeout or timeout <= 0 or not hasattr(signal, "SIGALRM"):
        yield
        return

    def _handler(signum, frame):
        raise TimeoutError(f"Test exceeded global timeout of {timeout} seconds")

    previous = signal.signal(signal.SIGALRM, _handler)
    signal.alarm(int(timeout))
    try:
        yield
    finally:
        signal.alarm(0)
        signal.signal(signal.SIGALRM, previous)


# -----------------------------------------------------------------------------
# Leaked process detection
# -----------------------------------------------------------------------------
def _live_children():
    children = []
    for child in psutil.Process().children(recursive=True):
        try:
            if child.status() != psutil.STATUS_ZOMBIE:
                children.append(child)
        except psutil.NoSuchProcess:
            continue
    return children


@pytest.fixture(autouse=True)
def no_leaked_processes():
    before = {child.pid for child in _live_children()}
    yield
    leaked = [child for child in _live_children() if child.pid not in before]
    for child in leaked:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            pass
    assert not leaked, f"test leaked child processes: {[child.pid for child in leaked]}"
