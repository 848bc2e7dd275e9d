"""Pytest configuration for scanforge."""
import os
from typing import Callable, List, Optional, Sequence

import pytest


def pytest_configure():
    # Tests never spawn the real scanners unless a test builds a bridge itself.
    os.environ.setdefault("SCANFORGE_SIMULATE_TOOLS", "true")
    os.environ.setdefault("SCANFORGE_MOCK_DELAY_MIN", "0")
    os.environ.setdefault("SCANFORGE_MOCK_DELAY_MAX", "0")
    os.environ.setdefault("SCANFORGE_LOG_LEVEL", "DEBUG")


@pytest.fixture(autouse=True)
def reset_globals():
    from scanforge.base.config import set_config
    from scanforge.server.state import reset_state

    set_config(None)
    reset_state()
    yield
    set_config(None)
    reset_state()


class FakeRunner:
    """
    Stand-in for executor.run_command.

    `handler(argv)` returns a CommandResult or an exception instance to raise.
    """

    def __init__(self, handler: Callable[[Sequence[str]], object]):
        self.handler = handler
        self.calls: List[List[str]] = []
        self.timeouts: List[Optional[float]] = []

    async def __call__(self, argv, timeout=None, cwd=None, allow_empty_output=False):
        self.calls.append(list(argv))
        self.timeouts.append(timeout)
        outcome = self.handler(list(argv))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def command_result(stdout: str = "", stderr: str = "", exit_code: int = 0, argv=("tool",)):
    from scanforge.engine.executor import CommandResult

    return CommandResult(argv=tuple(argv), exit_code=exit_code, stdout=stdout, stderr=stderr, duration=0.01)


@pytest.fixture
def fake_runner():
    """Factory: fake_runner(handler) -> FakeRunner."""
    return FakeRunner


@pytest.fixture
def make_result():
    return command_result
