"""Shared fixtures: a fake run_command so no test touches the real system."""

import subprocess
from typing import Dict, List, Optional, Set, Tuple

import pytest

from tn_tools import system_utils


class FakeRunner:
    """
    Stands in for system_utils.run_command. Responses are keyed by a command
    prefix; the longest matching prefix wins. Unmatched commands succeed with
    empty output.
    """

    def __init__(self):
        self.calls: List[Tuple[List[str], Dict]] = []
        self.responses: Dict[Tuple[str, ...], Tuple[int, str]] = {}
        self.missing: Set[str] = set()

    def respond(self, prefix, returncode=0, stdout=""):
        self.responses[tuple(prefix)] = (returncode, stdout)

    def _lookup(self, argv: List[str]) -> Tuple[int, str]:
        best: Optional[Tuple[str, ...]] = None
        for prefix in self.responses:
            if tuple(argv[:len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        return self.responses[best] if best is not None else (0, "")

    def __call__(self, command, capture_output=False, check=True, **kwargs):
        argv = command.split() if isinstance(command, str) else [str(c) for c in command]
        self.calls.append((argv, dict(kwargs, capture_output=capture_output, check=check)))
        if argv[0] in self.missing:
            raise FileNotFoundError(argv[0])
        returncode, stdout = self._lookup(argv)
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, argv, output=stdout, stderr="")
        return subprocess.CompletedProcess(argv, returncode, stdout=stdout, stderr="")

    @property
    def commands(self) -> List[List[str]]:
        return [argv for argv, _ in self.calls]

    def ran(self, *prefix) -> bool:
        return any(tuple(argv[:len(prefix)]) == prefix for argv in self.commands)

    def kwargs_for(self, *prefix) -> Dict:
        for argv, kwargs in self.calls:
            if tuple(argv[:len(prefix)]) == prefix:
                return kwargs
        raise AssertionError(f"{prefix} was never run")


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    monkeypatch.setattr(system_utils, "run_command", fake)
    return fake


@pytest.fixture
def available_tools(monkeypatch):
    """Mutable set of executables command_exists() reports as installed."""
    tools = set()
    monkeypatch.setattr(system_utils, "command_exists", lambda name: name in tools)
    return tools


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(system_utils, "is_root", lambda: True)


@pytest.fixture
def as_user(monkeypatch):
    monkeypatch.setattr(system_utils, "is_root", lambda: False)
