"""Shared fixtures: a scripted command runner and a test topology."""

import threading
from contextlib import contextmanager

import pytest

from stackwarden.services.command_runner import CommandResult
from stackwarden.services.orchestrator import RestartOrchestrator
from stackwarden.services.topology import ServiceTopology


class FakeRunner:
    """Records every argv and answers from a script.

    ``failures`` maps a compose verb/service tuple (e.g. ("stop", "db"))
    to the stderr the command should fail with.  ``gate`` (an Event), when
    set up, blocks the first run() until released.
    """

    def __init__(self, failures=None, ps_output="abc123\n", raise_on=None):
        self.calls = []
        self.failures = dict(failures or {})
        self.ps_output = ps_output
        self.raise_on = raise_on
        self.gate = None
        self.entered = threading.Event()
        self.active = 0
        self.max_active = 0
        self.chunks = []
        self._lock = threading.Lock()

    def run(self, argv, cwd=None, env=None):
        args = tuple(argv[4:])  # strip "docker compose -f <file>"
        with self._lock:
            self.calls.append(args)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.entered.set()
            if self.gate is not None:
                self.gate.wait(5)
            if self.raise_on and args[:1] == (self.raise_on,):
                raise FileNotFoundError("[Errno 2] No such file or directory: 'docker'")
            if args in self.failures:
                return CommandResult("", self.failures[args], 1)
            if args[:1] == ("ps",):
                return CommandResult(self.ps_output, "", 0)
            return CommandResult("", "", 0)
        finally:
            with self._lock:
                self.active -= 1

    @contextmanager
    def stream(self, argv, cwd=None, env=None):
        self.calls.append(tuple(argv[4:]))
        yield iter(self.chunks)


@pytest.fixture
def topology():
    return ServiceTopology(
        compose_file="/stack/docker-compose.yml",
        critical_services=("debridav", "rclone"),
    )


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def orchestrator(runner, topology):
    orch = RestartOrchestrator(runner, topology, settle_seconds=0, sleep=lambda s: None)
    yield orch
    orch.shutdown()
