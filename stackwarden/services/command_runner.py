"""Command Runner — thin wrapper around subprocess for docker compose calls.

Two flavours:
  - run():    execute to completion, capture stdout / stderr / exit code
  - stream(): follow a long-running command, yielding raw stdout chunks
"""

import logging
import os
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass

log = logging.getLogger(__name__)

DEFAULT_PATH = "/usr/local/bin:/usr/bin:/bin"


@dataclass
class CommandResult:
    """Captured output of a finished command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self):
        return self.exit_code == 0


class CommandRunner:
    """Run external commands with a shared working directory and timeout."""

    def __init__(self, cwd=None, timeout=None, env=None):
        self._cwd = cwd
        # 0 / None means block until the command exits.
        self._timeout = timeout or None
        self._env = dict(env or {})

    def _build_env(self, extra=None):
        env = dict(os.environ)
        env.setdefault("PATH", DEFAULT_PATH)
        env.update(self._env)
        if extra:
            env.update(extra)
        return env

    def _resolve_cwd(self, cwd):
        cwd = cwd or self._cwd
        if not cwd:
            return None
        if not os.path.isdir(cwd):
            log.warning("Working directory %s not found; running from %s.",
                        cwd, os.getcwd())
            return None
        return cwd

    def run(self, argv, cwd=None, env=None):
        """Run *argv* to completion.

        Raises OSError when the process cannot be spawned.  A timeout is
        reported as a failed result (exit code -1) rather than an exception.
        """
        log.debug("Running: %s", " ".join(argv))
        try:
            proc = subprocess.run(
                list(argv),
                cwd=self._resolve_cwd(cwd),
                env=self._build_env(env),
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            log.error("Command timed out after %ss: %s", self._timeout, " ".join(argv))
            return CommandResult(
                stdout="",
                stderr=f"Command timed out after {self._timeout:g}s",
                exit_code=-1,
            )
        return CommandResult(proc.stdout or "", proc.stderr or "", proc.returncode)

    @contextmanager
    def stream(self, argv, cwd=None, env=None, chunk_size=4096):
        """Start *argv* and yield an iterator over its stdout byte chunks.

        stderr is folded into stdout since ``docker compose logs`` writes
        container stderr there.  The process is terminated on exit.
        """
        log.debug("Streaming: %s", " ".join(argv))
        proc = subprocess.Popen(
            list(argv),
            cwd=self._resolve_cwd(cwd),
            env=self._build_env(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        try:
            yield iter(lambda: proc.stdout.read1(chunk_size), b"")
        finally:
            if proc.poll() is None:
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    proc.wait()
            proc.stdout.close()
