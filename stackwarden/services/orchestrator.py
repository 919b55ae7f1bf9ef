"""Restart Orchestrator — tiered, single-flight restarts of the compose stack.

Tiered restart (no override):

  Tier 1:  Stop each critical service, one at a time, in listed order.
           Stopping (not restarting) lets the runtime's restart policy
           bring it back without racing a container mid-transition.
  Settle:  Wait a fixed interval so the critical services fully exit.
  Tier 2:  One fleet-wide ``stop`` (or ``restart`` when there are no
           critical services) covering everything else.

Override restart: an explicit ``restart`` per listed service; no tiers.

Only one run may execute at a time.  A request arriving while a run is in
flight is declined immediately with a busy outcome; it is never queued or
interleaved.  Any failed command ends the run and its stderr is handed
back verbatim.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import List, Optional

import config
from stackwarden.errors import CommandFailure, RestartBusy
from stackwarden.services.restart_history import RestartHistory

log = logging.getLogger(__name__)


@dataclass
class RestartOutcome:
    """Result of one orchestration run."""

    succeeded: bool
    error_message: Optional[str] = None
    log: List[str] = field(default_factory=list)
    busy: bool = False

    def to_dict(self):
        data = {"success": self.succeeded, "log": list(self.log)}
        if self.error_message is not None:
            data["error"] = self.error_message
        if self.busy:
            data["busy"] = True
        return data


class OrchestratorState:
    """Process-wide single-flight guard for restart sequences."""

    def __init__(self):
        self._lock = threading.Lock()

    @property
    def in_flight(self):
        return self._lock.locked()

    @contextmanager
    def claim(self):
        """Hold the guard for the duration of the block.

        Raises RestartBusy if another run already holds it.
        """
        if not self._lock.acquire(blocking=False):
            raise RestartBusy("A restart is already in progress.")
        try:
            yield
        finally:
            self._lock.release()


class RestartOrchestrator:
    """Runs restart sequences over a ServiceTopology via a CommandRunner."""

    def __init__(self, runner, topology, settle_seconds=None, history=None,
                 sleep=time.sleep):
        self._runner = runner
        self._topology = topology
        self._settle = (
            config.SETTLE_SECONDS if settle_seconds is None else settle_seconds
        )
        self._sleep = sleep
        self.state = OrchestratorState()
        self.history = history if history is not None else RestartHistory(config.HISTORY_SIZE)
        # Single consumer for restarts requested by background tasks.
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="restart")

    @property
    def topology(self):
        return self._topology

    @property
    def in_flight(self):
        return self.state.in_flight

    # ── Restart ────────────────────────────────────────────────────────────

    def restart(self, target_override=None, source="operator"):
        """Run one restart sequence and return its RestartOutcome."""
        targets = list(target_override) if target_override else None
        record = self.history.begin(source, targets)
        progress = []

        try:
            with self.state.claim():
                if targets:
                    self._restart_targets(targets, progress)
                else:
                    self._restart_tiered(progress)
        except RestartBusy as exc:
            log.warning("Restart requested by %s while another is running.", source)
            outcome = RestartOutcome(False, str(exc), progress, busy=True)
        except CommandFailure as exc:
            log.error("Restart aborted: %s", exc)
            progress.append(f"Aborted: {exc}")
            outcome = RestartOutcome(False, exc.stderr or str(exc), progress)
        else:
            progress.append("Restart complete.")
            outcome = RestartOutcome(True, None, progress)

        self.history.finish(record, outcome)
        return outcome

    def submit(self, target_override=None, source="log-monitor"):
        """Queue a restart on the orchestrator's worker.  Returns a Future."""
        return self._worker.submit(self.restart, target_override, source)

    def shutdown(self):
        """Stop the worker once any queued restart has finished."""
        self._worker.shutdown(wait=True)

    def _restart_tiered(self, progress):
        topo = self._topology
        for name in topo.critical_services:
            progress.append(f"Stopping critical service {name}...")
            self._execute(topo.compose_command("stop", name), progress)
            progress.append(f"Stopped {name}.")

        if topo.critical_services:
            progress.append(
                f"Waiting {self._settle:g}s for critical services to settle..."
            )
            self._sleep(self._settle)
            progress.append(f"Running fleet-wide {topo.fleet_action} for remaining services...")
        else:
            progress.append(f"Running fleet-wide {topo.fleet_action}...")
        self._execute(topo.compose_command(topo.fleet_action), progress)

    def _restart_targets(self, targets, progress):
        for name in targets:
            progress.append(f"Restarting {name}...")
            self._execute(self._topology.compose_command("restart", name), progress)
            progress.append(f"Restarted {name}.")

    def _execute(self, argv, progress):
        """Run one step.  Raises CommandFailure on any kind of failure."""
        log.info("Executing: %s", " ".join(argv))
        try:
            result = self._runner.run(argv, cwd=self._topology.working_dir)
        except OSError as exc:
            raise CommandFailure(str(exc), argv=argv, stderr=str(exc)) from exc

        if not result.ok:
            stderr = result.stderr.strip()
            message = stderr or f"Command failed with exit code {result.exit_code}"
            raise CommandFailure(
                message, argv=argv, exit_code=result.exit_code, stderr=message
            )
        if result.stdout.strip():
            progress.append(result.stdout.strip())

    # ── Status ─────────────────────────────────────────────────────────────

    def check_status(self):
        """Report whether any container of the stack is running.

        Advisory only: every failure degrades to ``offline``.
        """
        try:
            result = self._runner.run(
                self._topology.compose_command("ps", "-q"),
                cwd=self._topology.working_dir,
            )
        except Exception as exc:
            log.error("Error checking compose status: %s", exc)
            return {"status": "offline"}

        if not result.ok:
            log.warning("compose ps exited %d: %s", result.exit_code, result.stderr.strip())
            return {"status": "offline"}
        return {"status": "online" if result.stdout.strip() else "offline"}
