"""Log Monitor — follows one service's logs and self-heals on a fault marker.

The monitor attaches to ``docker compose logs -f`` for a single service
(new lines only), scans each completed line for the trigger signature and
asks the orchestrator for a restart when it appears.

Debounce rules for a trigger line:
  - a restart is already in flight          → ignored
  - last auto-restart finished < cooldown ago → ignored
  - otherwise                                → restart requested

Stream closure (often the monitored service being restarted by us) and
stream errors both lead to a fixed backoff and a fresh attach.  The loop
only ends on stop().
"""

import codecs
import logging
import threading
import time

import config

log = logging.getLogger(__name__)


class LineBuffer:
    """Reassemble lines from arbitrarily split byte chunks.

    A trailing partial line is carried over to the next chunk, and UTF-8 is
    decoded incrementally so a character split across chunks survives.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._partial = ""

    def feed(self, chunk):
        """Add *chunk* and return the list of lines it completed."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        text = self._partial + chunk
        lines = text.split("\n")
        self._partial = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self):
        """Return whatever partial line is left (end of stream)."""
        rest = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        return [rest] if rest else []


class LogMonitor:
    """Background log follower that triggers debounced restarts."""

    def __init__(self, runner, orchestrator, service=None, trigger=None,
                 cooldown=None, backoff=None, clock=time.monotonic):
        self._runner = runner
        self._orch = orchestrator
        self._service = config.MONITOR_SERVICE if service is None else service
        self._trigger = trigger or config.MONITOR_TRIGGER
        self._cooldown = config.MONITOR_COOLDOWN if cooldown is None else cooldown
        self._backoff = config.MONITOR_BACKOFF if backoff is None else backoff
        self._clock = clock

        self._lock = threading.Lock()
        self._initiating = False
        self.last_trigger_time = None
        self.triggers_fired = 0
        self.state = "idle"

        self._stop = threading.Event()
        self._thread = None

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self):
        """Start the monitor thread (no-op when no service is configured)."""
        if not self._service:
            log.info("Log monitor disabled: no service configured.")
            self.state = "inert"
            return
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever, daemon=True, name="log-monitor"
        )
        self._thread.start()
        log.info(
            "Log monitor started for %s (trigger %r, cooldown %gs).",
            self._service, self._trigger, self._cooldown,
        )

    def stop(self):
        """Signal the loop to stop; it exits after the current attach."""
        self._stop.set()

    def run_forever(self):
        """Attach, scan, back off, repeat until stop() is called."""
        if not self._service:
            log.info("Log monitor disabled: no service configured.")
            self.state = "inert"
            return

        while not self._stop.is_set():
            try:
                self.follow_once()
                log.warning(
                    "Log stream for %s ended; reattaching in %gs.",
                    self._service, self._backoff,
                )
            except Exception:
                log.exception(
                    "Log stream for %s failed; retrying in %gs.",
                    self._service, self._backoff,
                )
            self.state = "backoff"
            self._stop.wait(self._backoff)
        self.state = "stopped"

    def follow_once(self):
        """Attach to the log stream once and scan it until it closes."""
        topo = self._orch.topology
        argv = topo.compose_command(
            "logs", "-f", "--tail", "0", "--no-log-prefix", self._service
        )
        with self._runner.stream(argv, cwd=topo.working_dir) as chunks:
            self.state = "attached"
            log.info("Attached to logs of %s.", self._service)
            self.scan(chunks)

    def scan(self, chunks):
        """Feed every chunk through a LineBuffer and handle each line."""
        buffer = LineBuffer()
        for chunk in chunks:
            if self._stop.is_set():
                return
            for line in buffer.feed(chunk):
                self.handle_line(line)
        for line in buffer.flush():
            self.handle_line(line)

    # ── Triggering ─────────────────────────────────────────────────────────

    def handle_line(self, line):
        """Check one completed line.

        Returns None for ordinary lines, ``"suppressed"`` when the trigger
        was seen but debounced, ``"initiating"`` when a restart was requested.
        """
        if self._trigger not in line:
            return None

        with self._lock:
            if self._initiating or self._orch.in_flight:
                log.info("Trigger seen but a restart is in flight; ignoring.")
                return "suppressed"
            if (self.last_trigger_time is not None
                    and self._clock() - self.last_trigger_time < self._cooldown):
                log.info("Trigger seen within %gs cooldown; ignoring.", self._cooldown)
                return "suppressed"
            self._initiating = True

        log.warning("Trigger %r detected in %s logs; requesting restart.",
                    self._trigger, self._service)
        targets = list(self._orch.topology.restart_only) or None
        try:
            future = self._orch.submit(targets, source="log-monitor")
        except Exception:
            self._finish()
            raise
        self.triggers_fired += 1
        future.add_done_callback(self._on_restart_done)
        return "initiating"

    def _on_restart_done(self, future):
        try:
            outcome = future.result()
            if outcome.succeeded:
                log.info("Auto-restart finished.")
            else:
                log.error("Auto-restart failed: %s", outcome.error_message)
        except Exception:
            log.exception("Auto-restart raised.")
        finally:
            self._finish()

    def _finish(self):
        with self._lock:
            self.last_trigger_time = self._clock()
            self._initiating = False

    # ── Helpers ────────────────────────────────────────────────────────────

    def snapshot(self):
        """Return monitor state for API consumers."""
        with self._lock:
            return {
                "service": self._service or None,
                "state": self.state,
                "initiating": self._initiating,
                "triggers_fired": self.triggers_fired,
                "cooldown_seconds": self._cooldown,
            }
