"""Scheduler daemon for the periodic scoring cycle.

No external scheduler library is required; it uses stdlib ``time``,
``signal`` and ``subprocess`` only.

Typical usage via the CLI::

    validator-analytics start-scheduler --interval-minutes 60

Or import directly::

    from validator_analytics.scheduler import SchedulerDaemon
    daemon = SchedulerDaemon(db_path="data/db/validator_analytics.db")
    daemon.start()  # blocks until Ctrl-C

Each cycle invokes ``run-scoring-cycle`` as a subprocess (the installed CLI),
so every run has its own process, logging and exit code. A failed cycle is
logged and retried at the next slot; the previously published snapshot keeps
being served in the meantime.
"""

from __future__ import annotations

import logging
import platform
import signal
import subprocess
import sys
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _find_cli_exe() -> str:
    """Locate the validator-analytics CLI executable inside the active virtual env.

    Adds the ``.exe`` suffix on Windows. Raises ``RuntimeError`` if not found.
    """
    scripts_dir = Path(sys.executable).parent
    candidates = (
        ["validator-analytics.exe", "validator-analytics"]
        if platform.system() == "Windows"
        else ["validator-analytics"]
    )
    for name in candidates:
        candidate = scripts_dir / name
        if candidate.exists():
            return str(candidate)
    raise RuntimeError(
        f"Could not find validator-analytics executable in {scripts_dir}. "
        "Run: pip install -e ."
    )


# ── Daemon ────────────────────────────────────────────────────────────────────


class SchedulerDaemon:
    """Runs ``run-scoring-cycle`` every ``interval_minutes``.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file, forwarded to the CLI.
    interval_minutes:
        Minutes between cycle starts.
    step_timeout_seconds:
        Wall-clock limit for one cycle subprocess.
    skip_initial_run:
        When *True*, wait one interval before the first cycle.
    config_path:
        Optional TOML config forwarded to the CLI.
    cli_exe:
        Full path to the CLI executable.  Auto-detected from the active
        virtual environment when *None*.
    """

    def __init__(
        self,
        db_path: str,
        interval_minutes: int = 60,
        step_timeout_seconds: int = 3600,
        skip_initial_run: bool = False,
        config_path: Optional[str] = None,
        cli_exe: Optional[str] = None,
    ) -> None:
        self.db_path = db_path
        self.interval_minutes = interval_minutes
        self.step_timeout_seconds = step_timeout_seconds
        self.skip_initial_run = skip_initial_run
        self.config_path = config_path
        self.cli_exe = cli_exe or _find_cli_exe()
        self._running = False

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _run_cmd(self, args: list[str], label: str) -> bool:
        """Run a CLI sub-command.  Returns ``True`` on success (exit code 0)."""
        cmd = [self.cli_exe] + args
        log.info("[%s] Running: %s", label, " ".join(cmd))
        try:
            result = subprocess.run(cmd, timeout=self.step_timeout_seconds)
        except subprocess.TimeoutExpired:
            log.error("[%s] Timed out after %d s.", label, self.step_timeout_seconds)
            return False
        except OSError as exc:
            log.error("[%s] Could not start: %s", label, exc)
            return False
        if result.returncode == 0:
            log.info("[%s] Completed successfully (exit 0).", label)
            return True
        log.error("[%s] Exited with code %d.", label, result.returncode)
        return False

    def _cycle_args(self) -> list[str]:
        args = ["run-scoring-cycle", "--db-path", self.db_path]
        if self.config_path:
            args += ["--config", self.config_path]
        return args

    # ── Jobs ──────────────────────────────────────────────────────────────────

    def run_cycle(self) -> bool:
        """Execute one scoring cycle subprocess."""
        log.info(
            "=== Scoring cycle starting at %s ===",
            datetime.now().isoformat(timespec="seconds"),
        )
        ok = self._run_cmd(self._cycle_args(), "scoring-cycle")
        if not ok:
            log.warning("Scoring cycle failed; last published snapshot stays current.")
        return ok

    # ── Main loop ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the daemon.  Blocks until Ctrl-C (or SIGTERM on Linux/macOS)."""
        interval = timedelta(minutes=self.interval_minutes)
        next_run: datetime = (
            datetime.now() + interval if self.skip_initial_run else datetime.now()
        )

        log.info(
            "Scheduler started.  interval=%dm  db=%s", self.interval_minutes, self.db_path
        )
        log.info("Next cycle: %s", next_run.isoformat(timespec="seconds"))

        self._running = True

        def _shutdown(signum, frame):  # noqa: ANN001
            log.info("Signal %d received; stopping scheduler.", signum)
            self._running = False

        signal.signal(signal.SIGINT, _shutdown)
        if platform.system() != "Windows":
            signal.signal(signal.SIGTERM, _shutdown)

        # Main loop, ticking every 30 s
        while self._running:
            if datetime.now() >= next_run:
                self.run_cycle()
                next_run = datetime.now() + interval
                log.info("Next cycle scheduled: %s", next_run.isoformat(timespec="seconds"))
            time.sleep(30)

        log.info("Scheduler stopped.")
