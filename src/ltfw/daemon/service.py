"""Reconciliation loop and the background service that hosts it."""

from __future__ import annotations

import logging
import threading
import time

from ltfw.capture.base import SocketTable
from ltfw.capture.models import AddressFamily
from ltfw.capture.psutil_ import PsutilSocketTable
from ltfw.capture.snapshot import SnapshotBuilder
from ltfw.config import LtfwConfig
from ltfw.daemon.models import CycleReport, LoopState
from ltfw.errors import FirewallError, FirewallNotReadyError
from ltfw.firewall.base import FirewallFactory
from ltfw.firewall.iptables import IPTables
from ltfw.firewall.sync import RuleSynchronizer
from ltfw.policy.classifier import ExemptionClassifier

logger = logging.getLogger(__name__)


def check_firewall_ready(
    config: LtfwConfig,
    firewall_factory: FirewallFactory = IPTables.for_family,
) -> None:
    """Raise FirewallNotReadyError unless the IPv4 base chain exists.

    IPv6 is not checked here; its handle is acquired per cycle.
    """
    try:
        firewall = firewall_factory(AddressFamily.V4)
        chains = firewall.list_chains(config.table)
    except FirewallError as exc:
        raise FirewallNotReadyError(f"IPTables not ready: {exc}") from exc

    if config.chain not in chains:
        raise FirewallNotReadyError(
            f"IPTables not ready: chain {config.chain!r} missing from table "
            f"{config.table!r}"
        )


class ReconciliationLoop:
    """Idle → reconciling → idle, every ``config.every`` seconds, until stopped."""

    def __init__(
        self,
        config: LtfwConfig,
        builder: SnapshotBuilder,
        synchronizer: RuleSynchronizer,
    ) -> None:
        self._config = config
        self._builder = builder
        self._synchronizer = synchronizer
        self._stop_event = threading.Event()
        self._state = LoopState.IDLE
        self._last_report: CycleReport | None = None
        self._cycles = 0

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    @property
    def cycles(self) -> int:
        return self._cycles

    def run_cycle(self) -> CycleReport:
        """One snapshot + synchronize pass. Partial failures are reported, not raised."""
        self._state = LoopState.RECONCILING
        report = CycleReport()
        try:
            logger.info("checking")
            snapshot = self._builder.build_snapshot()
            report.listeners = len(snapshot)
            report.snapshot_failures = list(snapshot.failures)
            report.sync = self._synchronizer.synchronize(
                snapshot, stop_event=self._stop_event
            )
        finally:
            report.end_time = time.time()
            self._state = LoopState.IDLE

        self._cycles += 1
        self._last_report = report
        logger.debug(
            "Cycle %d: %d listeners, %d appended, %d present, %d protected, "
            "%d failures in %.2fs",
            self._cycles,
            report.listeners,
            len(report.sync.appended),
            len(report.sync.already_present),
            len(report.sync.protected),
            len(report.failures),
            report.duration,
        )
        if report.partial:
            logger.warning(
                "Cycle %d completed with %d partial failure(s)",
                self._cycles,
                len(report.failures),
            )
        return report

    def run_forever(self) -> None:
        """Blocking loop until stop(). The interval wait wakes up on stop()."""
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except Exception:
                # A bad cycle must not kill the daemon; the next one retries
                logger.exception("Reconciliation cycle failed")
            self._stop_event.wait(timeout=self._config.every)

        self._state = LoopState.STOPPED

    def stop(self) -> None:
        """Signal the loop to stop."""
        self._stop_event.set()

    def reset(self) -> None:
        """Re-arm a stopped loop so run_forever() can be entered again."""
        self._stop_event.clear()
        self._state = LoopState.IDLE


class FirewallService:
    """Long-running background service: readiness check, start, stop."""

    def __init__(
        self,
        config: LtfwConfig,
        socket_table: SocketTable | None = None,
        firewall_factory: FirewallFactory = IPTables.for_family,
    ) -> None:
        self._config = config
        self._firewall_factory = firewall_factory
        classifier = ExemptionClassifier(config)
        self._loop = ReconciliationLoop(
            config,
            SnapshotBuilder(socket_table or PsutilSocketTable(), classifier),
            RuleSynchronizer(config, classifier, firewall_factory),
        )
        self._thread: threading.Thread | None = None

    @property
    def loop(self) -> ReconciliationLoop:
        return self._loop

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Check readiness, then run the loop in a daemon thread.

        Raises FirewallNotReadyError without starting anything if the base
        chain is missing.
        """
        if self.is_running:
            # Also covers a stopped loop whose last cycle is still in flight
            raise RuntimeError("Service already running")

        check_firewall_ready(self._config, self._firewall_factory)

        self._loop.reset()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="ltfw-loop", daemon=True
        )
        self._thread.start()
        logger.info("Started, checking every %d seconds", self._config.every)

    def stop(self, timeout: float | None = 10.0) -> None:
        """Stop the loop and wait for an in-flight cycle to finish.

        If the cycle outlives ``timeout`` the thread is kept, so the service
        still reports running and start() refuses until it has exited.
        """
        self._loop.stop()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Reconciliation thread did not exit within %ss", timeout)
                return
            self._thread = None
        logger.info("Stopped")

    def wait(self) -> None:
        """Block until the loop thread exits."""
        thread = self._thread
        if thread is None:
            return
        # join() without a timeout is not interruptible by signals
        while thread.is_alive():
            thread.join(timeout=0.5)
