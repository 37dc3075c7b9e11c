"""Tests for the reconciliation loop and service lifecycle."""

from __future__ import annotations

import logging
import threading
import time
from unittest.mock import MagicMock

import pytest

from ltfw.capture.models import AddressFamily, Transport
from ltfw.capture.snapshot import QUERY_ORDER
from ltfw.config import LtfwConfig
from ltfw.daemon.models import LoopState
from ltfw.daemon.service import FirewallService, check_firewall_ready
from ltfw.errors import FirewallNotReadyError
from ltfw.firewall.models import Verdict

V4, V6 = AddressFamily.V4, AddressFamily.V6
TCP, UDP = Transport.TCP, Transport.UDP


@pytest.fixture
def service(config: LtfwConfig, socket_table, firewall_factory) -> FirewallService:
    svc = FirewallService(config, socket_table=socket_table, firewall_factory=firewall_factory)
    yield svc
    svc.stop(timeout=2)


def test_ready_when_base_chain_exists(config: LtfwConfig, firewall_factory):
    check_firewall_ready(config, firewall_factory)
    assert firewall_factory.requests == [V4]


def test_not_ready_when_chain_missing(config: LtfwConfig, firewall_factory):
    firewall_factory.firewalls[V4].chains = ["FORWARD", "OUTPUT"]
    with pytest.raises(FirewallNotReadyError, match="INPUT"):
        check_firewall_ready(config, firewall_factory)


def test_not_ready_when_iptables_unavailable(config: LtfwConfig, firewall_factory):
    firewall_factory.unavailable.add(V4)
    with pytest.raises(FirewallNotReadyError, match="iptables"):
        check_firewall_ready(config, firewall_factory)


def test_v6_not_checked_at_startup(config: LtfwConfig, firewall_factory):
    firewall_factory.unavailable.add(V6)
    check_firewall_ready(config, firewall_factory)


def test_start_refused_when_not_ready(service: FirewallService, firewall_factory):
    firewall_factory.firewalls[V4].chains = []
    with pytest.raises(FirewallNotReadyError):
        service.start()
    assert not service.is_running
    assert service.loop.cycles == 0


def test_run_cycle_scenario_reject(socket_table, firewall_factory):
    config = LtfwConfig(every=30, drop_or_reject=Verdict.REJECT)
    socket_table.add(V4, TCP, "0.0.0.0", 9000)
    svc = FirewallService(config, socket_table=socket_table, firewall_factory=firewall_factory)

    report = svc.loop.run_cycle()

    assert report.listeners == 1
    assert not report.partial
    assert firewall_factory.firewalls[V4].rules == [
        ("filter", "INPUT", ("-p", "tcp", "--destination-port", "9000", "-j", "REJECT"))
    ]
    assert svc.loop.state is LoopState.IDLE
    assert svc.loop.last_report is report


def test_run_cycle_with_failed_v6_table(
    service: FirewallService, socket_table, firewall_factory, caplog: pytest.LogCaptureFixture
):
    socket_table.add(V4, TCP, "0.0.0.0", 8080)
    socket_table.add(V4, UDP, "0.0.0.0", 53, "NONE")
    socket_table.broken.update({(TCP, V6), (UDP, V6)})

    with caplog.at_level(logging.WARNING):
        report = service.loop.run_cycle()

    assert report.partial
    assert len(report.snapshot_failures) == 2
    assert len(firewall_factory.firewalls[V4].rules) == 2
    assert "partial failure" in caplog.text


def test_cycle_returns_to_idle_after_exception(config: LtfwConfig, firewall_factory):
    table = MagicMock()
    table.query.side_effect = RuntimeError("boom")
    svc = FirewallService(config, socket_table=table, firewall_factory=firewall_factory)

    with pytest.raises(RuntimeError):
        svc.loop.run_cycle()
    assert svc.loop.state is LoopState.IDLE


def test_loop_survives_failing_cycle(config: LtfwConfig, firewall_factory):
    table = MagicMock()
    table.query.side_effect = RuntimeError("boom")
    svc = FirewallService(config, socket_table=table, firewall_factory=firewall_factory)

    svc.start()
    deadline = time.time() + 2
    while table.query.call_count == 0 and time.time() < deadline:
        time.sleep(0.01)
    assert svc.is_running
    svc.stop(timeout=2)
    assert not svc.is_running


def test_start_runs_first_cycle_immediately(service: FirewallService, socket_table, firewall_factory):
    socket_table.add(V4, TCP, "0.0.0.0", 8080)

    service.start()
    deadline = time.time() + 2
    while service.loop.cycles == 0 and time.time() < deadline:
        time.sleep(0.01)

    assert service.loop.cycles == 1
    assert len(firewall_factory.firewalls[V4].rules) == 1


def test_stop_interrupts_interval_sleep(service: FirewallService):
    # every=30: stop must not wait out the interval
    service.start()
    deadline = time.time() + 2
    while service.loop.cycles == 0 and time.time() < deadline:
        time.sleep(0.01)

    started = time.monotonic()
    service.stop(timeout=5)
    assert time.monotonic() - started < 2
    assert not service.is_running
    assert service.loop.state is LoopState.STOPPED


def test_start_twice_raises(service: FirewallService):
    service.start()
    with pytest.raises(RuntimeError, match="already running"):
        service.start()


def test_restart_after_stop(service: FirewallService):
    service.start()
    service.stop(timeout=2)
    service.start()
    assert service.is_running


def test_wait_returns_once_stopped(service: FirewallService):
    service.start()
    threading.Timer(0.1, service.stop).start()
    service.wait()
    assert not service.is_running


class _BlockingTable:
    """Socket table whose queries hang until released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()

    def query(self, transport, family, accept):
        self.entered.set()
        self.release.wait(timeout=5)
        return []


class _CountingEvent(threading.Event):
    """Stop event whose wait() returns at once and sets itself after N waits."""

    def __init__(self, stop_after: int) -> None:
        super().__init__()
        self.stop_after = stop_after
        self.timeouts: list[float | None] = []

    def wait(self, timeout: float | None = None) -> bool:
        self.timeouts.append(timeout)
        if len(self.timeouts) >= self.stop_after:
            self.set()
        return self.is_set()


def _live_loop_threads() -> int:
    return sum(1 for t in threading.enumerate() if t.name == "ltfw-loop" and t.is_alive())


def test_start_refused_while_stopped_cycle_still_in_flight(config: LtfwConfig, firewall_factory):
    table = _BlockingTable()
    svc = FirewallService(config, socket_table=table, firewall_factory=firewall_factory)
    before = _live_loop_threads()

    svc.start()
    assert table.entered.wait(timeout=2)
    svc.stop(timeout=0.1)

    assert svc.is_running
    with pytest.raises(RuntimeError, match="already running"):
        svc.start()
    assert _live_loop_threads() == before + 1

    table.release.set()
    svc.stop(timeout=5)
    assert not svc.is_running
    assert _live_loop_threads() == before


def test_loop_reconciles_again_after_interval(config: LtfwConfig, socket_table, firewall_factory):
    socket_table.add(V4, TCP, "0.0.0.0", 8080)
    svc = FirewallService(config, socket_table=socket_table, firewall_factory=firewall_factory)
    event = _CountingEvent(stop_after=2)
    svc.loop._stop_event = event

    svc.loop.run_forever()

    assert svc.loop.cycles == 2
    assert event.timeouts == [config.every, config.every]
    assert socket_table.queries == list(QUERY_ORDER) * 2
    assert len(firewall_factory.firewalls[V4].rules) == 1
    assert len(svc.loop.last_report.sync.already_present) == 1
    assert svc.loop.state is LoopState.STOPPED


def test_cycle_report_records_duration(service: FirewallService):
    report = service.loop.run_cycle()
    assert report.end_time is not None
    assert report.duration >= 0.0
