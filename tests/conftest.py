"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from ltfw.capture.base import ListenerFilter
from ltfw.capture.models import AddressFamily, ListenerRecord, Transport
from ltfw.config import LtfwConfig
from ltfw.errors import FirewallError, FirewallUnavailableError, SocketTableError
from ltfw.firewall.models import Verdict


class FakeSocketTable:
    """In-memory socket tables keyed by (transport, family)."""

    def __init__(self) -> None:
        self.tables: dict[tuple[Transport, AddressFamily], list[ListenerRecord]] = {}
        self.broken: set[tuple[Transport, AddressFamily]] = set()
        self.queries: list[tuple[Transport, AddressFamily]] = []

    def add(
        self,
        family: AddressFamily,
        transport: Transport,
        ip: str,
        port: int,
        state: str = "LISTEN",
    ) -> None:
        record = ListenerRecord(
            local_ip=ip, local_port=port, transport=transport, state=state
        )
        self.tables.setdefault((transport, family), []).append(record)

    def query(
        self,
        transport: Transport,
        family: AddressFamily,
        accept: ListenerFilter,
    ) -> list[ListenerRecord]:
        self.queries.append((transport, family))
        if (transport, family) in self.broken:
            raise SocketTableError(f"{transport.value}{family.value} unavailable")
        return [r for r in self.tables.get((transport, family), []) if accept(r)]


class FakeFirewall:
    """Records rules per chain with append-unique semantics."""

    def __init__(self, family: AddressFamily, chains: Sequence[str] = ("INPUT",)) -> None:
        self._family = family
        self.chains = list(chains)
        self.rules: list[tuple[str, str, tuple[str, ...]]] = []
        self.fail_ports: set[str] = set()

    @property
    def family(self) -> AddressFamily:
        return self._family

    def list_chains(self, table: str) -> list[str]:
        return list(self.chains)

    def append_unique(self, table: str, chain: str, rulespec: Sequence[str]) -> bool:
        spec = tuple(rulespec)
        if any(port in spec for port in self.fail_ports):
            raise FirewallError("append failed")
        entry = (table, chain, spec)
        if entry in self.rules:
            return False
        self.rules.append(entry)
        return True


class FakeFirewallFactory:
    """Hands out one FakeFirewall per family; families can be made unavailable."""

    def __init__(self) -> None:
        self.firewalls = {family: FakeFirewall(family) for family in AddressFamily}
        self.unavailable: set[AddressFamily] = set()
        self.requests: list[AddressFamily] = []

    def __call__(self, family: AddressFamily) -> FakeFirewall:
        self.requests.append(family)
        if family in self.unavailable:
            raise FirewallUnavailableError(f"{family.binary} not found in PATH")
        return self.firewalls[family]


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def config() -> LtfwConfig:
    return LtfwConfig(
        every=30,
        drop_or_reject=Verdict.DROP,
        close_ips=frozenset({"127.0.0.1", "::1"}),
        protected_ports=frozenset({"22"}),
    )


@pytest.fixture
def socket_table() -> FakeSocketTable:
    return FakeSocketTable()


@pytest.fixture
def firewall_factory() -> FakeFirewallFactory:
    return FakeFirewallFactory()
