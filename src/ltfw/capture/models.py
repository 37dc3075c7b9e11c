"""Listener data models — raw socket-table records and their per-cycle tags."""

from __future__ import annotations

import enum
from dataclasses import dataclass

LISTEN = "LISTEN"


class Transport(enum.Enum):
    """Transport protocol of a listening socket."""

    TCP = "tcp"
    UDP = "udp"

    @property
    def protocol(self) -> str:
        """Value passed to iptables ``-p``."""
        return self.value


class AddressFamily(enum.Enum):
    """IP address family; selects the socket table and the firewall binary."""

    V4 = "4"
    V6 = "6"

    @property
    def binary(self) -> str:
        return "iptables" if self is AddressFamily.V4 else "ip6tables"


@dataclass(frozen=True)
class ListenerRecord:
    """One socket as reported by the OS at query time."""

    local_ip: str
    local_port: int
    transport: Transport
    state: str = "NONE"
    pid: int | None = None


@dataclass(frozen=True)
class ClassifiedListener:
    """A candidate listener tagged with the table it was read from."""

    transport: Transport
    family: AddressFamily
    record: ListenerRecord

    def __str__(self) -> str:
        ip = self.record.local_ip
        host = f"[{ip}]" if self.family is AddressFamily.V6 else ip
        return f"{self.transport.protocol}/{host}:{self.record.local_port}"
