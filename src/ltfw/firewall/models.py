"""Firewall rule models."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from ltfw.capture.models import Transport


class Verdict(enum.Enum):
    """Terminal action of a block rule. Values are the config spellings."""

    DROP = "drop"
    REJECT = "reject"

    @property
    def target(self) -> str:
        """iptables jump target."""
        return self.name


@dataclass(frozen=True)
class BlockRule:
    """An INPUT rule blocking one destination port for one transport."""

    transport: Transport
    port: int
    verdict: Verdict

    def to_iptables_args(self) -> list[str]:
        return [
            "-p",
            self.transport.protocol,
            "--destination-port",
            str(self.port),
            "-j",
            self.verdict.target,
        ]

    def __str__(self) -> str:
        return f"{self.verdict.target} {self.transport.protocol}/{self.port}"
