"""Exemption classifier — decides which listeners are watched and which are spared."""

from __future__ import annotations

from ltfw.capture.models import LISTEN, ListenerRecord
from ltfw.config import LtfwConfig


class ExemptionClassifier:
    """Pure predicates over listener records, driven by the loaded config.

    Two independent checks:

    - IP exemption (``close_ips``) runs first, at query time. An exempt
      listener never enters a snapshot.
    - Port protection (``protected_ports``) runs at synchronisation time.
      A protected listener is collected but never blocked.

    Matching is exact string equality; no CIDR or port ranges.
    """

    def __init__(self, config: LtfwConfig) -> None:
        self._close_ips = config.close_ips
        self._protected_ports = config.protected_ports

    def is_exempt(self, local_ip: str) -> bool:
        return local_ip in self._close_ips

    def is_monitor_candidate_tcp(self, record: ListenerRecord) -> bool:
        if self.is_exempt(record.local_ip):
            return False
        return record.state == LISTEN

    def is_monitor_candidate_udp(self, record: ListenerRecord) -> bool:
        # UDP has no listen state; any bound socket counts
        return not self.is_exempt(record.local_ip)

    def is_protected(self, record: ListenerRecord) -> bool:
        """Port-only match, so one entry protects both TCP and UDP."""
        return str(record.local_port) in self._protected_ports
