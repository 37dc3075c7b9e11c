"""Snapshot builder — one merged, tagged listing of candidate listeners per cycle."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from ltfw.capture.base import ListenerFilter, SocketTable
from ltfw.capture.models import AddressFamily, ClassifiedListener, Transport
from ltfw.errors import SocketTableError
from ltfw.policy.classifier import ExemptionClassifier

logger = logging.getLogger(__name__)

# Fixed query order keeps snapshots (and therefore logs) reproducible.
QUERY_ORDER: tuple[tuple[Transport, AddressFamily], ...] = (
    (Transport.TCP, AddressFamily.V4),
    (Transport.UDP, AddressFamily.V4),
    (Transport.TCP, AddressFamily.V6),
    (Transport.UDP, AddressFamily.V6),
)


@dataclass
class Snapshot:
    """Listeners collected in one cycle, plus the tables that could not be read."""

    listeners: list[ClassifiedListener] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    def __iter__(self) -> Iterator[ClassifiedListener]:
        return iter(self.listeners)

    def __len__(self) -> int:
        return len(self.listeners)


class SnapshotBuilder:
    """Queries the four socket tables and merges the candidates.

    A table that fails to load is logged and skipped; the snapshot is then
    partial rather than empty.
    """

    def __init__(self, table: SocketTable, classifier: ExemptionClassifier) -> None:
        self._table = table
        self._classifier = classifier

    def _filter_for(self, transport: Transport) -> ListenerFilter:
        if transport is Transport.TCP:
            return self._classifier.is_monitor_candidate_tcp
        return self._classifier.is_monitor_candidate_udp

    def build_snapshot(self) -> Snapshot:
        snapshot = Snapshot()
        for transport, family in QUERY_ORDER:
            try:
                records = self._table.query(
                    transport, family, self._filter_for(transport)
                )
            except SocketTableError as exc:
                logger.warning(
                    "Unable to retrieve %s%s listeners: %s",
                    transport.name,
                    family.value,
                    exc,
                )
                snapshot.failures.append(f"{transport.value}{family.value}: {exc}")
                continue

            snapshot.listeners.extend(
                ClassifiedListener(transport=transport, family=family, record=r)
                for r in records
            )
        return snapshot
