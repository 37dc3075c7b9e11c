"""Rule synchronizer — append a block rule for every unprotected candidate."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

from ltfw.capture.models import AddressFamily, ClassifiedListener
from ltfw.config import LtfwConfig
from ltfw.errors import FirewallError
from ltfw.firewall.base import FirewallControl, FirewallFactory
from ltfw.firewall.iptables import IPTables
from ltfw.firewall.models import BlockRule
from ltfw.policy.classifier import ExemptionClassifier

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """What one synchronize() call did."""

    appended: list[BlockRule] = field(default_factory=list)
    already_present: list[BlockRule] = field(default_factory=list)
    protected: list[ClassifiedListener] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


def partition(
    listeners: Iterable[ClassifiedListener],
) -> dict[AddressFamily, list[ClassifiedListener]]:
    """Split listeners by address family, preserving order within each family."""
    parts: dict[AddressFamily, list[ClassifiedListener]] = {
        family: [] for family in AddressFamily
    }
    for listener in listeners:
        parts[listener.family].append(listener)
    return parts


class RuleSynchronizer:
    """Converges the packet filter towards "every candidate is blocked".

    Only appends. Each family gets its own firewall handle per call, so a
    missing ip6tables (or a host without IPv6) skips v6 without touching v4.
    Duplicate suppression is left to the backend's append-unique.
    """

    def __init__(
        self,
        config: LtfwConfig,
        classifier: ExemptionClassifier,
        firewall_factory: FirewallFactory = IPTables.for_family,
    ) -> None:
        self._config = config
        self._classifier = classifier
        self._firewall_factory = firewall_factory

    def synchronize(
        self,
        snapshot: Iterable[ClassifiedListener],
        stop_event: threading.Event | None = None,
    ) -> SyncResult:
        result = SyncResult()
        for family, listeners in partition(snapshot).items():
            if stop_event is not None and stop_event.is_set():
                logger.info("Stop requested, abandoning remaining families")
                break
            if not listeners:
                continue

            try:
                firewall = self._firewall_factory(family)
            except FirewallError as exc:
                logger.warning("IPv%s firewall unavailable: %s", family.value, exc)
                result.failures.append(f"ipv{family.value}: {exc}")
                continue

            self._sync_family(firewall, listeners, result)
        return result

    def _sync_family(
        self,
        firewall: FirewallControl,
        listeners: list[ClassifiedListener],
        result: SyncResult,
    ) -> None:
        verdict = self._config.drop_or_reject
        for listener in listeners:
            if self._classifier.is_protected(listener.record):
                logger.debug("- protected: %s", listener)
                result.protected.append(listener)
                continue

            rule = BlockRule(
                transport=listener.transport,
                port=listener.record.local_port,
                verdict=verdict,
            )
            logger.debug("- blocking: %s", listener)
            try:
                appended = firewall.append_unique(
                    self._config.table, self._config.chain, rule.to_iptables_args()
                )
            except FirewallError as exc:
                logger.warning("Failed to append %s for %s: %s", rule, listener, exc)
                result.failures.append(f"{listener}: {exc}")
                continue

            if appended:
                logger.info("Blocked %s (%s)", listener, rule)
                result.appended.append(rule)
            else:
                result.already_present.append(rule)
