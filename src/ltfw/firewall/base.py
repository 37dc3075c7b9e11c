"""FirewallControl protocol — the packet-filter backend the daemon appends to."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from ltfw.capture.models import AddressFamily


@runtime_checkable
class FirewallControl(Protocol):
    """A handle on one address family's packet filter."""

    @property
    def family(self) -> AddressFamily: ...

    def list_chains(self, table: str) -> list[str]:
        """Names of all chains in ``table``, built-in and user-defined."""
        ...

    def append_unique(self, table: str, chain: str, rulespec: Sequence[str]) -> bool:
        """Append ``rulespec`` to ``chain`` unless an identical rule exists.

        Returns True if a rule was appended, False if it was already present.
        Raises FirewallError on failure.
        """
        ...


# Obtains a handle for one family; raises FirewallUnavailableError.
FirewallFactory = Callable[[AddressFamily], FirewallControl]
