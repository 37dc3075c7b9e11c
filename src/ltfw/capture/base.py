"""SocketTable protocol — all socket-table sources must satisfy this."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from ltfw.capture.models import AddressFamily, ListenerRecord, Transport

ListenerFilter = Callable[[ListenerRecord], bool]


@runtime_checkable
class SocketTable(Protocol):
    """Protocol for OS socket-table accessors."""

    def query(
        self,
        transport: Transport,
        family: AddressFamily,
        accept: ListenerFilter,
    ) -> list[ListenerRecord]:
        """Return the sockets of one (transport, family) table accepted by the filter.

        Raises SocketTableError if the table cannot be read.
        """
        ...
