"""Socket-table source backed by psutil.net_connections()."""

from __future__ import annotations

import logging

import psutil

from ltfw.capture.base import ListenerFilter
from ltfw.capture.models import AddressFamily, ListenerRecord, Transport
from ltfw.errors import SocketTableError

logger = logging.getLogger(__name__)


class PsutilSocketTable:
    """Reads the system-wide socket tables through psutil.

    Each (transport, family) pair maps to one psutil ``kind``, e.g. ``tcp4``
    or ``udp6``. On Linux this reads /proc/net/*; owning PIDs are only
    filled in when running as root.
    """

    def query(
        self,
        transport: Transport,
        family: AddressFamily,
        accept: ListenerFilter,
    ) -> list[ListenerRecord]:
        kind = f"{transport.value}{family.value}"
        try:
            conns = psutil.net_connections(kind=kind)
        except (psutil.Error, OSError) as exc:
            raise SocketTableError(f"Unable to read {kind} socket table: {exc}") from exc

        records: list[ListenerRecord] = []
        for conn in conns:
            if not conn.laddr:
                continue

            record = ListenerRecord(
                local_ip=conn.laddr.ip,
                local_port=conn.laddr.port,
                transport=transport,
                state=conn.status,
                pid=conn.pid,
            )
            if accept(record):
                records.append(record)

        logger.debug("%s: %d of %d sockets accepted", kind, len(records), len(conns))
        return records
