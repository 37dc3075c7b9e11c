"""iptables/ip6tables backend driven through subprocess."""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Sequence

from ltfw.capture.models import AddressFamily
from ltfw.errors import FirewallError, FirewallUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# `iptables -C` exits 1 when no matching rule exists
_RULE_MISSING = 1


class IPTables:
    """Runs iptables (v4) or ip6tables (v6) commands for one address family.

    Every call passes ``--wait`` so concurrent xtables users queue on the
    lock instead of failing, and is bounded by ``timeout`` seconds.
    """

    def __init__(
        self,
        family: AddressFamily,
        path: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._family = family
        self._path = path
        self._timeout = timeout

    @classmethod
    def for_family(
        cls, family: AddressFamily, timeout: float = DEFAULT_TIMEOUT
    ) -> IPTables:
        path = shutil.which(family.binary)
        if path is None:
            raise FirewallUnavailableError(f"{family.binary} not found in PATH")
        return cls(family, path, timeout=timeout)

    @property
    def family(self) -> AddressFamily:
        return self._family

    def list_chains(self, table: str) -> list[str]:
        proc = self._run(["-t", table, "-S"])
        if proc.returncode != 0:
            raise FirewallError(
                f"{self._family.binary} -t {table} -S failed: {proc.stderr.strip()}"
            )

        chains: list[str] = []
        for line in proc.stdout.splitlines():
            parts = line.split()
            # "-P INPUT ACCEPT" for built-ins, "-N NAME" for user chains
            if len(parts) >= 2 and parts[0] in ("-P", "-N"):
                chains.append(parts[1])
        return chains

    def exists(self, table: str, chain: str, rulespec: Sequence[str]) -> bool:
        proc = self._run(["-t", table, "-C", chain, *rulespec])
        if proc.returncode == 0:
            return True
        if proc.returncode == _RULE_MISSING:
            return False
        raise FirewallError(
            f"{self._family.binary} -C {chain} failed: {proc.stderr.strip()}"
        )

    def append_unique(self, table: str, chain: str, rulespec: Sequence[str]) -> bool:
        if self.exists(table, chain, rulespec):
            return False

        proc = self._run(["-t", table, "-A", chain, *rulespec])
        if proc.returncode != 0:
            raise FirewallError(
                f"{self._family.binary} -A {chain} failed: {proc.stderr.strip()}"
            )
        return True

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        cmd = [self._path, "--wait", *args]
        logger.debug("exec: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise FirewallError(
                f"{self._family.binary} timed out after {self._timeout}s"
            ) from exc
        except OSError as exc:
            raise FirewallError(f"Cannot run {self._family.binary}: {exc}") from exc
