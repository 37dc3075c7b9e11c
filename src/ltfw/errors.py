"""Exception hierarchy shared across ltfw."""

from __future__ import annotations


class LtfwError(Exception):
    """Base class for all ltfw errors."""


class ConfigError(LtfwError, ValueError):
    """The configuration file is missing, unparseable, or invalid."""


class SocketTableError(LtfwError):
    """A socket-table query could not be completed."""


class FirewallError(LtfwError):
    """A firewall command failed."""


class FirewallUnavailableError(FirewallError):
    """No firewall handle can be obtained for an address family."""


class FirewallNotReadyError(FirewallError):
    """The base chain the daemon appends to does not exist."""
