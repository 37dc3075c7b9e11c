"""ltfw — Light Touch Firewall: block every listener that is not allow-listed."""

__version__ = "0.1.0"
