"""Access control — administrator identity and purchase whitelist."""

from crowdsale.access.gate import AccessGate

__all__ = ["AccessGate"]
