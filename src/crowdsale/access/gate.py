"""Access gate — single administrator and purchase whitelist.

One administrative principal is configured at construction. Every
privileged operation compares the injected caller identity against it;
there is no inherited privilege and no role hierarchy.

Whitelist updates are idempotent: adding a listed address or removing
an absent one is a no-op, not an error. Membership gates the purchase
path only; administrative allocation bypasses it.
"""

from __future__ import annotations

from typing import Iterable, List, Set, Union

from crowdsale.errors import InvalidAddress, Unauthorized


AddressArg = Union[str, Iterable[str]]


def _as_addresses(addresses: AddressArg) -> List[str]:
    if isinstance(addresses, str):
        addresses = [addresses]
    result = list(dict.fromkeys(addresses))
    for addr in result:
        if not isinstance(addr, str) or not addr.strip():
            raise InvalidAddress(f"Invalid address: {addr!r}")
    return result


class AccessGate:
    """Administrator check and whitelist membership."""

    def __init__(self, admin: str) -> None:
        if not admin:
            raise ValueError("Administrator identity must not be blank")
        self._admin = admin
        self._whitelist: Set[str] = set()

    @property
    def admin(self) -> str:
        return self._admin

    def require_admin(self, caller: str) -> None:
        """Raise Unauthorized unless caller is the administrator."""
        if caller != self._admin:
            raise Unauthorized(f"Caller {caller!r} is not the administrator")

    def is_whitelisted(self, address: str) -> bool:
        return address in self._whitelist

    def add_to_whitelist(self, caller: str, addresses: AddressArg) -> List[str]:
        """Add one or many addresses. Returns the newly listed ones."""
        self.require_admin(caller)
        added = [a for a in _as_addresses(addresses) if a not in self._whitelist]
        self._whitelist.update(added)
        return added

    def remove_from_whitelist(self, caller: str, addresses: AddressArg) -> List[str]:
        """Remove one or many addresses. Returns the ones actually removed."""
        self.require_admin(caller)
        removed = [a for a in _as_addresses(addresses) if a in self._whitelist]
        self._whitelist.difference_update(removed)
        return removed

    def whitelist(self) -> List[str]:
        return sorted(self._whitelist)

    def restore(self, addresses: Iterable[str]) -> None:
        """Reload whitelist membership from persisted state."""
        self._whitelist = set(addresses)
