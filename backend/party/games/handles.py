"""
Collections keyed by connection handle.

Connection handles change on every reconnect, so any structure that remembers
a player by handle must be able to swap one handle for another in place. The
collections below implement the Rebindable protocol; GameState.rebind() walks
its fields and swaps every one of them without knowing which game owns it.
"""

from __future__ import annotations

from dataclasses import field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Rebindable(Protocol):
    def swap(self, old: str, new: str) -> bool:
        """Replace every reference to old with new. Return True if anything changed."""
        ...


class HandleMap[V](dict[str, V]):
    """Handle-keyed dict whose swap() keeps the key's position in iteration order."""

    def swap(self, old: str, new: str) -> bool:
        if old not in self or old == new:
            return False
        items = [(new if key == old else key, value) for key, value in self.items()]
        self.clear()
        self.update(items)
        return True


class HandleSet(set[str]):
    def swap(self, old: str, new: str) -> bool:
        if old not in self or old == new:
            return False
        self.discard(old)
        self.add(new)
        return True


class HandleList(list[str]):
    """Ordered handles, e.g. a turn order."""

    def swap(self, old: str, new: str) -> bool:
        changed = False
        for i, handle in enumerate(self):
            if handle == old:
                self[i] = new
                changed = True
        return changed


def handle_field(default: str | None = None) -> Any:
    """Declare a dataclass field that holds a single handle (e.g. whose turn it is)."""
    return field(default=default, metadata={"handle": True})
