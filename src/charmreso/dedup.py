"""Per-collision deduplication of reduced V0 rows."""

from __future__ import annotations

from typing import Callable

from .models import ReducedV0Record


class V0DeduplicationIndex:
    """Arena of reduced V0 rows plus a map from original V0 id to arena slot.

    One instance covers exactly one collision. Create a new one (or call
    `clear`) before the next collision.
    """

    def __init__(self) -> None:
        self._slots: dict[int, int] = {}
        self._rows: list[ReducedV0Record] = []

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, v0_id: int) -> bool:
        return v0_id in self._slots

    def lookup(self, v0_id: int) -> int | None:
        """Return the arena slot of `v0_id`, or None if not stored yet."""
        return self._slots.get(v0_id)

    def insert(self, v0_id: int, build: Callable[[], ReducedV0Record]) -> tuple[int, bool]:
        """Store the row built by `build` unless `v0_id` is already present.

        Returns `(slot, inserted)`. `build` is only called on first insertion.
        """
        slot = self._slots.get(v0_id)
        if slot is not None:
            return slot, False
        slot = len(self._rows)
        self._rows.append(build())
        self._slots[v0_id] = slot
        return slot, True

    def items(self) -> list[tuple[int, int]]:
        """`(v0_id, slot)` pairs in insertion order."""
        return list(self._slots.items())

    @property
    def rows(self) -> list[ReducedV0Record]:
        """Stored rows in insertion order."""
        return list(self._rows)

    def clear(self) -> None:
        self._slots.clear()
        self._rows.clear()
