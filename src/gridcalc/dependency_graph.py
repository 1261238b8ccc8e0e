"""Bidirectional many-to-many dependency relation over string keys.

A pair ``(s, t)`` means *t depends on s*: t's formula references s, so s must
be evaluated before t.  ``t`` is a *dependent* of ``s`` and ``s`` is a
*dependee* of ``t``.

The graph knows nothing about cells, values or formulas.  All operations are
total over arbitrary string keys; unknown keys simply have empty relations.
"""

from __future__ import annotations

from typing import Iterable


class DependencyGraph:
    """A set of ordered ``(s, t)`` pairs with O(1) lookups in both directions.

    Usage::

        dg = DependencyGraph()
        dg.add_dependency("A1", "B1")   # B1 depends on A1
        dg.get_dependents("A1")          # {"B1"}
        dg.get_dependees("B1")           # {"A1"}
    """

    __slots__ = ("_dependents", "_dependees", "_size")

    def __init__(self) -> None:
        # s -> keys that depend on s
        self._dependents: dict[str, set[str]] = {}
        # t -> keys that t depends on
        self._dependees: dict[str, set[str]] = {}
        self._size = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        """The number of ordered pairs in the graph."""
        return self._size

    def __len__(self) -> int:
        return self._size

    def dependee_count(self, s: str) -> int:
        """Return the size of ``dependees(s)``."""
        return len(self._dependees.get(s, ()))

    def has_dependents(self, s: str) -> bool:
        """Report whether ``dependents(s)`` is non-empty."""
        return bool(self._dependents.get(s))

    def has_dependees(self, s: str) -> bool:
        """Report whether ``dependees(s)`` is non-empty."""
        return bool(self._dependees.get(s))

    def get_dependents(self, s: str) -> set[str]:
        """Return a snapshot of the keys that depend on *s*."""
        return set(self._dependents.get(s, ()))

    def get_dependees(self, s: str) -> set[str]:
        """Return a snapshot of the keys that *s* depends on."""
        return set(self._dependees.get(s, ()))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_dependency(self, s: str, t: str) -> None:
        """Add the pair ``(s, t)``.  No-op if it is already present."""
        dents = self._dependents.setdefault(s, set())
        if t in dents:
            return
        dents.add(t)
        self._dependees.setdefault(t, set()).add(s)
        self._size += 1

    def remove_dependency(self, s: str, t: str) -> None:
        """Remove the pair ``(s, t)``.  No-op if it is absent."""
        dents = self._dependents.get(s)
        if not dents or t not in dents:
            return
        dents.discard(t)
        self._dependees[t].discard(s)
        self._size -= 1
        self._forget_if_isolated(s)
        self._forget_if_isolated(t)

    def replace_dependents(self, s: str, new_dependents: Iterable[str]) -> None:
        """Remove every pair ``(s, r)``, then add ``(s, t)`` for each *t*."""
        for r in self.get_dependents(s):
            self.remove_dependency(s, r)
        for t in new_dependents:
            self.add_dependency(s, t)

    def replace_dependees(self, s: str, new_dependees: Iterable[str]) -> None:
        """Remove every pair ``(r, s)``, then add ``(t, s)`` for each *t*."""
        for r in self.get_dependees(s):
            self.remove_dependency(r, s)
        for t in new_dependees:
            self.add_dependency(t, s)

    def _forget_if_isolated(self, key: str) -> None:
        if not self._dependents.get(key) and not self._dependees.get(key):
            self._dependents.pop(key, None)
            self._dependees.pop(key, None)

    def __repr__(self) -> str:
        return f"DependencyGraph(size={self._size})"
