"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Snapshot IO is synchronous: the store commits and persists on one thread of control;
      the text completer is async because it is a network round trip kept out of the
      mutation path
"""

from typing import Protocol

from relstore.core.domain_types import Snapshot
from relstore.core.errors import ErrorContext


class SnapshotAdapter(Protocol):
    """Durable medium for whole-store snapshots — implemented by shell."""
    def load(self) -> Snapshot: ...
    def save(self, snapshot: Snapshot) -> None: ...
    def health_check(self) -> bool: ...


class TextCompleter(Protocol):
    """Opaque (prompt) -> text service used for record extraction."""
    async def complete(
        self, prompt: str, system: str, context: ErrorContext | None = None,
    ) -> str: ...
