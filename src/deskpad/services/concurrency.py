"""Last-request-wins arbitration for overlapping asynchronous operations.

Each operation kind (``"folder"``, ``"open:/path"``, ...) has at most one
current :class:`CancellationToken`. Starting a new operation of the same kind
cancels the previous token; the older coroutine notices after its next
``await`` and drops its result instead of applying it.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field

__all__ = ["CancellationToken", "OperationGuard"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class CancellationToken:
    kind: str
    generation: int
    _cancelled: bool = field(default=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class OperationGuard:
    """Hands out tokens and tracks which one is current per operation kind."""

    def __init__(self) -> None:
        self._current: dict[str, CancellationToken] = {}
        self._counter = itertools.count(1)

    def begin(self, kind: str) -> CancellationToken:
        previous = self._current.get(kind)
        if previous is not None:
            previous.cancel()
            LOGGER.debug("Superseding %s operation #%d", kind, previous.generation)
        token = CancellationToken(kind=kind, generation=next(self._counter))
        self._current[kind] = token
        return token

    def is_current(self, token: CancellationToken) -> bool:
        return not token.cancelled and self._current.get(token.kind) is token

    def finish(self, token: CancellationToken) -> bool:
        """Release ``token``; ``True`` only for the owner of the current slot."""

        if self._current.get(token.kind) is not token:
            return False
        del self._current[token.kind]
        return not token.cancelled

    def in_flight(self, kind: str) -> bool:
        return kind in self._current

    def cancel_all(self) -> None:
        for token in self._current.values():
            token.cancel()
        self._current.clear()
