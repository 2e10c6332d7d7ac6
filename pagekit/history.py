"""Bounded undo log of full store snapshots."""
import logging
from collections import deque
from typing import Deque, List

from pagekit.config import HISTORY_LIMIT
from pagekit.errors import NothingToUndo
from pagekit.store import PageDescriptor, PageStore

logger = logging.getLogger(__name__)


class EditHistory:
    """Linear undo stack.

    ``snapshot`` stores a value copy of the store; ``undo`` pops the newest
    snapshot back into the store. There is no redo: the state replaced by an
    undo is discarded. Past ``limit`` snapshots the oldest one is evicted.
    """

    def __init__(self, limit: int = HISTORY_LIMIT):
        if limit < 1:
            raise ValueError(f'history limit must be >= 1, got {limit}')
        self.limit = limit
        self._stack: Deque[List[PageDescriptor]] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def can_undo(self) -> bool:
        return bool(self._stack)

    def snapshot(self, store: PageStore) -> None:
        self.push(store.snapshot())

    def push(self, entries: List[PageDescriptor]) -> None:
        """Store an already-taken snapshot (e.g. the state before a drag began)."""
        if len(self._stack) == self.limit:
            logger.debug('history full (%d), evicting oldest snapshot', self.limit)
        self._stack.append([e.copy() for e in entries])

    def undo(self, store: PageStore) -> None:
        if not self._stack:
            raise NothingToUndo('nothing to undo')
        store.restore(self._stack.pop())

    def peek(self) -> List[PageDescriptor]:
        """Newest snapshot, as copies."""
        if not self._stack:
            raise NothingToUndo('history is empty')
        return [e.copy() for e in self._stack[-1]]

    def oldest(self) -> List[PageDescriptor]:
        if not self._stack:
            raise NothingToUndo('history is empty')
        return [e.copy() for e in self._stack[0]]

    def clear(self) -> None:
        self._stack.clear()
