"""One document-edit session: store, undo history and the mutations.

Every tool (organize, rotate, extract, split, remove and the overlay tools)
drives the same ``EditSession``; a tool simply uses fewer of its
operations. The session is synchronous and not thread-safe: calls are
expected one at a time from a single control flow.
"""
import logging
from typing import Iterable, List, Optional, Sequence

from pagekit.compiler import (
    CompileResult,
    compile_selection,
    compile_store,
    remove_selection,
    split_each,
)
from pagekit.config import HISTORY_LIMIT
from pagekit.errors import NotFound
from pagekit.history import EditHistory
from pagekit.overlays import ALL_PAGES, OverlaySpec
from pagekit.pdf_utils import PdfSerializer, SourceDocument, load_document
from pagekit.selection import RANGE, PageSelection, parse_page_range
from pagekit.store import PageDescriptor, PageStore, new_page_id

logger = logging.getLogger(__name__)

CLOCKWISE = 'cw'
COUNTERCLOCKWISE = 'ccw'
_DELTAS = {CLOCKWISE: 90, COUNTERCLOCKWISE: -90}


def rotation_delta(direction: str) -> int:
    try:
        return _DELTAS[direction]
    except KeyError:
        raise ValueError(f'direction must be {CLOCKWISE!r} or {COUNTERCLOCKWISE!r}, got {direction!r}') from None


class EditSession:
    """Editable page set bound to one immutable source document."""

    def __init__(
        self,
        source: SourceDocument,
        thumbnails: Optional[Sequence] = None,
        history_limit: int = HISTORY_LIMIT,
        serializer=None,
    ):
        self.source = source
        self.store = PageStore()
        self.history = EditHistory(history_limit)
        self.selection = PageSelection()
        self.serializer = serializer or PdfSerializer()
        # store state before an uncommitted drag started
        self._drag_origin: Optional[List[PageDescriptor]] = None
        self.initialize(thumbnails)

    @classmethod
    def from_bytes(cls, data: bytes, **kwargs) -> 'EditSession':
        return cls(load_document(data), **kwargs)

    def initialize(self, thumbnails: Optional[Sequence] = None) -> None:
        """Reset to one descriptor per source page and forget all history."""
        self.store.initialize(self.source.page_count, thumbnails)
        self.history.clear()
        self.selection.clear()
        self._drag_origin = None

    #------------------------ history ------------------------

    def _snapshot(self) -> None:
        if self._drag_origin is not None:
            self.history.push(self._drag_origin)
            self._drag_origin = None
        self.history.snapshot(self.store)

    def undo(self) -> None:
        if self._drag_origin is not None:
            # an abandoned drag is rolled back first
            self.store.restore(self._drag_origin)
            self._drag_origin = None
            return
        self.history.undo(self.store)
        logger.debug('undo, %d snapshot(s) left', len(self.history))

    @property
    def can_undo(self) -> bool:
        return self._drag_origin is not None or self.history.can_undo

    #------------------------ mutations ------------------------

    def reorder(self, order: Sequence[str], commit: bool = True) -> None:
        """Apply a new order of the active pages, given as descriptor ids.

        Deleted entries keep their slots; active entries are written back
        into the remaining slots in the new order. Intermediate drag frames
        pass ``commit=False``: they change the store but only the final,
        committed frame records one history entry, holding the state from
        before the drag.
        """
        entries = self.store.entries
        active_ids = [e.id for e in entries if not e.deleted]
        by_id = {e.id: e for e in entries}
        for page_id in order:
            if page_id not in by_id:
                raise NotFound(f'no page with id {page_id!r}')
        if len(order) != len(active_ids) or set(order) != set(active_ids):
            raise ValueError('order must be a permutation of the active pages')

        if commit:
            if self._drag_origin is None:
                self.history.snapshot(self.store)
            else:
                self.history.push(self._drag_origin)
                self._drag_origin = None
        elif self._drag_origin is None:
            self._drag_origin = self.store.snapshot()

        reordered = iter(by_id[page_id] for page_id in order)
        merged = [e if e.deleted else next(reordered) for e in entries]
        self.store.assign(merged)
        logger.debug('reorder (commit=%s): %s', commit, order)

    def rotate(self, page_id: str, direction: str) -> PageDescriptor:
        delta = rotation_delta(direction)
        entry = self.store.find(page_id)
        self._snapshot()
        entry.rotation = (entry.rotation + delta) % 360
        logger.debug('rotate %s -> %d', page_id, entry.rotation)
        return entry

    def rotate_all(self, direction: str) -> None:
        """Rotate every active page as a single undoable step."""
        delta = rotation_delta(direction)
        self._snapshot()
        for entry in self.store.active_entries():
            entry.rotation = (entry.rotation + delta) % 360

    def reset_rotation(self) -> None:
        self._snapshot()
        for entry in self.store:
            entry.rotation = 0

    def delete(self, page_id: str) -> PageDescriptor:
        entry = self.store.find(page_id)
        self._snapshot()
        entry.deleted = True
        logger.debug('delete %s', page_id)
        return entry

    def restore(self, page_id: str) -> PageDescriptor:
        entry = self.store.find(page_id)
        self._snapshot()
        entry.deleted = False
        logger.debug('restore %s', page_id)
        return entry

    def duplicate(self, page_id: str) -> PageDescriptor:
        """Insert a copy right after the original; the copy gets a fresh id."""
        position = self.store.position_of(page_id)
        original = self.store.get(position)
        self._snapshot()
        copy = PageDescriptor(
            id=new_page_id(),
            source_index=original.source_index,
            rotation=original.rotation,
            thumbnail=original.thumbnail,
        )
        self.store.insert(position + 1, copy)
        logger.debug('duplicate %s -> %s', page_id, copy.id)
        return copy

    #------------------------ selection ------------------------

    def resolve_selection(self, expression: Optional[str] = None) -> List[int]:
        """Resolve ``expression`` if given, else the session's current selection.

        Range expressions name source page numbers. Picks are store
        positions (what the user clicked in the current grid) and are mapped
        to the source index of the entry at that position.
        """
        if expression is not None:
            return parse_page_range(expression, self.source.page_count)
        if self.selection.mode == RANGE:
            return self.selection.resolve(self.source.page_count)
        positions = self.selection.resolve(len(self.store))
        return sorted({self.store.get(p).source_index for p in positions})

    #------------------------ compile ------------------------

    def compile(self, overlays: Sequence[OverlaySpec] = ()) -> CompileResult:
        """Active pages in store order, with rotations and overlays.

        The store is never modified, whether the compile succeeds or not.
        """
        for spec in overlays:
            if spec.target != ALL_PAGES:
                self.store.find(spec.target)
        return compile_store(self.store, self.source, overlays, self.serializer)

    def compile_selection(self, indices: Optional[Iterable[int]] = None, carry_rotation: bool = False) -> CompileResult:
        if indices is None:
            indices = self.resolve_selection()
        rotations = None
        if carry_rotation:
            rotations = {}
            for entry in self.store.active_entries():
                rotations.setdefault(entry.source_index, entry.rotation)
        return compile_selection(indices, self.source, rotations, self.serializer)

    def remove_selection(self, indices: Optional[Iterable[int]] = None) -> CompileResult:
        if indices is None:
            indices = self.resolve_selection()
        return remove_selection(indices, self.source, self.serializer)

    def split_each(self) -> bytes:
        return split_each(self.source, self.serializer)

    def state(self) -> dict:
        return {
            'page_count': self.source.page_count,
            'pages': self.store.to_list(),
            'active_count': len(self.store.active_entries()),
            'deleted_count': len(self.store.deleted_entries()),
            'can_undo': self.can_undo,
            'history': len(self.history),
        }
