"""Page descriptor store.

The store is the ordered working set of pages for one edit session. Each
descriptor points back at a page of the immutable source document through
``source_index``; the store's order is the output order.
"""
import dataclasses
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence

from pagekit.errors import NotFound, OutOfRange

logger = logging.getLogger(__name__)

VALID_ROTATIONS = (0, 90, 180, 270)


def new_page_id() -> str:
    return f'page-{uuid.uuid4().hex[:12]}'


def normalize_rotation(degrees: int) -> int:
    """Fold any multiple of 90 into [0, 360)."""
    if degrees % 90:
        raise ValueError(f'rotation must be a multiple of 90, got {degrees}')
    return degrees % 360


@dataclass
class PageDescriptor:
    """One page of the working set.

    Attributes:
        id: Stable identifier, unique per descriptor (duplicates get a new one)
        source_index: 0-based page index in the source document, never changes
        rotation: Degrees added on top of the source page's own rotation
        deleted: Soft-delete flag; deleted pages are skipped on compile
        thumbnail: Opaque preview handle owned by the renderer
    """

    id: str
    source_index: int
    rotation: int = 0
    deleted: bool = False
    thumbnail: Any = None

    def __post_init__(self) -> None:
        self.rotation = normalize_rotation(self.rotation)

    def copy(self) -> 'PageDescriptor':
        return dataclasses.replace(self)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'source_index': self.source_index,
            'page_number': self.source_index + 1,
            'rotation': self.rotation,
            'deleted': self.deleted,
            'thumbnail': self.thumbnail,
        }


class PageStore:
    """Ordered collection of ``PageDescriptor`` bound to one source document."""

    def __init__(self):
        self._entries: List[PageDescriptor] = []
        self.page_count = 0

    def initialize(self, page_count: int, thumbnails: Optional[Sequence[Any]] = None) -> None:
        """Create one descriptor per source page, in source order.

        This is the only place fresh source indices are assigned.
        """
        if page_count < 0:
            raise ValueError(f'page_count must be >= 0, got {page_count}')
        if thumbnails is not None and len(thumbnails) != page_count:
            raise ValueError('thumbnails must match page_count')
        self.page_count = page_count
        self._entries = [
            PageDescriptor(
                id=new_page_id(),
                source_index=i,
                thumbnail=thumbnails[i] if thumbnails is not None else None,
            )
            for i in range(page_count)
        ]
        logger.debug('store initialized with %d pages', page_count)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PageDescriptor]:
        return iter(self._entries)

    @property
    def entries(self) -> List[PageDescriptor]:
        return list(self._entries)

    def get(self, position: int) -> PageDescriptor:
        if not 0 <= position < len(self._entries):
            raise OutOfRange(f'position {position} outside [0, {len(self._entries)})')
        return self._entries[position]

    def position_of(self, page_id: str) -> int:
        for i, entry in enumerate(self._entries):
            if entry.id == page_id:
                return i
        raise NotFound(f'no page with id {page_id!r}')

    def find(self, page_id: str) -> PageDescriptor:
        return self._entries[self.position_of(page_id)]

    def active_entries(self) -> List[PageDescriptor]:
        return [e for e in self._entries if not e.deleted]

    def deleted_entries(self) -> List[PageDescriptor]:
        return [e for e in self._entries if e.deleted]

    def insert(self, position: int, descriptor: PageDescriptor) -> None:
        if not 0 <= position <= len(self._entries):
            raise OutOfRange(f'insert position {position} outside [0, {len(self._entries)}]')
        self._check_source_index(descriptor.source_index)
        self._entries.insert(position, descriptor)

    def assign(self, entries: Sequence[PageDescriptor]) -> None:
        """Replace the entry sequence wholesale (used by reorder and undo)."""
        seen = set()
        for entry in entries:
            if entry.id in seen:
                raise ValueError(f'duplicate page id {entry.id!r}')
            seen.add(entry.id)
            self._check_source_index(entry.source_index)
        self._entries = list(entries)

    def snapshot(self) -> List[PageDescriptor]:
        """Value copy of every descriptor; later mutation cannot reach it."""
        return [e.copy() for e in self._entries]

    def restore(self, snapshot: Sequence[PageDescriptor]) -> None:
        self.assign([e.copy() for e in snapshot])

    def to_list(self) -> List[dict]:
        return [e.to_dict() for e in self._entries]

    def _check_source_index(self, source_index: int) -> None:
        if not 0 <= source_index < self.page_count:
            raise OutOfRange(
                f'source index {source_index} outside document of {self.page_count} pages'
            )
