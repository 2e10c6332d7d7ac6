"""Page selection: direct picks or a ``"1-5, 8, 10-12"`` range expression.

Both modes resolve to sorted, de-duplicated 0-based page indices so the
compiled output order never depends on click order.
"""
import logging
from typing import Iterable, List, Optional, Set

from pagekit.errors import InvalidRangeExpression

logger = logging.getLogger(__name__)

PICK = 'pick'
RANGE = 'range'


def _parse_int(token: str) -> Optional[int]:
    try:
        return int(token.strip())
    except ValueError:
        return None


def parse_page_range(expression: str, total_pages: int) -> List[int]:
    """Parse a 1-based range expression and return 0-based page indices.

    Tokens are split on ``,`` and trimmed. ``N-M`` is an inclusive range
    clamped to the document; ``N`` is a single page. Malformed or
    out-of-range tokens are dropped. A range with ``start > end`` contributes
    nothing, it is never swapped.

    Raises:
        InvalidRangeExpression: when not a single token is well-formed
    """
    pages: Set[int] = set()
    parsed = 0
    for part in (expression or '').split(','):
        part = part.strip()
        if not part:
            continue
        if '-' in part:
            a, _, b = part.partition('-')
            start, end = _parse_int(a), _parse_int(b)
            if start is None or end is None:
                logger.debug('dropping malformed range token %r', part)
                continue
            parsed += 1
            # clamp to valid range
            start = max(start, 1)
            end = min(end, total_pages)
            pages.update(range(start - 1, end))
        else:
            page = _parse_int(part)
            if page is None:
                logger.debug('dropping malformed page token %r', part)
                continue
            parsed += 1
            if 1 <= page <= total_pages:
                pages.add(page - 1)
            else:
                logger.debug('dropping out-of-range page %d (document has %d)', page, total_pages)
    if not parsed:
        raise InvalidRangeExpression(f'no page numbers found in {expression!r}')
    return sorted(pages)


def complement(indices: Iterable[int], total_pages: int) -> List[int]:
    """Every page index of the document not in ``indices``, ascending."""
    drop = set(indices)
    return [i for i in range(total_pages) if i not in drop]


class PageSelection:
    """Selection state for extract/split/remove style tools.

    The two modes are exclusive: switching mode discards the other mode's
    state.
    """

    def __init__(self, mode: str = PICK):
        if mode not in (PICK, RANGE):
            raise ValueError(f'unknown selection mode {mode!r}')
        self.mode = mode
        self._picked: Set[int] = set()
        self.expression = ''

    def set_mode(self, mode: str) -> None:
        if mode not in (PICK, RANGE):
            raise ValueError(f'unknown selection mode {mode!r}')
        if mode != self.mode:
            self._picked.clear()
            self.expression = ''
            self.mode = mode

    def toggle(self, position: int) -> bool:
        """Add ``position`` if absent, remove it if present. Returns membership."""
        if self.mode != PICK:
            raise ValueError('toggle is only available in pick mode')
        if position in self._picked:
            self._picked.discard(position)
            return False
        self._picked.add(position)
        return True

    def pick_many(self, positions: Iterable[int]) -> None:
        for position in positions:
            self.toggle(position)

    def set_range(self, expression: str) -> None:
        if self.mode != RANGE:
            raise ValueError('range expressions are only available in range mode')
        self.expression = expression

    def clear(self) -> None:
        self._picked.clear()
        self.expression = ''

    @property
    def picked(self) -> List[int]:
        return sorted(self._picked)

    def resolve(self, total_pages: int) -> List[int]:
        """Materialize the selection as ascending 0-based indices."""
        if self.mode == RANGE:
            return parse_page_range(self.expression, total_pages)
        return [p for p in sorted(self._picked) if 0 <= p < total_pages]
