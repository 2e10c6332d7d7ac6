"""Mapping between preview space and PDF page space.

Preview space is normalized (fractions of the rendered preview, origin top
left, y grows downward). PDF page space is in points with the origin at the
bottom left of the media box. Every overlay kind goes through the functions
here so the compiled position always matches the preview.
"""
from dataclasses import dataclass
from typing import Tuple

from pagekit.errors import InvalidOverlay

# tolerance for x + width slightly above 1.0 after float rounding
EPSILON = 1e-9

ANCHORS = (
    'top-left', 'top-center', 'top-right',
    'center-left', 'center', 'center-right',
    'bottom-left', 'bottom-center', 'bottom-right',
)


def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


@dataclass(frozen=True)
class NormalizedBox:
    """Box in preview space, every field a fraction in [0, 1]."""

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        for name in ('x', 'y', 'width', 'height'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidOverlay(f'{name}={value} outside [0, 1]')
        if self.x + self.width > 1.0 + EPSILON or self.y + self.height > 1.0 + EPSILON:
            raise InvalidOverlay(f'box {self} extends past the page')

    @classmethod
    def from_percent(cls, x: float, y: float, width: float, height: float) -> 'NormalizedBox':
        """Build from 0-100 percentages, as preview widgets report them."""
        return cls(x / 100.0, y / 100.0, width / 100.0, height / 100.0)

    @classmethod
    def clamped(cls, x: float, y: float, width: float, height: float) -> 'NormalizedBox':
        """Build a box, clipping whatever falls outside the page."""
        x0, y0 = _clamp01(x), _clamp01(y)
        x1, y1 = _clamp01(x + width), _clamp01(y + height)
        return cls(x0, y0, max(x1 - x0, 0.0), max(y1 - y0, 0.0))

    @classmethod
    def from_corners(cls, x0: float, y0: float, x1: float, y1: float) -> 'NormalizedBox':
        """Box spanned by two drag points in any order."""
        return cls(min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0))


@dataclass(frozen=True)
class DocumentBox:
    """Box in PDF points, (x, y) is the lower-left corner."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height


def to_document_space(
    nx: float,
    ny: float,
    nw: float,
    nh: float,
    page_width: float,
    page_height: float,
) -> DocumentBox:
    """Map a normalized top-left box onto a bottom-left page of the given size.

    The y flip shifts by the box's own height because the document box is
    anchored at its bottom edge.
    """
    return DocumentBox(
        x=nx * page_width,
        y=page_height - (ny + nh) * page_height,
        width=nw * page_width,
        height=nh * page_height,
    )


def map_box(
    box: NormalizedBox,
    page_width: float,
    page_height: float,
    origin: Tuple[float, float] = (0.0, 0.0),
) -> DocumentBox:
    """``to_document_space`` for a ``NormalizedBox``, offset by the media box origin."""
    mapped = to_document_space(box.x, box.y, box.width, box.height, page_width, page_height)
    ox, oy = origin
    return DocumentBox(mapped.x + ox, mapped.y + oy, mapped.width, mapped.height)


def to_normalized(box: DocumentBox, page_width: float, page_height: float) -> NormalizedBox:
    """Inverse of ``to_document_space``, for drawing a compiled box on a preview."""
    if page_width <= 0 or page_height <= 0:
        raise InvalidOverlay('page size must be positive')
    nx = box.x / page_width
    nw = box.width / page_width
    nh = box.height / page_height
    ny = (page_height - box.y) / page_height - nh
    return NormalizedBox.clamped(nx, ny, nw, nh)


def anchor_box(
    anchor: str,
    content_width: float,
    content_height: float,
    page_width: float,
    page_height: float,
    margin: float = 0.0,
) -> DocumentBox:
    """Place content of a measured size at an anchor, ``margin`` points in.

    Used for content that is not drawn as a box by the user: page numbers
    keyed to a corner or edge, and watermarks centred on the page.
    """
    if anchor not in ANCHORS:
        raise InvalidOverlay(f'unknown anchor {anchor!r}')
    vertical, _, horizontal = anchor.partition('-')
    if anchor == 'center':
        vertical, horizontal = 'center', 'center'

    if horizontal == 'left':
        x = margin
    elif horizontal == 'right':
        x = page_width - content_width - margin
    else:
        x = page_width / 2.0 - content_width / 2.0

    if vertical == 'bottom':
        y = margin
    elif vertical == 'top':
        y = page_height - margin - content_height
    else:
        y = page_height / 2.0 - content_height / 2.0

    return DocumentBox(x, y, content_width, content_height)
