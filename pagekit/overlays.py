"""Overlay requests: what to draw, on which pages, and where."""
import io
import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from PIL import Image
from reportlab.pdfbase import pdfmetrics

from pagekit.coords import ANCHORS, NormalizedBox
from pagekit.errors import InvalidOverlay

ALL_PAGES = 'all'

_HEX_COLOR = re.compile(r'^#?([0-9a-fA-F]{6})$')


def parse_hex_color(color: str) -> Tuple[float, float, float]:
    """'#FF0000' -> (1.0, 0.0, 0.0)"""
    m = _HEX_COLOR.match(color or '')
    if not m:
        raise InvalidOverlay(f'invalid colour {color!r}, expected #RRGGBB')
    value = m.group(1)
    return tuple(int(value[i:i + 2], 16) / 255.0 for i in (0, 2, 4))


def _check_opacity(opacity: float) -> None:
    if not 0.0 <= opacity <= 1.0:
        raise InvalidOverlay(f'opacity {opacity} outside [0, 1]')


def _check_font(font: str) -> None:
    try:
        pdfmetrics.getFont(font)
    except KeyError:
        raise InvalidOverlay(f'unknown font {font!r}') from None


@dataclass(frozen=True)
class FillContent:
    """Solid rectangle, used for redaction boxes."""

    color: str = '#000000'

    def __post_init__(self):
        parse_hex_color(self.color)


@dataclass(frozen=True)
class ImageContent:
    """PNG or JPEG bytes: a drawn/uploaded signature or an image watermark.

    ``scale`` only matters for anchored placement, where the drawn size is
    the image's pixel size times ``scale`` in points.
    """

    data: bytes
    opacity: float = 1.0
    rotation: float = 0.0
    scale: float = 1.0

    def __post_init__(self):
        _check_opacity(self.opacity)
        if self.scale <= 0:
            raise InvalidOverlay('image scale must be positive')
        try:
            with Image.open(io.BytesIO(self.data)) as im:
                im.verify()
        except Exception as exc:
            raise InvalidOverlay(f'unreadable image: {exc}') from exc

    def natural_size(self) -> Tuple[float, float]:
        with Image.open(io.BytesIO(self.data)) as im:
            w, h = im.size
        return w * self.scale, h * self.scale


@dataclass(frozen=True)
class TextContent:
    """Text drawn into a box or centred on an anchor (typed signature, watermark)."""

    text: str
    font: str = 'Helvetica-Bold'
    size: float = 50
    color: str = '#FF0000'
    opacity: float = 1.0
    rotation: float = 0.0

    def __post_init__(self):
        if not self.text:
            raise InvalidOverlay('text overlay needs some text')
        if self.size <= 0:
            raise InvalidOverlay('font size must be positive')
        parse_hex_color(self.color)
        _check_font(self.font)
        _check_opacity(self.opacity)


@dataclass(frozen=True)
class PageNumberContent:
    """Per-page label rendered from a template with ``{n}`` and ``{total}``."""

    template: str = 'Page {n}'
    start_from: int = 1
    font: str = 'Helvetica'
    font_size: float = 12
    color: str = '#000000'

    def __post_init__(self):
        if self.font_size <= 0:
            raise InvalidOverlay('font size must be positive')
        parse_hex_color(self.color)
        _check_font(self.font)

    def text_for(self, index: int, total: int) -> str:
        """Label for the page at output ``index`` (0-based) of ``total``."""
        return (self.template
                .replace('{n}', str(self.start_from + index))
                .replace('{total}', str(total)))


OverlayContent = Union[FillContent, ImageContent, TextContent, PageNumberContent]


@dataclass(frozen=True)
class OverlaySpec:
    """One overlay request.

    ``target`` is a descriptor id or ``ALL_PAGES``. Placement is either a
    user-drawn ``box`` in normalized preview space, or an ``anchor`` plus
    ``margin`` (points) for content whose size is measured at compile time.
    """

    content: OverlayContent
    target: str = ALL_PAGES
    box: Optional[NormalizedBox] = None
    anchor: Optional[str] = None
    margin: float = 0.0

    def __post_init__(self):
        if (self.box is None) == (self.anchor is None):
            raise InvalidOverlay('overlay needs exactly one of box or anchor')
        if self.anchor is not None and self.anchor not in ANCHORS:
            raise InvalidOverlay(f'unknown anchor {self.anchor!r}')
        if self.margin < 0:
            raise InvalidOverlay('margin must not be negative')
        if isinstance(self.content, FillContent) and self.box is None:
            raise InvalidOverlay('fill overlays need a drawn box')

    def applies_to(self, page_id: str) -> bool:
        return self.target == ALL_PAGES or self.target == page_id


def redaction(box: NormalizedBox, target: str = ALL_PAGES, color: str = '#000000') -> OverlaySpec:
    return OverlaySpec(FillContent(color), target=target, box=box)


def signature(content: Union[ImageContent, TextContent], box: NormalizedBox, target: str) -> OverlaySpec:
    return OverlaySpec(content, target=target, box=box)


def watermark(content: Union[ImageContent, TextContent], target: str = ALL_PAGES) -> OverlaySpec:
    return OverlaySpec(content, target=target, anchor='center')


def page_numbers(content: PageNumberContent, position: str = 'bottom-center', margin: float = 20) -> OverlaySpec:
    return OverlaySpec(content, target=ALL_PAGES, anchor=position, margin=margin)
