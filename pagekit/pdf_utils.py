"""PDF collaborators for the page-set engine.

- loading: ``load_document`` reads page count, media boxes and rotations (pypdf)
- rendering: ``render_thumbnail`` / ``generate_thumbnails`` (PyMuPDF + Pillow)
- serializing: ``PdfSerializer`` copies pages into a new document, draws
  overlays built with reportlab and writes the final bytes (pypdf)
"""
import io
import logging
import os
import time
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import fitz  # PyMuPDF
from PIL import Image
from pypdf import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from pagekit.config import THUMB_SCALE
from pagekit.coords import DocumentBox
from pagekit.errors import CompilationFailed, InvalidDocument, OutOfRange
from pagekit.overlays import FillContent, ImageContent, TextContent, parse_hex_color

logger = logging.getLogger(__name__)


#------------------------ Loader ------------------------

@dataclass
class SourceDocument:
    """Immutable source PDF plus the per-page facts the engine needs."""

    data: bytes
    sizes: List[Tuple[float, float]] = field(default_factory=list)
    rotations: List[int] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.sizes)

    def _check(self, index: int) -> None:
        if not 0 <= index < self.page_count:
            raise OutOfRange(f'page index {index} outside [0, {self.page_count})')

    def native_size(self, index: int) -> Tuple[float, float]:
        """Unrotated media box (width, height) in points."""
        self._check(index)
        return self.sizes[index]

    def rotation(self, index: int) -> int:
        self._check(index)
        return self.rotations[index]

    def display_size(self, index: int) -> Tuple[float, float]:
        """Size as a viewer shows it, after the page's own /Rotate."""
        w, h = self.native_size(index)
        if self.rotations[index] in (90, 270):
            return h, w
        return w, h


def load_document(data: bytes) -> SourceDocument:
    """Parse PDF bytes; raises ``InvalidDocument`` for anything unreadable."""
    if not data or not data.lstrip()[:5].startswith(b'%PDF'):
        raise InvalidDocument('file is not a PDF (missing %PDF header)')
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            raise InvalidDocument('PDF is password protected')
        sizes = []
        rotations = []
        for page in reader.pages:
            box = page.mediabox
            sizes.append((float(box.width), float(box.height)))
            rotations.append(int(page.rotation or 0) % 360)
    except InvalidDocument:
        raise
    except Exception as exc:
        raise InvalidDocument(f'PDF could not be read: {exc}') from exc
    if not sizes:
        raise InvalidDocument('PDF has no pages')
    logger.debug('loaded PDF with %d pages', len(sizes))
    return SourceDocument(data=data, sizes=sizes, rotations=rotations)


#------------------------ Renderer ------------------------

def _render_page(doc, page_index: int, scale: float) -> bytes:
    page = doc.load_page(page_index)
    pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
    img = Image.frombytes('RGB', (pix.width, pix.height), pix.samples)
    buf = io.BytesIO()
    img.save(buf, 'JPEG', quality=85)
    return buf.getvalue()


def render_thumbnail(data: bytes, page_index: int, scale: float = THUMB_SCALE) -> bytes:
    """Render one page to JPEG bytes. Read-only and idempotent."""
    doc = fitz.open(stream=data, filetype='pdf')
    try:
        if not 0 <= page_index < len(doc):
            raise OutOfRange(f'page index {page_index} outside [0, {len(doc)})')
        return _render_page(doc, page_index, scale)
    finally:
        doc.close()


def generate_thumbnails(data: bytes, thumb_dir: str, scale: float = THUMB_SCALE) -> List[str]:
    """Write ``page<n>.jpg`` for every page into ``thumb_dir`` and return the paths."""
    os.makedirs(thumb_dir, exist_ok=True)
    start = time.time()
    thumbs = []
    doc = fitz.open(stream=data, filetype='pdf')
    try:
        for i in range(len(doc)):
            dest = os.path.join(thumb_dir, f'page{i + 1}.jpg')
            with open(dest, 'wb') as fh:
                fh.write(_render_page(doc, i, scale))
            thumbs.append(dest)
    finally:
        doc.close()
    logger.info('generate_thumbnails: %d pages in %.2fs', len(thumbs), time.time() - start)
    return thumbs


#------------------------ Serializer ------------------------

def measure_text(text: str, font: str, size: float) -> Tuple[float, float]:
    """(width, height) of a single line in points."""
    return pdfmetrics.stringWidth(text, font, size), float(size)


class PdfSerializer:
    """Builds the output document page by page.

    The handle returned by ``copy_pages`` is a ``PdfWriter``; pages are
    addressed by their output position.
    """

    def copy_pages(self, source: bytes, pages: Sequence[Tuple[int, int]]) -> PdfWriter:
        """Copy ``(source_index, rotation_delta)`` pairs in order into a new document.

        The rotation is added to the page's /Rotate entry, never rendered.
        The n-th occurrence of a repeated source page is cloned from its own
        reader, so every emitted page owns its content stream and overlays or
        uprighting on one copy never reach another.
        """
        readers = [PdfReader(io.BytesIO(source))]
        total = len(readers[0].pages)
        writer = PdfWriter()
        seen = {}
        for index, rotation in pages:
            if not 0 <= index < total:
                raise OutOfRange(f'source page {index} not in document of {total} pages')
            occurrence = seen.get(index, 0)
            seen[index] = occurrence + 1
            if occurrence == len(readers):
                readers.append(PdfReader(io.BytesIO(source)))
            page = writer.add_page(readers[occurrence].pages[index])
            if rotation % 360:
                page.rotate(rotation % 360)
        # pypdf keys cloned objects by id() of the source reader; keep the
        # readers alive so a later overlay reader cannot reuse one of those ids
        writer.pagekit_sources = readers
        return writer

    def measure_text(self, text: str, font: str, size: float) -> Tuple[float, float]:
        return measure_text(text, font, size)

    def page_size(self, writer: PdfWriter, position: int) -> Tuple[float, float, Tuple[float, float]]:
        """(width, height, (origin_x, origin_y)) of the output page's media box."""
        box = writer.pages[position].mediabox
        return float(box.width), float(box.height), (float(box.left), float(box.bottom))

    def upright(self, writer: PdfWriter, position: int) -> None:
        """Fold /Rotate into the content so page space matches what a viewer shows."""
        page = writer.pages[position]
        if (page.rotation or 0) % 360:
            page.transfer_rotation_to_content()

    def draw_overlay(self, writer: PdfWriter, position: int, geometry: DocumentBox, content) -> None:
        """Draw one overlay onto an output page. ``geometry`` is in page space."""
        width, height, (ox, oy) = self.page_size(writer, position)
        packet = io.BytesIO()
        can = canvas.Canvas(packet, pagesize=(ox + width, oy + height))
        can.saveState()
        if isinstance(content, FillContent):
            can.setFillColorRGB(*parse_hex_color(content.color))
            can.rect(geometry.x, geometry.y, geometry.width, geometry.height, stroke=0, fill=1)
        elif isinstance(content, ImageContent):
            self._draw_image(can, geometry, content)
        elif isinstance(content, TextContent):
            self._draw_text(can, geometry, content)
        else:
            raise TypeError(f'cannot draw {type(content).__name__}')
        can.restoreState()
        can.save()
        packet.seek(0)
        overlay_page = PdfReader(packet).pages[0]
        writer.pages[position].merge_page(overlay_page)

    def _draw_image(self, can, geometry: DocumentBox, content: ImageContent) -> None:
        with Image.open(io.BytesIO(content.data)) as im:
            im.load()
            if im.mode not in ('RGB', 'RGBA'):
                im = im.convert('RGBA')
            reader = ImageReader(im)
            can.setFillAlpha(content.opacity)
            cx, cy = geometry.center
            can.translate(cx, cy)
            if content.rotation:
                can.rotate(content.rotation)
            can.drawImage(reader, -geometry.width / 2.0, -geometry.height / 2.0,
                          width=geometry.width, height=geometry.height, mask='auto')

    def _draw_text(self, can, geometry: DocumentBox, content: TextContent) -> None:
        # shrink to fit a user-drawn box; anchored boxes are already measured
        size = min(content.size, geometry.height) if geometry.height else content.size
        text_width, _ = measure_text(content.text, content.font, size)
        if text_width > geometry.width > 0:
            size = size * geometry.width / text_width
        can.setFont(content.font, size)
        can.setFillColorRGB(*parse_hex_color(content.color))
        can.setFillAlpha(content.opacity)
        cx, cy = geometry.center
        can.translate(cx, cy)
        if content.rotation:
            can.rotate(content.rotation)
        # baseline sits half the font size below the centre
        can.drawCentredString(0, -size / 2.0, content.text)

    def finalize(self, writer: PdfWriter) -> bytes:
        out_buf = io.BytesIO()
        writer.write(out_buf)
        data = out_buf.getvalue()
        if not data.startswith(b'%PDF'):
            raise CompilationFailed('serializer produced invalid PDF bytes')
        return data
