"""Turn the edit state into output bytes.

A compile first reduces its input to a plan: the ordered list of source
pages to emit, each with the rotation to add. The serializer copies those
pages into a fresh document, overlays are mapped into page space and drawn,
and the document is finalized. Any failure on the way raises
``CompilationFailed`` and nothing partial is returned.
"""
import io
import logging
import time
import zipfile
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from pagekit.coords import DocumentBox, anchor_box, map_box
from pagekit.errors import CompilationFailed, EmptySelection, InvalidOverlay
from pagekit.overlays import (
    ALL_PAGES,
    FillContent,
    ImageContent,
    OverlaySpec,
    PageNumberContent,
    TextContent,
)
from pagekit.pdf_utils import PdfSerializer, SourceDocument
from pagekit.selection import complement
from pagekit.store import PageStore

logger = logging.getLogger(__name__)

REDACTION_WARNING = (
    'redaction boxes are drawn over the page; text underneath stays in the '
    'file and can still be extracted'
)


@dataclass(frozen=True)
class PlannedPage:
    source_index: int
    rotation: int = 0
    page_id: Optional[str] = None


@dataclass
class CompileResult:
    data: bytes
    page_count: int
    deleted_count: int = 0
    rotated_count: int = 0
    elapsed: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> str:
        parts = []
        if self.deleted_count:
            parts.append(f'{self.deleted_count} page(s) removed')
        if self.rotated_count:
            parts.append(f'{self.rotated_count} page(s) rotated')
        return ', '.join(parts) or f'{self.page_count} page(s) written'


def plan_from_store(store: PageStore) -> List[PlannedPage]:
    """Active entries in store order, with their accumulated rotation."""
    return [PlannedPage(e.source_index, e.rotation, e.id) for e in store.active_entries()]


def plan_from_selection(
    indices: Iterable[int],
    rotations: Optional[Mapping[int, int]] = None,
) -> List[PlannedPage]:
    """Selected source pages in ascending order; rotation only if given."""
    rotations = rotations or {}
    return [PlannedPage(i, rotations.get(i, 0)) for i in sorted(set(indices))]


def _resolve_overlay(
    spec: OverlaySpec,
    serializer,
    position: int,
    total: int,
    page_width: float,
    page_height: float,
    origin: Tuple[float, float],
):
    """Return (geometry, drawable content) for one overlay on one page."""
    content = spec.content
    if isinstance(content, PageNumberContent):
        content = TextContent(
            text=content.text_for(position, total),
            font=content.font,
            size=content.font_size,
            color=content.color,
        )
    if spec.box is not None:
        return map_box(spec.box, page_width, page_height, origin), content

    if isinstance(content, TextContent):
        cw, ch = serializer.measure_text(content.text, content.font, content.size)
    elif isinstance(content, ImageContent):
        cw, ch = content.natural_size()
    else:
        raise InvalidOverlay(f'{type(content).__name__} cannot be anchored')
    box = anchor_box(spec.anchor, cw, ch, page_width, page_height, spec.margin)
    ox, oy = origin
    return DocumentBox(box.x + ox, box.y + oy, box.width, box.height), content


def _apply_overlays(writer, plan: Sequence[PlannedPage], overlays: Sequence[OverlaySpec], serializer) -> None:
    total = len(plan)
    for position, page in enumerate(plan):
        specs = [o for o in overlays if o.applies_to(page.page_id)]
        if not specs:
            continue
        serializer.upright(writer, position)
        width, height, origin = serializer.page_size(writer, position)
        for spec in specs:
            geometry, content = _resolve_overlay(spec, serializer, position, total, width, height, origin)
            serializer.draw_overlay(writer, position, geometry, content)


def _check_targets(plan: Sequence[PlannedPage], overlays: Sequence[OverlaySpec]) -> None:
    emitted = {p.page_id for p in plan}
    for spec in overlays:
        if spec.target != ALL_PAGES and spec.target not in emitted:
            raise InvalidOverlay(f'overlay target {spec.target!r} is not part of the output')


def compile_plan(
    source: SourceDocument,
    plan: Sequence[PlannedPage],
    overlays: Sequence[OverlaySpec] = (),
    serializer=None,
) -> CompileResult:
    if not plan:
        raise EmptySelection('no pages selected')
    _check_targets(plan, overlays)
    serializer = serializer or PdfSerializer()
    start = time.time()
    logger.info('compile: %d pages, %d overlays', len(plan), len(overlays))
    try:
        writer = serializer.copy_pages(source.data, [(p.source_index, p.rotation) for p in plan])
        if overlays:
            _apply_overlays(writer, plan, overlays, serializer)
        data = serializer.finalize(writer)
    except CompilationFailed:
        logger.exception('compile failed')
        raise
    except InvalidOverlay:
        # a request problem, not a serializer one
        raise
    except Exception as exc:
        logger.exception('compile failed')
        raise CompilationFailed(f'failed to build PDF: {exc}') from exc

    result = CompileResult(
        data=data,
        page_count=len(plan),
        rotated_count=sum(1 for p in plan if p.rotation),
        elapsed=time.time() - start,
    )
    if any(isinstance(o.content, FillContent) for o in overlays):
        logger.warning(REDACTION_WARNING)
        result.warnings.append(REDACTION_WARNING)
    logger.info('compile: finished %d pages in %.2fs', result.page_count, result.elapsed)
    return result


def compile_store(
    store: PageStore,
    source: SourceDocument,
    overlays: Sequence[OverlaySpec] = (),
    serializer=None,
) -> CompileResult:
    """Structural tools: active entries in store order."""
    result = compile_plan(source, plan_from_store(store), overlays, serializer)
    result.deleted_count = len(store.deleted_entries())
    return result


def compile_selection(
    indices: Iterable[int],
    source: SourceDocument,
    rotations: Optional[Mapping[int, int]] = None,
    serializer=None,
) -> CompileResult:
    """Extraction tools: the selected source pages, ascending."""
    return compile_plan(source, plan_from_selection(indices, rotations), (), serializer)


def remove_selection(indices: Iterable[int], source: SourceDocument, serializer=None) -> CompileResult:
    """Every page except the selected ones."""
    indices = list(indices)
    if not indices:
        raise EmptySelection('no pages selected for removal')
    keep = complement(indices, source.page_count)
    if not keep:
        raise EmptySelection('cannot remove every page of the document')
    result = compile_plan(source, plan_from_selection(keep), (), serializer)
    result.deleted_count = source.page_count - len(keep)
    return result


def split_each(source: SourceDocument, serializer=None) -> bytes:
    """ZIP archive with one single-page PDF per source page."""
    serializer = serializer or PdfSerializer()
    start = time.time()
    out_buf = io.BytesIO()
    try:
        with zipfile.ZipFile(out_buf, 'w', zipfile.ZIP_DEFLATED) as zf:
            for i in range(source.page_count):
                writer = serializer.copy_pages(source.data, [(i, 0)])
                zf.writestr(f'page_{i + 1}.pdf', serializer.finalize(writer))
    except Exception as exc:
        logger.exception('split_each failed')
        raise CompilationFailed(f'failed to split PDF: {exc}') from exc
    logger.info('split_each: %d files in %.2fs', source.page_count, time.time() - start)
    return out_buf.getvalue()
