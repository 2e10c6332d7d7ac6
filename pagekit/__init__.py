"""Page-set editing engine for PDF tools.

Load a document, rearrange/rotate/delete/duplicate its pages with undo,
pick pages by clicks or range expressions, place overlays (redaction,
signature, watermark, page numbers) and compile the result to a new PDF.
"""

# Errors
from .errors import (
    PageKitError,
    OutOfRange,
    NotFound,
    NothingToUndo,
    InvalidRangeExpression,
    EmptySelection,
    InvalidOverlay,
    InvalidDocument,
    CompilationFailed,
)

# Store and history
from .store import PageDescriptor, PageStore
from .history import EditHistory

# Selection
from .selection import PageSelection, parse_page_range

# Coordinates and overlays
from .coords import NormalizedBox, DocumentBox, to_document_space, anchor_box
from .overlays import (
    ALL_PAGES,
    OverlaySpec,
    FillContent,
    ImageContent,
    TextContent,
    PageNumberContent,
)

# PDF collaborators
from .pdf_utils import (
    SourceDocument,
    PdfSerializer,
    load_document,
    render_thumbnail,
    generate_thumbnails,
)

# Compile and session
from .compiler import CompileResult
from .session import EditSession, CLOCKWISE, COUNTERCLOCKWISE

__all__ = [
    # Errors
    "PageKitError",
    "OutOfRange",
    "NotFound",
    "NothingToUndo",
    "InvalidRangeExpression",
    "EmptySelection",
    "InvalidOverlay",
    "InvalidDocument",
    "CompilationFailed",

    # Store and history
    "PageDescriptor",
    "PageStore",
    "EditHistory",

    # Selection
    "PageSelection",
    "parse_page_range",

    # Coordinates and overlays
    "NormalizedBox",
    "DocumentBox",
    "to_document_space",
    "anchor_box",
    "ALL_PAGES",
    "OverlaySpec",
    "FillContent",
    "ImageContent",
    "TextContent",
    "PageNumberContent",

    # PDF collaborators
    "SourceDocument",
    "PdfSerializer",
    "load_document",
    "render_thumbnail",
    "generate_thumbnails",

    # Compile and session
    "CompileResult",
    "EditSession",
    "CLOCKWISE",
    "COUNTERCLOCKWISE",
]
