"""Exceptions raised by the page-set engine and its PDF collaborators."""


class PageKitError(Exception):
    """Base class for every engine error."""


class OutOfRange(PageKitError, IndexError):
    """A store position outside the current bounds."""


class NotFound(PageKitError, KeyError):
    """A descriptor id the store has never handed out."""

    def __str__(self):
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ''


class NothingToUndo(PageKitError, IndexError):
    pass


class InvalidRangeExpression(PageKitError, ValueError):
    """No token of a range expression could be parsed."""


class EmptySelection(PageKitError, ValueError):
    """A compile was requested with zero pages to emit."""


class InvalidOverlay(PageKitError, ValueError):
    pass


class InvalidDocument(PageKitError, ValueError):
    """The source bytes could not be opened as a PDF."""


class CompilationFailed(PageKitError, RuntimeError):
    """The serializer failed; no partial output is returned."""
