"""Custom exceptions for gdx_export."""


class GDxExportError(RuntimeError):
    """Base class for all gdx_export exceptions."""


class ValidationError(GDxExportError):
    """Raised when the source or destination directory is missing or not a directory."""


class BatchStructureError(GDxExportError):
    """Raised when a batch directory does not hold exactly one SVG and one XML file."""


class ConversionFailure(GDxExportError):
    """Raised when an external converter fails, times out, or produces no output."""


class MetadataParseError(GDxExportError):
    """Raised when the GDx XML is malformed or lacks the session date."""


class CollisionExhaustion(GDxExportError):
    """Raised when no free collision suffix is found within the configured limit."""


class RelocateFailure(GDxExportError):
    """Raised when an output cannot be moved into the destination."""


class CleanupFailure(GDxExportError):
    """Raised when a fully archived batch directory cannot be deleted."""
