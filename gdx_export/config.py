"""
Centralised configuration for the gdx_export package.

Default tool paths, output formats, GDx XML element paths, and logging setup
used across all modules.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

# ---------------------------------------------------------------------------
# External tools (relative to the working directory, as shipped on the
# clinic workstations)
# ---------------------------------------------------------------------------
DEFAULT_INKSCAPE = Path("deps/inkscape/inkscape.exe")
DEFAULT_MAGICK = Path("deps/imagemagick/magick.exe")

# Seconds before an external converter call is abandoned.
DEFAULT_TIMEOUT = 120.0
DEFAULT_DPI = 300

# ---------------------------------------------------------------------------
# Output formats
# ---------------------------------------------------------------------------
SUPPORTED_FORMATS = ("jpg", "png", "pdf")
DEFAULT_FORMATS = ("jpg", "pdf")

# ---------------------------------------------------------------------------
# GDx export layout
# ---------------------------------------------------------------------------
SVG_SUFFIX = ".svg"
XML_SUFFIX = ".xml"

# ElementTree paths into the GDx export XML, relative to the root element.
GDX_XML_PATHS = {
    "first_name": "Patient/FirstName",
    "last_name": "Patient/LastName",
    "identifier": "Patient/PatientID",
    "session_datetime": "Exam/ExamDateTime",
}

# Separator between the date and time parts of ExamDateTime.
DATETIME_SEPARATOR = "T"

# Canonical output name, e.g. 42_Smith_Jane_GDx_20230701
BASE_NAME_TEMPLATE = "{identifier}_{last_name}_{first_name}_GDx_{date:%Y%m%d}"


def normalise_formats(formats) -> tuple[str, ...]:
    """Lower-case, de-duplicate and order *formats* as in SUPPORTED_FORMATS.

    Raises ValueError for anything outside SUPPORTED_FORMATS.
    """
    requested = {f.strip().lower().lstrip(".") for f in formats if f.strip()}
    unknown = requested - set(SUPPORTED_FORMATS)
    if unknown:
        raise ValueError(f"Unsupported output format(s): {', '.join(sorted(unknown))}")
    return tuple(f for f in SUPPORTED_FORMATS if f in requested)


@dataclass
class PipelineConfig:
    """Options for one run, passed explicitly to every pipeline component."""

    source_dir: Path
    dest_dir: Path
    inkscape: Path = DEFAULT_INKSCAPE
    magick: Path = DEFAULT_MAGICK
    formats: tuple[str, ...] = DEFAULT_FORMATS
    dpi: int = DEFAULT_DPI
    timeout: Optional[float] = DEFAULT_TIMEOUT
    clean: bool = False
    dry_run: bool = False
    max_suffix: Optional[int] = None
    should_stop: Optional[Callable[[], bool]] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.source_dir = Path(self.source_dir)
        self.dest_dir = Path(self.dest_dir)
        self.inkscape = Path(self.inkscape)
        self.magick = Path(self.magick)
        self.formats = normalise_formats(self.formats)

    @property
    def needs_png(self) -> bool:
        """PNG is rendered when requested itself or as the JPEG source."""
        return "png" in self.formats or "jpg" in self.formats


# ---------------------------------------------------------------------------
# Logging helper
# ---------------------------------------------------------------------------
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logging for gdx_export scripts."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
