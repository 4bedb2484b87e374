"""
Shared file utilities for GDx export directories.

Covers the Windows path handling and file moves used by the relocation step,
the exactly-one-file lookup used during batch discovery, and the GDx XML
metadata reader.
"""

import logging
import os
import shutil
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from gdx_export.config import DATETIME_SEPARATOR, GDX_XML_PATHS
from gdx_export.exceptions import (
    BatchStructureError,
    MetadataParseError,
    RelocateFailure,
)

logger = logging.getLogger(__name__)

_WINDOWS_LONG_PATH_PREFIX = "\\\\?\\"


def normalize_windows_path(path: Path) -> str:
    """Return a Windows-safe path string, adding long-path prefixes if needed."""
    path_str = str(path)
    if os.name != "nt":
        return path_str
    if path_str.startswith(_WINDOWS_LONG_PATH_PREFIX):
        return path_str
    if not Path(path_str).is_absolute():
        return path_str
    if len(path_str) < 240:
        return path_str
    if path_str.startswith("\\\\"):
        share = path_str.lstrip("\\")
        return f"\\\\?\\UNC\\{share}"
    return f"{_WINDOWS_LONG_PATH_PREFIX}{path_str}"


def safe_move(src: Path, dst: Path) -> Path:
    """Move *src* to *dst*, refusing to overwrite an existing file.

    Raises
    ------
    RelocateFailure
        If *dst* already exists or the underlying move fails (permissions,
        cross-device errors, ...).
    """
    if dst.exists():
        raise RelocateFailure(f"Destination already exists, not overwriting: {dst}")
    try:
        shutil.move(normalize_windows_path(src), normalize_windows_path(dst))
    except OSError as exc:
        raise RelocateFailure(f"Failed to move {src} -> {dst}: {exc}") from exc
    logger.info("Moved %s -> %s", src, dst)
    return dst


def find_single_file(directory: Path, suffix: str) -> Path:
    """Return the one file in *directory* whose extension is *suffix*.

    The match is case-insensitive (``.SVG`` and ``.svg`` both count).

    Raises
    ------
    BatchStructureError
        If no file or more than one file matches, or *directory* cannot be read.
    """
    try:
        matches = sorted(
            p for p in Path(directory).iterdir()
            if p.is_file() and p.suffix.lower() == suffix.lower()
        )
    except OSError as exc:
        raise BatchStructureError(f"Could not list {directory}: {exc}") from exc
    if not matches:
        raise BatchStructureError(f"No {suffix} file in {directory}")
    if len(matches) > 1:
        names = ", ".join(p.name for p in matches)
        raise BatchStructureError(
            f"Expected exactly one {suffix} file in {directory}, found {len(matches)}: {names}"
        )
    return matches[0]


# ---------------------------------------------------------------------------
# GDx XML metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GDxMetadata:
    """Patient and session fields read from a GDx export XML."""

    first_name: str
    last_name: str
    identifier: str
    session_date: date


def parse_session_date(datetime_text: str) -> date:
    """Return the calendar date from a GDx date-time string.

    Only the part before the first ``T`` is used, so
    ``"2024-03-05T10:00:00"`` gives ``date(2024, 3, 5)``.

    Raises
    ------
    MetadataParseError
        If the date part is not ``YYYY-MM-DD``.
    """
    date_part = datetime_text.strip().split(DATETIME_SEPARATOR, 1)[0]
    try:
        return datetime.strptime(date_part, "%Y-%m-%d").date()
    except ValueError as exc:
        raise MetadataParseError(f"Invalid session date '{datetime_text}': {exc}") from exc


def _find_text(root: ET.Element, path: str) -> str:
    el = root.find(path)
    if el is None or not el.text:
        return ""
    return el.text.strip()


def parse_gdx_xml(xml_path: Path) -> GDxMetadata:
    """Parse a GDx export XML and return its patient/session metadata.

    Missing name or identifier elements are read as empty strings (a warning
    is logged); the file name built from them simply has an empty segment.

    Parameters
    ----------
    xml_path : Path
        Path to the export ``.xml`` file.

    Returns
    -------
    GDxMetadata

    Raises
    ------
    MetadataParseError
        If the file cannot be read or parsed, or the session date-time
        element is missing, empty, or not a valid date.
    """
    try:
        root = ET.parse(xml_path).getroot()
    except ET.ParseError as exc:
        raise MetadataParseError(f"XML parse error in {xml_path}: {exc}") from exc
    except OSError as exc:
        raise MetadataParseError(f"Could not read {xml_path}: {exc}") from exc

    fields = {}
    for key in ("first_name", "last_name", "identifier"):
        fields[key] = _find_text(root, GDX_XML_PATHS[key])
        if not fields[key]:
            logger.warning("No %s found in %s", GDX_XML_PATHS[key], xml_path)

    datetime_text = _find_text(root, GDX_XML_PATHS["session_datetime"])
    if not datetime_text:
        raise MetadataParseError(
            f"No {GDX_XML_PATHS['session_datetime']} found in {xml_path}"
        )

    metadata = GDxMetadata(session_date=parse_session_date(datetime_text), **fields)
    logger.info(
        "Read metadata from %s: id='%s', session=%s",
        xml_path, metadata.identifier, metadata.session_date.isoformat(),
    )
    return metadata
