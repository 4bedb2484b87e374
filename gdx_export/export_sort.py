"""Batch processing of GDx export directories.

Automates the manual archive steps of:
1. Discovering export batches (one subdirectory per scan export)
2. Rendering each batch's SVG report to the requested formats
3. Reading patient/session metadata from the batch XML
4. Naming the outputs ``{ID}_{Last}_{First}_GDx_{YYYYMMDD}`` without collisions
5. Moving the outputs to the archive and optionally removing the batch
"""

import logging
import shutil
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional

from gdx_export.config import (
    BASE_NAME_TEMPLATE,
    SVG_SUFFIX,
    XML_SUFFIX,
    PipelineConfig,
)
from gdx_export.converters import Converter, ExternalToolConverter
from gdx_export.exceptions import (
    CleanupFailure,
    CollisionExhaustion,
    ConversionFailure,
    GDxExportError,
    RelocateFailure,
    ValidationError,
)
from gdx_export.utils import (
    GDxMetadata,
    find_single_file,
    normalize_windows_path,
    parse_gdx_xml,
    safe_move,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Batch states
# ---------------------------------------------------------------------------

DISCOVERED = "discovered"
CONVERTED = "converted"
METADATA_READ = "metadata_read"
NAMED = "named"
RESOLVED = "resolved"
RELOCATED = "relocated"
CLEANED_UP = "cleaned_up"
KEPT = "kept"
FAILED = "failed"

# Forward order; a batch ends in CLEANED_UP, KEPT or FAILED.
BATCH_STATES = (
    DISCOVERED, CONVERTED, METADATA_READ, NAMED, RESOLVED, RELOCATED,
    CLEANED_UP, KEPT, FAILED,
)


# ---------------------------------------------------------------------------
# Batch dataclasses
# ---------------------------------------------------------------------------

@dataclass
class GDxBatch:
    """One export subdirectory holding a single SVG report and its XML."""

    batch_dir: Path
    svg_path: Path
    xml_path: Path


@dataclass
class BatchResult:
    """Outcome of processing one batch directory."""

    batch_dir: Path
    state: str = DISCOVERED
    failed_step: Optional[str] = None
    base_name: Optional[str] = None
    destinations: dict[str, Path] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def __setattr__(self, name, value):
        if name == "state" and value not in BATCH_STATES:
            raise ValueError(f"Unknown batch state {value!r}, expected one of {BATCH_STATES}")
        super().__setattr__(name, value)

    @property
    def ok(self) -> bool:
        return self.state != FAILED and not self.errors


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def build_base_name(
    identifier: str, last_name: str, first_name: str, session_date: date
) -> str:
    """Format the canonical output name, e.g. ``42_Smith_Jane_GDx_20230701``.

    Empty fields are kept as empty segments (``_Smith__GDx_20230701``).
    """
    return BASE_NAME_TEMPLATE.format(
        identifier=identifier,
        last_name=last_name,
        first_name=first_name,
        date=session_date,
    )


def base_name_for(metadata: GDxMetadata) -> str:
    return build_base_name(
        metadata.identifier, metadata.last_name, metadata.first_name, metadata.session_date
    )


def resolve_destination(
    dest_dir: Path,
    base_name: str,
    formats,
    max_attempts: Optional[int] = None,
) -> dict[str, Path]:
    """Choose destination paths for *formats* that do not exist yet.

    All formats share one suffix: the bare base name is tried first, then
    ``_1``, ``_2``, ... until no requested format's candidate exists.  Formats
    not in *formats* are never checked.

    Parameters
    ----------
    dest_dir : Path
        Archive directory.
    base_name : str
        Canonical name from :func:`build_base_name`.
    formats : iterable of str
        Requested extensions without the dot, e.g. ``("jpg", "pdf")``.
    max_attempts : int, optional
        Highest suffix to try.  Unbounded when None.

    Returns
    -------
    dict[str, Path]
        ``{format: destination path}``.

    Raises
    ------
    CollisionExhaustion
        If *max_attempts* is set and every suffix up to it collides.
    """
    dest_dir = Path(dest_dir)
    formats = tuple(formats)
    suffix = 0
    while True:
        stem = base_name if suffix == 0 else f"{base_name}_{suffix}"
        candidates = {fmt: dest_dir / f"{stem}.{fmt}" for fmt in formats}
        if not any(p.exists() for p in candidates.values()):
            if suffix:
                logger.info("Name %s taken in %s, using suffix _%d", base_name, dest_dir, suffix)
            return candidates
        suffix += 1
        if max_attempts is not None and suffix > max_attempts:
            raise CollisionExhaustion(
                f"No free name for {base_name} in {dest_dir} after {max_attempts} suffixes"
            )


# ---------------------------------------------------------------------------
# Relocation
# ---------------------------------------------------------------------------

def relocate(moves: dict[str, tuple[Path, Path]], dry_run: bool = False) -> dict[str, Path]:
    """Move each ``(source, destination)`` pair, never overwriting.

    Every move is attempted; failures are collected and raised together.

    Returns ``{format: destination}`` for the files moved.

    Raises
    ------
    RelocateFailure
        If any destination was occupied at move time or a move failed.
    """
    moved: dict[str, Path] = {}
    failures: list[str] = []
    for fmt, (src, dst) in moves.items():
        if dry_run:
            logger.info("[dry run] Would move %s -> %s", src, dst)
            moved[fmt] = dst
            continue
        try:
            moved[fmt] = safe_move(src, dst)
        except RelocateFailure as exc:
            logger.error("%s", exc)
            failures.append(str(exc))

    if failures:
        raise RelocateFailure("; ".join(failures))
    return moved


def cleanup_batch(
    batch_dir: Path,
    destinations: dict[str, Path],
    clean: bool,
    dry_run: bool = False,
) -> bool:
    """Delete *batch_dir* if *clean* is set and every destination exists.

    Returns True if the directory was (or, in a dry run, would be) deleted.

    Raises
    ------
    CleanupFailure
        If the directory could not be removed (e.g. a locked file on Windows).
        Part of it may already be gone; the archived outputs are untouched.
    """
    if not clean:
        return False

    if dry_run:
        logger.info("[dry run] Would delete %s", batch_dir)
        return True

    missing = [str(p) for p in destinations.values() if not p.is_file()]
    if missing:
        logger.warning(
            "Keeping %s: outputs missing from destination: %s",
            batch_dir, ", ".join(missing),
        )
        return False

    try:
        shutil.rmtree(normalize_windows_path(batch_dir))
    except OSError as exc:
        logger.warning("Could not delete %s: %s", batch_dir, exc)
        raise CleanupFailure(f"Could not delete {batch_dir}: {exc}") from exc
    logger.info("Deleted source batch %s", batch_dir)
    return True


# ---------------------------------------------------------------------------
# Sorter
# ---------------------------------------------------------------------------

class GDxExportSorter:
    """Converts, renames and archives every export batch under a source root."""

    def __init__(self, config: PipelineConfig, converter: Optional[Converter] = None) -> None:
        self.config = config
        self.converter = converter or ExternalToolConverter.from_config(config)

    # ----- Validation -----

    def validate(self) -> None:
        """Check that the source and destination directories exist.

        Raises
        ------
        ValidationError
        """
        for label, path in (
            ("Source", self.config.source_dir),
            ("Destination", self.config.dest_dir),
        ):
            if not path.exists():
                raise ValidationError(f"{label} directory does not exist: {path}")
            if not path.is_dir():
                raise ValidationError(f"{label} path is not a directory: {path}")

    # ----- Discovery -----

    def discover_batch_dirs(self) -> list[Path]:
        """Return the immediate subdirectories of the source root."""
        return sorted(p for p in self.config.source_dir.iterdir() if p.is_dir())

    @staticmethod
    def load_batch(batch_dir: Path) -> GDxBatch:
        """Locate the batch's SVG and XML, raising BatchStructureError if not exactly one each."""
        return GDxBatch(
            batch_dir=batch_dir,
            svg_path=find_single_file(batch_dir, SVG_SUFFIX),
            xml_path=find_single_file(batch_dir, XML_SUFFIX),
        )

    # ----- Conversion -----

    def convert_batch(self, batch: GDxBatch, result: BatchResult) -> dict[str, Path]:
        """Render the batch SVG to every requested format.

        A failed format is logged and left out of the returned mapping; the
        other formats are still converted.  A PNG failure also drops JPEG.

        Returns ``{format: produced path}`` for the formats produced.
        """
        formats = self.config.formats
        produced: dict[str, Path] = {}

        png: Optional[Path] = None
        if self.config.needs_png:
            try:
                png = self.converter.render_raster(batch.svg_path, self.config.dpi)
            except ConversionFailure as exc:
                self._record_error(result, "convert", exc)
            else:
                if "png" in formats:
                    produced["png"] = png

        if "pdf" in formats:
            try:
                produced["pdf"] = self.converter.render_document(batch.svg_path)
            except ConversionFailure as exc:
                self._record_error(result, "convert", exc)

        if "jpg" in formats and png is not None:
            try:
                produced["jpg"] = self.converter.render_compressed_raster(png)
            except ConversionFailure as exc:
                self._record_error(result, "convert", exc)

        return produced

    # ----- Per-batch pipeline -----

    def process_batch(self, batch_dir: Path) -> BatchResult:
        """Run one batch through convert -> name -> resolve -> relocate -> cleanup."""
        result = BatchResult(batch_dir=batch_dir)
        step = "discover"
        try:
            batch = self.load_batch(batch_dir)

            step = "convert"
            produced = self.convert_batch(batch, result)
            if not produced:
                result.state = FAILED
                result.failed_step = "convert"
                return result
            result.state = CONVERTED

            step = "metadata"
            metadata = parse_gdx_xml(batch.xml_path)
            result.state = METADATA_READ

            step = "name"
            result.base_name = base_name_for(metadata)
            result.state = NAMED

            step = "resolve"
            destinations = resolve_destination(
                self.config.dest_dir,
                result.base_name,
                self.config.formats,
                self.config.max_suffix,
            )
            result.destinations = destinations
            result.state = RESOLVED

            step = "relocate"
            relocate(
                {fmt: (src, destinations[fmt]) for fmt, src in produced.items()},
                dry_run=self.config.dry_run,
            )
            result.state = RELOCATED
        except (GDxExportError, OSError) as exc:
            self._record_error(result, step, exc)
            result.state = FAILED
            result.failed_step = step
            return result

        if result.errors:
            logger.warning(
                "Keeping %s: not every requested format was converted", batch_dir
            )
            result.state = KEPT
            return result

        try:
            cleaned = cleanup_batch(
                batch_dir, result.destinations, self.config.clean, self.config.dry_run
            )
        except CleanupFailure as exc:
            self._record_error(result, "cleanup", exc)
            cleaned = False
        result.state = CLEANED_UP if cleaned else KEPT
        return result

    @staticmethod
    def _record_error(result: BatchResult, step: str, exc: Exception) -> None:
        logger.error("Batch %s failed at %s: %s", result.batch_dir.name, step, exc)
        result.errors.append(f"{step}: {exc}")

    # ----- Execute -----

    def execute(self) -> dict:
        """Run the full pipeline over every batch directory.

        Returns
        -------
        dict
            Summary with keys: batches, succeeded, failed, cleaned, dry_run,
            results (list of BatchResult).

        Raises
        ------
        ValidationError
            If the source or destination directory is unusable.
        """
        self.validate()
        batch_dirs = self.discover_batch_dirs()
        logger.info("Discovered %d batch directories in %s", len(batch_dirs), self.config.source_dir)
        if self.config.dry_run:
            logger.info("Dry run - no external tools will run and no files will change")

        results: list[BatchResult] = []
        for batch_dir in batch_dirs:
            if self.config.should_stop is not None and self.config.should_stop():
                logger.warning("Stop requested, %d batches left unprocessed",
                               len(batch_dirs) - len(results))
                break
            logger.info("Processing %s", batch_dir.name)
            results.append(self.process_batch(batch_dir))

        summary = {
            "batches": len(results),
            "succeeded": sum(1 for r in results if r.ok),
            "failed": sum(1 for r in results if not r.ok),
            "cleaned": sum(1 for r in results if r.state == CLEANED_UP),
            "dry_run": self.config.dry_run,
            "results": results,
        }
        logger.info(
            "Execute complete: %d batches, %d succeeded, %d failed, %d cleaned",
            summary["batches"], summary["succeeded"], summary["failed"], summary["cleaned"],
        )
        return summary
