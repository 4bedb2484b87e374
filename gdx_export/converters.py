"""External converter calls for GDx exports.

SVG reports are rendered to PNG/PDF by Inkscape and PNGs are transcoded to
JPEG by ImageMagick.  Both run as blocking subprocesses with a timeout; every
call checks that the expected output file actually exists afterwards.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional, Protocol

from gdx_export.config import DEFAULT_DPI, DEFAULT_TIMEOUT, PipelineConfig
from gdx_export.exceptions import ConversionFailure
from gdx_export.utils import normalize_windows_path

logger = logging.getLogger(__name__)


class Converter(Protocol):
    """The three conversions the pipeline needs."""

    def render_raster(self, svg_path: Path, dpi: int = DEFAULT_DPI) -> Path: ...

    def render_document(self, svg_path: Path) -> Path: ...

    def render_compressed_raster(self, png_path: Path) -> Path: ...


class ExternalToolConverter:
    """Converter backed by the Inkscape and ImageMagick executables.

    In dry-run mode no process is started and no output is checked; each
    method returns the path the conversion would have produced.
    """

    def __init__(
        self,
        inkscape: Path,
        magick: Path,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        dry_run: bool = False,
    ) -> None:
        self.inkscape = Path(inkscape)
        self.magick = Path(magick)
        self.timeout = timeout
        self.dry_run = dry_run

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "ExternalToolConverter":
        return cls(config.inkscape, config.magick, config.timeout, config.dry_run)

    # ----- Public operations -----

    def render_raster(self, svg_path: Path, dpi: int = DEFAULT_DPI) -> Path:
        """Render *svg_path* to a same-stem PNG at *dpi*."""
        out = Path(svg_path).with_suffix(".png")
        cmd = [
            str(self.inkscape),
            "--export-type=png",
            f"--export-dpi={dpi}",
            f"--export-filename={normalize_windows_path(out)}",
            normalize_windows_path(svg_path),
        ]
        return self._run(cmd, out)

    def render_document(self, svg_path: Path) -> Path:
        """Render *svg_path* to a same-stem PDF."""
        out = Path(svg_path).with_suffix(".pdf")
        cmd = [
            str(self.inkscape),
            "--export-type=pdf",
            f"--export-filename={normalize_windows_path(out)}",
            normalize_windows_path(svg_path),
        ]
        return self._run(cmd, out)

    def render_compressed_raster(self, png_path: Path) -> Path:
        """Transcode *png_path* to a same-stem JPEG, flattening alpha onto white."""
        png_path = Path(png_path)
        out = png_path.with_suffix(".jpg")
        if not self.dry_run and not png_path.is_file():
            raise ConversionFailure(f"Cannot transcode missing raster {png_path}")
        cmd = [
            str(self.magick),
            normalize_windows_path(png_path),
            "-background", "white",
            "-alpha", "remove",
            "-alpha", "off",
            normalize_windows_path(out),
        ]
        return self._run(cmd, out)

    # ----- Subprocess handling -----

    def _run(self, cmd: list[str], expected: Path) -> Path:
        if self.dry_run:
            logger.info("[dry run] Would run: %s", " ".join(cmd))
            return expected

        # A leftover from an earlier aborted run must not count as output.
        if expected.exists():
            logger.info("Removing stale output %s", expected)
            try:
                expected.unlink()
            except OSError as exc:
                raise ConversionFailure(f"Could not remove stale output {expected}: {exc}") from exc

        logger.debug("Running: %s", " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ConversionFailure(
                f"{Path(cmd[0]).name} timed out after {exc.timeout}s producing {expected}"
            ) from exc
        except OSError as exc:
            raise ConversionFailure(f"Could not start {cmd[0]}: {exc}") from exc

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            raise ConversionFailure(
                f"{Path(cmd[0]).name} exited with code {proc.returncode} "
                f"producing {expected}: {stderr}"
            )
        if not expected.is_file():
            raise ConversionFailure(
                f"{Path(cmd[0]).name} reported success but {expected} was not written"
            )
        logger.info("Converted -> %s", expected)
        return expected
