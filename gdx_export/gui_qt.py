"""PyQt6 desktop GUI for the GDx export pipeline.

A single window wrapping :class:`gdx_export.export_sort.GDxExportSorter`:
paths and options on top, Run/Stop buttons, and a log terminal showing the
pipeline's progress.  The last used settings are remembered between runs.

Usage:
    python -m gdx_export
"""

import ctypes
import faulthandler
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QObject, QThread, pyqtSignal
from PyQt6.QtGui import QFont
from PyQt6.QtWidgets import (
    QApplication,
    QCheckBox,
    QFileDialog,
    QFormLayout,
    QFrame,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)

from gdx_export.config import (
    DEFAULT_FORMATS,
    DEFAULT_INKSCAPE,
    DEFAULT_MAGICK,
    SUPPORTED_FORMATS,
    PipelineConfig,
    setup_logging,
)
from gdx_export.exceptions import ValidationError
from gdx_export.export_sort import GDxExportSorter

logger = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".gdx_export_config.json"

# ---------------------------------------------------------------------------
# Dark theme stylesheet
# ---------------------------------------------------------------------------

DARK_QSS = """
QMainWindow, QWidget {
    background-color: #0f1117;
    color: #e2e8f0;
    font-family: 'Segoe UI', system-ui, sans-serif;
    font-size: 13px;
}
QLabel {
    color: #e2e8f0;
    background: transparent;
}
QLineEdit {
    background-color: #1a2030;
    border: 1px solid #2a3040;
    border-radius: 5px;
    color: #e2e8f0;
    padding: 7px 10px;
    font-family: 'Cascadia Code', 'Consolas', monospace;
    font-size: 12px;
}
QLineEdit:focus {
    border-color: #6c63ff;
}
QPushButton {
    background-color: #1a1d27;
    border: 1px solid #2a3040;
    border-radius: 5px;
    color: #94a3b8;
    padding: 8px 16px;
    font-weight: bold;
}
QPushButton:hover {
    border-color: #6c63ff;
    background-color: #2a3040;
}
QPushButton:disabled {
    color: #5c6578;
}
QTextEdit {
    background-color: #0a0c10;
    border: 1px solid #2a3040;
    border-radius: 5px;
    font-family: 'Cascadia Code', 'Consolas', monospace;
    font-size: 12px;
}
"""


# ---------------------------------------------------------------------------
# QThread worker
# ---------------------------------------------------------------------------

class PipelineWorker(QThread):
    finished = pyqtSignal(dict)
    error = pyqtSignal(str)

    def __init__(self, config: PipelineConfig):
        super().__init__()
        self._stop_requested = False
        config.should_stop = lambda: self._stop_requested
        self.config = config

    def request_stop(self) -> None:
        self._stop_requested = True

    def run(self):
        try:
            summary = GDxExportSorter(self.config).execute()
            self.finished.emit(summary)
        except ValidationError as exc:
            self.error.emit(str(exc))
        except Exception as exc:
            logger.exception("Pipeline failed")
            self.error.emit(str(exc))


# ---------------------------------------------------------------------------
# Logging -> terminal widget
# ---------------------------------------------------------------------------

class _LogBridge(QObject):
    message = pyqtSignal(str, str)  # html, level


class QtLogHandler(logging.Handler):
    """Routes log records to a QTextEdit terminal widget.

    Records from the worker thread are delivered through a queued signal so
    the widget is only touched on the GUI thread.
    """

    def __init__(self, text_edit: QTextEdit):
        super().__init__()
        self.text_edit = text_edit
        self._bridge = _LogBridge()
        self._bridge.message.connect(self._append)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        self._bridge.message.emit(_esc(msg), record.levelname.lower())

    def _append(self, html: str, level: str) -> None:
        if level in ("error", "critical"):
            color = "#ef4444"
        elif level == "warning":
            color = "#f59e0b"
        else:
            color = "#94a3b8"
        self.text_edit.append(f'<span style="color:{color}">{html}</span>')


def _esc(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


# ---------------------------------------------------------------------------
# Configuration form
# ---------------------------------------------------------------------------

class ConfigPanel(QWidget):
    """Paths and options for one run."""

    def __init__(self, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(16)

        # -- Paths card --
        paths_card = self._make_card("Paths")
        paths_form = QFormLayout()
        paths_form.setSpacing(10)
        self.source_path = self._path_row(paths_form, "GDx Export Folder:", folder=True)
        self.dest_path = self._path_row(paths_form, "Archive Folder:", folder=True)
        self.inkscape_path = self._path_row(paths_form, "Inkscape:", folder=False)
        self.inkscape_path.setText(str(DEFAULT_INKSCAPE))
        self.magick_path = self._path_row(paths_form, "ImageMagick:", folder=False)
        self.magick_path.setText(str(DEFAULT_MAGICK))
        paths_card.layout().addLayout(paths_form)
        layout.addWidget(paths_card)

        # -- Options card --
        opt_card = self._make_card("Options")
        fmt_row = QHBoxLayout()
        self.format_boxes: dict[str, QCheckBox] = {}
        for fmt in SUPPORTED_FORMATS:
            box = QCheckBox(fmt.upper())
            box.setChecked(fmt in DEFAULT_FORMATS)
            self.format_boxes[fmt] = box
            fmt_row.addWidget(box)
        fmt_row.addStretch()
        opt_card.layout().addLayout(fmt_row)
        self.clean = QCheckBox("Delete source folders after all outputs are archived")
        opt_card.layout().addWidget(self.clean)
        self.dry_run = QCheckBox("Dry run (preview only, no converters run, no files moved)")
        opt_card.layout().addWidget(self.dry_run)
        layout.addWidget(opt_card)

    def _make_card(self, title: str) -> QFrame:
        card = QFrame()
        card.setProperty("class", "card")
        card.setStyleSheet(
            "QFrame[class='card'] { background-color: #1a1d27; "
            "border: 1px solid #2a3040; border-radius: 6px; padding: 16px; }"
        )
        card_layout = QVBoxLayout(card)
        card_layout.setContentsMargins(16, 16, 16, 16)
        card_layout.setSpacing(12)
        heading = QLabel(title)
        heading.setStyleSheet(
            "font-size: 12px; font-weight: bold; color: #94a3b8; "
            "text-transform: uppercase; background: transparent;"
        )
        card_layout.addWidget(heading)
        return card

    def _path_row(self, form: QFormLayout, label: str, folder: bool) -> QLineEdit:
        row = QWidget()
        row_layout = QHBoxLayout(row)
        row_layout.setContentsMargins(0, 0, 0, 0)
        row_layout.setSpacing(6)
        line_edit = QLineEdit()
        row_layout.addWidget(line_edit)
        btn = QPushButton("Browse")
        btn.setFixedWidth(80)
        if folder:
            btn.clicked.connect(lambda: self._browse_folder(line_edit))
        else:
            btn.clicked.connect(lambda: self._browse_file(line_edit))
        row_layout.addWidget(btn)
        form.addRow(label, row)
        return line_edit

    def _browse_folder(self, target: QLineEdit):
        path = QFileDialog.getExistingDirectory(self, "Select Folder", target.text())
        if path:
            target.setText(path)

    def _browse_file(self, target: QLineEdit):
        path, _ = QFileDialog.getOpenFileName(self, "Select Executable", target.text())
        if path:
            target.setText(path)

    def get_config(self) -> dict:
        return {
            "source_path": self.source_path.text().strip(),
            "dest_path": self.dest_path.text().strip(),
            "inkscape": self.inkscape_path.text().strip(),
            "magick": self.magick_path.text().strip(),
            "formats": [f for f, box in self.format_boxes.items() if box.isChecked()],
            "clean": self.clean.isChecked(),
            "dry_run": self.dry_run.isChecked(),
        }

    def validate(self) -> Optional[str]:
        cfg = self.get_config()
        if not cfg["source_path"]:
            return "GDx Export Folder is required."
        if not cfg["dest_path"]:
            return "Archive Folder is required."
        if not cfg["formats"]:
            return "Select at least one output format."
        return None

    def set_config(self, cfg: dict) -> None:
        """Pre-populate form fields from a config dict."""
        self.source_path.setText(cfg.get("source_path", ""))
        self.dest_path.setText(cfg.get("dest_path", ""))
        self.inkscape_path.setText(cfg.get("inkscape", str(DEFAULT_INKSCAPE)))
        self.magick_path.setText(cfg.get("magick", str(DEFAULT_MAGICK)))
        formats = cfg.get("formats", list(DEFAULT_FORMATS))
        for fmt, box in self.format_boxes.items():
            box.setChecked(fmt in formats)
        self.clean.setChecked(bool(cfg.get("clean", False)))
        self.dry_run.setChecked(bool(cfg.get("dry_run", False)))

    def to_pipeline_config(self) -> PipelineConfig:
        cfg = self.get_config()
        return PipelineConfig(
            source_dir=Path(cfg["source_path"]),
            dest_dir=Path(cfg["dest_path"]),
            inkscape=Path(cfg["inkscape"] or DEFAULT_INKSCAPE),
            magick=Path(cfg["magick"] or DEFAULT_MAGICK),
            formats=tuple(cfg["formats"]),
            clean=cfg["clean"],
            dry_run=cfg["dry_run"],
        )


# ---------------------------------------------------------------------------
# Main window
# ---------------------------------------------------------------------------

class GDxExportWindow(QMainWindow):

    def __init__(self):
        super().__init__()
        self.setWindowTitle("GDx Export")
        self.setMinimumSize(800, 640)
        self.resize(960, 760)

        self._worker: Optional[PipelineWorker] = None

        self._build_ui()
        self._load_config()

    def _load_config(self) -> None:
        """Load persisted config from JSON file into the config form."""
        try:
            if CONFIG_FILE.is_file():
                data = json.loads(CONFIG_FILE.read_text(encoding="utf-8"))
                self._config_panel.set_config(data)
                logger.info("Loaded config from %s", CONFIG_FILE)
        except (OSError, ValueError):
            logger.warning("Failed to load config from %s", CONFIG_FILE, exc_info=True)

    def _save_config(self, cfg: dict) -> None:
        """Persist config dict to JSON file."""
        try:
            CONFIG_FILE.write_text(json.dumps(cfg, indent=2), encoding="utf-8")
            logger.info("Saved config to %s", CONFIG_FILE)
        except OSError:
            logger.warning("Failed to save config to %s", CONFIG_FILE, exc_info=True)

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)
        layout.setContentsMargins(24, 24, 24, 24)
        layout.setSpacing(16)

        self._config_panel = ConfigPanel()
        layout.addWidget(self._config_panel)

        btn_row = QHBoxLayout()
        self._status = QLabel("Ready")
        self._status.setStyleSheet("color: #94a3b8;")
        btn_row.addWidget(self._status)
        btn_row.addStretch()
        self._stop_btn = QPushButton("Stop")
        self._stop_btn.setEnabled(False)
        self._stop_btn.clicked.connect(self._on_stop)
        btn_row.addWidget(self._stop_btn)
        self._run_btn = QPushButton("Run")
        self._run_btn.clicked.connect(self._on_run)
        btn_row.addWidget(self._run_btn)
        layout.addLayout(btn_row)

        self.terminal = QTextEdit()
        self.terminal.setReadOnly(True)
        layout.addWidget(self.terminal, stretch=1)

        self._log_handler = QtLogHandler(self.terminal)
        self._log_handler.setFormatter(
            logging.Formatter("%(asctime)s  %(levelname)-7s  %(name)s -- %(message)s")
        )
        logging.getLogger("gdx_export").addHandler(self._log_handler)

    # -- Actions --

    def _on_run(self):
        error = self._config_panel.validate()
        if error:
            QMessageBox.warning(self, "Configuration", error)
            return

        self._save_config(self._config_panel.get_config())
        self.terminal.clear()
        self._set_running(True)

        worker = PipelineWorker(self._config_panel.to_pipeline_config())
        worker.finished.connect(self._on_done)
        worker.error.connect(self._on_error)
        self._worker = worker
        worker.start()

    def _on_stop(self):
        if self._worker is not None:
            self._worker.request_stop()
            self._status.setText("Stopping after current batch...")
            self._stop_btn.setEnabled(False)

    def _on_done(self, summary: dict):
        self._set_running(False)
        prefix = "Dry run: " if summary["dry_run"] else ""
        self._status.setText(
            f"{prefix}{summary['batches']} batches, {summary['succeeded']} succeeded, "
            f"{summary['failed']} failed, {summary['cleaned']} cleaned"
        )
        if summary["failed"]:
            QMessageBox.warning(
                self, "GDx Export",
                f"{summary['failed']} batch(es) failed. See the log for details.",
            )

    def _on_error(self, message: str):
        self._set_running(False)
        self._status.setText("Failed")
        QMessageBox.critical(self, "GDx Export", message)

    def _set_running(self, running: bool) -> None:
        self._run_btn.setEnabled(not running)
        self._stop_btn.setEnabled(running)
        self._config_panel.setEnabled(not running)
        if running:
            self._status.setText("Running...")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _enable_dark_title_bar(hwnd: int) -> None:
    """Use DwmSetWindowAttribute to enable immersive dark mode title bar on Windows 11."""
    try:
        DWMWA_USE_IMMERSIVE_DARK_MODE = 20
        value = ctypes.c_int(1)
        ctypes.windll.dwmapi.DwmSetWindowAttribute(
            hwnd, DWMWA_USE_IMMERSIVE_DARK_MODE,
            ctypes.byref(value), ctypes.sizeof(value),
        )
    except (AttributeError, OSError):
        logger.debug("Dark title bar not available")


def main() -> None:
    faulthandler.enable()
    setup_logging(logging.INFO)

    app = QApplication(sys.argv)
    app.setStyleSheet(DARK_QSS)
    app.setFont(QFont("Segoe UI", 10))

    window = GDxExportWindow()
    window.show()

    if sys.platform == "win32":
        _enable_dark_title_bar(int(window.winId()))

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
