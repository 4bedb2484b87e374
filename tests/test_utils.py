"""Tests for gdx_export.utils - file lookup, GDx XML parsing, safe moves."""

import logging
import textwrap
from datetime import date
from pathlib import Path
from unittest.mock import patch

import pytest

from gdx_export.exceptions import (
    BatchStructureError,
    MetadataParseError,
    RelocateFailure,
)
from gdx_export.utils import (
    GDxMetadata,
    find_single_file,
    normalize_windows_path,
    parse_gdx_xml,
    parse_session_date,
    safe_move,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

SAMPLE_GDX_XML = textwrap.dedent("""\
    <?xml version="1.0" encoding="utf-8"?>
    <GDxExport>
        <Patient>
            <FirstName>Jane</FirstName>
            <LastName>Smith</LastName>
            <PatientID>42</PatientID>
        </Patient>
        <Exam>
            <ExamDateTime>2024-03-05T10:00:00</ExamDateTime>
            <Eye>OD</Eye>
        </Exam>
    </GDxExport>
""")

NO_DATE_XML = textwrap.dedent("""\
    <?xml version="1.0" encoding="utf-8"?>
    <GDxExport>
        <Patient>
            <FirstName>Jane</FirstName>
            <LastName>Smith</LastName>
            <PatientID>42</PatientID>
        </Patient>
        <Exam>
            <Eye>OD</Eye>
        </Exam>
    </GDxExport>
""")

NO_PATIENT_XML = textwrap.dedent("""\
    <?xml version="1.0" encoding="utf-8"?>
    <GDxExport>
        <Exam>
            <ExamDateTime>2023-07-01T09:00:00</ExamDateTime>
        </Exam>
    </GDxExport>
""")


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# find_single_file
# ---------------------------------------------------------------------------

class TestFindSingleFile:
    def test_single_match(self, tmp_path):
        svg = _write(tmp_path / "scan.svg", "<svg/>")
        _write(tmp_path / "data.xml", "<x/>")
        assert find_single_file(tmp_path, ".svg") == svg

    def test_case_insensitive(self, tmp_path):
        svg = _write(tmp_path / "SCAN.SVG", "<svg/>")
        assert find_single_file(tmp_path, ".svg") == svg

    def test_no_match(self, tmp_path):
        _write(tmp_path / "data.xml", "<x/>")
        with pytest.raises(BatchStructureError, match="No .svg file"):
            find_single_file(tmp_path, ".svg")

    def test_multiple_matches(self, tmp_path):
        _write(tmp_path / "a.xml", "<x/>")
        _write(tmp_path / "b.xml", "<x/>")
        with pytest.raises(BatchStructureError, match="exactly one"):
            find_single_file(tmp_path, ".xml")

    def test_directories_ignored(self, tmp_path):
        (tmp_path / "folder.svg").mkdir()
        with pytest.raises(BatchStructureError):
            find_single_file(tmp_path, ".svg")

    def test_unreadable_directory(self, tmp_path):
        with patch.object(Path, "iterdir", side_effect=PermissionError("access denied")):
            with pytest.raises(BatchStructureError, match="Could not list.*access denied"):
                find_single_file(tmp_path, ".svg")


# ---------------------------------------------------------------------------
# parse_session_date
# ---------------------------------------------------------------------------

class TestParseSessionDate:
    def test_datetime_string(self):
        assert parse_session_date("2024-03-05T10:00:00") == date(2024, 3, 5)

    def test_date_only(self):
        assert parse_session_date("2023-07-01") == date(2023, 7, 1)

    def test_whitespace_stripped(self):
        assert parse_session_date("  2023-07-01T09:00:00 \n") == date(2023, 7, 1)

    def test_invalid_date(self):
        with pytest.raises(MetadataParseError):
            parse_session_date("2023-13-45T09:00:00")

    def test_garbage(self):
        with pytest.raises(MetadataParseError):
            parse_session_date("yesterday")


# ---------------------------------------------------------------------------
# parse_gdx_xml
# ---------------------------------------------------------------------------

class TestParseGdxXml:
    def test_all_fields(self, tmp_path):
        meta = parse_gdx_xml(_write(tmp_path / "data.xml", SAMPLE_GDX_XML))
        assert meta == GDxMetadata(
            first_name="Jane",
            last_name="Smith",
            identifier="42",
            session_date=date(2024, 3, 5),
        )

    def test_missing_date_is_fatal(self, tmp_path):
        with pytest.raises(MetadataParseError, match="ExamDateTime"):
            parse_gdx_xml(_write(tmp_path / "data.xml", NO_DATE_XML))

    def test_missing_patient_fields_are_empty(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger="gdx_export.utils"):
            meta = parse_gdx_xml(_write(tmp_path / "data.xml", NO_PATIENT_XML))
        assert meta.first_name == ""
        assert meta.last_name == ""
        assert meta.identifier == ""
        assert meta.session_date == date(2023, 7, 1)
        assert "Patient/PatientID" in caplog.text

    def test_malformed_xml(self, tmp_path):
        with pytest.raises(MetadataParseError, match="parse error"):
            parse_gdx_xml(_write(tmp_path / "data.xml", "<GDxExport><Patient>"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(MetadataParseError):
            parse_gdx_xml(tmp_path / "nope.xml")

    def test_metadata_is_immutable(self, tmp_path):
        meta = parse_gdx_xml(_write(tmp_path / "data.xml", SAMPLE_GDX_XML))
        with pytest.raises(AttributeError):
            meta.identifier = "99"


# ---------------------------------------------------------------------------
# safe_move
# ---------------------------------------------------------------------------

class TestSafeMove:
    def test_moves_file(self, tmp_path):
        src = _write(tmp_path / "a.pdf", "pdf")
        dst = tmp_path / "out" / "b.pdf"
        dst.parent.mkdir()
        assert safe_move(src, dst) == dst
        assert dst.read_text(encoding="utf-8") == "pdf"
        assert not src.exists()

    def test_refuses_to_overwrite(self, tmp_path):
        src = _write(tmp_path / "a.pdf", "new")
        dst = _write(tmp_path / "b.pdf", "old")
        with pytest.raises(RelocateFailure, match="already exists"):
            safe_move(src, dst)
        assert dst.read_text(encoding="utf-8") == "old"
        assert src.exists()

    def test_missing_source(self, tmp_path):
        with pytest.raises(RelocateFailure):
            safe_move(tmp_path / "gone.pdf", tmp_path / "b.pdf")


class TestNormalizeWindowsPath:
    def test_short_path_unchanged(self, tmp_path):
        assert normalize_windows_path(tmp_path / "a.svg") == str(tmp_path / "a.svg")
