"""
Unit tests for CSV / Excel parsing.
"""

import io
import sys
from pathlib import Path

import pytest
from openpyxl import Workbook

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from importer import resolve_rows
from tabular import SAMPLE_HEADERS, TabularParseError, parse_csv, parse_table, parse_xlsx, sample_csv


def make_xlsx(rows: list[list]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# ═══════════════════════════════════════════════════════════════════
# CSV
# ═══════════════════════════════════════════════════════════════════


class TestParseCsv:
    def test_header_row_mode(self):
        rows = parse_csv(b"Name,Roll Number\nAsha,1\nBen,2\n")
        assert rows == [
            {"Name": "Asha", "Roll Number": "1"},
            {"Name": "Ben", "Roll Number": "2"},
        ]

    def test_quoted_commas(self):
        rows = parse_csv(b'Name,Allergies\nAsha,"nuts, dairy"\n')
        assert rows[0]["Allergies"] == "nuts, dairy"

    def test_skips_blank_lines(self):
        rows = parse_csv(b"Name\n\nAsha\n\n")
        assert rows == [{"Name": "Asha"}]

    def test_strips_utf8_bom(self):
        rows = parse_csv(b"\xef\xbb\xbfName\nZo\xc3\xab\n")
        assert rows == [{"Name": "Zoë"}]

    def test_invalid_utf8(self):
        with pytest.raises(TabularParseError, match="UTF-8"):
            parse_csv(b"Name\n\xff\xfe\n")

    def test_empty_file(self):
        with pytest.raises(TabularParseError, match="no header"):
            parse_csv(b"")

    def test_extra_field_on_first_row(self):
        with pytest.raises(TabularParseError, match="Row 2"):
            parse_csv(b"Name,Class\nAsha,5A,extra\n")

    def test_extra_field_on_later_row(self):
        with pytest.raises(TabularParseError, match="Malformed CSV"):
            parse_csv(b"Name,Class\nAsha,5A\nBen,5B,extra\n")

    def test_short_rows_are_padded(self):
        assert parse_csv(b"Name,Class\nAsha\n") == [{"Name": "Asha", "Class": ""}]

    def test_headers_trimmed_values_kept(self):
        rows = parse_csv(b" Name ,Class\nAsha, 5A \n")
        assert rows == [{"Name": "Asha", "Class": " 5A "}]

    def test_numeric_looking_values_stay_text(self):
        rows = parse_csv(b"Roll Number,Parent Phone\n007,NA\n")
        assert rows == [{"Roll Number": "007", "Parent Phone": "NA"}]

    def test_unnamed_columns_dropped(self):
        assert parse_csv(b"Name,\nAsha,x\n") == [{"Name": "Asha"}]

    def test_empty_header_row(self):
        with pytest.raises(TabularParseError, match="Header row is empty"):
            parse_csv(b",\nx,y\n")

    def test_rows_of_empty_cells_skipped(self):
        assert parse_csv(b"Name,Class\n,\nAsha,5A\n") == [{"Name": "Asha", "Class": "5A"}]


# ═══════════════════════════════════════════════════════════════════
# Excel
# ═══════════════════════════════════════════════════════════════════


class TestParseXlsx:
    def test_reads_first_sheet(self):
        content = make_xlsx([["Name", "Roll Number"], ["Asha", 1]])
        assert parse_xlsx(content) == [{"Name": "Asha", "Roll Number": "1"}]

    def test_none_cells_become_empty(self):
        content = make_xlsx([["Name", "Class"], ["Asha", None]])
        assert parse_xlsx(content) == [{"Name": "Asha", "Class": ""}]

    def test_blank_rows_skipped(self):
        content = make_xlsx([["Name", "Class"], [None, None], ["Asha", "5A"]])
        assert parse_xlsx(content) == [{"Name": "Asha", "Class": "5A"}]

    def test_garbage_bytes(self):
        with pytest.raises(TabularParseError, match="workbook"):
            parse_xlsx(b"not a zip file")


class TestParseTable:
    def test_dispatch_csv(self):
        assert parse_table("students.CSV", b"Name\nAsha\n") == [{"Name": "Asha"}]

    def test_dispatch_xlsx(self):
        content = make_xlsx([["Name"], ["Asha"]])
        assert parse_table("students.xlsx", content) == [{"Name": "Asha"}]

    def test_unsupported_extension(self):
        with pytest.raises(TabularParseError, match="Unsupported"):
            parse_table("students.pdf", b"%PDF")


class TestSampleCsv:
    def test_sample_imports_cleanly(self):
        rows = parse_csv(sample_csv().encode("utf-8"))
        assert list(rows[0].keys()) == SAMPLE_HEADERS
        students = resolve_rows(rows)
        assert len(students) == len(rows)
        assert students[0].allergies == ["nuts", "dairy"]
        assert all(s.custom_fields is None for s in students)
