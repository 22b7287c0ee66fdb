"""
Unit tests for the student table importer.

Tests header normalisation, candidate matching, required-field rejection,
allergy splitting and custom field capture.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from importer import (
    CANDIDATE_HEADERS,
    ImportRejected,
    find_missing_required,
    first_match,
    normalize_header,
    resolve_row,
    resolve_rows,
)


def make_counter_ids():
    """Deterministic id factory: s1, s2, s3, ..."""
    counter = iter(range(1, 10_000))
    return lambda: f"s{next(counter)}"


BASE_ROW = {"Name": "Asha", "Roll Number": "7", "Class": "5A", "Bus Route": "12"}

REQUIRED_FILLERS = {"name": "Name", "rollNumber": "Roll Number", "classDivision": "Class", "busRoute": "Bus Route"}


def header_spellings(candidate: str) -> list[str]:
    """Upper-case and punctuated renderings of a candidate header."""
    return [
        candidate.upper(),
        candidate.title().replace(" ", "_"),
        candidate.replace(" ", "-") + ".",
        "/".join(candidate.replace(" ", "")),
    ]


EVERY_SPELLING = [
    (field, spelling)
    for field, candidates in CANDIDATE_HEADERS.items()
    for candidate in candidates
    for spelling in header_spellings(candidate)
]


# ═══════════════════════════════════════════════════════════════════
# Header matching
# ═══════════════════════════════════════════════════════════════════


class TestNormalizeHeader:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize_header("Roll Number") == "rollnumber"
        assert normalize_header("roll_number") == "rollnumber"
        assert normalize_header("ROLLNUMBER") == "rollnumber"
        assert normalize_header("Class/Division") == "classdivision"

    def test_keeps_digits(self):
        assert normalize_header("Phone 2") == "phone2"

    def test_none(self):
        assert normalize_header(None) == ""


class TestFirstMatch:
    @pytest.mark.parametrize("header", ["Roll Number", "roll_number", "ROLLNUMBER", "roll-number", "Roll No", "Student ID"])
    def test_roll_number_spellings(self, header):
        assert first_match({header: "42"}, CANDIDATE_HEADERS["rollNumber"]) == "42"

    def test_earlier_candidate_wins(self):
        row = {"Division": "B", "Class": "5"}
        # "class" is listed before "division"
        assert first_match(row, CANDIDATE_HEADERS["classDivision"]) == "5"

    def test_empty_value_falls_through(self):
        row = {"Bus Route": "", "Transport": "Van 3"}
        assert first_match(row, CANDIDATE_HEADERS["busRoute"]) == "Van 3"

    def test_no_match(self):
        assert first_match({"Colour": "Red"}, CANDIDATE_HEADERS["name"]) is None

    def test_none_value_is_absent(self):
        assert first_match({"Name": None}, CANDIDATE_HEADERS["name"]) is None


class TestEveryCandidateSpelling:
    @pytest.mark.parametrize("field,header", EVERY_SPELLING)
    def test_spelling_fills_canonical_field(self, field, header):
        row = {h: "filler" for f, h in REQUIRED_FILLERS.items() if f != field}
        row[header] = "V"
        record = resolve_row(row, id_factory=make_counter_ids())
        expected = ["V"] if field == "allergies" else "V"
        assert record.model_dump(by_alias=True)[field] == expected
        assert header not in (record.custom_fields or {})


# ═══════════════════════════════════════════════════════════════════
# Required fields
# ═══════════════════════════════════════════════════════════════════


class TestFindMissingRequired:
    def test_all_present(self):
        assert find_missing_required([BASE_ROW]) == ([], None)

    def test_reports_missing_in_canonical_order(self):
        rows = [BASE_ROW, {"Name": "B", "Route": "1"}]
        missing, row_number = find_missing_required(rows)
        assert missing == ["rollNumber", "classDivision"]
        assert row_number == 2

    def test_blank_cell_counts_as_missing(self):
        missing, _ = find_missing_required([{**BASE_ROW, "Name": ""}])
        assert missing == ["name"]


class TestResolveRowsRejection:
    def test_missing_bus_route_rejects_whole_batch(self):
        rows = [
            BASE_ROW,
            {"Name": "B", "Roll Number": "2", "Class": "5B"},
        ]
        with pytest.raises(ImportRejected) as exc_info:
            resolve_rows(rows)

        err = exc_info.value
        assert "busRoute" in err.missing_fields
        assert err.required_fields == ["name", "rollNumber", "classDivision", "busRoute"]
        assert "Bus Route" in str(err)
        assert err.row_number == 2

    def test_rejection_is_repeatable(self):
        rows = [{"Name": "X"}]
        with pytest.raises(ImportRejected) as first:
            resolve_rows(rows)
        with pytest.raises(ImportRejected) as second:
            resolve_rows(rows)
        assert first.value.missing_fields == second.value.missing_fields

    def test_no_ids_consumed_on_rejection(self):
        calls = []

        def factory():
            calls.append(1)
            return "x"

        with pytest.raises(ImportRejected):
            resolve_rows([BASE_ROW, {"Name": "only"}], id_factory=factory)
        assert calls == []


# ═══════════════════════════════════════════════════════════════════
# Row resolution
# ═══════════════════════════════════════════════════════════════════


class TestResolveRow:
    def test_allergies_are_split_and_trimmed(self):
        student = resolve_row({**BASE_ROW, "Allergies": "nuts, dairy , eggs"})
        assert student.allergies == ["nuts", "dairy", "eggs"]

    def test_empty_allergy_segments_dropped(self):
        student = resolve_row({**BASE_ROW, "Allergies": "nuts,, eggs, "})
        assert student.allergies == ["nuts", "eggs"]

    def test_absent_allergies_is_empty_list(self):
        assert resolve_row(BASE_ROW).allergies == []

    def test_unrecognised_header_kept_with_original_casing(self):
        student = resolve_row({**BASE_ROW, "Favorite Color": "Blue"})
        assert student.custom_fields == {"Favorite Color": "Blue"}

    def test_empty_unrecognised_column_ignored(self):
        student = resolve_row({**BASE_ROW, "Notes": ""})
        assert student.custom_fields is None

    def test_optional_defaults(self):
        student = resolve_row(BASE_ROW)
        assert student.rack_number == ""
        assert student.photo == ""
        assert student.blood_group is None
        assert student.parent_phone is None

    def test_optional_fields_resolved(self):
        row = {
            **BASE_ROW,
            "Blood Group": "O+",
            "DOB": "2015-04-01",
            "Guardian": "R. Rao",
            "Phone": "555-0101",
            "Emergency Contact": "555-0199",
            "Rack": "R-4",
            "Address": "12 Hill Rd",
        }
        student = resolve_row(row)
        assert student.blood_group == "O+"
        assert student.date_of_birth == "2015-04-01"
        assert student.parent_name == "R. Rao"
        assert student.parent_phone == "555-0101"
        assert student.emergency_contact == "555-0199"
        assert student.rack_number == "R-4"
        assert student.address == "12 Hill Rd"
        assert student.custom_fields is None

    def test_ids_come_from_factory(self):
        student = resolve_row(BASE_ROW, id_factory=make_counter_ids())
        assert student.id == "s1"
        assert student.unique_id == "s2"

    def test_default_ids_are_distinct(self):
        a = resolve_row(BASE_ROW)
        b = resolve_row(BASE_ROW)
        assert a.id != b.id
        assert a.unique_id != b.unique_id


class TestResolveRows:
    def test_differently_spelled_columns(self):
        rows = [
            {"Name": "A", "RollNumber": "1", "Class": "5A", "Bus": "101"},
            {"Name": "B", "Roll Number": "2", "division": "5B", "route": "102"},
        ]
        students = resolve_rows(rows)

        assert [s.name for s in students] == ["A", "B"]
        assert students[0].class_division == "5A"
        assert students[0].bus_route == "101"
        assert students[1].roll_number == "2"
        assert students[1].class_division == "5B"
        assert students[1].bus_route == "102"
        assert all(s.custom_fields is None for s in students)

    def test_preserves_row_order(self):
        rows = [{**BASE_ROW, "Name": n} for n in ["C", "A", "B"]]
        assert [s.name for s in resolve_rows(rows)] == ["C", "A", "B"]

    def test_empty_table(self):
        assert resolve_rows([]) == []

    def test_records_are_immutable(self):
        student = resolve_rows([BASE_ROW])[0]
        with pytest.raises(Exception):
            student.name = "Changed"
