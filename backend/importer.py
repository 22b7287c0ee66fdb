"""
Student table importer.

Maps rows of an imported table (header -> cell text) onto StudentRecord,
tolerating the many ways schools spell their column headers. Headers are
compared after normalisation (lowercase, letters and digits only), and each
canonical field tries an ordered list of candidate headers.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone

from models import REQUIRED_FIELDS, StudentRecord

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Candidate headers per canonical field, most common spelling first
# ---------------------------------------------------------------------------
CANDIDATE_HEADERS: dict[str, list[str]] = {
    "name": ["name", "student name", "studentname", "full name"],
    "rollNumber": ["rollnumber", "roll number", "roll", "roll no", "studentid", "student id"],
    "classDivision": ["classdivision", "class division", "class", "division", "grade", "section"],
    "busRoute": ["busroute", "bus route", "bus", "route", "transport"],
    "rackNumber": ["racknumber", "rack number", "rack"],
    "allergies": ["allergies", "allergy"],
    "photo": ["photo", "photo url", "image"],
    "emergencyContact": ["emergencycontact", "emergency contact", "emergency"],
    "bloodGroup": ["bloodgroup", "blood group", "blood"],
    "dateOfBirth": ["dateofbirth", "date of birth", "dob", "birthdate"],
    "address": ["address"],
    "parentName": ["parentname", "parent name", "parent", "guardian"],
    "parentPhone": ["parentphone", "parent phone", "phone"],
}

# Optional fields that default to "" rather than None when absent
_EMPTY_STRING_DEFAULTS = {"rackNumber", "photo"}

REQUIRED_FIELD_LABELS = {
    "name": "Name",
    "rollNumber": "Roll Number",
    "classDivision": "Class/Division",
    "busRoute": "Bus Route",
}

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class ImportRejected(ValueError):
    """Raised when a batch lacks a required field in at least one row."""

    def __init__(self, missing_fields: list[str], row_number: int | None = None):
        self.required_fields = list(REQUIRED_FIELDS)
        self.missing_fields = missing_fields
        self.row_number = row_number
        labels = ", ".join(REQUIRED_FIELD_LABELS[f] for f in self.required_fields)
        super().__init__(
            f"Data is missing required fields ({', '.join(missing_fields)}). "
            f"Required fields: {labels}."
        )


def new_id() -> str:
    """Return a short random identifier."""
    return uuid.uuid4().hex[:16]


# ---------------------------------------------------------------------------
# Header matching
# ---------------------------------------------------------------------------

def normalize_header(header: str | None) -> str:
    """Lowercase and drop everything except letters and digits."""
    if header is None:
        return ""
    return _NON_ALNUM.sub("", str(header).lower())


_KNOWN_HEADERS = frozenset(
    normalize_header(candidate)
    for candidates in CANDIDATE_HEADERS.values()
    for candidate in candidates
)


def first_match(row: Mapping[str, str | None], candidates: Iterable[str]) -> str | None:
    """
    Return the first non-empty value whose header matches a candidate.

    Candidates are tried in order; within a candidate, row columns are
    tried in their own order. An empty cell counts as absent so the search
    falls through to the next candidate.
    """
    normalized_row = [(normalize_header(header), value) for header, value in row.items()]
    for candidate in candidates:
        wanted = normalize_header(candidate)
        for header, value in normalized_row:
            if header == wanted and value:
                return value
    return None


def _split_allergies(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _custom_fields(row: Mapping[str, str | None]) -> dict[str, str] | None:
    """Collect non-empty columns that no canonical field claims."""
    custom = {
        header: value
        for header, value in row.items()
        if header and value and normalize_header(header) not in _KNOWN_HEADERS
    }
    return custom or None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def find_missing_required(rows: Iterable[Mapping[str, str | None]]) -> tuple[list[str], int | None]:
    """
    Check every row for the required fields.

    Returns the required fields that are missing in at least one row and
    the 1-based number of the first offending row (None when all rows pass).
    """
    missing: list[str] = []
    first_bad_row: int | None = None
    for row_number, row in enumerate(rows, start=1):
        for field_name in REQUIRED_FIELDS:
            if first_match(row, CANDIDATE_HEADERS[field_name]) is None:
                if field_name not in missing:
                    missing.append(field_name)
                if first_bad_row is None:
                    first_bad_row = row_number
    # Keep the canonical order regardless of which row reported first
    return [f for f in REQUIRED_FIELDS if f in missing], first_bad_row


def resolve_row(
    row: Mapping[str, str | None],
    id_factory: Callable[[], str] = new_id,
    now: datetime | None = None,
) -> StudentRecord:
    """Map one validated row onto a StudentRecord."""
    data: dict[str, object] = {}
    for field_name, candidates in CANDIDATE_HEADERS.items():
        value = first_match(row, candidates)
        if field_name == "allergies":
            data[field_name] = _split_allergies(value)
        elif value is None and field_name in _EMPTY_STRING_DEFAULTS:
            data[field_name] = ""
        else:
            data[field_name] = value

    data["customFields"] = _custom_fields(row)
    data["id"] = id_factory()
    data["uniqueId"] = id_factory()
    data["createdAt"] = now or datetime.now(timezone.utc)
    return StudentRecord.model_validate(data)


def resolve_rows(
    rows: list[Mapping[str, str | None]],
    id_factory: Callable[[], str] = new_id,
) -> list[StudentRecord]:
    """
    Convert a parsed table into StudentRecords, all or nothing.

    Args:
        rows: Parsed rows in file order, header text -> cell text.
        id_factory: Source of ``id`` / ``uniqueId`` values.

    Returns:
        One StudentRecord per row, in input order.

    Raises:
        ImportRejected: If any row lacks a value for a required field.
    """
    missing, row_number = find_missing_required(rows)
    if missing:
        log.warning(f"[IMPORT] Rejected batch of {len(rows)} row(s): missing {missing} (first at row {row_number})")
        raise ImportRejected(missing, row_number)

    now = datetime.now(timezone.utc)
    students = [resolve_row(row, id_factory, now) for row in rows]
    log.info(f"[IMPORT] Resolved {len(students)} student record(s)")
    return students
