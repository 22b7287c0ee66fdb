"""
Tabular file parsing for bulk student import.

Turns an uploaded CSV or Excel file into a list of row mappings
(header text -> cell text) with pandas. The first row is always the
header row; header text is trimmed, cell text is kept as written.
"""

from __future__ import annotations

import io
from pathlib import Path

import pandas as pd

SUPPORTED_EXTENSIONS = (".csv", ".xlsx")

SAMPLE_HEADERS = [
    "Name", "Roll Number", "Class/Division", "Rack Number", "Bus Route",
    "Allergies", "Blood Group", "Emergency Contact", "Parent Name", "Parent Phone",
]

SAMPLE_ROWS = [
    ["Aarav Sharma", "101", "5A", "R-12", "Route 1", "nuts, dairy", "B+", "9876543210", "Rohit Sharma", "9876500001"],
    ["Diya Patel", "102", "5A", "R-13", "Route 3", "", "O+", "9876543211", "Meera Patel", "9876500002"],
    ["Kabir Singh", "103", "6B", "R-02", "Route 2", "eggs", "A-", "9876543212", "Anita Singh", "9876500003"],
]


class TabularParseError(ValueError):
    """Raised when an uploaded file cannot be read as a table."""


def _to_rows(df: pd.DataFrame) -> list[dict[str, str]]:
    """Trim headers, drop unnamed columns and blank rows, return string mappings."""
    df.columns = pd.Index([str(c) for c in df.columns]).str.strip()
    # pandas names blank header cells "Unnamed: <n>"
    df = df.loc[:, ~df.columns.str.match(r"^(Unnamed: \d+)?$")]
    if df.columns.empty:
        raise TabularParseError("Header row is empty.")

    df = df.fillna("").astype(str)
    if len(df):
        df = df[df.apply(lambda col: col.str.strip()).ne("").any(axis=1)]
    return df.to_dict(orient="records")


def parse_csv(content: bytes) -> list[dict[str, str]]:
    """
    Parse UTF-8 CSV bytes with a header row.

    Blank lines are skipped and short rows are padded with "". A record
    with more fields than the header row is a parse error.
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise TabularParseError(f"File is not valid UTF-8 text: {e}") from e

    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as e:
        raise TabularParseError("File contains no header row.") from e
    except pd.errors.ParserError as e:
        raise TabularParseError(f"Malformed CSV: {e}") from e

    # An extra field on the first data row makes pandas read it as an index
    if len(df) and not isinstance(df.index, pd.RangeIndex):
        raise TabularParseError("Row 2 has more fields than the header row.")

    return _to_rows(df)


def parse_xlsx(content: bytes) -> list[dict[str, str]]:
    """Parse the first worksheet of an .xlsx workbook with a header row."""
    try:
        df = pd.read_excel(
            io.BytesIO(content),
            sheet_name=0,
            engine="openpyxl",
            dtype=str,
            keep_default_na=False,
        )
    except Exception as e:
        raise TabularParseError(f"Could not read workbook: {e}") from e

    return _to_rows(df)


def parse_table(filename: str, content: bytes) -> list[dict[str, str]]:
    """Dispatch to the right parser based on the file extension."""
    suffix = Path(filename or "").suffix.lower()
    if suffix == ".csv":
        return parse_csv(content)
    if suffix == ".xlsx":
        return parse_xlsx(content)
    raise TabularParseError(
        f"Unsupported file type '{suffix or filename}'. Upload one of: {', '.join(SUPPORTED_EXTENSIONS)}."
    )


def sample_csv() -> str:
    """Return the downloadable example import file."""
    return pd.DataFrame(SAMPLE_ROWS, columns=SAMPLE_HEADERS).to_csv(index=False, lineterminator="\n")
