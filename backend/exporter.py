"""
Roster export module.

Supports exporting stored student records to:
  - Excel (.xlsx) via openpyxl
  - Google Sheets via gspread + service account (cloud sync)
"""

from __future__ import annotations

import io
from pathlib import Path

import gspread
from google.oauth2.service_account import Credentials as ServiceAccountCredentials
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

from models import StudentFields

HEADERS = [
    "Unique ID", "Name", "Roll Number", "Class/Division", "Rack Number", "Bus Route",
    "Allergies", "Blood Group", "Emergency Contact", "Parent Name", "Parent Phone",
]


def student_to_row(student: StudentFields) -> list[str]:
    """Flatten a student into one roster row, in HEADERS order."""
    return [
        getattr(student, "unique_id", None) or "",
        student.name,
        student.roll_number,
        student.class_division,
        student.rack_number,
        student.bus_route,
        ", ".join(student.allergies),
        student.blood_group or "",
        student.emergency_contact or "",
        student.parent_name or "",
        student.parent_phone or "",
    ]


def export_students_to_excel(students: list[StudentFields]) -> io.BytesIO:
    """
    Generate an Excel workbook listing the given students.

    Returns:
        BytesIO stream containing the .xlsx file.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Students"

    # ── Header row styling ──────────────────────────────────────────
    header_font = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
    header_fill = PatternFill(start_color="3B82F6", end_color="3B82F6", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")

    for col_idx, header in enumerate(HEADERS, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment

    # ── Data rows ──────────────────────────────────────────────────
    for row_idx, student in enumerate(students, start=2):
        for col_idx, value in enumerate(student_to_row(student), start=1):
            ws.cell(row=row_idx, column=col_idx, value=value)

    # ── Auto-fit column widths ─────────────────────────────────────
    for col_idx, header in enumerate(HEADERS, start=1):
        max_len = len(header)
        for row in ws.iter_rows(min_row=2, min_col=col_idx, max_col=col_idx):
            for cell in row:
                if cell.value:
                    max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[ws.cell(row=1, column=col_idx).column_letter].width = max_len + 3

    ws.freeze_panes = "A2"

    stream = io.BytesIO()
    wb.save(stream)
    stream.seek(0)
    return stream


def export_students_to_google_sheet(
    students: list[StudentFields],
    credentials_path: str | Path,
    spreadsheet_name: str = "Student Roster",
    worksheet_name: str = "Students",
) -> str:
    """
    Push the student roster to a Google Sheet.

    Args:
        students: Students to write, one row each.
        credentials_path: Path to the Google service account JSON file.
        spreadsheet_name: Name of the spreadsheet to create or open.
        worksheet_name: Name of the worksheet tab.

    Returns:
        URL of the Google Sheet.

    Raises:
        FileNotFoundError: If credentials file is missing.
    """
    creds_path = Path(credentials_path)
    if not creds_path.exists():
        raise FileNotFoundError(
            f"Google credentials file not found: {creds_path}. "
            "Set GOOGLE_CREDENTIALS_PATH to a service account JSON file."
        )

    scopes = [
        "https://www.googleapis.com/auth/spreadsheets",
        "https://www.googleapis.com/auth/drive",
    ]
    credentials = ServiceAccountCredentials.from_service_account_file(str(creds_path), scopes=scopes)
    gc = gspread.authorize(credentials)

    try:
        spreadsheet = gc.open(spreadsheet_name)
    except gspread.SpreadsheetNotFound:
        spreadsheet = gc.create(spreadsheet_name)

    try:
        worksheet = spreadsheet.worksheet(worksheet_name)
    except gspread.WorksheetNotFound:
        worksheet = spreadsheet.add_worksheet(title=worksheet_name, rows=len(students) + 1, cols=len(HEADERS))

    rows = [HEADERS] + [student_to_row(s) for s in students]

    # Single API call for the whole roster
    worksheet.clear()
    worksheet.update(rows, value_input_option="RAW")
    worksheet.format("1:1", {"textFormat": {"bold": True}})

    return spreadsheet.url
