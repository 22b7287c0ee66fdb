"""
FastAPI application for the Student ID Card Generator.

Provides endpoints for storing students and saved cards, bulk-importing
students from CSV/Excel files, resolving and rendering card layouts,
looking up scanned QR codes, and exporting the roster.
"""

from __future__ import annotations

import base64
import io
import logging
import os
from pathlib import Path

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from PIL import Image, UnidentifiedImageError

# ── Configuration ──────────────────────────────────────────────────
LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG").upper()
MAX_PHOTO_BYTES = int(os.environ.get("MAX_PHOTO_BYTES", str(2 * 1024 * 1024)))
FRONTEND_DIR = Path(
    os.environ.get("FRONTEND_DIR", str(Path(__file__).resolve().parent.parent / "frontend"))
)
GOOGLE_CREDENTIALS_PATH = Path(
    os.environ.get("GOOGLE_CREDENTIALS_PATH", str(Path(__file__).resolve().parent.parent / "credentials" / "service_account.json"))
)

# ── Logging setup ──────────────────────────────────────────────────
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("id-card-generator")

from exporter import export_students_to_excel, export_students_to_google_sheet
from importer import ImportRejected, resolve_rows
from layout import InvalidQRPayload, decode_qr_payload, layout_for, resolve_layout
from models import (
    CardRenderRequest,
    CardResolveResponse,
    ExportResponse,
    GoogleSheetExportRequest,
    ImportResponse,
    PhotoResponse,
    ResolvedFieldOut,
    SavedCard,
    SavedCardCreate,
    ScanRequest,
    ScanResponse,
    StoredStudent,
    StudentCreate,
)
from renderer import card_filename, render_card_png
from storage import MemStorage, StorageError
from tabular import TabularParseError, parse_table, sample_csv

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Student ID Card Generator",
    description="Import students, design ID card layouts, render cards with QR codes, and store them.",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if FRONTEND_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(FRONTEND_DIR)), name="static")

storage = MemStorage()

log.info("=" * 60)
log.info("Student ID Card Generator starting up")
log.info(f"Frontend dir : {FRONTEND_DIR} (exists={FRONTEND_DIR.exists()})")
log.info(f"Max photo    : {MAX_PHOTO_BYTES} bytes")
log.info(f"GSheet creds : {GOOGLE_CREDENTIALS_PATH} (exists={GOOGLE_CREDENTIALS_PATH.exists()})")
log.info("=" * 60)


def _create_student(student: StudentCreate) -> StoredStudent:
    try:
        return storage.create_student(student)
    except StorageError as e:
        log.warning(f"[STUDENTS] Rejected {student.name!r}: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        log.error(f"[STUDENTS] ✗ Could not save {student.name!r}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create student")


# ---------------------------------------------------------------------------
# Routes — UI
# ---------------------------------------------------------------------------

@app.get("/")
async def root():
    """Serve the frontend UI."""
    index = FRONTEND_DIR / "index.html"
    if not index.exists():
        raise HTTPException(status_code=404, detail="Frontend not installed.")
    return FileResponse(str(index))


# ---------------------------------------------------------------------------
# Routes — students
# ---------------------------------------------------------------------------

@app.get("/api/students", response_model=list[StoredStudent])
async def list_students():
    """All stored students, newest first."""
    return storage.list_students()


@app.post("/api/students", response_model=StoredStudent, status_code=201)
async def create_student(student: StudentCreate):
    log.info(f"[STUDENTS] Create requested for {student.name!r}")
    stored = _create_student(student)
    log.info(f"[STUDENTS] ✓ Stored #{stored.id} ({stored.unique_id})")
    return stored


@app.get("/api/students/{unique_id}", response_model=StoredStudent)
async def get_student(unique_id: str):
    student = storage.get_student_by_unique_id(unique_id)
    if student is None:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


# ---------------------------------------------------------------------------
# Routes — saved cards
# ---------------------------------------------------------------------------

@app.get("/api/saved-cards", response_model=list[SavedCard])
async def list_saved_cards():
    """All saved cards with their student populated, newest first."""
    return storage.list_cards()


@app.post("/api/saved-cards", response_model=SavedCard, status_code=201)
async def create_saved_card(card: SavedCardCreate):
    log.info(f"[CARDS] Save requested (template={card.template}, studentId={card.student_id})")
    try:
        saved = storage.create_card(card)
    except StorageError as e:
        log.warning(f"[CARDS] Rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        log.error(f"[CARDS] ✗ Save failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create saved card")
    log.info(f"[CARDS] ✓ Stored card #{saved.id} ({saved.unique_id}) for student #{saved.student_id}")
    return saved


@app.get("/api/saved-cards/{unique_id}", response_model=SavedCard)
async def get_saved_card(unique_id: str):
    card = storage.get_card_by_unique_id(unique_id)
    if card is None:
        raise HTTPException(status_code=404, detail="Saved card not found")
    return card


@app.get("/api/saved-cards/{unique_id}/png")
async def download_saved_card(unique_id: str):
    """Render a saved card with its template and return it as a PNG download."""
    card = storage.get_card_by_unique_id(unique_id)
    if card is None or card.student is None:
        raise HTTPException(status_code=404, detail="Saved card not found")

    layout = layout_for(card.template, card.custom_layout)
    stream = render_card_png(card.student, layout, card.template)
    log.info(f"[CARDS] Rendered card {unique_id} for {card.student.name!r}")
    return StreamingResponse(
        stream,
        media_type="image/png",
        headers={"Content-Disposition": f"attachment; filename={card_filename(card.student)}"},
    )


# ---------------------------------------------------------------------------
# Routes — bulk import
# ---------------------------------------------------------------------------

@app.post("/api/import", response_model=ImportResponse)
async def import_students(file: UploadFile = File(...), persist: bool = False):
    """
    Upload a CSV or Excel file and map its rows onto student records.

    Either every row imports or none does. With ``persist=true`` the
    resolved students are also written to the store.
    """
    log.info(f"[IMPORT] Received {file.filename} (content_type={file.content_type})")
    content = await file.read()

    try:
        rows = parse_table(file.filename or "", content)
    except TabularParseError as e:
        log.warning(f"[IMPORT] Parse failed: {e}")
        raise HTTPException(status_code=400, detail=f"Error parsing file: {e}")

    log.debug(f"[IMPORT] Parsed {len(rows)} row(s)")

    try:
        students = resolve_rows(rows)
    except ImportRejected as e:
        raise HTTPException(status_code=422, detail=str(e))

    persisted = 0
    if persist:
        for record in students:
            _create_student(
                StudentCreate.model_validate(
                    record.model_dump(by_alias=True, exclude={"id", "created_at"})
                )
            )
            persisted += 1
        log.info(f"[IMPORT] ✓ Persisted {persisted} student(s)")

    return ImportResponse(
        success=True,
        students=students,
        total_students=len(students),
        persisted=persisted,
    )


@app.get("/api/import/sample")
async def download_sample():
    """Example import file with the recognised column headers."""
    return Response(
        content=sample_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=sample-student-data.csv"},
    )


# ---------------------------------------------------------------------------
# Routes — card layouts
# ---------------------------------------------------------------------------

@app.post("/api/cards/resolve", response_model=CardResolveResponse)
async def resolve_card(request: CardRenderRequest):
    """Resolve each field of the selected layout against the student."""
    layout = layout_for(request.template, request.custom_layout)
    resolved = resolve_layout(request.student, layout, request.template)
    return CardResolveResponse(
        template=request.template,
        fields=[ResolvedFieldOut(field=f, value=v) for f, v in resolved],
        background_color=layout.background_color,
        text_color=layout.text_color,
        accent_color=layout.accent_color,
    )


@app.post("/api/cards/render")
async def render_card(request: CardRenderRequest):
    """Render the selected layout for the student as a PNG download."""
    layout = layout_for(request.template, request.custom_layout)
    stream = render_card_png(request.student, layout, request.template)
    return StreamingResponse(
        stream,
        media_type="image/png",
        headers={"Content-Disposition": f"attachment; filename={card_filename(request.student)}"},
    )


# ---------------------------------------------------------------------------
# Routes — QR scan lookup
# ---------------------------------------------------------------------------

@app.post("/api/scan", response_model=ScanResponse)
async def scan_qr(request: ScanRequest):
    """Decode scanned QR text and look the student up by uniqueId, then id."""
    try:
        payload = decode_qr_payload(request.data)
    except InvalidQRPayload as e:
        log.warning(f"[SCAN] Invalid payload: {request.data[:80]!r}")
        raise HTTPException(status_code=400, detail=str(e))

    student = None
    unique_id = payload.get("uniqueId")
    if isinstance(unique_id, str) and unique_id:
        student = storage.get_student_by_unique_id(unique_id)

    if student is None:
        raw_id = payload.get("id")
        # bool is an int subclass; str.isdigit also accepts superscripts
        if isinstance(raw_id, int) and not isinstance(raw_id, bool):
            student = storage.get_student_by_id(raw_id)
        elif isinstance(raw_id, str) and raw_id.isascii() and raw_id.isdecimal():
            student = storage.get_student_by_id(int(raw_id))

    if student is None:
        log.info(f"[SCAN] No stored student for payload {payload}")
        raise HTTPException(status_code=404, detail={"error": "Student not found", "payload": payload})

    log.info(f"[SCAN] ✓ Matched student #{student.id} ({student.name!r})")
    return ScanResponse(success=True, student=student, payload=payload)


# ---------------------------------------------------------------------------
# Routes — photos
# ---------------------------------------------------------------------------

@app.post("/api/photos", response_model=PhotoResponse)
async def upload_photo(file: UploadFile = File(...)):
    """Validate an uploaded photo and return it as a data URL for the student record."""
    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Please select an image file (JPG or PNG)")

    content = await file.read()
    if len(content) > MAX_PHOTO_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"Image size should not exceed {MAX_PHOTO_BYTES // (1024 * 1024)}MB",
        )

    try:
        with Image.open(io.BytesIO(content)) as img:
            img.verify()
            width, height = img.size
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        log.warning(f"[PHOTO] Unreadable image {file.filename}: {e}")
        raise HTTPException(status_code=400, detail="Uploaded file is not a readable image")

    encoded = base64.b64encode(content).decode("ascii")
    log.info(f"[PHOTO] Accepted {file.filename} ({len(content)} bytes, {width}x{height})")
    return PhotoResponse(
        success=True,
        photo=f"data:{file.content_type};base64,{encoded}",
        width=width,
        height=height,
    )


# ---------------------------------------------------------------------------
# Routes — roster export
# ---------------------------------------------------------------------------

@app.get("/api/export/excel")
async def export_excel():
    """Download every stored student as an .xlsx roster."""
    students = storage.list_students()
    log.info(f"[EXCEL] {len(students)} students to export")

    if not students:
        raise HTTPException(status_code=400, detail="No student records to export.")

    stream = export_students_to_excel(students)
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": "attachment; filename=student_roster.xlsx"},
    )


@app.post("/api/export/gsheet", response_model=ExportResponse)
async def export_google_sheet(request: GoogleSheetExportRequest):
    """
    Sync the stored roster to a Google Sheet.

    Requires a service account credentials JSON at GOOGLE_CREDENTIALS_PATH.
    """
    students = storage.list_students()
    log.info(f"[GSHEET] Export requested → sheet='{request.spreadsheet_name}', tab='{request.worksheet_name}'")

    if not students:
        raise HTTPException(status_code=400, detail="No student records to export.")

    try:
        url = export_students_to_google_sheet(
            students=students,
            credentials_path=GOOGLE_CREDENTIALS_PATH,
            spreadsheet_name=request.spreadsheet_name,
            worksheet_name=request.worksheet_name,
        )
    except FileNotFoundError as e:
        log.error(f"[GSHEET] ✗ Credentials not found: {e}")
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        log.error(f"[GSHEET] ✗ Export failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Google Sheets export failed: {str(e)}")

    log.info(f"[GSHEET] ✓ Exported {len(students)} students → {url}")
    return ExportResponse(success=True, message=f"Exported to Google Sheets: {url}")
