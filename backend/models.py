"""
Pydantic models for the Student ID Card Generator API.

Defines the student, card layout and saved card schemas shared by the
importer, the layout resolver, the store and the HTTP routes. Attributes
are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Template selectors carried by saved cards
TEMPLATE_DEFAULT = 0   # rendered as the classic template
TEMPLATE_CLASSIC = 1
TEMPLATE_MODERN = 2
TEMPLATE_CUSTOM = 3

REQUIRED_FIELDS = ["name", "rollNumber", "classDivision", "busRoute"]

MAX_FONT_SIZE = 200


class CamelModel(BaseModel):
    """Base model serialising field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------

class StudentFields(CamelModel):
    """The canonical student attributes, without any identity."""

    name: str = Field(min_length=1)
    roll_number: str = Field(min_length=1)
    class_division: str = Field(min_length=1)
    bus_route: str = Field(min_length=1)
    rack_number: str = ""
    allergies: list[str] = []
    photo: str = ""
    emergency_contact: str | None = None
    blood_group: str | None = None
    date_of_birth: str | None = None
    address: str | None = None
    parent_name: str | None = None
    parent_phone: str | None = None
    custom_fields: dict[str, str] | None = None

    @field_validator("allergies", mode="before")
    @classmethod
    def _parse_allergies(cls, value: Any) -> Any:
        # Stored rows and the browser client send allergies as JSON text
        if value is None:
            return []
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return []
            if text.startswith("["):
                return json.loads(text)
            return [part.strip() for part in text.split(",") if part.strip()]
        return value

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _parse_custom_fields(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value) if value.strip() else None
        return value or None


class StudentRecord(StudentFields):
    """A student produced by the importer or the entry form."""

    model_config = ConfigDict(frozen=True)

    id: str
    unique_id: str
    created_at: datetime


class StudentCreate(StudentFields):
    """Request body for POST /api/students."""

    unique_id: str | None = None


class StoredStudent(StudentFields):
    """A student as held by the store, keyed by an integer identity."""

    model_config = ConfigDict(frozen=True)

    id: int
    unique_id: str
    created_at: datetime


class CardStudent(StudentFields):
    """Student data submitted for an ad-hoc card preview."""

    id: int | str | None = None
    unique_id: str | None = None


# ---------------------------------------------------------------------------
# Card layouts
# ---------------------------------------------------------------------------

class CardField(CamelModel):
    """One positioned element of a card layout."""

    id: str
    type: Literal["text", "image", "qrcode"]
    label: str = ""
    value: str
    x: float = Field(ge=0, allow_inf_nan=False)
    y: float = Field(ge=0, allow_inf_nan=False)
    width: float = Field(ge=0, allow_inf_nan=False)
    height: float = Field(ge=0, allow_inf_nan=False)
    font_size: int | None = Field(default=None, gt=0, le=MAX_FONT_SIZE)
    font_weight: str | None = None


class CardLayout(CamelModel):
    """A reusable arrangement of fields plus card-wide colours."""

    fields: list[CardField] = []
    background_color: str = "#ffffff"
    text_color: str = "#000000"
    accent_color: str = "#3b82f6"


def _parse_layout_text(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value) if value.strip() else None
    return value


# ---------------------------------------------------------------------------
# Saved cards
# ---------------------------------------------------------------------------

class SavedCardCreate(CamelModel):
    """Request body for POST /api/saved-cards."""

    student_id: int | None = None
    student: StudentCreate | None = None
    template: int = Field(default=TEMPLATE_DEFAULT, ge=TEMPLATE_DEFAULT, le=TEMPLATE_CUSTOM)
    custom_layout: CardLayout | None = None
    unique_id: str | None = None

    @field_validator("custom_layout", mode="before")
    @classmethod
    def _parse_custom_layout(cls, value: Any) -> Any:
        return _parse_layout_text(value)

    @model_validator(mode="after")
    def _layout_requires_custom_template(self) -> "SavedCardCreate":
        if self.custom_layout is not None and self.template != TEMPLATE_CUSTOM:
            raise ValueError("customLayout is only allowed with the custom template")
        return self


class SavedCard(CamelModel):
    """A generated card as held by the store."""

    model_config = ConfigDict(frozen=True)

    id: int
    student_id: int
    student: StoredStudent | None = None
    template: int
    custom_layout: CardLayout | None = None
    created_at: datetime
    unique_id: str

    @field_validator("custom_layout", mode="before")
    @classmethod
    def _parse_custom_layout(cls, value: Any) -> Any:
        return _parse_layout_text(value)


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------

class ImportResponse(CamelModel):
    """Response from POST /api/import."""

    success: bool
    students: list[StudentRecord] = []
    total_students: int = 0
    persisted: int = 0


class CardRenderRequest(CamelModel):
    """Request body for the card resolve and render endpoints."""

    student: CardStudent
    template: int = Field(default=TEMPLATE_CLASSIC, ge=TEMPLATE_DEFAULT, le=TEMPLATE_CUSTOM)
    custom_layout: CardLayout | None = None

    @field_validator("custom_layout", mode="before")
    @classmethod
    def _parse_custom_layout(cls, value: Any) -> Any:
        return _parse_layout_text(value)


class ResolvedFieldOut(CamelModel):
    field: CardField
    value: str


class CardResolveResponse(CamelModel):
    """Response from POST /api/cards/resolve."""

    template: int
    fields: list[ResolvedFieldOut]
    background_color: str
    text_color: str
    accent_color: str


class ScanRequest(CamelModel):
    """Raw text decoded from a scanned QR code."""

    data: str


class ScanResponse(CamelModel):
    success: bool
    student: StoredStudent
    payload: dict[str, Any] = {}


class PhotoResponse(CamelModel):
    success: bool
    photo: str
    width: int
    height: int


class ExportResponse(CamelModel):
    """Response from the Google Sheets export endpoint."""

    success: bool
    message: str = ""
    error: str | None = None


class GoogleSheetExportRequest(CamelModel):
    spreadsheet_name: str = "Student Roster"
    worksheet_name: str = "Students"
