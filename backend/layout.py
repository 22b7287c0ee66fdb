"""
Card layout resolution.

Given a student and a declarative card layout, works out the concrete value
to draw for each positioned field: text looked up from the student, the
photo reference, or a compact JSON payload for QR codes. Everything here is
pure; drawing happens in renderer.py.
"""

from __future__ import annotations

import json
from typing import Any, NamedTuple

from models import (
    TEMPLATE_CLASSIC,
    TEMPLATE_CUSTOM,
    TEMPLATE_DEFAULT,
    TEMPLATE_MODERN,
    CardField,
    CardLayout,
    StudentFields,
)

CUSTOM_FIELD_PREFIX = "customFields."
PHOTO_REF = "photo"
QR_REF = "qrcode"

CARD_WIDTH = 375
CARD_HEIGHT = 300

# Keys embedded in the QR code per template. Photo, address and custom
# fields never go in: the payload has to stay short enough to scan.
QR_PAYLOAD_KEYS: dict[int, tuple[str, ...]] = {
    TEMPLATE_CLASSIC: (
        "id", "uniqueId", "name", "rollNumber", "classDivision",
        "rackNumber", "busRoute", "allergies",
    ),
    TEMPLATE_MODERN: (
        "id", "uniqueId", "name", "rollNumber", "classDivision",
        "busRoute", "emergencyContact", "bloodGroup",
    ),
    TEMPLATE_CUSTOM: ("id", "name", "rollNumber", "classDivision"),
}
QR_PAYLOAD_KEYS[TEMPLATE_DEFAULT] = QR_PAYLOAD_KEYS[TEMPLATE_CLASSIC]


class InvalidQRPayload(ValueError):
    """Raised when scanned QR text is not a student payload."""


class ResolvedField(NamedTuple):
    field: CardField
    value: str


def _student_data(student: StudentFields) -> dict[str, Any]:
    return student.model_dump(by_alias=True, mode="json")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def build_qr_payload(student: StudentFields, template: int = TEMPLATE_CUSTOM) -> str:
    """Serialise the template's subset of the student as compact JSON."""
    keys = QR_PAYLOAD_KEYS.get(template, QR_PAYLOAD_KEYS[TEMPLATE_CLASSIC])
    data = _student_data(student)
    payload = {key: data[key] for key in keys if data.get(key) is not None}
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def decode_qr_payload(text: str) -> dict[str, Any]:
    """Parse scanned QR text back into a payload dict."""
    try:
        payload = json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise InvalidQRPayload("The scanned QR code doesn't contain valid student data.") from e
    if not isinstance(payload, dict):
        raise InvalidQRPayload("The scanned QR code doesn't contain valid student data.")
    return payload


def resolve_field(student: StudentFields, field: CardField, template: int = TEMPLATE_CUSTOM) -> str:
    """
    Return the value to render for one field.

    Missing properties and custom fields resolve to "" instead of raising,
    so one absent value never blocks the rest of the card.
    """
    if field.type == "qrcode":
        return build_qr_payload(student, template)
    if field.type == "image":
        return student.photo

    if field.value.startswith(CUSTOM_FIELD_PREFIX):
        key = field.value[len(CUSTOM_FIELD_PREFIX):]
        return (student.custom_fields or {}).get(key, "")
    return _as_text(_student_data(student).get(field.value))


def resolve_layout(
    student: StudentFields,
    layout: CardLayout,
    template: int = TEMPLATE_CUSTOM,
) -> list[ResolvedField]:
    """Resolve every field of a layout, in layout order."""
    return [ResolvedField(field, resolve_field(student, field, template)) for field in layout.fields]


# ---------------------------------------------------------------------------
# Stock layouts
# ---------------------------------------------------------------------------

def _text(field_id, label, value, x, y, width=200, height=30, font_size=14, font_weight="normal"):
    return CardField(
        id=field_id, type="text", label=label, value=value,
        x=x, y=y, width=width, height=height,
        font_size=font_size, font_weight=font_weight,
    )


def default_layout() -> CardLayout:
    """The starting point offered by the layout editor."""
    return CardLayout(
        fields=[
            _text("name", "Name", "name", 10, 10, font_size=18, font_weight="bold"),
            _text("roll-number", "Roll Number", "rollNumber", 10, 50, width=150),
            _text("class", "Class", "classDivision", 10, 90, width=150),
            CardField(id="photo", type="image", label="Photo", value=PHOTO_REF,
                      x=230, y=10, width=120, height=140, font_size=14, font_weight="normal"),
            CardField(id="qr", type="qrcode", label="QR Code", value=QR_REF,
                      x=100, y=160, width=100, height=100, font_size=14, font_weight="normal"),
        ],
    )


def builtin_layout(template: int) -> CardLayout:
    """Positioned-field rendition of a built-in template."""
    if template == TEMPLATE_MODERN:
        return CardLayout(
            fields=[
                CardField(id="photo", type="image", label="Photo", value=PHOTO_REF,
                          x=15, y=15, width=110, height=130),
                _text("name", "Name", "name", 140, 20, width=220, font_size=20, font_weight="bold"),
                _text("class", "Class", "classDivision", 140, 55, width=220),
                _text("roll-number", "Roll No", "rollNumber", 140, 80, width=220),
                _text("blood-group", "Blood Group", "bloodGroup", 140, 105, width=220),
                _text("emergency", "Emergency", "emergencyContact", 15, 160, width=220, font_size=12),
                _text("bus-route", "Bus Route", "busRoute", 15, 185, width=220, font_size=12),
                CardField(id="qr", type="qrcode", label="QR Code", value=QR_REF,
                          x=255, y=175, width=110, height=110),
            ],
            background_color="#0f172a",
            text_color="#f8fafc",
            accent_color="#22d3ee",
        )
    return CardLayout(
        fields=[
            _text("name", "Name", "name", 15, 15, width=240, font_size=20, font_weight="bold"),
            _text("roll-number", "Roll No", "rollNumber", 15, 55, width=200),
            _text("class", "Class", "classDivision", 15, 80, width=200),
            _text("rack", "Rack", "rackNumber", 15, 105, width=200),
            _text("bus-route", "Bus Route", "busRoute", 15, 130, width=200),
            _text("allergies", "Allergies", "allergies", 15, 155, width=200, font_size=12),
            CardField(id="photo", type="image", label="Photo", value=PHOTO_REF,
                      x=255, y=15, width=105, height=125),
            CardField(id="qr", type="qrcode", label="QR Code", value=QR_REF,
                      x=255, y=175, width=105, height=105),
        ],
    )


def layout_for(template: int, custom_layout: CardLayout | None = None) -> CardLayout:
    """Pick the layout a card with this template selector is drawn with."""
    if template == TEMPLATE_CUSTOM:
        return custom_layout or default_layout()
    return builtin_layout(template)
