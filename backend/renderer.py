"""
Card rendering with Pillow.

Draws the resolved fields of a card layout onto a raster image and encodes
it as PNG for download. QR codes are generated with the qrcode library.
"""

from __future__ import annotations

import base64
import io
import logging
import re

import qrcode
from PIL import Image, ImageColor, ImageDraw, ImageFont, ImageOps

from layout import CARD_HEIGHT, CARD_WIDTH, resolve_layout
from models import MAX_FONT_SIZE, CardField, CardLayout, StudentFields

logger = logging.getLogger(__name__)

BOLD_FONT_CANDIDATES = ["DejaVuSans-Bold.ttf", "arialbd.ttf"]
REGULAR_FONT_CANDIDATES = ["DejaVuSans.ttf", "arial.ttf"]
PLACEHOLDER_COLOR = (200, 200, 200)
BORDER_WIDTH = 6
QR_PADDING = 10

_DATA_URL = re.compile(r"^data:image/[\w.+-]+;base64,(?P<data>.+)$", re.DOTALL)


def _color(value: str, fallback: str) -> tuple[int, int, int]:
    try:
        return ImageColor.getrgb(value)[:3]
    except ValueError:
        logger.warning(f"Unrecognised colour {value!r}, using {fallback}")
        return ImageColor.getrgb(fallback)[:3]


def load_font(size: int, bold: bool = False) -> ImageFont.ImageFont:
    """Load a TrueType font at ``size``, falling back to Pillow's default font."""
    for name in BOLD_FONT_CANDIDATES if bold else REGULAR_FONT_CANDIDATES:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def decode_photo(photo: str) -> Image.Image | None:
    """Decode a data URL photo reference; other references return None."""
    match = _DATA_URL.match(photo or "")
    if not match:
        return None
    try:
        raw = base64.b64decode(match.group("data"))
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (ValueError, OSError, Image.DecompressionBombError) as e:
        logger.warning(f"Could not decode photo data: {e}")
        return None
    return img.convert("RGB")


def generate_qr_code(data: str, size: int) -> Image.Image:
    """Generate a square QR image of ``size`` pixels."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=4,
        border=1,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white").get_image().convert("RGB")
    return img.resize((size, size), Image.NEAREST)


def _clip_box(field: CardField, size: tuple[int, int]) -> tuple[int, int, int, int]:
    """Return the field box as (x, y, width, height) cut to the canvas."""
    x = min(int(field.x), size[0])
    y = min(int(field.y), size[1])
    return x, y, min(int(field.width), size[0] - x), min(int(field.height), size[1] - y)


def render_card(
    student: StudentFields,
    layout: CardLayout,
    template: int,
    size: tuple[int, int] = (CARD_WIDTH, CARD_HEIGHT),
) -> Image.Image:
    """Draw every field of ``layout`` for ``student`` onto a new card image."""
    background = _color(layout.background_color, "#ffffff")
    text_color = _color(layout.text_color, "#000000")
    accent = _color(layout.accent_color, "#3b82f6")

    card = Image.new("RGB", size, background)
    draw = ImageDraw.Draw(card)
    draw.rectangle([0, 0, size[0] - 1, size[1] - 1], outline=accent, width=BORDER_WIDTH)

    for field, value in resolve_layout(student, layout, template):
        x, y, width, height = _clip_box(field, size)
        box = (x, y)

        if field.type == "text":
            font_size = min(max(field.font_size or 14, 1), MAX_FONT_SIZE)
            font = load_font(font_size, bold=field.font_weight == "bold")
            draw.text(box, value, fill=text_color, font=font)

        elif field.type == "image":
            if width <= 0 or height <= 0:
                continue
            photo = decode_photo(value)
            if photo is None:
                draw.rectangle([box[0], box[1], box[0] + width, box[1] + height], fill=PLACEHOLDER_COLOR)
            else:
                card.paste(ImageOps.fit(photo, (width, height)), box)

        elif field.type == "qrcode":
            qr_size = min(width, height) - QR_PADDING
            if qr_size <= 0:
                continue
            draw.rectangle([box[0], box[1], box[0] + width, box[1] + height], fill=(255, 255, 255))
            offset = QR_PADDING // 2
            card.paste(generate_qr_code(value, qr_size), (box[0] + offset, box[1] + offset))

    return card


def render_card_png(student: StudentFields, layout: CardLayout, template: int) -> io.BytesIO:
    """Render a card and return it as a PNG stream."""
    stream = io.BytesIO()
    render_card(student, layout, template).save(stream, format="PNG")
    stream.seek(0)
    return stream


def card_filename(student: StudentFields) -> str:
    """Download name for a student's card, e.g. unity-id-jane-doe.png."""
    slug = re.sub(r"\s+", "-", student.name.strip()).lower()
    # Header-safe: Content-Disposition must stay ASCII
    slug = re.sub(r"[^a-z0-9-]", "", slug) or "student"
    return f"unity-id-{slug}.png"
