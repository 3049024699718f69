"""
Self-contained HTML report for ``html`` exports.

One card per expense with its receipts embedded as data URIs, so the file
opens offline.  Image receipts are embedded as a 150px JPEG thumbnail plus
a full view capped at 1200px wide; PDFs and other files get an icon.  When
Pillow cannot decode an image the raw bytes are used for both.  A receipt
whose original cannot be read is rendered as a placeholder and the rest of
the report is still produced.

Markup lives in ``templates/html_report.html.j2``.
"""

from __future__ import annotations

import base64
import io
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

from jinja2 import Environment, FileSystemLoader
from PIL import Image

from reimburse_kernel.exceptions import StorageError
from reimburse_kernel.logging_config import get_logger
from reimburse_engines.naming import EMPTY_SEGMENT, format_amount, format_sequence
from reimburse_engines.report import (
    DEFAULT_BATCH_NAME,
    ExportEntry,
    ExportReceipt,
    status_label,
)

logger = get_logger("engines.html")

THUMBNAIL_WIDTH = 150
MAX_IMAGE_WIDTH = 1200
THUMBNAIL_QUALITY = 80
FULL_IMAGE_QUALITY = 85

_TEMPLATE_DIR = Path(__file__).parent / "templates"
_jinja_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)

_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
    "pdf": "application/pdf",
}

_FILE_ICON_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="150" height="150" viewBox="0 0 24 24" '
    'fill="none" stroke="{color}" stroke-width="1.5">'
    '<path d="M14 2H6a2 2 0 0 0-2 2v16a2 2 0 0 0 2 2h12a2 2 0 0 0 2-2V8z"/>'
    '<polyline points="14 2 14 8 20 8"/>'
    '<text x="12" y="17" text-anchor="middle" font-size="5" fill="{color}" stroke="none" '
    'font-family="Arial">{label}</text></svg>'
)


@dataclass(frozen=True)
class EmbeddedReceipt:
    """A receipt ready for the template.  No URIs when it was unreadable."""

    filename: str
    thumbnail_uri: str | None = None
    full_uri: str | None = None
    is_pdf: bool = False

    @property
    def available(self) -> bool:
        return self.full_uri is not None


def mime_type_for(extension: str | None) -> str:
    return _MIME_TYPES.get((extension or "").lower(), "application/octet-stream")


def _data_uri(mime: str, payload: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"


def _icon_uri(label: str, color: str) -> str:
    svg = _FILE_ICON_SVG.format(label=label[:4].upper() or "FILE", color=color)
    return _data_uri("image/svg+xml", svg.encode("utf-8"))


def _jpeg_bytes(image: Image.Image, width: int, quality: int) -> bytes:
    resized = image.convert("RGB")
    # Bounded by width only; thumbnail() keeps the aspect ratio and never enlarges.
    resized.thumbnail((width, resized.height))
    out = io.BytesIO()
    resized.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def embed_receipt(receipt: ExportReceipt, payload: bytes) -> EmbeddedReceipt:
    """Build the thumbnail and full-view data URIs for one receipt original."""
    mime = mime_type_for(receipt.file_ext)
    raw_uri = _data_uri(mime, payload)

    if mime == "application/pdf":
        return EmbeddedReceipt(
            receipt.filename, _icon_uri("pdf", "#ef4444"), raw_uri, is_pdf=True,
        )
    if not mime.startswith("image/"):
        return EmbeddedReceipt(
            receipt.filename, _icon_uri(receipt.file_ext or "", "#6b7280"), raw_uri,
        )

    try:
        with Image.open(io.BytesIO(payload)) as image:
            image.load()
            thumbnail = _jpeg_bytes(image, THUMBNAIL_WIDTH, THUMBNAIL_QUALITY)
            full_uri = raw_uri
            if image.width > MAX_IMAGE_WIDTH:
                full_uri = _data_uri(
                    "image/jpeg", _jpeg_bytes(image, MAX_IMAGE_WIDTH, FULL_IMAGE_QUALITY)
                )
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        logger.warning(
            "html_receipt_image_unprocessed",
            extra={"receipt_id": str(receipt.receipt_id), "reason": str(exc)},
        )
        return EmbeddedReceipt(receipt.filename, raw_uri, raw_uri)

    return EmbeddedReceipt(receipt.filename, _data_uri("image/jpeg", thumbnail), full_uri)


def _load_receipt(receipt: ExportReceipt, fetch: Callable[[str], bytes]) -> EmbeddedReceipt:
    try:
        payload = fetch(receipt.storage_key)
    except StorageError as exc:
        logger.warning(
            "html_receipt_unavailable",
            extra={
                "receipt_id": str(receipt.receipt_id),
                "storage_key": receipt.storage_key,
                "reason": exc.code,
            },
        )
        return EmbeddedReceipt(receipt.filename)
    return embed_receipt(receipt, payload)


def render_html_report(
    *,
    batch_name: str | None,
    project_label: str,
    entries: Sequence[ExportEntry],
    fetch: Callable[[str], bytes],
) -> bytes:
    cards = []
    receipt_count = 0
    for entry in entries:
        expense = entry.expense
        # Originals are fetched and encoded one at a time.
        receipts = [_load_receipt(r, fetch) for r in entry.stored_receipts]
        receipt_count += len(receipts)
        cards.append({
            "sequence": format_sequence(entry.sequence),
            "date": expense.date.isoformat() if expense.date else EMPTY_SEGMENT,
            "amount": format_amount(expense.amount),
            "category": expense.category or EMPTY_SEGMENT,
            "status": status_label(expense.status),
            "note": expense.note,
            "receipts": receipts,
        })

    page = _jinja_env.get_template("html_report.html.j2").render(
        title=batch_name or DEFAULT_BATCH_NAME,
        project_label=project_label,
        entry_count=len(entries),
        total_amount=format_amount(sum((e.expense.amount for e in entries), Decimal("0"))),
        receipt_count=receipt_count,
        entries=cards,
    )
    return page.encode("utf-8")
