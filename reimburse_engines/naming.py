"""
Export file naming.

Each receipt placed in an export gets a deterministic, human-legible name:

    {seq:03}{sub}_{YYYY-MM-DD}_{amount:.2f}_{category}_{note}_{id6}.{ext}

``sub`` (a, b, ... z, aa, ab, ...) appears only when an expense has more than
one receipt.  Segments keep letters, digits, CJK ideographs and whitespace;
anything else becomes ``_``; a blank segment becomes ``-``.  A missing note
is written as the ``-`` placeholder and sanitized with the rest, so it shows
as ``_``.  The note is cut to 20 characters, or to 10 when
the full name would exceed 120 characters.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from string import ascii_lowercase

DEFAULT_CATEGORY = "other"
EMPTY_SEGMENT = "-"
DEFAULT_EXTENSION = "bin"
NOTE_MAX_LENGTH = 20
NOTE_SHORT_LENGTH = 10
FILENAME_MAX_LENGTH = 120
SHORT_ID_LENGTH = 6

_UNSAFE_SEGMENT_CHARS = re.compile(r"[^a-zA-Z0-9\u4e00-\u9fa5\s]")
_UNSAFE_EXTENSION_CHARS = re.compile(r"[^a-zA-Z0-9]")


def format_amount(value: Decimal) -> str:
    return f"{Decimal(value):.2f}"


def format_sequence(sequence: int) -> str:
    return f"{sequence:03d}"


def sanitize_segment(value: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        return EMPTY_SEGMENT
    return _UNSAFE_SEGMENT_CHARS.sub("_", trimmed)


def sanitize_extension(value: str | None) -> str:
    cleaned = _UNSAFE_EXTENSION_CHARS.sub("", value or "")
    return cleaned or DEFAULT_EXTENSION


def short_id(value: object) -> str:
    text = str(value)
    return text if len(text) <= SHORT_ID_LENGTH else text[-SHORT_ID_LENGTH:]


def to_sub_index(index: int) -> str:
    """0 -> a, 25 -> z, 26 -> aa, 27 -> ab, ..."""
    if index < len(ascii_lowercase):
        return ascii_lowercase[index]
    first = index // len(ascii_lowercase) - 1
    second = index % len(ascii_lowercase)
    lead = ascii_lowercase[first] if first < len(ascii_lowercase) else "a"
    return f"{lead}{ascii_lowercase[second]}"


def build_receipt_filename(
    *,
    sequence: int,
    expense_date: date,
    amount: Decimal,
    category: str | None,
    note: str | None,
    receipt_id: object,
    extension: str | None,
    sub_index: int | None = None,
) -> str:
    prefix = format_sequence(sequence)
    if sub_index is not None:
        prefix += to_sub_index(sub_index)
    head = "_".join((
        prefix,
        expense_date.isoformat(),
        format_amount(amount),
        sanitize_segment(category or DEFAULT_CATEGORY),
    ))
    tail = f"{short_id(receipt_id)}.{sanitize_extension(extension)}"
    raw_note = note or EMPTY_SEGMENT

    filename = f"{head}_{sanitize_segment(raw_note[:NOTE_MAX_LENGTH])}_{tail}"
    if len(filename) > FILENAME_MAX_LENGTH:
        filename = f"{head}_{sanitize_segment(raw_note[:NOTE_SHORT_LENGTH])}_{tail}"
    return filename
