"""
ZIP archive construction for ``zip`` exports.

The archive holds ``expenses.csv``, ``index.yaml`` (when requested) and the
original file of every stored receipt.  Receipts are fetched one at a time
and written straight into a spooled temporary file, so peak memory is one
receipt plus the compressor state rather than the whole batch.

Every member carries a fixed timestamp and mode: the same entries and
receipt bytes always produce the same archive bytes.
"""

from __future__ import annotations

import tempfile
import zipfile
from collections.abc import Callable, Sequence

from reimburse_kernel.logging_config import get_logger
from reimburse_engines.report import ExportEntry

logger = get_logger("engines.archive")

CSV_MEMBER_NAME = "expenses.csv"
INDEX_MEMBER_NAME = "index.yaml"

_MEMBER_DATE_TIME = (1980, 1, 1, 0, 0, 0)
_MEMBER_MODE = 0o644 << 16
_SPOOL_MAX_BYTES = 16 * 1024 * 1024


def _member(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=_MEMBER_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = _MEMBER_MODE
    return info


def build_zip_archive(
    *,
    csv_bytes: bytes,
    yaml_bytes: bytes | None,
    entries: Sequence[ExportEntry],
    fetch: Callable[[str], bytes],
) -> bytes:
    """Assemble the export archive.

    Args:
        csv_bytes: Rendered table.
        yaml_bytes: Rendered index document, or None to omit it.
        entries: Export entries; only receipts with a storage key are added.
        fetch: Reads one receipt original from object storage.

    Raises:
        Whatever ``fetch`` raises; a missing original fails the export.
    """
    added = 0
    with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_BYTES) as spool:
        with zipfile.ZipFile(spool, mode="w", compresslevel=9) as archive:
            archive.writestr(_member(CSV_MEMBER_NAME), csv_bytes)
            if yaml_bytes is not None:
                archive.writestr(_member(INDEX_MEMBER_NAME), yaml_bytes)
            for entry in entries:
                for receipt in entry.stored_receipts:
                    archive.writestr(_member(receipt.filename), fetch(receipt.storage_key))
                    added += 1
        spool.seek(0)
        data = spool.read()

    logger.debug(
        "zip_archive_built",
        extra={"receipt_files": added, "size": len(data)},
    )
    return data
