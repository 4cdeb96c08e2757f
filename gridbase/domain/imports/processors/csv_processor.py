from typing import List, Optional, Tuple
from io import StringIO
import csv
import logging

from gridbase.core.config import settings
from gridbase.domain.imports.exceptions import SourceFileError
from gridbase.domain.imports.models import ParsedTable

logger = logging.getLogger(__name__)


def _dedupe_headers(headers: List[str]) -> List[str]:
    """Suffix repeated header names so every column stays addressable."""
    original = set(headers)
    used: set = set()
    result = []
    for header in headers:
        name = header
        count = 2
        # Suffixed names skip headers that already exist elsewhere in the file
        while name in used or (name != header and name in original):
            name = f"{header} ({count})"
            count += 1
        used.add(name)
        result.append(name)
    return result


def _normalize_row(row: List[str], width: int) -> Tuple[str, ...]:
    if len(row) < width:
        row = row + [""] * (width - len(row))
    return tuple(row[:width])


def parse_csv_text(text_content: str, max_columns: Optional[int] = None) -> ParsedTable:
    """
    Parse comma-separated text with an optional quoting into a ParsedTable.

    The first non-blank line is the header. Header cells are trimmed, blank
    lines are skipped, short rows are padded with empty strings and long rows
    are cut to the header width. Cell values are kept as raw strings.

    Raises:
        SourceFileError: if the text has no columns, no data rows or too
            many columns.
    """
    limit = max_columns or settings.import_max_columns
    reader = csv.reader(StringIO(text_content))

    header: Optional[List[str]] = None
    rows: List[Tuple[str, ...]] = []
    for raw_row in reader:
        if not any(cell.strip() for cell in raw_row):
            continue
        if header is None:
            header = [cell.strip() for cell in raw_row]
            continue
        rows.append(_normalize_row(raw_row, len(header)))

    if not header or not any(header):
        raise SourceFileError("CSV file is empty or has no columns")

    if len(header) > limit:
        raise SourceFileError(
            f"CSV file has {len(header)} columns. Maximum allowed is {limit}."
        )

    if not rows:
        raise SourceFileError("CSV file is empty or has no data rows")

    column_names = _dedupe_headers(header)
    logger.info(f"Parsed CSV with {len(rows)} rows and {len(column_names)} columns")
    return ParsedTable(column_names=tuple(column_names), rows=tuple(rows))


def parse_csv_bytes(file_content: bytes, encoding: str = "utf-8", max_columns: Optional[int] = None) -> ParsedTable:
    """Decode uploaded bytes (tolerating a BOM) and parse them."""
    try:
        text_content = file_content.decode("utf-8-sig" if encoding.lower() in ("utf-8", "utf8") else encoding)
    except UnicodeDecodeError as exc:
        raise SourceFileError(f"CSV file is not valid {encoding} text: {exc}") from exc
    return parse_csv_text(text_content, max_columns=max_columns)
