"""
Duplicate detection on the identity field.

Keys are compared after normalization (trim, collapse internal whitespace,
case-fold), so " ABC-123 " and "abc-123" are the same record. The check runs
once against a single snapshot of existing keys; rows written concurrently
by another import after that snapshot are not detected.
"""

from typing import Any, Iterable, List, Optional, Sequence, Set
import logging

from gridbase.domain.imports.context import ImportContext
from gridbase.domain.imports.models import CandidateRow, DuplicateVerdict, SkipReason
from gridbase.domain.imports.services import RowStore

logger = logging.getLogger(__name__)


def normalize_key(value: Any) -> Optional[str]:
    """Normalized identity value, or None when the key is empty."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(v) for v in value)
    text = " ".join(str(value).split()).casefold()
    return text or None


def classify_rows(
    rows: Sequence[CandidateRow],
    key_field: str,
    existing_keys: Set[str],
    dedupe_within_file: bool = False,
) -> List[DuplicateVerdict]:
    """
    Give every row a verdict, in row order.

    Rows whose key is empty are skipped, as are rows whose normalized key is
    already stored. With ``dedupe_within_file`` only the first occurrence of
    a key inside the file is kept.
    """
    verdicts: List[DuplicateVerdict] = []
    seen: Set[str] = set()

    for row in rows:
        typed = row.values.get(key_field)
        display = typed.value if typed is not None else None
        key = normalize_key(display)
        if key is None:
            verdicts.append(DuplicateVerdict.skip(row.source_index, SkipReason.EMPTY_KEY, display))
        elif key in existing_keys:
            verdicts.append(DuplicateVerdict.skip(row.source_index, SkipReason.DUPLICATE, display))
        elif dedupe_within_file and key in seen:
            verdicts.append(DuplicateVerdict.skip(row.source_index, SkipReason.DUPLICATE_IN_FILE, display))
        else:
            seen.add(key)
            verdicts.append(DuplicateVerdict.import_row(row.source_index))

    return verdicts


def candidate_keys(rows: Iterable[CandidateRow], key_field: str) -> Set[str]:
    keys = set()
    for row in rows:
        typed = row.values.get(key_field)
        key = normalize_key(typed.value if typed is not None else None)
        if key is not None:
            keys.add(key)
    return keys


async def detect_duplicates(
    rows: Sequence[CandidateRow],
    key_field: str,
    row_store: RowStore,
    context: ImportContext,
) -> List[DuplicateVerdict]:
    """Fetch the stored keys that collide with this file and classify every row."""
    keys = candidate_keys(rows, key_field)
    existing: Set[str] = set()
    if keys:
        context.checkpoint("duplicate detection")
        existing = {normalize_key(k) for k in await row_store.existing_keys(context.table_id, key_field, keys)}
        existing.discard(None)

    verdicts = classify_rows(rows, key_field, existing, context.settings.dedupe_within_file)
    skipped = sum(1 for v in verdicts if not v.should_import)
    logger.info(
        f"Duplicate check on '{key_field}': {len(existing)} existing keys matched, "
        f"{skipped} of {len(rows)} rows skipped"
    )
    return verdicts
