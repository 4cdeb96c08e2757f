"""
Column type inference for CSV imports.

A column is classified from a sample of its non-empty values. Pattern tests
run in a fixed priority order and the first one matched by enough samples
wins:

    json > email > url > checkbox > choice > date > number > text

Choice detection runs before date and number detection so that repeated
numeric-looking codes become categories instead of measurements.
"""

from collections import Counter
from typing import Iterable, List, Optional, Sequence
import json
import logging
import math
import re

from gridbase.core.config import settings
from gridbase.domain.fields import FieldKind
from gridbase.utils.date import looks_like_date

logger = logging.getLogger(__name__)

CHECKBOX_VALUES = {'true', 'false', 'yes', 'no', '1', '0', 'y', 'n', 't', 'f'}

CHOICE_MIN_SAMPLES = 3
CHOICE_MAX_DISTINCT_RATIO = 0.5
CHOICE_MAX_DISTINCT = 15

EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)
_DOMAIN = r'[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)*\.[a-z]{2,}'
URL_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.-]*://\S+$', re.IGNORECASE)
URL_WWW_RE = re.compile(r'^www\.' + _DOMAIN + r'(?:[:/?#]\S*)?$', re.IGNORECASE)
URL_DOMAIN_RE = re.compile(r'^' + _DOMAIN + r'(?:[:/?#]\S*)?$', re.IGNORECASE)

CURRENCY_SYMBOLS = '$€£¥'
CURRENCY_CODE_RE = re.compile(r'\b(?:USD|EUR|GBP|JPY|CAD|AUD|CHF|INR)\b', re.IGNORECASE)
NUMBER_STRIP_RE = re.compile(r'[$€£¥%,\s]')
NUMBER_RE = re.compile(r'^-?\d+(\.\d+)?$')
MULTI_VALUE_SEPARATOR_RE = re.compile(r'[,;]')


def sample_values(
    values: Sequence[Optional[str]],
    sample_size: Optional[int] = None,
    backfill: Optional[int] = None,
) -> List[str]:
    """
    Pick up to ``sample_size`` non-empty values spread evenly over the column.

    Sampling across the whole column avoids bias from clustered blanks at the
    top of a file. The first ``backfill`` non-empty values are always part of
    the sample in case the even stride skipped over them.
    """
    size = sample_size or settings.import_sample_size
    head = settings.import_sample_backfill if backfill is None else backfill

    non_empty = [str(v).strip() for v in values if v is not None and str(v).strip()]
    if len(non_empty) <= size:
        return non_empty

    stride = len(non_empty) / size
    picked = {int(i * stride) for i in range(size)}
    picked.update(range(min(head, len(non_empty))))
    return [non_empty[i] for i in sorted(picked)]


def _required_matches(total: int, threshold: float) -> int:
    # Rounded down, with a small epsilon so 0.4 * 10 never lands on 3.999...
    return max(1, math.floor(total * threshold + 1e-9))


def _is_json(value: str) -> bool:
    if not value.startswith(('{', '[')):
        return False
    try:
        parsed = json.loads(value)
    except ValueError:
        return False
    return isinstance(parsed, (dict, list))


def _is_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value))


def _is_url(value: str) -> bool:
    if ' ' in value:
        return False
    if URL_SCHEME_RE.match(value) or URL_WWW_RE.match(value) or URL_DOMAIN_RE.match(value):
        return True
    # Bare paths like "example.org/docs/page.html"
    return '.' in value and '/' in value and any(ch.isalpha() for ch in value)


def _is_checkbox(value: str) -> bool:
    return value.lower() in CHECKBOX_VALUES


def clean_number(value: str) -> str:
    return NUMBER_STRIP_RE.sub('', CURRENCY_CODE_RE.sub('', value))


def _is_number(value: str) -> bool:
    return bool(NUMBER_RE.match(clean_number(value)))


def _has_currency(value: str) -> bool:
    return any(symbol in value for symbol in CURRENCY_SYMBOLS) or bool(CURRENCY_CODE_RE.search(value))


def _count(samples: Iterable[str], predicate) -> int:
    return sum(1 for value in samples if predicate(value))


def _infer_choice(samples: List[str], required: int) -> Optional[FieldKind]:
    total = len(samples)
    if total < CHOICE_MIN_SAMPLES:
        return None

    value_counts = Counter(value.lower() for value in samples)
    distinct = len(value_counts)
    if distinct / total > CHOICE_MAX_DISTINCT_RATIO and distinct > CHOICE_MAX_DISTINCT:
        return None

    if _count(samples, lambda v: bool(MULTI_VALUE_SEPARATOR_RE.search(v))) >= required:
        return FieldKind.MULTI_CHOICE
    if max(value_counts.values()) >= 2:
        return FieldKind.SINGLE_CHOICE
    return None


def infer_field_kind(sample: Sequence[Optional[str]], threshold: Optional[float] = None) -> FieldKind:
    """
    Classify a column from its sampled values.

    Blank values are ignored. An empty sample is text. The result depends
    only on the multiset of values, not on their order.
    """
    samples = [str(v).strip() for v in sample if v is not None and str(v).strip()]
    if not samples:
        return FieldKind.TEXT

    ratio = settings.import_type_threshold if threshold is None else threshold
    required = _required_matches(len(samples), ratio)

    if _count(samples, _is_json) >= required:
        return FieldKind.JSON
    if _count(samples, _is_email) >= required:
        return FieldKind.EMAIL
    if _count(samples, _is_url) >= required:
        return FieldKind.URL
    if _count(samples, _is_checkbox) >= required:
        return FieldKind.CHECKBOX

    choice_kind = _infer_choice(samples, required)
    if choice_kind is not None:
        return choice_kind

    if _count(samples, looks_like_date) >= required:
        return FieldKind.DATE

    if _count(samples, _is_number) >= required:
        if _count(samples, lambda v: '%' in v) >= required:
            return FieldKind.PERCENT
        if _count(samples, _has_currency) >= required:
            return FieldKind.CURRENCY
        return FieldKind.NUMBER

    return FieldKind.TEXT


def infer_column_kind(values: Sequence[Optional[str]], threshold: Optional[float] = None) -> FieldKind:
    """Sample a full column and classify it."""
    kind = infer_field_kind(sample_values(values), threshold=threshold)
    logger.debug("Inferred field kind %s from %d values", kind.value, len(values))
    return kind
