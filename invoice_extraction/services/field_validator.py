"""
Syntactic checks per field, and a score for how well a confirmed value
matches the OCR fragments it was found in.

Used to gate template learning and template matching.
"""

import re
from datetime import date
from ..models.invoice import FieldName, PositionedFragment

VAT_NUMBER_PATTERN = re.compile(r"(LT)?[0-9A-Z]{8,12}")
COMPANY_NUMBER_PATTERN = re.compile(r"[0-9]{7,14}")
ISO_DATE_PATTERN = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
NON_NUMERIC_RE = re.compile(r"[^0-9.]")
FUZZY_STRIP_RE = re.compile(r"[^a-z0-9.,]")

MAX_INVOICE_ID_LENGTH = 100
MAX_COMPANY_NAME_LENGTH = 200


def _is_iso_date(value: str) -> bool:
    match = ISO_DATE_PATTERN.fullmatch(value.strip())
    if not match:
        return False
    try:
        date(*(int(part) for part in match.groups()))
    except ValueError:
        return False
    return True


def _is_number(value: str) -> bool:
    cleaned = NON_NUMERIC_RE.sub("", value.replace(",", "."))
    try:
        float(cleaned)
    except ValueError:
        return False
    return True


def validate_field(field: FieldName | str, value: str | None) -> bool:
    if value is None or not value.strip():
        return False
    try:
        field = FieldName(field)
    except ValueError:
        return True

    if field == FieldName.DATE:
        return _is_iso_date(value)
    if field in (FieldName.AMOUNT_WITHOUT_VAT, FieldName.VAT_AMOUNT):
        return _is_number(value)
    if field == FieldName.VAT_NUMBER:
        return VAT_NUMBER_PATTERN.fullmatch(value.strip()) is not None
    if field == FieldName.COMPANY_NUMBER:
        return COMPANY_NUMBER_PATTERN.fullmatch(value.strip()) is not None
    if field == FieldName.INVOICE_ID:
        return len(value) <= MAX_INVOICE_ID_LENGTH
    if field == FieldName.COMPANY_NAME:
        return len(value) <= MAX_COMPANY_NAME_LENGTH
    return True


def _char_jaccard(a: str, b: str) -> float:
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    set_a, set_b = set(a), set(b)
    return len(set_a & set_b) / len(set_a | set_b)


def match_quality(claimed_value: str, fragments: list[PositionedFragment]) -> float:
    """
    Score in [0, 1]: 1.0 exact, 0.8 substring either way, 0.7 equal after
    stripping everything but letters, digits, ``.`` and ``,``; otherwise the
    Jaccard similarity of the two character sets.
    """
    if not fragments:
        return 0.0
    claimed = claimed_value.strip().lower()
    matched = " ".join(f.text for f in fragments).strip().lower()

    if claimed == matched:
        return 1.0
    if claimed in matched or matched in claimed:
        return 0.8
    if FUZZY_STRIP_RE.sub("", claimed) == FUZZY_STRIP_RE.sub("", matched):
        return 0.7
    return max(0.0, min(1.0, _char_jaccard(claimed, matched)))
