"""
Regex recognizers for single invoice values: dates, amounts, VAT numbers,
company registration numbers and IBANs.

All functions are pure and return ``None`` when nothing usable is found.
"""

import re
from datetime import date
from loguru import logger
from .keywords import fold
from . import vocabulary as vocab

_MONTHS = "|".join(vocab.LITHUANIAN_MONTHS)
_DATE_LABELS = "|".join(vocab.DATE_LABELS)

# "2026 m. sausio 13 d." / "2026 m. sausio mėn. 13 d." (matched on folded text)
LITHUANIAN_MONTH_DATE_RE = re.compile(
    rf"(\d{{4}})\s*m\.?\s*({_MONTHS})\s*(?:men\.?\s*)?(\d{{1,2}})\s*d\b"
)
LABELED_DATE_RE = re.compile(
    rf"(?:{_DATE_LABELS})[^0-9]{{0,25}}"
    r"(\d{4}[./-]\d{1,2}[./-]\d{1,2}|\d{1,2}[./-]\d{1,2}[./-](?:\d{4}|\d{2}))(?!\d)",
    re.IGNORECASE,
)
STANDALONE_DATE_RE = re.compile(
    r"(?<![\d.,])(\d{4}[./-]\d{1,2}[./-]\d{1,2}|\d{1,2}[./-]\d{1,2}[./-]\d{4})(?![\d])"
)
DATE_PARTS_RE = re.compile(r"[./-]")

AMOUNT_RE = re.compile(
    r"(?<![\d.,])"
    r"(\d{1,3}(?:[ \u00a0.,]\d{3})+[.,]\d{1,3}|\d{1,7}[.,]\d{1,3})"
    r"(?![.,]?\d)"
)
CURRENCY_AFTER_RE = re.compile(r"\s*(?:€|eur\b)", re.IGNORECASE)
DECIMAL_TAIL_RE = re.compile(r"[.,](\d{1,3})$")
NORMALIZED_AMOUNT_RE = re.compile(r"\d+(?:\.\d+)?")

VAT_NUMBER_RE = re.compile(r"\b(LT[0-9A-Z]{8,12})\b", re.IGNORECASE)

COMPANY_NUMBER_RE = re.compile(r"(?<![0-9A-Za-z])([1-4]\d{8})(?!\d)")
IBAN_OR_VAT_PREFIX_RE = re.compile(r"\blt\s?$")
INVOICE_NUMBER_CONTEXT_RE = re.compile(
    r"(?:" + "|".join(re.escape(p) for p in vocab.INVOICE_NUMBER_PREFIXES) + r")\s*:?\s*$"
)
AMOUNT_BEFORE_RE = re.compile(
    r"(?:" + "|".join(re.escape(w) for w in vocab.AMOUNT_CONTEXT_WORDS) + r")\s*:?\s*$"
)
AMOUNT_AFTER_RE = re.compile(
    r"^\s*(?:" + "|".join(re.escape(u) for u in vocab.AMOUNT_CONTEXT_UNITS) + r")(?![a-z])"
)
DECIMAL_AFTER_RE = re.compile(r"^[.,]\d")

MIN_AMOUNT = 0.01
MAX_AMOUNT = 10_000_000.0


def _two_digit_year(yy: int) -> int:
    return 2000 + yy if yy < 50 else 1900 + yy


def _iso_date(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_date(raw: str) -> str | None:
    """Turn ``D.M.Y``, ``D-M-YY`` or ``Y/M/D`` into ``YYYY-MM-DD`` if it is a real date."""
    parts = [p for p in DATE_PARTS_RE.split(raw.strip()) if p]
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    first, middle, last = parts
    if len(first) == 4:
        return _iso_date(int(first), int(middle), int(last))
    if len(last) == 4:
        return _iso_date(int(last), int(middle), int(first))
    if len(last) == 2:
        return _iso_date(_two_digit_year(int(last)), int(middle), int(first))
    return None


def extract_date(line: str) -> str | None:
    folded = fold(line)
    match = LITHUANIAN_MONTH_DATE_RE.search(folded)
    if match:
        year, month_word, day = match.groups()
        return _iso_date(int(year), vocab.LITHUANIAN_MONTHS[month_word], int(day))

    match = LABELED_DATE_RE.search(line)
    if match:
        normalized = normalize_date(match.group(1))
        if normalized:
            return normalized

    for match in STANDALONE_DATE_RE.finditer(line):
        normalized = normalize_date(match.group(1))
        if normalized:
            return normalized
    return None


def extract_amount(line: str) -> str | None:
    """
    First decimal amount in the line, as printed.

    Space-grouped thousands ("1 234,56") are only read as one amount when a
    currency follows or the number fills the line; otherwise "2 100,00" is a
    quantity column next to the amount 100,00.
    """
    position = 0
    while True:
        match = AMOUNT_RE.search(line, position)
        if match is None:
            return None
        raw = match.group(1)
        space = max(raw.rfind(" "), raw.rfind("\u00a0"))
        if space < 0 or _space_grouping_allowed(line, match):
            return raw
        position = match.start(1) + space + 1


def _space_grouping_allowed(line: str, match: re.Match) -> bool:
    if CURRENCY_AFTER_RE.match(line, match.end()):
        return True
    return line.strip() == match.group(1)


def normalize_amount(raw: str | None) -> str | None:
    """
    Normalize a printed amount to ``1234.56`` form.

    The decimal separator is the last ``,`` or ``.`` followed by 1-3 trailing
    digits; every other separator is a thousands grouping and is dropped.
    """
    if not raw:
        return None
    compact = re.sub(r"\s", "", raw)
    if not compact:
        return None
    tail = DECIMAL_TAIL_RE.search(compact)
    if tail:
        integer = re.sub(r"[.,]", "", compact[: tail.start()]) or "0"
        normalized = f"{integer}.{tail.group(1)}"
    else:
        normalized = re.sub(r"[.,]", "", compact)
    if not NORMALIZED_AMOUNT_RE.fullmatch(normalized):
        return None
    return normalized


def parse_amount(value: str | float | None) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    normalized = normalize_amount(value)
    return float(normalized) if normalized is not None else None


def is_valid_amount(value: str | float | None) -> bool:
    amount = parse_amount(value)
    return amount is not None and MIN_AMOUNT <= amount <= MAX_AMOUNT


def extract_valid_amount(line: str) -> str | None:
    """Extract, normalize and range-check an amount in one step."""
    normalized = normalize_amount(extract_amount(line))
    if normalized is not None and is_valid_amount(normalized):
        return normalized
    return None


def normalize_vat_number(value: str | None) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", "", value).upper()


def is_iban(value: str) -> bool:
    """True for bank-account shaped strings that would otherwise pass as a VAT number."""
    compact = normalize_vat_number(value)
    if len(compact) >= 15 and re.match(r"^[A-Z]{2}\d{2}", compact):
        return True
    if re.fullmatch(r"LT\d+", compact):
        if len(compact) >= 16:
            return True
        if len(compact) >= 14 and compact[:4] in vocab.IBAN_PREFIXES:
            return True
    return False


def extract_vat_number(line: str, exclude: str | None = None) -> str | None:
    """
    VAT number with the mandatory ``LT`` prefix, uppercase without spaces.

    A bare digit run is never a VAT number. The caller's own VAT number is
    skipped (case and whitespace insensitive).
    """
    excluded = normalize_vat_number(exclude)
    for match in VAT_NUMBER_RE.finditer(line):
        candidate = normalize_vat_number(match.group(1))
        if is_iban(candidate):
            logger.debug("Skipping IBAN-shaped VAT candidate", candidate=candidate)
            continue
        if excluded and candidate == excluded:
            continue
        return candidate
    return None


def vat_digits(vat_number: str | None) -> str:
    compact = normalize_vat_number(vat_number)
    return compact[2:] if compact.startswith("LT") else compact


def extract_company_number(
    line: str,
    exclude_vat: str | None = None,
    exclude_own: str | None = None,
) -> str | None:
    """
    Nine-digit registration number starting with 1-4.

    Skips numbers that are part of an IBAN or VAT run, amounts, invoice
    numbers (right after "Nr."/"Serija"), the VAT number's digits, and the
    caller's own registration number.
    """
    excluded_vat = vat_digits(exclude_vat)
    excluded_own = re.sub(r"\s+", "", exclude_own or "")
    folded = fold(line)
    for match in COMPANY_NUMBER_RE.finditer(line):
        candidate = match.group(1)
        before = folded[: match.start()]
        after = folded[match.end():]
        if IBAN_OR_VAT_PREFIX_RE.search(before):
            continue
        if DECIMAL_AFTER_RE.match(after):
            continue
        if INVOICE_NUMBER_CONTEXT_RE.search(before[-12:]):
            continue
        if AMOUNT_BEFORE_RE.search(before[-8:]) or AMOUNT_AFTER_RE.match(after[:6]):
            continue
        if excluded_vat and candidate == excluded_vat:
            continue
        if excluded_own and candidate == excluded_own:
            continue
        return candidate
    return None


def take_key_value(line: str) -> str | None:
    """Text after the first colon, or ``None``."""
    idx = line.find(":")
    if idx <= 0 or idx + 1 >= len(line):
        return None
    value = line[idx + 1:].strip()
    return value or None
