"""
Multi-pass heuristic parser for OCR'd Lithuanian invoices.

Passes run in a fixed order and only fill fields that are still empty:

1. VAT number pre-pass
2. company-number pre-pass (section-tagged candidates, direction policy)
3. label-to-value pass over every line
4. company number near the VAT number line
5. per-field fallbacks
6. VAT-rate cross-validation
7. final own-company exclusion

Every fallback is an ordered tuple of strategy functions evaluated by
``first_match``; reordering a tuple reorders the pass.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable
from loguru import logger

from ..models.invoice import (
    Direction,
    ExtractedInvoice,
    FieldName,
    OwnCompanyIdentity,
    Section,
    partner_section,
)
from . import vocabulary as vocab
from .keywords import fold, normalize_key, contains_any
from .extractors import (
    AMOUNT_RE,
    extract_company_number,
    extract_date,
    extract_valid_amount,
    extract_vat_number,
    is_iban,
    normalize_amount,
    normalize_date,
    normalize_vat_number,
    take_key_value,
)
from .company_names import company_name_from_line, has_legal_form, is_same_company, is_section_label

EMPTY_INPUT_MESSAGE = "No text could be read from the document."

SECTION_RADIUS = 10
VAT_NEIGHBOURHOOD = 5
LABEL_WINDOW = 5
HEADER_WINDOW = 8
IDENTIFIER_LOOKBACK = 8
TOTALS_SECTION_START = 0.8
CURRENCY_SCAN_START = 0.7
TOTALS_CEILING = 1_000_000
RATE_TOLERANCE = 0.02

VAT_VALUE_RE = re.compile(r"LT[0-9A-Z]{8,12}")
SERIES_KEYWORD_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(k) for k in vocab.SERIES_KEYWORDS) + r")\b"
)
_NUMBER_WORDS = sorted({k.rstrip(".") for k in vocab.NUMBER_KEYWORDS}, key=len, reverse=True)
NUMBER_KEYWORD_RE = re.compile(r"\b(?:" + "|".join(_NUMBER_WORDS) + r")\b\.?")
SERIAL_TOKEN_RE = re.compile(r"(?<![A-Za-z0-9])([A-Za-z0-9]{2,})(?![A-Za-z0-9])")
NUMBER_TOKEN_RE = re.compile(r"(?<![A-Za-z0-9])(\d{3,15})(?![A-Za-z0-9])")
LABELED_INVOICE_ID_RE = re.compile(
    r"\b(?:nr|no|numeris|number|id)\b\.?\s*:?\s*([A-Za-z0-9][A-Za-z0-9/-]{2,})", re.IGNORECASE
)
LETTERED_INVOICE_ID_RE = re.compile(r"\b(?:nr|no)\.?\s*:?\s*([A-Z]{2,}[0-9][A-Z0-9-]*)", re.IGNORECASE)
BARE_CODE_RE = re.compile(r"\b" + vocab.BARE_CODE_LABEL + r"\b")
CURRENCY_AMOUNT_RE = re.compile(
    r"(?<![\d.,])(\d{1,3}(?:[ \u00a0.]\d{3})+[.,]\d{2}|\d{1,7}[.,]\d{2})\s*(?:€|eur\b)",
    re.IGNORECASE,
)
RATE_TEXT_PATTERNS = (
    re.compile(r"(?<![\d.,])(\d{1,2})(?:[.,]0+)?\s*%"),
    re.compile(r"\b(?:" + "|".join(vocab.VAT_RATE_TEXT_LABELS) + r")\s*:?\s*(\d{1,2})(?:[.,]0+)?\s*%"),
    re.compile(r"\b(?:pvm\s+)?tarifas\s*:?\s*(\d{1,2})(?![\d.,])"),
    re.compile(r"\bpvm\s+(\d{1,2})(?![\d.,%])"),
)


@dataclass
class CompanyNumberCandidate:
    number: str
    line_index: int
    section: Section | None


@dataclass
class ParseContext:
    """Input lines plus the fields resolved so far."""
    lines: list[str]
    own: OwnCompanyIdentity
    direction: Direction
    folded: list[str] = field(init=False)
    invoice_id: str | None = None
    date: str | None = None
    company_name: str | None = None
    amount_without_vat: str | None = None
    vat_amount: str | None = None
    vat_rate: str | None = None
    vat_number: str | None = None
    company_number: str | None = None
    vat_line: int | None = None
    rejected_company_numbers: set[str] = field(default_factory=set)

    def __post_init__(self):
        self.folded = [fold(line) for line in self.lines]

    @property
    def partner(self) -> Section:
        return partner_section(self.direction)

    def section_allowed(self, section: Section | None) -> bool:
        """Whether a name under this section header may be the counterparty."""
        if section is None or self.direction == Direction.UNKNOWN:
            return True
        return section == self.partner


Strategy = Callable[[ParseContext], str | None]


def first_match(strategies: Iterable[Strategy], ctx: ParseContext) -> str | None:
    """Run strategies in order and return the first non-empty value."""
    for strategy in strategies:
        value = strategy(ctx)
        if value:
            logger.debug("Strategy matched", strategy=strategy.__name__)
            return value
    return None


# ---------------------------------------------------------------------------
# Section helpers
# ---------------------------------------------------------------------------

def line_section(folded: str) -> Section | None:
    buyer = contains_any(folded, vocab.BUYER_SECTION_KEYWORDS)
    seller = contains_any(folded, vocab.SELLER_SECTION_KEYWORDS)
    if buyer and not seller:
        return Section.BUYER
    if seller and not buyer:
        return Section.SELLER
    return None


def section_near(ctx: ParseContext, index: int, radius: int = SECTION_RADIUS) -> Section | None:
    """Nearest buyer/seller header within ``radius`` lines, looking upwards first."""
    for j in range(index, max(-1, index - radius - 1), -1):
        section = line_section(ctx.folded[j])
        if section:
            return section
    for j in range(index + 1, min(len(ctx.lines), index + radius + 1)):
        section = line_section(ctx.folded[j])
        if section:
            return section
    return None


def has_company_code_label(folded: str) -> bool:
    if contains_any(folded, vocab.COMPANY_CODE_LABELS):
        return True
    return bool(BARE_CODE_RE.search(folded)) and not contains_any(folded, vocab.BARE_CODE_EXCLUDED_CONTEXTS)


# ---------------------------------------------------------------------------
# Invoice ID
# ---------------------------------------------------------------------------

def _is_valid_serial(token: str) -> bool:
    if not 2 <= len(token) <= 6:
        return False
    if any(ch.isalpha() for ch in token):
        return True
    return not (len(token) == 4 and token.isdigit())


def _number_token(text: str) -> str | None:
    """First 3-15 digit token that is not part of a date."""
    for match in NUMBER_TOKEN_RE.finditer(text):
        before = text[max(0, match.start() - 2): match.start()]
        after = text[match.end(): match.end() + 2]
        if re.fullmatch(r"\d[./-]", before) or re.fullmatch(r"[./-]\d", after):
            continue
        return match.group(1)
    return None


def _serial_after_keyword(line: str, keyword_end: int) -> tuple[str, int] | None:
    """Serial token following a series keyword, with its end offset in ``line``."""
    window = line[keyword_end: keyword_end + 50]
    for match in SERIAL_TOKEN_RE.finditer(window):
        token = match.group(1)
        lowered = fold(token)
        if lowered in _NUMBER_WORDS or lowered == vocab.BARE_CODE_LABEL:
            continue
        if not _is_valid_serial(token):
            return None
        return token.upper(), keyword_end + match.end()
    return None


def serial_number_invoice_id(lines: list[str]) -> str | None:
    """
    Combine a printed series and number into one invoice ID.

    ``["Serija 25DF", "Numeris 2569"]`` gives ``"25DF2569"``. The number is
    looked for after the serial on the same line, then after a number label on
    the same line, then on the next two lines. Without a series keyword the
    rule yields nothing.
    """
    for i, line in enumerate(lines):
        folded = fold(line)
        keyword = SERIES_KEYWORD_RE.search(folded)
        if not keyword:
            continue
        serial = _serial_after_keyword(line, keyword.end())
        if serial is None:
            continue
        token, serial_end = serial

        number = _number_token(line[serial_end: serial_end + 30])
        if number is None:
            label = NUMBER_KEYWORD_RE.search(folded, serial_end)
            if label:
                number = _number_token(line[label.end(): label.end() + 30])
        if number is None:
            for offset in (1, 2):
                if i + offset < len(lines):
                    number = _number_token(lines[i + offset])
                    if number:
                        break
        if number:
            logger.debug("Invoice ID from series and number", serial=token, number=number)
            return f"{token}{number}"
    return None


def invoice_id_after_label(line: str) -> str | None:
    match = LABELED_INVOICE_ID_RE.search(line)
    if match and any(ch.isdigit() for ch in match.group(1)):
        return match.group(1).upper()
    value = take_key_value(line)
    if value and any(ch.isdigit() for ch in value) and len(value) <= 100:
        return value
    return None


def invoice_id_with_letters(line: str) -> str | None:
    match = LETTERED_INVOICE_ID_RE.search(line)
    if match and len(match.group(1)) >= 6:
        return match.group(1).upper()
    return None


def invoice_id_from_series_and_number(ctx: ParseContext) -> str | None:
    return serial_number_invoice_id(ctx.lines)


def invoice_id_from_number_label(ctx: ParseContext) -> str | None:
    for line in ctx.lines:
        invoice_id = invoice_id_with_letters(line)
        if invoice_id:
            return invoice_id
    return None


# ---------------------------------------------------------------------------
# VAT and company numbers
# ---------------------------------------------------------------------------

def labeled_vat_number(line: str, own_vat: str | None) -> str | None:
    """``"PVM kodas: LT 1000 0877 7514"`` style values; the prefix is mandatory."""
    value = take_key_value(line)
    if not value:
        return None
    candidate = normalize_vat_number(value)
    if not VAT_VALUE_RE.fullmatch(candidate) or is_iban(candidate):
        return None
    if own_vat and candidate == normalize_vat_number(own_vat):
        return None
    return candidate


def vat_from_any_line(ctx: ParseContext) -> str | None:
    for i, line in enumerate(ctx.lines):
        vat = extract_vat_number(line, ctx.own.vat_number)
        if vat:
            ctx.vat_line = i
            return vat
    return None


def vat_from_labeled_value(ctx: ParseContext) -> str | None:
    for i, line in enumerate(ctx.lines):
        if normalize_key(line) != FieldName.VAT_NUMBER:
            continue
        vat = labeled_vat_number(line, ctx.own.vat_number)
        if vat:
            ctx.vat_line = i
            return vat
    return None


def _company_number(ctx: ParseContext, line: str) -> str | None:
    number = extract_company_number(line, ctx.vat_number, ctx.own.company_number)
    if number in ctx.rejected_company_numbers:
        return None
    return number


def collect_tagged_company_numbers(ctx: ParseContext) -> list[CompanyNumberCandidate]:
    """Numbers printed right after a company-code label, tagged with their section."""
    candidates: list[CompanyNumberCandidate] = []
    seen: set[str] = set()
    for i, line in enumerate(ctx.lines):
        if not has_company_code_label(ctx.folded[i]):
            continue
        number = extract_company_number(line, ctx.vat_number, ctx.own.company_number)
        if number is None and i + 1 < len(ctx.lines) and not re.search(r"\d", line):
            number = extract_company_number(ctx.lines[i + 1], ctx.vat_number, ctx.own.company_number)
        if number and number not in seen:
            seen.add(number)
            candidates.append(CompanyNumberCandidate(number, i, section_near(ctx, i)))
    return candidates


def select_tagged_company_number(
    ctx: ParseContext, candidates: list[CompanyNumberCandidate]
) -> str | None:
    """Pick the counterparty's number among label-tagged candidates."""
    if not candidates:
        return None

    own = (ctx.own.company_number or "").strip()
    if own:
        partners = [c for c in candidates if c.number != own]
        if not partners:
            return None
        for candidate in partners:
            if candidate.section == ctx.partner:
                return candidate.number
        return partners[0].number

    if len(candidates) >= 2:
        # Seller block conventionally comes first.
        if ctx.direction == Direction.SALE:
            return max(candidates, key=lambda c: c.line_index).number
        return min(candidates, key=lambda c: c.line_index).number

    only = candidates[0]
    own_side = {Direction.SALE: Section.SELLER, Direction.PURCHASE: Section.BUYER}.get(ctx.direction)
    if own_side is not None and only.section == own_side:
        logger.debug("Single company number belongs to own side", number=only.number, section=only.section)
        ctx.rejected_company_numbers.add(only.number)
        return None
    return only.number


def _is_series_number_line(folded: str) -> bool:
    return "serija" in folded and "nr" in folded


def _section_keyword_nearby(ctx: ParseContext, index: int, section: Section) -> bool:
    keywords = vocab.BUYER_SECTION_KEYWORDS if section == Section.BUYER else vocab.SELLER_SECTION_KEYWORDS
    start, end = max(0, index - 5), min(len(ctx.lines), index + 3)
    return any(contains_any(ctx.folded[j], keywords) for j in range(start, end))


def company_number_from_pool(ctx: ParseContext) -> str | None:
    """Any registration-shaped number, preferring ones near a section keyword."""
    pool: list[tuple[str, int]] = []
    for i, line in enumerate(ctx.lines):
        if _is_series_number_line(ctx.folded[i]):
            continue
        number = _company_number(ctx, line)
        if number:
            pool.append((number, i))
    if not pool:
        return None
    other = Section.SELLER if ctx.partner == Section.BUYER else Section.BUYER
    for section in (ctx.partner, other):
        for number, index in pool:
            if _section_keyword_nearby(ctx, index, section):
                return number
    return pool[0][0]


def company_number_near_vat(ctx: ParseContext) -> str | None:
    if not ctx.vat_number:
        return None
    vat_line = ctx.vat_line
    if vat_line is None:
        needle = ctx.vat_number.lower()
        vat_line = next(
            (i for i, f in enumerate(ctx.folded) if needle in f.replace(" ", "")), None
        )
    if vat_line is None:
        return None
    start = max(0, vat_line - VAT_NEIGHBOURHOOD)
    end = min(len(ctx.lines), vat_line + VAT_NEIGHBOURHOOD + 1)
    for i in sorted(range(start, end), key=lambda j: (abs(j - vat_line), j)):
        number = _company_number(ctx, ctx.lines[i])
        if number:
            return number
    return None


# ---------------------------------------------------------------------------
# Company name
# ---------------------------------------------------------------------------

def _own_name(ctx: ParseContext) -> str | None:
    return ctx.own.company_name


def _label_window_name(ctx: ParseContext, index: int) -> str | None:
    """Name on the first legal-form line within a few lines below a bare label."""
    for j in range(index + 1, min(len(ctx.lines), index + LABEL_WINDOW + 1)):
        candidate = ctx.lines[j]
        if is_section_label(candidate) or not has_legal_form(candidate):
            continue
        name = company_name_from_line(candidate, _own_name(ctx))
        if name:
            return name
    return None


def _contains_identifier(ctx: ParseContext, folded: str) -> bool:
    compact = folded.replace(" ", "")
    for identifier in (ctx.vat_number, ctx.company_number):
        if identifier and identifier.lower() in compact:
            return True
    return False


def name_above_identifiers(ctx: ParseContext) -> str | None:
    """The counterparty's name is usually printed just above its VAT/company number."""
    if ctx.direction == Direction.PURCHASE:
        anchors = (ctx.vat_number, ctx.company_number)
    else:
        anchors = (ctx.company_number, ctx.vat_number)
    for anchor in anchors:
        if not anchor:
            continue
        needle = anchor.lower()
        index = next((i for i, f in enumerate(ctx.folded) if needle in f.replace(" ", "")), None)
        if index is None:
            continue
        for offset in range(1, IDENTIFIER_LOOKBACK + 1):
            if index - offset < 0:
                break
            name = company_name_from_line(ctx.lines[index - offset], _own_name(ctx))
            if name:
                return name
    return None


def _is_header(folded: str, label: str) -> bool:
    stripped = folded.strip().rstrip(":").strip()
    return stripped == label or stripped.startswith(label) or (label in stripped and len(stripped) <= 25)


def name_after_section_header(ctx: ParseContext) -> str | None:
    """Name below a buyer/seller header; purchases never look under the buyer header."""
    if ctx.direction == Direction.PURCHASE:
        labels = vocab.SELLER_HEADER_LABELS
    else:
        labels = vocab.BUYER_HEADER_LABELS + vocab.SELLER_HEADER_LABELS
    for label in labels:
        for i, folded in enumerate(ctx.folded):
            if not _is_header(folded, label):
                continue
            name = company_name_from_line(ctx.lines[i], _own_name(ctx))
            if name:
                return name
            for j in range(i + 1, min(len(ctx.lines), i + HEADER_WINDOW + 1)):
                if is_section_label(ctx.lines[j]):
                    break
                if _contains_identifier(ctx, ctx.folded[j]):
                    continue
                name = company_name_from_line(ctx.lines[j], _own_name(ctx))
                if name:
                    return name
    return None


def name_in_top_half(ctx: ParseContext) -> str | None:
    for line in ctx.lines[: max(1, len(ctx.lines) // 2)]:
        name = company_name_from_line(line, _own_name(ctx))
        if name:
            return name
    return None


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

def _is_gross_line(folded: str) -> bool:
    return contains_any(folded, vocab.GROSS_AMOUNT_MARKERS)


def _is_rate_line(folded: str) -> bool:
    return contains_any(folded, vocab.VAT_RATE_MARKERS)


def _amount_near_keyword(ctx: ParseContext, keywords, skip) -> str | None:
    for i, folded in enumerate(ctx.folded):
        if not contains_any(folded, keywords) or skip(folded):
            continue
        amount = extract_valid_amount(ctx.lines[i])
        if amount is None and i + 1 < len(ctx.lines):
            amount = extract_valid_amount(ctx.lines[i + 1])
        if amount:
            return amount
    return None


def _amount_in_totals(ctx: ParseContext, accept) -> str | None:
    start = int(len(ctx.lines) * TOTALS_SECTION_START)
    for i in range(start, len(ctx.lines)):
        if not accept(ctx.folded[i]):
            continue
        amount = extract_valid_amount(ctx.lines[i])
        if amount and float(amount) < TOTALS_CEILING:
            return amount
    return None


def _amount_near_currency(ctx: ParseContext, accept) -> str | None:
    stop = int(len(ctx.lines) * CURRENCY_SCAN_START) - 1
    for i in range(len(ctx.lines) - 1, max(stop, -1), -1):
        if not accept(ctx.folded[i]):
            continue
        match = CURRENCY_AMOUNT_RE.search(ctx.lines[i])
        if not match:
            continue
        amount = normalize_amount(match.group(1))
        if amount and extract_valid_amount(amount):
            return amount
    return None


def _net_skip(folded: str) -> bool:
    return _is_gross_line(folded)


def _vat_skip(folded: str) -> bool:
    return _is_gross_line(folded) or _is_rate_line(folded)


def _net_totals_line(folded: str) -> bool:
    return (
        contains_any(folded, vocab.TOTALS_KEYWORDS)
        and not _is_gross_line(folded)
        and not contains_any(folded, vocab.VAT_AMOUNT_KEYWORDS)
        and not _is_rate_line(folded)
    )


def _vat_totals_line(folded: str) -> bool:
    return (
        contains_any(folded, ("pvm", "vat"))
        and contains_any(folded, ("suma", "amount"))
        and not _is_gross_line(folded)
        and not _is_rate_line(folded)
        and not contains_any(folded, vocab.NET_AMOUNT_KEYWORDS)
    )


def _net_currency_line(folded: str) -> bool:
    return not _is_gross_line(folded) and not contains_any(folded, vocab.VAT_AMOUNT_KEYWORDS)


def _vat_currency_line(folded: str) -> bool:
    return _vat_totals_line(folded) or (
        contains_any(folded, ("pvm", "vat")) and not _is_gross_line(folded)
        and not contains_any(folded, vocab.NET_AMOUNT_KEYWORDS)
    )


def net_amount_near_keyword(ctx: ParseContext) -> str | None:
    return _amount_near_keyword(ctx, vocab.NET_AMOUNT_KEYWORDS, _net_skip)


def net_amount_in_totals(ctx: ParseContext) -> str | None:
    return _amount_in_totals(ctx, _net_totals_line)


def net_amount_near_currency(ctx: ParseContext) -> str | None:
    return _amount_near_currency(ctx, _net_currency_line)


def vat_amount_near_keyword(ctx: ParseContext) -> str | None:
    return _amount_near_keyword(ctx, vocab.VAT_AMOUNT_KEYWORDS, _vat_skip)


def vat_amount_in_totals(ctx: ParseContext) -> str | None:
    return _amount_in_totals(ctx, _vat_totals_line)


def vat_amount_near_currency(ctx: ParseContext) -> str | None:
    return _amount_near_currency(ctx, _vat_currency_line)


def date_from_any_line(ctx: ParseContext) -> str | None:
    for line in ctx.lines:
        found = extract_date(line)
        if found:
            return found
    return None


DATE_STRATEGIES: tuple[Strategy, ...] = (date_from_any_line,)
INVOICE_ID_STRATEGIES: tuple[Strategy, ...] = (
    invoice_id_from_series_and_number,
    invoice_id_from_number_label,
)
COMPANY_NAME_STRATEGIES: tuple[Strategy, ...] = (
    name_above_identifiers,
    name_after_section_header,
    name_in_top_half,
)
NET_AMOUNT_STRATEGIES: tuple[Strategy, ...] = (
    net_amount_near_keyword,
    net_amount_in_totals,
    net_amount_near_currency,
)
VAT_AMOUNT_STRATEGIES: tuple[Strategy, ...] = (
    vat_amount_near_keyword,
    vat_amount_in_totals,
    vat_amount_near_currency,
)
VAT_NUMBER_STRATEGIES: tuple[Strategy, ...] = (vat_from_any_line, vat_from_labeled_value)


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

def _vat_pre_pass(ctx: ParseContext) -> None:
    ctx.vat_number = first_match(VAT_NUMBER_STRATEGIES, ctx)
    if ctx.vat_number:
        logger.debug("VAT number pre-pass", vat_number=ctx.vat_number, line=ctx.vat_line)


def _company_number_pre_pass(ctx: ParseContext) -> None:
    candidates = collect_tagged_company_numbers(ctx)
    ctx.company_number = select_tagged_company_number(ctx, candidates)
    if ctx.company_number is None:
        ctx.company_number = company_number_from_pool(ctx)
    logger.debug(
        "Company number pre-pass",
        tagged=[(c.number, c.line_index, c.section) for c in candidates],
        selected=ctx.company_number,
        direction=ctx.direction.value,
    )


def _first_pass_invoice_id(ctx: ParseContext, index: int) -> None:
    if ctx.invoice_id:
        return
    window = ctx.lines[max(0, index - 2): index + 3]
    ctx.invoice_id = serial_number_invoice_id(window) or invoice_id_after_label(ctx.lines[index])


def _first_pass_date(ctx: ParseContext, index: int) -> None:
    if ctx.date:
        return
    line = ctx.lines[index]
    ctx.date = extract_date(line) or normalize_date(take_key_value(line) or "")


def _first_pass_net_amount(ctx: ParseContext, index: int) -> None:
    if ctx.amount_without_vat or _is_gross_line(ctx.folded[index]):
        return
    ctx.amount_without_vat = extract_valid_amount(ctx.lines[index])


def _first_pass_vat_amount(ctx: ParseContext, index: int) -> None:
    if ctx.vat_amount or _is_gross_line(ctx.folded[index]):
        return
    ctx.vat_amount = extract_valid_amount(ctx.lines[index])


def _first_pass_vat_number(ctx: ParseContext, index: int) -> None:
    if ctx.vat_number:
        return
    line = ctx.lines[index]
    vat = extract_vat_number(line, ctx.own.vat_number) or labeled_vat_number(line, ctx.own.vat_number)
    if vat:
        ctx.vat_number = vat
        ctx.vat_line = index


def _first_pass_company_number(ctx: ParseContext, index: int) -> None:
    if ctx.company_number:
        return
    ctx.company_number = _company_number(ctx, ctx.lines[index])


def _first_pass_company_name(ctx: ParseContext, index: int) -> None:
    if ctx.company_name:
        return
    line = ctx.lines[index]
    section = line_section(ctx.folded[index])
    if not ctx.section_allowed(section):
        return
    if is_section_label(line):
        ctx.company_name = _label_window_name(ctx, index)
        return
    value = take_key_value(line) or line
    ctx.company_name = company_name_from_line(value, _own_name(ctx))


FIRST_PASS_HANDLERS: dict[FieldName, Callable[[ParseContext, int], None]] = {
    FieldName.INVOICE_ID: _first_pass_invoice_id,
    FieldName.DATE: _first_pass_date,
    FieldName.COMPANY_NAME: _first_pass_company_name,
    FieldName.AMOUNT_WITHOUT_VAT: _first_pass_net_amount,
    FieldName.VAT_AMOUNT: _first_pass_vat_amount,
    FieldName.VAT_NUMBER: _first_pass_vat_number,
    FieldName.COMPANY_NUMBER: _first_pass_company_number,
}


def _label_pass(ctx: ParseContext) -> None:
    for index, line in enumerate(ctx.lines):
        key = normalize_key(line)
        if key is not None:
            FIRST_PASS_HANDLERS[key](ctx, index)


def _post_pass(ctx: ParseContext) -> None:
    if ctx.vat_number and not ctx.company_number:
        ctx.company_number = company_number_near_vat(ctx)
        if ctx.company_number:
            logger.debug("Company number found near VAT number", company_number=ctx.company_number)


def _fallback_passes(ctx: ParseContext) -> None:
    if not ctx.date:
        ctx.date = first_match(DATE_STRATEGIES, ctx)
    if not ctx.invoice_id:
        ctx.invoice_id = first_match(INVOICE_ID_STRATEGIES, ctx)
    if not ctx.company_name:
        ctx.company_name = first_match(COMPANY_NAME_STRATEGIES, ctx)
    if not ctx.amount_without_vat:
        ctx.amount_without_vat = first_match(NET_AMOUNT_STRATEGIES, ctx)
    if not ctx.vat_amount:
        ctx.vat_amount = first_match(VAT_AMOUNT_STRATEGIES, ctx)


def _document_amounts(ctx: ParseContext) -> list[tuple[float, str]]:
    amounts = []
    for line in ctx.lines:
        for match in AMOUNT_RE.finditer(line):
            normalized = normalize_amount(match.group(1))
            if normalized:
                amounts.append((float(normalized), normalized))
    return amounts


def rate_for(net: float, vat: float) -> int | None:
    """Non-zero standard rate for which ``vat`` is ``net`` times the rate, if any."""
    for rate in vocab.VAT_RATES:
        if rate and abs(vat - net * rate / 100) <= RATE_TOLERANCE:
            return rate
    return None


def _find_amount(ctx: ParseContext, expected: float, exclude: float) -> str | None:
    for value, text in _document_amounts(ctx):
        if abs(value - exclude) <= RATE_TOLERANCE:
            continue
        if abs(value - expected) <= RATE_TOLERANCE:
            return text
    return None


def rate_from_text(ctx: ParseContext) -> str | None:
    """A printed standard rate such as ``21 %``, ``PVM 21%`` or ``tarifas 9``."""
    for folded in ctx.folded:
        for pattern in RATE_TEXT_PATTERNS:
            for match in pattern.finditer(folded):
                rate = int(match.group(1))
                if rate in vocab.VAT_RATES:
                    return str(rate)
    return None


def _cross_validate_rate(ctx: ParseContext) -> None:
    net = float(ctx.amount_without_vat) if ctx.amount_without_vat else None
    vat = float(ctx.vat_amount) if ctx.vat_amount else None

    if net is not None and vat is not None:
        rate = rate_for(net, vat)
        if rate is None:
            swapped = rate_for(vat, net)
            if swapped:
                logger.debug("Net and VAT amounts swapped by rate check", net=ctx.vat_amount, vat=ctx.amount_without_vat)
                ctx.amount_without_vat, ctx.vat_amount = ctx.vat_amount, ctx.amount_without_vat
                rate = swapped
        if rate is not None:
            ctx.vat_rate = str(rate)
    elif net is not None:
        for rate in vocab.VAT_RATES:
            if rate == 0:
                continue
            found = _find_amount(ctx, net * rate / 100, exclude=net)
            if found:
                ctx.vat_amount, ctx.vat_rate = found, str(rate)
                break
    elif vat is not None:
        for rate in vocab.VAT_RATES:
            if rate == 0:
                continue
            found = _find_amount(ctx, vat * 100 / rate, exclude=vat)
            if found:
                ctx.amount_without_vat, ctx.vat_rate = found, str(rate)
                break

    if ctx.vat_rate is None:
        ctx.vat_rate = rate_from_text(ctx)


def _final_exclusion(ctx: ParseContext) -> None:
    own = ctx.own
    if ctx.company_name and own.company_name and is_same_company(ctx.company_name, own.company_name):
        logger.info("Dropping company name matching own company", company_name=ctx.company_name)
        ctx.company_name = None
    if ctx.vat_number and own.vat_number and normalize_vat_number(ctx.vat_number) == normalize_vat_number(own.vat_number):
        ctx.vat_number = None
    if ctx.company_number and own.company_number and ctx.company_number == own.company_number.strip():
        ctx.company_number = None


def parse(
    lines: list[str],
    exclude_company_number: str | None = None,
    exclude_vat_number: str | None = None,
    exclude_company_name: str | None = None,
    direction: Direction | str = Direction.UNKNOWN,
) -> ExtractedInvoice:
    """
    Extract invoice fields from ordered OCR lines.

    The ``exclude_*`` values identify the caller's own company; they are never
    reported as the counterparty. ``direction`` decides which side of the
    invoice the counterparty is on.
    """
    lines = list(lines or [])
    if not any(line.strip() for line in lines):
        logger.warning("Parse called without any text", line_count=len(lines))
        return ExtractedInvoice(lines=[], extraction_message=EMPTY_INPUT_MESSAGE)

    ctx = ParseContext(
        lines=lines,
        own=OwnCompanyIdentity(
            company_number=exclude_company_number,
            vat_number=exclude_vat_number,
            company_name=exclude_company_name,
        ),
        direction=Direction(direction),
    )
    logger.debug("Parsing invoice lines", line_count=len(lines), direction=ctx.direction.value)

    _vat_pre_pass(ctx)
    _company_number_pre_pass(ctx)
    _label_pass(ctx)
    _post_pass(ctx)
    _fallback_passes(ctx)
    _cross_validate_rate(ctx)
    _final_exclusion(ctx)

    result = ExtractedInvoice(
        invoice_id=ctx.invoice_id,
        date=ctx.date,
        company_name=ctx.company_name,
        amount_without_vat_eur=ctx.amount_without_vat,
        vat_amount_eur=ctx.vat_amount,
        vat_rate=ctx.vat_rate,
        vat_number=ctx.vat_number,
        company_number=ctx.company_number,
        lines=lines,
    )
    logger.info(
        "Invoice parsed",
        invoice_id=result.invoice_id,
        date=result.date,
        company_name=result.company_name,
        vat_number=result.vat_number,
        company_number=result.company_number,
        vat_rate=result.vat_rate,
    )
    return result


def parse_for(lines: list[str], own: OwnCompanyIdentity | None, direction: Direction | str) -> ExtractedInvoice:
    """``parse`` with the own-company identifiers passed as one object."""
    own = own or OwnCompanyIdentity()
    return parse(lines, own.company_number, own.vat_number, own.company_name, direction)
