"""
Combines several candidate results for one document (pages, OCR engines,
template and heuristic passes) into a single ExtractedInvoice.
"""

from loguru import logger

from ..models.invoice import (
    Direction,
    ExtractedInvoice,
    MergeOrder,
    MergeStrategy,
    OwnCompanyIdentity,
)
from .company_names import is_amount_in_words, is_same_company
from .extractors import normalize_vat_number, parse_amount
from .parser import parse_for, rate_for

IDENTITY_ATTRIBUTES = ("invoice_id", "date", "company_name", "vat_number", "company_number")
AMOUNT_ATTRIBUTES = ("amount_without_vat_eur", "vat_amount_eur", "vat_rate")
NO_CANDIDATES_MESSAGE = "No extraction candidates to merge."


def _usable(attribute: str, value: str | None, own: OwnCompanyIdentity) -> bool:
    if not value or not value.strip():
        return False
    if attribute == "company_name":
        if is_amount_in_words(value):
            return False
        if own.company_name and is_same_company(value, own.company_name):
            return False
    if attribute == "vat_number" and own.vat_number:
        return normalize_vat_number(value) != normalize_vat_number(own.vat_number)
    if attribute == "company_number" and own.company_number:
        return value.strip() != own.company_number.strip()
    return True


def _pick(candidates: list[ExtractedInvoice], attribute: str, own: OwnCompanyIdentity, last: bool) -> str | None:
    ordered = reversed(candidates) if last else candidates
    for candidate in ordered:
        value = getattr(candidate, attribute)
        if _usable(attribute, value, own):
            return value
    return None


def merge(
    results: list[ExtractedInvoice],
    strategy: MergeStrategy | None = None,
    own: OwnCompanyIdentity | None = None,
    direction: Direction | str = Direction.UNKNOWN,
) -> ExtractedInvoice:
    """
    Merge candidates in priority order.

    Identity fields take the first usable value; amounts and the VAT rate take
    the last one when ``amounts_prefer_last`` is set. Remaining gaps are filled
    by one re-parse over all candidate lines.
    """
    strategy = strategy or MergeStrategy()
    own = own or OwnCompanyIdentity()
    if not results:
        return ExtractedInvoice(extraction_message=NO_CANDIDATES_MESSAGE)

    candidates = list(results)
    if strategy.order == MergeOrder.LAST_TO_FIRST:
        candidates.reverse()

    values: dict[str, str | None] = {}
    for attribute in IDENTITY_ATTRIBUTES:
        values[attribute] = _pick(candidates, attribute, own, last=False)
    for attribute in AMOUNT_ATTRIBUTES:
        values[attribute] = _pick(candidates, attribute, own, last=strategy.amounts_prefer_last)

    lines = [line for result in results for line in result.lines]
    merged = ExtractedInvoice(lines=lines, **values)

    gaps = [a for a in IDENTITY_ATTRIBUTES + AMOUNT_ATTRIBUTES if not values[a]]
    if gaps and lines:
        reparsed = parse_for(lines, own, direction)
        filled = {a: getattr(reparsed, a) for a in gaps if getattr(reparsed, a)}
        if filled:
            logger.debug("Merge gaps filled by re-parse", fields=sorted(filled))
            merged = merged.model_copy(update=filled)

    net, vat = parse_amount(merged.amount_without_vat_eur), parse_amount(merged.vat_amount_eur)
    if not merged.vat_rate and net is not None and vat is not None:
        rate = rate_for(net, vat)
        if rate is not None:
            merged = merged.model_copy(update={"vat_rate": str(rate)})

    if not merged.has_any_field() and all(r.extraction_message for r in results):
        merged = merged.model_copy(update={"extraction_message": results[0].extraction_message})

    logger.info("Merged extraction candidates", candidates=len(results), missing=[a for a in gaps if not getattr(merged, a)])
    return merged
