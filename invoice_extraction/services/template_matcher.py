"""
Applies a learned template to a page and overlays the result on the
heuristic parse.
"""

from loguru import logger

from ..models.invoice import (
    FIELD_ATTRIBUTES,
    AMOUNT_FIELDS,
    BoundingBox,
    Direction,
    ExtractedInvoice,
    FieldName,
    FieldRegion,
    OwnCompanyIdentity,
    PositionedFragment,
    Template,
)
from .company_names import clean_company_name, is_same_company, normalize_for_compare
from .extractors import (
    extract_company_number,
    extract_date,
    extract_valid_amount,
    extract_vat_number,
    normalize_vat_number,
    parse_amount,
)
from .field_validator import validate_field
from .parser import parse_for, rate_for

MIN_PADDING = 20
PADDING_RATIO = 0.10
NO_PAGE_MESSAGE = "Page has no text or no usable dimensions."


def identity_keys_for(invoice: ExtractedInvoice) -> list[str]:
    """Keys a counterparty template is stored under: VAT number, company number, name core."""
    keys = [
        normalize_vat_number(invoice.vat_number),
        (invoice.company_number or "").strip(),
        normalize_for_compare(invoice.company_name),
    ]
    return [k for k in keys if k]


def region_rect(region: FieldRegion, width: int, height: int) -> BoundingBox:
    """Region in pixels, clamped to the image."""
    return BoundingBox(
        left=max(0, min(width, int(region.left * width))),
        top=max(0, min(height, int(region.top * height))),
        right=max(0, min(width, int(region.right * width))),
        bottom=max(0, min(height, int(region.bottom * height))),
    )


def region_padding(region: FieldRegion, width: int, height: int) -> tuple[int, int]:
    """Tolerance band around a region; less confident regions get a wider band."""
    factor = 1 + (1 - region.confidence) * 0.5
    pad_x = int(max(MIN_PADDING, int(width * PADDING_RATIO)) * factor)
    pad_y = int(max(MIN_PADDING, int(height * PADDING_RATIO)) * factor)
    return pad_x, pad_y


def _edge_within(low: int, high: int, start: int, end: int) -> bool:
    """Either edge of [low, high] falls in [start, end], or it spans the band."""
    return start <= low <= end or start <= high <= end or (low <= start and high >= end)


def is_selected(box: BoundingBox, rect: BoundingBox, pad_x: int, pad_y: int) -> bool:
    if box.intersects(rect):
        return True
    if rect.contains_point(box.center_x, box.center_y):
        return True
    return (
        _edge_within(box.left, box.right, rect.left - pad_x, rect.right + pad_x)
        and _edge_within(box.top, box.bottom, rect.top - pad_y, rect.bottom + pad_y)
    )


def _field_value(field: FieldName, text: str, own: OwnCompanyIdentity) -> str | None:
    if field in AMOUNT_FIELDS:
        return extract_valid_amount(text)
    if field == FieldName.DATE:
        return extract_date(text)
    if field == FieldName.VAT_NUMBER:
        return extract_vat_number(text, own.vat_number)
    if field == FieldName.COMPANY_NUMBER:
        return extract_company_number(text, exclude_own=own.company_number)
    if field == FieldName.COMPANY_NAME:
        return clean_company_name(text)
    return text.strip()


def match_template(
    fragments: list[PositionedFragment],
    image_width: int,
    image_height: int,
    template: Template,
    own: OwnCompanyIdentity | None = None,
) -> dict[FieldName, str]:
    """Read every templated field, most confident region first."""
    own = own or OwnCompanyIdentity()
    values: dict[FieldName, str] = {}
    regions = sorted(template.regions.values(), key=lambda r: r.confidence, reverse=True)
    for region in regions:
        rect = region_rect(region, image_width, image_height)
        pad_x, pad_y = region_padding(region, image_width, image_height)
        selected = [
            f for f in fragments
            if f.box is not None and f.text.strip() and is_selected(f.box, rect, pad_x, pad_y)
        ]
        if not selected:
            continue
        selected.sort(key=lambda f: (f.box.top, f.box.left))
        text = " ".join(f.text.strip() for f in selected)
        value = _field_value(region.field, text, own)
        if value and validate_field(region.field, value):
            values[region.field] = value
        else:
            logger.debug("Template region text rejected", field=region.field.value, fragments=len(selected))
    return values


def _is_own(field: FieldName, value: str, own: OwnCompanyIdentity) -> bool:
    if field == FieldName.VAT_NUMBER and own.vat_number:
        return normalize_vat_number(value) == normalize_vat_number(own.vat_number)
    if field == FieldName.COMPANY_NUMBER and own.company_number:
        return value == own.company_number.strip()
    if field == FieldName.COMPANY_NAME and own.company_name:
        return is_same_company(value, own.company_name)
    return False


def parse_with_template(
    fragments: list[PositionedFragment],
    image_width: int,
    image_height: int,
    template: Template | None = None,
    own: OwnCompanyIdentity | None = None,
    direction: Direction | str = Direction.UNKNOWN,
) -> ExtractedInvoice:
    """
    Heuristic parse of the page text, overridden field by field by whatever
    the template reads. Own-company identifiers are never taken from the
    template either.
    """
    own = own or OwnCompanyIdentity()
    lines = [f.text for f in fragments if f.text and f.text.strip()]
    if not lines or image_width <= 0 or image_height <= 0:
        logger.warning("Template parse without usable page", lines=len(lines), width=image_width, height=image_height)
        return ExtractedInvoice(extraction_message=NO_PAGE_MESSAGE)

    result = parse_for(lines, own, direction)
    if template is None or template.is_empty():
        return result

    updates = {}
    for field, value in match_template(fragments, image_width, image_height, template, own).items():
        if _is_own(field, value, own):
            logger.info("Template value matches own company", field=field.value)
            continue
        updates[FIELD_ATTRIBUTES[field]] = value
    if not updates:
        return result

    merged = result.model_copy(update=updates)
    net, vat = parse_amount(merged.amount_without_vat_eur), parse_amount(merged.vat_amount_eur)
    if net is not None and vat is not None:
        rate = rate_for(net, vat)
        if rate is not None:
            merged = merged.model_copy(update={"vat_rate": str(rate)})
    logger.info("Template values applied", fields=sorted(updates))
    return merged
