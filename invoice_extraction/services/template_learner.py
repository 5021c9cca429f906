"""
Learns where a counterparty prints each field on the page.

From one page's positioned fragments and the user-confirmed field values,
locate the fragments carrying each value, take the union of their boxes,
normalize it by the image size and fold it into the counterparty's template.
"""

import math
from loguru import logger

from ..core.config import settings
from ..models.invoice import BoundingBox, FieldName, FieldRegion, PositionedFragment, Template
from .extractors import parse_amount
from .field_validator import FUZZY_STRIP_RE, match_quality, validate_field

CONFIDENCE_DECAY = 0.95
TOKEN_MATCH_RATIO = 0.5
SPATIAL_SPREAD = 2.0
NUMERIC_TOLERANCE = 0.01


def _clean(text: str) -> str:
    return FUZZY_STRIP_RE.sub("", text.strip().lower())


def spatial_filter(fragments: list[PositionedFragment]) -> list[PositionedFragment]:
    """
    Keep the fragments clustered around the first one.

    The cut-off is twice the average fragment size measured from the first
    fragment's center. Without any boxes only the first fragment is kept.
    """
    boxed = [f for f in fragments if f.box is not None]
    if not boxed:
        return fragments[:1]
    average = sum((f.box.width + f.box.height) / 2 for f in boxed) / len(boxed)
    threshold = average * SPATIAL_SPREAD
    anchor = boxed[0].box
    return [
        f for f in boxed
        if math.hypot(f.box.center_x - anchor.center_x, f.box.center_y - anchor.center_y) <= threshold
    ]


def _exact(value: str, fragments: list[PositionedFragment]) -> list[PositionedFragment]:
    target = value.strip().lower()
    for fragment in fragments:
        if fragment.text.strip().lower() == target:
            return [fragment]
    return []


def _contains(value: str, fragments: list[PositionedFragment]) -> list[PositionedFragment]:
    target = value.strip().lower()
    found = []
    for fragment in fragments:
        text = fragment.text.strip().lower()
        if not text:
            continue
        if target in text or (len(text) >= 2 and text in target):
            found.append(fragment)
    return spatial_filter(found) if found else []


def _token_parts(value: str, fragments: list[PositionedFragment]) -> list[PositionedFragment]:
    tokens = [t for t in value.lower().split() if len(t) >= 2]
    if len(tokens) < 2:
        return []
    found: list[PositionedFragment] = []
    matched_tokens = 0
    for token in tokens:
        hits = [f for f in fragments if token in f.text.lower()]
        if hits:
            matched_tokens += 1
            found.extend(h for h in hits if h not in found)
    if not found or matched_tokens < max(1, int(len(tokens) * TOKEN_MATCH_RATIO)):
        return []
    return spatial_filter(found)


def _fuzzy(value: str, fragments: list[PositionedFragment]) -> list[PositionedFragment]:
    target = _clean(value)
    if not target:
        return []
    for fragment in fragments:
        text = _clean(fragment.text)
        if text and (text == target or target in text):
            return [fragment]
    return []


def _numeric(value: str, fragments: list[PositionedFragment]) -> list[PositionedFragment]:
    target = parse_amount(value)
    if target is None:
        return []
    for fragment in fragments:
        amount = parse_amount(fragment.text.strip())
        if amount is not None and abs(amount - target) < NUMERIC_TOLERANCE:
            return [fragment]
    return []


MATCH_CASCADE = (_exact, _contains, _token_parts, _fuzzy, _numeric)


def find_value_fragments(value: str, fragments: list[PositionedFragment]) -> list[PositionedFragment]:
    """Fragments carrying ``value``, using the first cascade step that finds any."""
    for step in MATCH_CASCADE:
        found = step(value, fragments)
        if found:
            return found
    return []


def normalize_box(
    field: FieldName, box: BoundingBox, width: int, height: int, confidence: float = 1.0
) -> FieldRegion | None:
    def clamp(v: float) -> float:
        return min(1.0, max(0.0, v))

    left, right = clamp(box.left / width), clamp(box.right / width)
    top, bottom = clamp(box.top / height), clamp(box.bottom / height)
    if left >= right or top >= bottom:
        return None
    return FieldRegion(
        field=field, left=left, top=top, right=right, bottom=bottom, confidence=clamp(confidence)
    )


def region_distance(a: FieldRegion, b: FieldRegion) -> float:
    """0.7 x center distance + 0.3 x relative area difference."""
    (ax, ay), (bx, by) = a.center, b.center
    center = math.hypot(ax - bx, ay - by)
    area = abs(a.area - b.area) / max(a.area, b.area, 0.001)
    return 0.7 * center + 0.3 * area


def _decayed(region: FieldRegion) -> FieldRegion:
    return region.model_copy(update={"confidence": region.confidence * CONFIDENCE_DECAY})


def _averaged(old: FieldRegion, new: FieldRegion) -> FieldRegion:
    n = old.sample_count
    w_old, w_new = n / (n + 1), 1 / (n + 1)
    return FieldRegion(
        field=old.field,
        left=old.left * w_old + new.left * w_new,
        top=old.top * w_old + new.top * w_new,
        right=old.right * w_old + new.right * w_new,
        bottom=old.bottom * w_old + new.bottom * w_new,
        confidence=min(1.0, (old.confidence + 1) / 2),
        sample_count=n + 1,
    )


def merge_regions(existing: Template | None, learned: dict[FieldName, FieldRegion]) -> Template:
    """
    Fold newly learned regions into a template.

    Known fields move towards the new observation by a running average;
    new fields are added as observed; fields not observed this time lose a
    little confidence.
    """
    regions: dict[FieldName, FieldRegion] = {}
    for field, old in (existing.regions if existing else {}).items():
        regions[field] = _averaged(old, learned[field]) if field in learned else _decayed(old)
    for field, region in learned.items():
        if field not in regions:
            regions[field] = region
    return Template(regions=regions)


def learn_template(
    fragments: list[PositionedFragment],
    image_width: int,
    image_height: int,
    confirmed: dict[FieldName | str, str | None],
    identity_keys: list[str],
    existing_template: Template | None = None,
    outlier_threshold: float | None = None,
    min_match_quality: float | None = None,
) -> dict[str, Template] | None:
    """
    Learn field regions from one confirmed page.

    Returns the merged template for every identity key, or ``None`` when no
    key was given or no field could be located.
    """
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"image dimensions must be positive, got {image_width}x{image_height}")

    keys = [k.strip() for k in identity_keys if k and k.strip()]
    if not keys:
        logger.info("Skipping template learning without identity keys")
        return None

    threshold = settings.template_outlier_threshold if outlier_threshold is None else outlier_threshold
    min_quality = settings.template_min_match_quality if min_match_quality is None else min_match_quality

    learned: dict[FieldName, FieldRegion] = {}
    for raw_field, value in confirmed.items():
        try:
            field = FieldName(raw_field)
        except ValueError:
            logger.warning("Ignoring unknown field in confirmed values", field=str(raw_field))
            continue
        if not value or not value.strip() or not validate_field(field, value):
            continue

        matches = find_value_fragments(value, fragments)
        boxes = [f.box for f in matches if f.box is not None]
        if not boxes:
            logger.debug("Confirmed value not located on page", field=field.value)
            continue

        quality = match_quality(value, matches)
        if quality < min_quality:
            logger.debug("Discarding weak match", field=field.value, quality=round(quality, 3))
            continue

        # a new region starts as confident as its match
        region = normalize_box(field, BoundingBox.union(boxes), image_width, image_height, quality)
        if region is None:
            continue

        previous = existing_template.regions.get(field) if existing_template else None
        if previous is not None:
            distance = region_distance(previous, region)
            if distance > threshold:
                logger.info("Rejecting outlier region", field=field.value, distance=round(distance, 3))
                continue
        learned[field] = region

    if not learned:
        logger.info("No field regions learned", keys=keys)
        return None

    merged = merge_regions(existing_template, learned)
    logger.info("Learned template regions", keys=keys, fields=[f.value for f in learned])
    return {key: merged for key in keys}
