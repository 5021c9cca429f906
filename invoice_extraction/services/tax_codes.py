"""Lithuanian accounting tax codes derived from the VAT rate."""

from loguru import logger

from . import vocabulary as vocab
from .keywords import contains_any, fold

REVERSE_CHARGE_CODE = "PVM25"
DEFAULT_CODE = "PVM1"
RATE_CODES = {
    21: "PVM1",
    9: "PVM2",
    5: "PVM3",
    0: "PVM4",
}


def calculate_vat_rate(net: float | None, vat: float | None) -> int | None:
    """Nearest standard rate for the given amounts."""
    if net is None or vat is None or net <= 0 or vat < 0:
        return None
    percent = vat / net * 100
    return min(vocab.VAT_RATES, key=lambda rate: abs(rate - percent))


def determine_tax_code(vat_rate: str | int | None, text: str | None = None) -> str:
    if text and contains_any(fold(text), vocab.REVERSE_CHARGE_MARKERS):
        return REVERSE_CHARGE_CODE
    try:
        rate = int(float(vat_rate)) if vat_rate is not None and str(vat_rate).strip() else None
    except ValueError:
        logger.warning("Unreadable VAT rate for tax code", vat_rate=str(vat_rate))
        rate = None
    return RATE_CODES.get(rate, DEFAULT_CODE)
