"""Tests for VAT-rate to tax-code mapping."""

import pytest
from invoice_extraction.services.tax_codes import calculate_vat_rate, determine_tax_code


@pytest.mark.parametrize("rate,code", [
    ("21", "PVM1"),
    (9, "PVM2"),
    ("5.0", "PVM3"),
    ("0", "PVM4"),
    (None, "PVM1"),
    ("", "PVM1"),
    ("12", "PVM1"),
    ("abc", "PVM1"),
])
def test_determine_tax_code(rate, code):
    assert determine_tax_code(rate) == code


def test_reverse_charge_text_wins():
    text = "PVM apskaičiuoja pirkėjas pagal PVM įstatymo 96 straipsnį"
    assert determine_tax_code("21", text) == "PVM25"


@pytest.mark.parametrize("net,vat,expected", [
    (100.0, 21.0, 21),
    (100.0, 8.7, 9),
    (100.0, 0.0, 0),
    (0.0, 5.0, None),
    (None, 5.0, None),
])
def test_calculate_vat_rate(net, vat, expected):
    assert calculate_vat_rate(net, vat) == expected
