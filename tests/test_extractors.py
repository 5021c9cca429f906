"""
Tests for the single-value recognizers: dates, amounts, VAT numbers,
company numbers and IBAN detection.
"""

import pytest
from invoice_extraction.services.extractors import (
    extract_amount,
    extract_company_number,
    extract_date,
    extract_valid_amount,
    extract_vat_number,
    is_iban,
    is_valid_amount,
    normalize_amount,
    normalize_date,
    take_key_value,
)


class TestDates:
    """Date recognition and normalization to YYYY-MM-DD"""

    def test_lithuanian_month_name(self):
        assert extract_date("2024 m. sausio 13 d.") == "2024-01-13"

    def test_lithuanian_month_with_diacritics(self):
        assert extract_date("Išrašymo data: 2023 m. rugsėjo 5 d.") == "2023-09-05"

    def test_labeled_day_first_two_digit_year(self):
        assert extract_date("Data: 15.03.24") == "2024-03-15"

    def test_two_digit_year_pivot(self):
        assert normalize_date("01.02.49") == "2049-02-01"
        assert normalize_date("01.02.50") == "1950-02-01"

    def test_iso_date_in_line(self):
        assert extract_date("Sąskaitos data 2024-03-15") == "2024-03-15"

    def test_invalid_calendar_date_rejected(self):
        assert extract_date("31.02.2024") is None

    def test_no_date(self):
        assert extract_date("Suma be PVM 100,00") is None


class TestAmounts:
    """Amount extraction and normalization"""

    @pytest.mark.parametrize("raw,expected", [
        ("1 234,56", "1234.56"),
        ("1.234,56", "1234.56"),
        ("1,234.56", "1234.56"),
        ("12,5", "12.5"),
        ("100,00", "100.00"),
    ])
    def test_normalize_amount(self, raw, expected):
        assert normalize_amount(raw) == expected

    def test_normalization_is_idempotent(self):
        once = normalize_amount("1 234,56")
        assert normalize_amount(once) == once

    def test_extract_amount_keeps_printed_form(self):
        assert extract_amount("Suma be PVM: 1 234,56 EUR") == "1 234,56"

    def test_space_grouping_needs_currency_or_whole_line(self):
        assert extract_amount("Suma be PVM 2 100,00") == "100,00"
        assert extract_amount("1 234,56") == "1 234,56"
        assert extract_amount("Iš viso 1 234,56 €") == "1 234,56"

    def test_extract_valid_amount_skips_integers(self):
        assert extract_valid_amount("PVM 21%: 42,00") == "42.00"

    def test_amount_range(self):
        assert is_valid_amount("0.01")
        assert not is_valid_amount("0.00")
        assert not is_valid_amount("10000000.01")
        assert extract_valid_amount("Suma 0,00") is None


class TestVatNumbers:
    """VAT numbers require the LT prefix"""

    def test_extracts_and_uppercases(self):
        assert extract_vat_number("PVM kodas: lt100000000017") == "LT100000000017"

    def test_bare_digits_are_not_vat(self):
        assert extract_vat_number("PVM kodas: 100000000017") is None

    def test_own_vat_skipped(self):
        line = "LT100000000017 LT222222229"
        assert extract_vat_number(line, exclude="lt 100000000017") == "LT222222229"

    def test_iban_detection(self):
        assert is_iban("LT121000011101001000")
        assert is_iban("LT70 7300 0100 0000 0000")
        assert not is_iban("LT100000000017")


class TestCompanyNumbers:
    """Nine-digit registration numbers starting with 1-4"""

    def test_labeled_number(self):
        assert extract_company_number("Įmonės kodas 302222222") == "302222222"

    def test_wrong_first_digit(self):
        assert extract_company_number("Įmonės kodas 502222222") is None

    def test_invoice_number_context_skipped(self):
        assert extract_company_number("Nr. 302222222") is None

    def test_amount_context_skipped(self):
        assert extract_company_number("Suma 302222222") is None
        assert extract_company_number("302222222 EUR") is None

    def test_part_of_vat_run_skipped(self):
        assert extract_company_number("LT302222222") is None
        assert extract_company_number("LT 302222222") is None

    def test_vat_digits_excluded(self):
        assert extract_company_number("302222222", exclude_vat="LT302222222") is None

    def test_own_number_excluded(self):
        line = "Kodai: 300000001, 302222222"
        assert extract_company_number(line, exclude_own="300000001") == "302222222"


def test_take_key_value():
    assert take_key_value("Pirkėjas: UAB Žalias Miškas") == "UAB Žalias Miškas"
    assert take_key_value("Pirkėjas:") is None
    assert take_key_value("Pirkėjas") is None
