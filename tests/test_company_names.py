"""
Tests for company-name normalization, fuzzy identity and the rejection rules
applied to heuristic name candidates.
"""

import pytest
from invoice_extraction.services.company_names import (
    clean_company_name,
    company_name_from_line,
    has_legal_form,
    is_amount_in_words,
    is_same_company,
    normalize_for_compare,
)


class TestNormalizeForCompare:
    def test_strips_legal_form_quotes_and_diacritics(self):
        assert normalize_for_compare('UAB "Žalias Miškas"') == "zalias miskas"

    def test_legal_form_anywhere(self):
        assert normalize_for_compare("Žalias Miškas, UAB") == "zalias miskas,"

    def test_idempotent(self):
        once = normalize_for_compare("Uždaroji akcinė bendrovė „ĄŽUOLAS“")
        assert once == "azuolas"
        assert normalize_for_compare(once) == once

    @pytest.mark.parametrize("name", [
        "akcinė UAB bendrovė",
        "Akcine  uab  bendrove Alfa",
        "UAB \"Akcinė AB bendrovė\" Beta",
    ])
    def test_idempotent_when_legal_forms_interleave(self, name):
        once = normalize_for_compare(name)
        assert normalize_for_compare(once) == once

    def test_interleaved_legal_forms_are_all_removed(self):
        assert normalize_for_compare("Akcine  uab  bendrove Alfa") == "alfa"

    def test_empty(self):
        assert normalize_for_compare(None) == ""


class TestIsSameCompany:
    def test_equal_cores(self):
        assert is_same_company("UAB Mano Įmonė", "AB MANO ĮMONĖ")

    def test_containment_when_both_long_enough(self):
        assert is_same_company("UAB Mano Įmonė", "Mano Įmonė Baltic")

    def test_short_cores_need_equality(self):
        assert not is_same_company("UAB Ido", "Ido Baltic")

    def test_blank_is_never_same(self):
        assert not is_same_company("", "UAB Mano Įmonė")
        assert not is_same_company(None, None)

    def test_legal_form_only_names(self):
        assert not is_same_company("UAB", "AB")


class TestRejectionRules:
    def test_legal_form_detection_is_whole_word(self):
        assert has_legal_form("UAB Žalias Miškas")
        assert has_legal_form("Akcinė bendrovė Telia")
        assert not has_legal_form("Kabelis")

    def test_amount_in_words(self):
        assert is_amount_in_words("Šešiasdešimt aštuoni eurai ir 51 centas")
        assert company_name_from_line("Šešiasdešimt aštuoni eurai ir 51 centas, UAB") is None

    def test_section_label_is_not_a_name(self):
        assert company_name_from_line("Pirkėjas:") is None

    def test_invoice_vocabulary_rejected(self):
        assert company_name_from_line("PVM sąskaita faktūra UAB") is None

    def test_requires_legal_form(self):
        assert company_name_from_line("KESKO") is None

    def test_own_company_rejected(self):
        assert company_name_from_line("UAB Mano Įmonė", own_name="Mano įmonė") is None

    def test_trailing_identifier_label_removed(self):
        line = "UAB Žalias Miškas, įmonės kodas 302222222"
        assert company_name_from_line(line) == "UAB Žalias Miškas"

    def test_leading_section_label_removed(self):
        assert clean_company_name("Pirkėjas: UAB Žalias Miškas") == "UAB Žalias Miškas"

    def test_identifier_line_rejected(self):
        assert company_name_from_line("UAB kodas 302222222") is None
