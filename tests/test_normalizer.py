"""
Tests for name and phone normalization
"""

import pytest

from driver_matcher.services.matching.normalizer import (
    build_full_name,
    normalize_name,
    normalize_name_for_comparison,
    normalize_phone,
)


class TestNormalizeName:

    def test_lowercases_and_collapses_whitespace(self):
        assert normalize_name("  JUAN   Carlos\tPÉREZ ") == "juan carlos perez"

    def test_folds_accents_and_enye(self):
        assert normalize_name("Ñandú Güemes Ríos") == "nandu guemes rios"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_input_yields_empty_string(self, value):
        assert normalize_name(value) == ""


class TestNormalizeNameForComparison:

    def test_word_order_is_irrelevant(self):
        assert normalize_name_for_comparison("Juan Pérez López") == normalize_name_for_comparison("López Juan Pérez")
        assert normalize_name_for_comparison("Juan Pérez López") == "juan lopez perez"

    def test_drops_stop_words(self):
        assert normalize_name_for_comparison("María de los Ángeles") == "angeles maria"

    def test_drops_single_letters(self):
        assert normalize_name_for_comparison("Juan P Pérez") == "juan perez"

    def test_none_yields_empty_string(self):
        assert normalize_name_for_comparison(None) == ""


class TestNormalizePhone:

    def test_strips_spaces_hyphens_parentheses(self):
        assert normalize_phone("(099) 123-4567") == "0991234567"

    def test_keeps_country_code(self):
        assert normalize_phone("+591 99123456 7") == "+591991234567"

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_input_yields_empty_string(self, value):
        assert normalize_phone(value) == ""


class TestBuildFullName:

    def test_joins_and_trims_parts(self):
        assert build_full_name(" Juan ", "Pérez") == "Juan Pérez"

    def test_single_part(self):
        assert build_full_name(None, "Pérez") == "Pérez"

    def test_blank_parts_yield_none(self):
        assert build_full_name(None, "  ") is None
