"""
Tests for the composite decision table (row order matters)
"""

import pytest

from driver_matcher.services.matching.scoring import composite_row, composite_score


class TestCompositeScore:

    @pytest.mark.parametrize("phone,name,expected", [
        (1.0, 1.0, 1.0),
        (1.0, 0.85, 0.9),
        (1.0, 0.8, 0.8),
        (0.9, 0.75, 0.8),
        (0.7, 0.71, 0.8),
        (1.0, 0.0, 0.7),
        (0.0, 0.65, 0.6),
        (1.0, 0.5, 0.5),
        (0.7, 0.0, 0.5),
        (0.0, 0.5, 0.5),
        (0.0, 0.6, 0.5),
        (0.0, 0.0, 0.0),
        (0.0, 0.4, 0.0),
    ])
    def test_table(self, phone, name, expected):
        assert composite_score(phone, name) == expected

    def test_first_row_wins(self):
        """phone=1.0 / name=0.85 also satisfies the 0.8 row but scores 0.9."""
        assert composite_row(1.0, 0.85) == ("exact_phone_strong_name", 0.9)

    def test_no_signal_row(self):
        assert composite_row(0.2, 0.3) == ("no_signal", 0.0)
