"""
================================================================================
Clinic Analytics - Report Formatting Unit Tests
================================================================================
Developed by Waqqas Hanafi
Calaveras County Health and Human Services Agency

Description:
    Unit tests for the shared sort, rounding, limit and label helpers.

Test Coverage:
    - Half-away-from-zero rounding
    - Stable descending sort
    - Limit handling
    - es-ES month and day labels
    - Timezone conversion

================================================================================
"""
import pytest
from datetime import date, datetime, timezone

from clinic_analytics.reports.formatting import (
    SPANISH_MONTHS,
    day_label,
    month_label,
    round_half_away,
    sort_desc,
    take,
    to_local,
)


class TestRounding:
    """Test round_half_away"""

    @pytest.mark.parametrize('value,decimals,expected', [
        (2.5, 0, 3),
        (-2.5, 0, -3),
        (1.25, 1, 1.3),
        (66.666, 1, 66.7),
        (33.335, 2, 33.34),
        (0, 2, 0.0),
    ])
    def test_half_away_from_zero(self, value, decimals, expected):
        """Test halves round away from zero"""
        assert round_half_away(value, decimals) == expected

    def test_zero_decimals_returns_int(self):
        """Test integer output for whole-number rounding"""
        assert isinstance(round_half_away(12.5), int)


class TestSortAndLimit:
    """Test sort_desc and take"""

    def test_sort_is_stable(self):
        """Test equal keys keep input order"""
        rows = [{'k': 'a', 'n': 1}, {'k': 'b', 'n': 2}, {'k': 'c', 'n': 1}]
        assert [r['k'] for r in sort_desc(rows, 'n')] == ['b', 'a', 'c']

    def test_sort_with_callable(self):
        """Test callable keys"""
        assert sort_desc([1, 3, 2], key=lambda v: v) == [3, 2, 1]

    def test_take(self):
        """Test limit edge cases"""
        rows = [1, 2, 3]
        assert take(rows, None) == [1, 2, 3]
        assert take(rows, 5) == [1, 2, 3]
        assert take(rows, 2) == [1, 2]


class TestLabels:
    """Test period labels"""

    def test_month_labels(self):
        """Test es-ES abbreviations"""
        assert month_label(date(2024, 1, 15)) == 'ene 2024'
        assert month_label(date(2024, 9, 1)) == 'sept 2024'
        assert len(SPANISH_MONTHS) == 12

    def test_day_label(self):
        """Test day/month/year without padding"""
        assert day_label(date(2024, 1, 5)) == '5/1/2024'
        assert day_label(datetime(2024, 12, 25, 10)) == '25/12/2024'

    def test_to_local(self):
        """Test conversion into the reporting timezone"""
        moment = datetime(2024, 3, 1, 2, 0, tzinfo=timezone.utc)
        assert to_local(moment, 'UTC').day == 1
        assert to_local(moment, 'America/Mexico_City').day == 29

    def test_to_local_naive_is_utc(self):
        """Test naive values are treated as UTC"""
        assert to_local(datetime(2024, 3, 1, 2, 0)).tzinfo == timezone.utc
