"""
Duration parser tests.
"""

import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.duration import parse_duration
from core.models import ParseError


class TestParseDuration:

    @pytest.mark.parametrize("text,seconds", [
        ("access plus 1 second", 1),
        ("access plus 30 seconds", 30),
        ("access plus 1 minute", 60),
        ("access plus 2 hours", 7200),
        ("access plus 1 day", 86400),
        ("access plus 1 month", 2592000),
        ("access plus 1 year", 31536000),
        ("access plus 0 seconds", 0),
    ])
    def test_single_pair(self, text, seconds):
        assert parse_duration(text) == seconds

    def test_pairs_are_summed(self):
        assert parse_duration("access plus 1 month 2 days") == 2592000 + 2 * 86400
        assert parse_duration("access plus 1 hour 30 minutes 15 seconds") == 3600 + 1800 + 15

    def test_case_insensitive(self):
        assert parse_duration("ACCESS PLUS 1 DAY") == 86400
        assert parse_duration("access plus 3 DAYS") == 3 * 86400

    def test_extra_whitespace(self):
        assert parse_duration("  access   plus\t1   hour  ") == 3600

    @pytest.mark.parametrize("text,kind", [
        ("", "empty"),
        (None, "empty"),
        ("plus 1 day", "keyword"),
        ("access 1 day", "keyword"),
        ("accessplus 1 day", "keyword"),
        ("access minus 1 day", "keyword"),
        ("access plus", "no_pairs"),
        ("access plus   ", "no_pairs"),
        ("access plus one day", "quantity"),
        ("access plus 1", "unit"),
        ("access plus 1 fortnight", "unit"),
        ("access plus 1 dayss", "unit"),
        ("access plus 1 day 2", "unit"),
    ])
    def test_rejections(self, text, kind):
        result = parse_duration(text)
        assert isinstance(result, ParseError)
        assert result.kind == kind

    def test_weeks_rejected(self):
        assert isinstance(parse_duration("access plus 2 weeks"), ParseError)
