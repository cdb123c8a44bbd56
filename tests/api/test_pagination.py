"""
Tests for pagination helpers.
"""

import pytest

from review_api.pagination import DEFAULT_LIMIT, count_pages, parse_page_param, skip_for


@pytest.mark.parametrize("raw,expected", [
    (None, DEFAULT_LIMIT),
    ("", DEFAULT_LIMIT),
    ("abc", DEFAULT_LIMIT),
    ("0", DEFAULT_LIMIT),
    ("-2", DEFAULT_LIMIT),
    ("0.5", DEFAULT_LIMIT),
    ("2.5", 2),
    ("2abc", 2),
    ("+4", 4),
    ("abc3", DEFAULT_LIMIT),
    ("3", 3),
    (" 7 ", 7),
])
def test_parse_page_param(raw, expected):
    assert parse_page_param(raw, DEFAULT_LIMIT) == expected


def test_skip_for():
    assert skip_for(1, 10) == 0
    assert skip_for(2, 10) == 10
    assert skip_for(3, 5) == 10


@pytest.mark.parametrize("total,limit,expected", [
    (0, 10, 0),
    (1, 10, 1),
    (10, 10, 1),
    (15, 10, 2),
    (11, 5, 3),
])
def test_count_pages(total, limit, expected):
    assert count_pages(total, limit) == expected
