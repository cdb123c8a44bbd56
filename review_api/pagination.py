"""
Pagination helpers shared by the book and review listings.
"""

import math
import re
from typing import Optional

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
DEFAULT_REVIEW_LIMIT = 5

LEADING_INTEGER = re.compile(r"\s*([+-]?\d+)")


def parse_page_param(raw: Optional[str], default: int) -> int:
    """
    Turn a raw query-string value into a positive integer.

    Leading digits are read and anything after them is ignored, so "2abc"
    is 2 and "1.5" is 1. Absent, non-numeric and non-positive values fall
    back to ``default`` instead of failing the request.
    """
    if raw is None:
        return default
    match = LEADING_INTEGER.match(str(raw))
    if not match:
        return default
    value = int(match.group(1))
    return value if value >= 1 else default


def skip_for(page: int, limit: int) -> int:
    """Number of documents to skip to reach ``page``."""
    return (page - 1) * limit


def count_pages(total: int, limit: int) -> int:
    """Total number of pages needed for ``total`` items."""
    return math.ceil(total / limit)
