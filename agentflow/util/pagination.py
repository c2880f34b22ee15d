import math
from typing import Optional, Tuple


def clamp_limit(limit: Optional[int], default: int = 50, max_: int = 100) -> int:
    return default if limit is None else min(max(limit, 1), max_)


def page_window(page: Optional[int], limit: int) -> Tuple[int, int]:
    """Return (page, offset) for a 1-based page number."""
    page = 1 if page is None or page < 1 else page
    return page, (page - 1) * limit


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
