"""
Zero-based page arithmetic shared by book and review listings.
"""

import math
from typing import Any, Dict, Tuple


def page_window(page: int, size: int) -> Tuple[int, int]:
    """Return (skip, limit) for a zero-based page index."""
    page = max(page, 0)
    size = max(size, 1)
    return page * size, size


def pagination_info(page: int, size: int, total_items: int) -> Dict[str, Any]:
    """Build the pagination block returned alongside a page of items."""
    size = max(size, 1)
    total_pages = math.ceil(total_items / size)
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total_items,
        "page_size": size,
        "has_next": page < total_pages - 1,
        "has_prev": page > 0,
    }
