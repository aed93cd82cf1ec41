import math

from config.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def page_window(page: int | None, limit: int | None, default_limit: int = DEFAULT_PAGE_SIZE):
    page = max(page or 1, 1)
    limit = min(max(limit or default_limit, 1), MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


def pagination_meta(page: int, limit: int, total: int) -> dict:
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "items_per_page": limit,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }
