"""
scholarpay/services/pagination.py
In-memory pagination of an ordered record list
"""
from typing import Any, Dict, List, Sequence


def paginate_records(records: Sequence[Any], page: int = 1, page_size: int = 25) -> Dict[str, Any]:
    """
    Slice one page out of an already ordered sequence

    Returns:
        dict: Contains 'data', 'count', 'page', 'page_size', 'total_pages'
    """
    page_size = max(page_size, 1)
    total_count = len(records)
    total_pages = (total_count + page_size - 1) // page_size if total_count > 0 else 0
    page = min(max(page, 1), max(total_pages, 1))

    start = (page - 1) * page_size
    data: List[Any] = list(records[start:start + page_size])

    return {
        "data": data,
        "count": total_count,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
    }
