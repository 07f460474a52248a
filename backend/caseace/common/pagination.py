from pydantic import BaseModel


def page_offset(page: int, page_size: int) -> int:
    return (max(page, 1) - 1) * page_size


class PaginatedResponse(BaseModel):
    """Envelope for list endpoints: one page of items plus paging counters."""

    items: list
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def create(cls, items: list, total: int, page: int, page_size: int) -> "PaginatedResponse":
        total_pages = (total + page_size - 1) // page_size if total > 0 else 0
        return cls(items=items, total=total, page=page, page_size=page_size, total_pages=total_pages)
