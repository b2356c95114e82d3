"""Page/limit arithmetic shared by list endpoints."""
import math
from dataclasses import dataclass

from pydantic import BaseModel


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> dict:
        """Pagination block returned next to a page of results."""
        return {
            "total": total,
            "page": self.page,
            "pages": math.ceil(total / self.limit) if self.limit else 0,
            "limit": self.limit,
        }


class PaginationMeta(BaseModel):
    total: int
    page: int
    pages: int
    limit: int
