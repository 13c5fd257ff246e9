from pydantic import BaseModel


class Pagination(BaseModel):
    offset: int
    limit: int
    total: int
    has_next: bool
    has_prev: bool

    @classmethod
    def of(cls, offset, limit, total):
        return cls(
            offset=offset,
            limit=limit,
            total=total,
            has_next=offset + limit < total,
            has_prev=offset > 0,
        )
