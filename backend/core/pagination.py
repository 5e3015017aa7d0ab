import math
from dataclasses import dataclass
from typing import Literal

from fastapi import Query
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Query as SAQuery

from backend.core.errors import BadRequestError

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass
class PageParams:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    sort_by: str | None = None
    sort_order: Literal['asc', 'desc'] | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page:
    items: list
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def meta(self) -> dict:
        return {
            'page': self.page,
            'limit': self.limit,
            'total': self.total,
            'total_pages': self.total_pages,
            'has_next': self.has_next,
            'has_prev': self.has_prev,
        }


def pagination_params(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str | None = Query(default=None, alias='sortBy'),
    sort_order: Literal['asc', 'desc'] | None = Query(default=None, alias='sortOrder'),
) -> PageParams:
    return PageParams(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)


def paginate(
    query: SAQuery,
    params: PageParams,
    sortable_columns: dict,
    default_sort: str,
    default_order: Literal['asc', 'desc'] = 'asc',
) -> Page:
    """Apply ordering, offset and limit to ``query``.

    ``sortable_columns`` maps snake_case names to columns; clients may send
    either the snake_case or the camelCase spelling in ``sortBy``.
    """
    columns = dict(sortable_columns)
    columns.update({to_camel(name): column for name, column in sortable_columns.items()})

    sort_by = params.sort_by or default_sort
    if sort_by not in columns:
        raise BadRequestError(f'Cannot sort by "{sort_by}"')
    column = columns[sort_by]
    order = params.sort_order or default_order

    total = query.order_by(None).count()
    ordered = query.order_by(column.desc() if order == 'desc' else column.asc())
    items = ordered.offset(params.offset).limit(params.limit).all()

    return Page(items=items, total=total, page=params.page, limit=params.limit)
