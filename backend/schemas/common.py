from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar('T')


class CamelModel(BaseModel):
    """Snake-case attributes in Python, camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ApiResponse(CamelModel, Generic[T]):
    success: bool = True
    message: str
    data: T | None = None


class PaginationMeta(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedResponse(CamelModel, Generic[T]):
    success: bool = True
    message: str
    data: list[T]
    pagination: PaginationMeta


class MessageResponse(CamelModel):
    success: bool = True
    message: str


def paginated(page, schema: type[BaseModel], message: str) -> PaginatedResponse:
    """Build the list envelope from a ``backend.core.pagination.Page`` of ORM rows."""
    return PaginatedResponse[schema](
        message=message,
        data=[schema.model_validate(item) for item in page.items],
        pagination=PaginationMeta(**page.meta()),
    )
