"""Pydantic models for entities and the options accepted by fetch operations."""

from typing import Any, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

FilterOperator = Literal[
    "<",
    "<=",
    "==",
    ">",
    ">=",
    "!=",
    "array-contains",
    "array-contains-any",
    "in",
    "not-in",
]
SortDirection = Literal["asc", "desc"]


class DocumentEntity(BaseModel):
    """
    Base record stored in a collection.

    - id: absent before creation, filled in by the repository after an add
      or when the document is read back.

    Extra fields are kept, so the base class doubles as an untyped record.
    """

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None


EntityT = TypeVar("EntityT", bound=DocumentEntity)


class _OptionsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FilterSpecification(_OptionsModel):
    """A single ``field operator value`` predicate."""

    field_name: str
    operator: FilterOperator
    value: Any = None


class SortSpecification(_OptionsModel):
    """Order clause for one field."""

    field_name: str
    direction: SortDirection = "asc"


class FetchOptions(_OptionsModel):
    """
    Query options for the fetch* repository methods.

    Cursor values are positioned against the sorts: a tuple holds one value per
    sort field, anything else is a value for the first sort field. Cursors are
    ignored when no sort is given.

    IMPORTANT: combinations are not validated. Index requirements and query
    limitations of the store remain the caller's responsibility.
    """

    filters: List[FilterSpecification] = Field(default_factory=list)
    sorts: List[SortSpecification] = Field(default_factory=list)
    limit: Optional[int] = None
    start_at: Any = None
    start_after: Any = None
    end_at: Any = None
    end_before: Any = None

    def has_cursor(self, name: str) -> bool:
        """True when the cursor was supplied, even with a ``None`` value."""
        return name in self.model_fields_set
