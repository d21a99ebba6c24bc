"""Filter criteria accepted by the query layer."""

import datetime
from datetime import timezone
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class SortField(str, Enum):
    """Fields notes can be ordered by."""

    CREATED = "created"
    MODIFIED = "modified"
    PATH = "path"
    TITLE = "title"
    WORD_COUNT = "word-count"
    RANDOM = "random"


# Accepted spellings for Sorter.parse(), mapped to their field.
_SORT_ALIASES = {
    "created": SortField.CREATED,
    "c": SortField.CREATED,
    "modified": SortField.MODIFIED,
    "m": SortField.MODIFIED,
    "path": SortField.PATH,
    "p": SortField.PATH,
    "title": SortField.TITLE,
    "t": SortField.TITLE,
    "word-count": SortField.WORD_COUNT,
    "wc": SortField.WORD_COUNT,
    "random": SortField.RANDOM,
    "r": SortField.RANDOM,
}

# Dates read best newest first; everything else alphabetically/ascending.
_DEFAULT_DESCENDING = {SortField.CREATED, SortField.MODIFIED}


class Sorter(BaseModel):
    """One sort key of a query."""

    field: SortField
    ascending: bool = True

    model_config = {"frozen": True}

    @classmethod
    def parse(cls, spec: str) -> "Sorter":
        """Parse a sort specifier such as ``title``, ``created-`` or ``wc+``.

        A trailing ``+`` forces ascending order, ``-`` descending. Without
        a suffix, dates sort descending and other fields ascending.

        Raises:
            ValueError: If the field name is unknown.
        """
        spec = spec.strip().lower()
        ascending: Optional[bool] = None
        if spec.endswith("+"):
            ascending, spec = True, spec[:-1]
        elif spec.endswith("-"):
            ascending, spec = False, spec[:-1]
        field = _SORT_ALIASES.get(spec)
        if field is None:
            raise ValueError(f"{spec}: unknown sorting term")
        if ascending is None:
            ascending = field not in _DEFAULT_DESCENDING
        return cls(field=field, ascending=ascending)


class LinkFilter(BaseModel):
    """Restricts results to the neighborhood of some notes in the link graph.

    Attributes:
        paths: Paths (or path prefixes) of the seed notes.
        negate: Keep the notes *outside* the neighbor set instead.
            Only valid when ``recursive`` is False.
        recursive: Follow links transitively instead of a single hop.
        max_distance: Maximum number of hops when recursive, 0 = unbounded.
    """

    paths: List[str]
    negate: bool = False
    recursive: bool = False
    max_distance: int = Field(default=0, ge=0)

    model_config = {"frozen": True}


class FilterCriteria(BaseModel):
    """Composite query input; every predicate is optional.

    Categories AND together. Use ``model_copy(update=...)`` to derive
    modified criteria.
    """

    include_paths: Optional[List[str]] = None
    exclude_paths: Optional[List[str]] = None
    match: Optional[str] = None
    tags: Optional[List[str]] = None
    created_after: Optional[datetime.datetime] = None
    created_before: Optional[datetime.datetime] = None
    modified_after: Optional[datetime.datetime] = None
    modified_before: Optional[datetime.datetime] = None
    linked_by: Optional[LinkFilter] = None
    link_to: Optional[LinkFilter] = None
    related: Optional[List[str]] = None
    orphan: bool = False
    mention: Optional[List[str]] = None
    exclude_ids: Optional[FrozenSet[int]] = None
    sorters: List[Sorter] = Field(default_factory=list)
    limit: Optional[int] = Field(default=None, ge=0)

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("match")
    @classmethod
    def validate_match(cls, v: Optional[str]) -> Optional[str]:
        """Blank match expressions mean no full-text filter."""
        if v is None or not v.strip():
            return None
        return v.strip()


def day_bounds(day: datetime.date) -> Tuple[datetime.datetime, datetime.datetime]:
    """Start (inclusive) and end (exclusive) of a UTC calendar day.

    Feeds ``created_after``/``created_before`` (or the modified pair) to
    select the notes of a single day.
    """
    if isinstance(day, datetime.datetime):
        day = day.astimezone(timezone.utc).date() if day.tzinfo else day.date()
    start = datetime.datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return start, start + datetime.timedelta(days=1)
