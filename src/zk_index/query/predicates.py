"""Predicate tree produced by the filter compiler.

Leaves describe a single condition on a note; ``And``/``Or``/``Not`` combine
them. The tree is plain data: the planner lowers it to SQL, tests can
inspect it directly.
"""

import datetime
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple, Union


class DateField(str, Enum):
    """Timestamps a date range can apply to."""

    CREATED = "created"
    MODIFIED = "modified"


@dataclass(frozen=True)
class PathMatch:
    """Path matches a glob, as a file or as a directory containing the note."""

    pattern: str


@dataclass(frozen=True)
class TagMatch:
    """Note has at least one tag matching one of the glob ``patterns``."""

    patterns: Tuple[str, ...]


@dataclass(frozen=True)
class IdIn:
    """Note ID belongs to ``ids``."""

    ids: FrozenSet[int]


@dataclass(frozen=True)
class HasIncomingLink:
    """At least one resolved link points to the note."""


@dataclass(frozen=True)
class DateRange:
    """Timestamp within ``[start, end)``; either bound may be open."""

    field: DateField
    start: Optional[datetime.datetime] = None
    end: Optional[datetime.datetime] = None


@dataclass(frozen=True)
class And:
    children: Tuple["Predicate", ...]


@dataclass(frozen=True)
class Or:
    children: Tuple["Predicate", ...]


@dataclass(frozen=True)
class Not:
    child: "Predicate"


Predicate = Union[PathMatch, TagMatch, IdIn, HasIncomingLink, DateRange, And, Or, Not]


def all_of(predicates: Iterable[Predicate]) -> Optional[Predicate]:
    """AND the predicates together; None when there are none."""
    children = tuple(predicates)
    if not children:
        return None
    if len(children) == 1:
        return children[0]
    return And(children)


def any_of(predicates: Iterable[Predicate]) -> Optional[Predicate]:
    """OR the predicates together; None when there are none."""
    children = tuple(predicates)
    if not children:
        return None
    if len(children) == 1:
        return children[0]
    return Or(children)
