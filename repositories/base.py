"""Shared plumbing for collection repositories."""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from criteria.composer import PredicateComposer, default_composer
from criteria.errors import CallerContractError
from criteria.predicates import AllOf, AnyOf, FieldPredicate, Predicate
from mongo.constants import mongodb_tools

logger = logging.getLogger(__name__)

DAY_FORMAT = "%Y-%m-%d"

# Suffixes turning a YYYY-MM-DD day into the first/last second of that day
START_OF_DAY_ISO = "T00:00:00.000Z"
END_OF_DAY_ISO = "T23:59:59.000Z"


class BaseRepository:
    """Holds the query executor and composer for one collection.

    The executor is anything exposing the async `find` / `find_one` /
    `aggregate` / `insert_one` / `replace_one` surface of DirectMongoClient.
    """

    collection: str = ""

    def __init__(self, executor: Any = None, composer: Optional[PredicateComposer] = None):
        self.executor = executor if executor is not None else mongodb_tools
        self.composer = composer or default_composer


def parse_day(value: str) -> datetime:
    """Parse YYYY-MM-DD into a UTC midnight datetime."""
    try:
        return datetime.strptime(value, DAY_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError) as e:
        raise CallerContractError(f"Expected a YYYY-MM-DD date, got {value!r}") from e


def day_bounds(date_from: str, date_to: str) -> tuple:
    """UTC datetimes for the start of `date_from` and the last second of `date_to`."""
    start = parse_day(date_from)
    end = parse_day(date_to).replace(hour=23, minute=59, second=59)
    return start, end


def filter_document_predicate(document: Mapping[str, Any]) -> Predicate:
    """Translate a plain `{field: value}` filter document into a predicate.

    List values mean membership, anything else equality.
    """
    leaves = [
        FieldPredicate.is_in(key, value) if isinstance(value, (list, tuple, set)) else FieldPredicate.equals(key, value)
        for key, value in document.items()
    ]
    return AllOf(tuple(leaves))


def any_filter_document(documents: Iterable[Mapping[str, Any]]) -> AnyOf:
    """OR over a list of filter documents."""
    return AnyOf(tuple(filter_document_predicate(doc) for doc in documents))
