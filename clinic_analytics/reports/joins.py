"""
Join Resolver

In-memory substitute for database joins. The store cannot join server-side,
so reports fetch the distinct foreign keys of a row set in one IN query per
parent entity, index the parents by key and attach them to the children.
Lookups run concurrently; each declares whether a failed fetch aborts the
report (REQUIRED) or degrades to sentinel values (OPTIONAL).

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Sequence, Tuple, Type

from pydantic import BaseModel

from .errors import UpstreamQueryError
from .service import ReportService, build_id_query

logger = logging.getLogger(__name__)


class JoinPolicy(Enum):
    """What happens when a lookup fetch fails"""
    REQUIRED = "required"
    OPTIONAL = "optional"


@dataclass(frozen=True)
class Lookup:
    """A parent entity to resolve by key"""
    entity: str
    key_field: str
    model: Type[BaseModel]
    columns: Sequence[str] = ('*',)
    policy: JoinPolicy = JoinPolicy.REQUIRED


def field_value(row: Any, name: str) -> Any:
    """Read a column from a dict row or an attribute from a record"""
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def distinct_keys(rows: Iterable[Any], *fields: str) -> List[Hashable]:
    """Distinct non-null values of fields across rows, in first-seen order"""
    seen = {}
    for row in rows:
        for name in fields:
            value = field_value(row, name)
            if value is not None and value != '':
                seen.setdefault(value, None)
    return list(seen)


def build_index(rows: Iterable[Any], key_field: str) -> Dict[Hashable, Any]:
    """Map key -> row; rows without a key are skipped, later rows win"""
    index = {}
    for row in rows:
        key = field_value(row, key_field)
        if key is not None:
            index[key] = row
    return index


def attach(child_rows: Iterable[Any], index: Mapping[Hashable, Any], fk_field: str, attach_as: str) -> List[Any]:
    """
    Attach the parent of each child under attach_as.

    Children whose key is missing or unresolved get None; none are dropped.

    Args:
        child_rows: Dict rows or pydantic records
        index: Parent index from build_index
        fk_field: Foreign key column on the child
        attach_as: Name the parent is attached under

    Returns:
        New enriched rows, same order as child_rows
    """
    enriched = []
    for child in child_rows:
        key = field_value(child, fk_field)
        parent = index.get(key) if key is not None else None
        if isinstance(child, BaseModel):
            enriched.append(child.model_copy(update={attach_as: parent}))
        else:
            row = dict(child)
            row[attach_as] = parent
            enriched.append(row)
    return enriched


def resolve(
    service: ReportService,
    lookups: Mapping[str, Tuple[Lookup, Iterable[Hashable]]]
) -> Dict[str, Dict[Hashable, BaseModel]]:
    """
    Fetch and index several parent entities concurrently.

    A single lookup is read directly through ReportService.fetch_by_ids.

    Args:
        service: Row fetcher
        lookups: Name -> (lookup, keys needed)

    Returns:
        Name -> index of validated parent records

    Raises:
        UpstreamQueryError: If a REQUIRED lookup fails
    """
    optional = {name for name, (lookup, _) in lookups.items() if lookup.policy is JoinPolicy.OPTIONAL}

    if len(lookups) == 1:
        # One parent entity needs no worker pool
        [(name, (lookup, keys))] = lookups.items()
        try:
            rows = {name: service.fetch_by_ids(
                lookup.entity, lookup.key_field, distinct_keys_of(keys), lookup.columns
            )}
        except UpstreamQueryError as e:
            if name not in optional:
                raise
            logger.warning(f"Optional lookup '{name}' failed, using defaults: {e.detail}")
            rows = {name: []}
    else:
        queries = {}
        for name, (lookup, keys) in lookups.items():
            queries[name] = build_id_query(lookup.entity, lookup.key_field, distinct_keys_of(keys), lookup.columns)
        rows = service.fetch_concurrently(queries, optional=optional)

    indexes = {}
    for name, (lookup, _) in lookups.items():
        records = [lookup.model.model_validate(row) for row in rows[name]]
        indexes[name] = build_index(records, lookup.key_field)
    return indexes


def distinct_keys_of(keys: Iterable[Hashable]) -> List[Hashable]:
    return list(dict.fromkeys(k for k in keys if k is not None and k != ''))
