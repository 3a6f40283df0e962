"""
Report Filters

Query building utilities for reports. The row store only understands
single-table predicates, so every report expresses its reads as RowQuery
objects: an inclusive time range on the entity's anchor field plus equality,
membership and not-null filters.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


# Map entity names to their store tables
TABLE_MAP = {
    'prescription': 'prescription',
    'prescription_item': 'prescription_item',
    'consultation': 'consultation',
    'invoice': 'facturacion',
    'lab_result': 'lab_result',
    'patient': 'patient',
    'unregistered_patient': 'unregisteredpatients',
    'medic_profile': 'medic_profile',
    'organization': 'organization',
    'message': 'message',
    'audit_log': 'audit_log',
    'appointment': 'appointment',
}

# Map entities to the timestamp column range filters apply to
ANCHOR_FIELD_MAP = {
    'prescription': 'issued_at',
    'consultation': 'created_at',
    'invoice': 'fecha_emision',
    'lab_result': 'created_at',
    'patient': 'created_at',
    'unregistered_patient': 'created_at',
    'message': 'created_at',
    'audit_log': 'created_at',
    'appointment': 'scheduled_at',
}

# Unique key column per entity, when it is not "id"
KEY_FIELD_MAP = {
    'medic_profile': 'user_id',
}

# Scope parameters and the entities that carry the matching column
SCOPE_FILTERS = {
    'organization_id': {'invoice', 'appointment'},
    'doctor_id': {'consultation', 'prescription', 'lab_result'},
}

# lab_result names its doctor column differently
SCOPE_COLUMN_OVERRIDES = {
    ('doctor_id', 'lab_result'): 'ordering_provider_id',
}


def parse_timestamp(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 value into an aware datetime.

    Date-only values become midnight; naive values are taken as UTC.

    Raises:
        ValueError: If the string is not ISO-8601
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class TimeRange:
    """Inclusive [start, end] range on one timestamp column"""
    field: str
    start: datetime
    end: datetime

    def contains(self, value: Any) -> bool:
        moment = parse_timestamp(value)
        if moment is None:
            return False
        return self.start <= moment <= self.end


@dataclass
class RowQuery:
    """Single-table read: the only shape the row store accepts"""
    entity: str
    columns: Sequence[str] = ('*',)
    time_range: Optional[TimeRange] = None
    equals: Dict[str, Any] = field(default_factory=dict)
    members: Dict[str, List[Any]] = field(default_factory=dict)
    not_null: List[str] = field(default_factory=list)
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    @property
    def table(self) -> str:
        return TABLE_MAP.get(self.entity, self.entity)

    @property
    def key_field(self) -> str:
        return KEY_FIELD_MAP.get(self.entity, 'id')

    def page_order(self) -> List[Tuple[str, bool]]:
        """
        Total order for paged reads as (column, descending) pairs.

        The requested order comes first, then the anchor field, then the
        entity key, so offset pages never overlap or skip rows.
        """
        order = []
        if self.order_by:
            order.append((self.order_by, self.descending))
        if self.time_range is not None and self.time_range.field != self.order_by:
            order.append((self.time_range.field, False))
        if all(column != self.key_field for column, _ in order):
            order.append((self.key_field, False))
        return order

    def with_members(self, column: str, values: List[Any]) -> 'RowQuery':
        """Copy of this query with the IN filter on column replaced"""
        members = dict(self.members)
        members[column] = list(values)
        return replace(self, members=members)


def build_range_query(
    entity: str,
    start: datetime,
    end: datetime,
    columns: Optional[Sequence[str]] = None,
    equals: Optional[Dict[str, Any]] = None,
    not_null: Optional[List[str]] = None,
    scope: Optional[Dict[str, Any]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None
) -> RowQuery:
    """
    Build a query scoped to [start, end] on the entity's anchor field.

    Args:
        entity: Entity name (see TABLE_MAP)
        start: Inclusive range start
        end: Inclusive range end
        columns: Columns to select (all when omitted)
        equals: Equality filters
        not_null: Columns that must be present
        scope: Caller scope params (organization_id, doctor_id); only those
            the entity carries are applied
        order_by: Column to order by
        descending: Order direction
        limit: Maximum rows

    Returns:
        RowQuery ready for ReportService.fetch
    """
    filters = dict(equals or {})
    filters.update(build_scope_filters(entity, scope))

    return RowQuery(
        entity=entity,
        columns=tuple(columns) if columns else ('*',),
        time_range=TimeRange(ANCHOR_FIELD_MAP.get(entity, 'created_at'), start, end),
        equals=filters,
        not_null=list(not_null or []),
        order_by=order_by,
        descending=descending,
        limit=limit
    )


def build_scope_filters(entity: str, scope: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Equality filters for the scope params that apply to entity"""
    filters = {}
    for param, value in (scope or {}).items():
        if value in (None, '') or entity not in SCOPE_FILTERS.get(param, ()):
            continue
        column = SCOPE_COLUMN_OVERRIDES.get((param, entity), param)
        filters[column] = value
    return filters
