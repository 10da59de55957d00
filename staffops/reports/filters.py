"""Filter Builder — translate report parameters into per-entity filters.

A ``RecordFilter`` is a small immutable predicate (date range, equality
constraints, staff-id membership) that the record store turns into a query
through ``common.filters.apply_filters``.

Department narrowing is a two-step resolution: department lives on the staff
profile, not on operational records, so the builder first resolves the
department's staff ids and then constrains records by id membership.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field

from staffops.common.constants import (
    CaseStatus,
    EntityKind,
    LeaveStatus,
    UserRole,
)
from staffops.common.exceptions import AccessDeniedException, InvalidParameterException
from staffops.config import settings
from staffops.reports.schemas import CallerScope, ReportParams

# Primary date field per entity kind, and whether it holds a timestamp
_DATE_FIELDS: dict[EntityKind, tuple[str, bool]] = {
    EntityKind.attendance: ("date", False),
    EntityKind.leave: ("created_at", True),
    EntityKind.disciplinary: ("created_at", True),
    EntityKind.staff: ("created_at", True),
}

_STATUS_VALUES: dict[EntityKind, frozenset[str]] = {
    EntityKind.leave: frozenset(s.value for s in LeaveStatus),
    EntityKind.disciplinary: frozenset(s.value for s in CaseStatus),
}


class RecordFilter(BaseModel):
    """Composable constraints for one entity kind. Unset parts are open."""

    model_config = ConfigDict(frozen=True)

    entity: EntityKind
    date_field: Optional[str] = None
    # date for day fields, datetime for timestamp fields
    date_from: Optional[Any] = None
    date_to: Optional[Any] = None
    staff_ids: Optional[frozenset[uuid.UUID]] = None
    equals: dict[str, Any] = Field(default_factory=dict)
    any_of: dict[str, tuple[Any, ...]] = Field(default_factory=dict)

    @property
    def matches_nothing(self) -> bool:
        return self.staff_ids is not None and not self.staff_ids

    def to_query_filters(self) -> dict[str, Any]:
        """Render as an ``apply_filters`` dict (``field``, ``field__from`` …)."""
        filters: dict[str, Any] = {}
        if self.date_field:
            filters[f"{self.date_field}__from"] = self.date_from
            filters[f"{self.date_field}__to"] = self.date_to
        if self.staff_ids is not None:
            key = "id__in" if self.entity == EntityKind.staff else "staff_id__in"
            filters[key] = sorted(self.staff_ids, key=str)
        for name, value in self.equals.items():
            filters[name] = value
        for name, values in self.any_of.items():
            filters[f"{name}__in"] = list(values)
        return filters

    def narrowed(self, **changes: Any) -> RecordFilter:
        """Copy with extra constraints merged in."""
        equals = {**self.equals, **changes.pop("equals", {})}
        any_of = {**self.any_of, **changes.pop("any_of", {})}
        return self.model_copy(update={"equals": equals, "any_of": any_of, **changes})


def date_bounds(
    start: Optional[date],
    end: Optional[date],
    *,
    as_datetime: bool,
) -> tuple[Optional[date | datetime], Optional[date | datetime]]:
    """Inclusive bounds.

    Timestamp fields span start-of-day to end-of-day in ``settings.TIMEZONE``,
    expressed in UTC since that is how timestamps are stored.
    """
    if not as_datetime:
        return start, end
    zone = ZoneInfo(settings.TIMEZONE)
    return (
        datetime.combine(start, time.min, tzinfo=zone).astimezone(timezone.utc) if start else None,
        datetime.combine(end, time.max, tzinfo=zone).astimezone(timezone.utc) if end else None,
    )


def range_filter(
    entity: EntityKind,
    start: Optional[date],
    end: Optional[date],
    *,
    date_field: Optional[str] = None,
) -> RecordFilter:
    """A filter constraining only the date field (open bounds allowed)."""
    field, is_timestamp = _DATE_FIELDS[entity]
    if date_field is not None:
        field, is_timestamp = date_field, date_field.endswith("_at")
    lower, upper = date_bounds(start, end, as_datetime=is_timestamp)
    return RecordFilter(entity=entity, date_field=field, date_from=lower, date_to=upper)


class FilterBuilder:
    """Builds ``RecordFilter`` objects from ``ReportParams`` and a caller scope.

    *store* only needs ``resolve_staff_ids_by_department``.
    """

    def __init__(self, store) -> None:
        self._store = store

    async def resolve_staff_ids(
        self,
        params: ReportParams,
        scope: CallerScope,
    ) -> Optional[frozenset[uuid.UUID]]:
        """Staff-id membership constraint, or ``None`` for no constraint.

        ``staffId`` wins over ``department``; a restricted scope is
        intersected last. A ``staffId`` outside the scope is refused before
        anything is fetched.
        """
        ids: Optional[frozenset[uuid.UUID]] = None

        if params.staff_id is not None:
            if not scope.permits(params.staff_id):
                raise AccessDeniedException(
                    detail=f"Staff '{params.staff_id}' is outside your viewing scope.",
                )
            ids = frozenset({params.staff_id})
        elif params.department:
            resolved = await self._store.resolve_staff_ids_by_department(params.department)
            ids = frozenset(resolved)

        if scope.allowed_staff_ids is not None:
            ids = scope.allowed_staff_ids if ids is None else ids & scope.allowed_staff_ids
        return ids

    async def build(
        self,
        entity: EntityKind,
        params: ReportParams,
        scope: CallerScope,
    ) -> RecordFilter:
        """Filter for one entity kind from the shared report parameters."""
        staff_ids = await self.resolve_staff_ids(params, scope)

        if entity == EntityKind.staff:
            return self._staff_filter(params, staff_ids)

        field, is_timestamp = _DATE_FIELDS[entity]
        lower = upper = None
        if params.has_date_range:
            lower, upper = date_bounds(
                params.start_date, params.end_date, as_datetime=is_timestamp
            )

        equals: dict[str, Any] = {}
        if entity == EntityKind.leave and params.leave_type is not None:
            equals["leave_type"] = params.leave_type.value
        if entity == EntityKind.disciplinary and params.infraction_type is not None:
            equals["infraction_type"] = params.infraction_type.value
        if params.status and entity in _STATUS_VALUES:
            equals["status"] = _checked_status(entity, params.status)

        return RecordFilter(
            entity=entity,
            date_field=field if params.has_date_range else None,
            date_from=lower,
            date_to=upper,
            staff_ids=staff_ids,
            equals=equals,
        )

    @staticmethod
    def _staff_filter(
        params: ReportParams,
        staff_ids: Optional[frozenset[uuid.UUID]],
    ) -> RecordFilter:
        equals: dict[str, Any] = {"role": UserRole.staff.value, "is_active": True}
        if params.department and params.staff_id is None:
            equals["department"] = params.department
        return RecordFilter(entity=EntityKind.staff, staff_ids=staff_ids, equals=equals)


def _checked_status(entity: EntityKind, status: str) -> str:
    allowed = _STATUS_VALUES[entity]
    if status not in allowed:
        raise InvalidParameterException(
            "status",
            f"must be one of {sorted(allowed)} for {entity.value} records",
        )
    return status
