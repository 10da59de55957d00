"""Aggregator — pure functions that reduce fetched records to statistics.

Nothing here touches the record store. Every function takes already-fetched
records (ORM rows or anything with the same attributes) and returns a
statistic block from ``reports.schemas``.

Rates never divide by zero: ``rate(x, 0)`` is 0.0.
"""

from __future__ import annotations

import enum
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from staffops.common.constants import (
    ACCOUNTED_FOR_STATUSES,
    MONTH_KEY_FORMAT,
    UNSPECIFIED,
    AttendanceStatus,
    CaseStatus,
    LeaveStatus,
)
from staffops.leave.policy import leave_day_count
from staffops.reports.schemas import (
    AttendanceSummary,
    DisciplinaryStatistics,
    LeaveStatistics,
    LeaveTypeBreakdown,
)

_ATTENDANCE_KEYS: dict[str, str] = {
    AttendanceStatus.present.value: "present",
    AttendanceStatus.absent.value: "absent",
    AttendanceStatus.leave.value: "leave",
    AttendanceStatus.off_duty.value: "off_duty",
    AttendanceStatus.late.value: "late",
}
_LEAVE_KEYS: dict[str, str] = {s.value: s.name for s in LeaveStatus}
_CASE_KEYS: dict[str, str] = {s.value: s.name for s in CaseStatus}


# ── Primitives ──────────────────────────────────────────────────────

def rate(numerator: float, denominator: float) -> float:
    """Percentage rounded to 2 dp; 0.0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 2)


def plain(value: Any) -> Optional[str]:
    """Normalise an enum member or stored string to its plain value."""
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    text = str(value).strip()
    return text or None


def tally(values: Iterable[Any], keys: Mapping[str, str]) -> dict[str, int]:
    """Count *values* into the buckets named by *keys*.

    Every bucket is present (zero when empty); values that are missing or
    not in *keys* land in ``unspecified``.
    """
    counts = {name: 0 for name in keys.values()}
    counts[UNSPECIFIED] = 0
    for value in values:
        counts[keys.get(plain(value) or "", UNSPECIFIED)] += 1
    return counts


def count_by(records: Iterable[Any], field: str, *, missing: str = UNSPECIFIED) -> dict[str, int]:
    """Occurrences per distinct value of *field*."""
    counts: dict[str, int] = defaultdict(int)
    for record in records:
        counts[plain(getattr(record, field, None)) or missing] += 1
    return dict(counts)


def month_key(value: date | datetime) -> str:
    """``"Mon YYYY"`` label for the month containing *value*."""
    return value.strftime(MONTH_KEY_FORMAT)


def count_by_month(records: Iterable[Any], field: str) -> dict[str, int]:
    """Occurrences per calendar month of *field*, in chronological order."""
    buckets: dict[tuple[int, int], int] = defaultdict(int)
    labels: dict[tuple[int, int], str] = {}
    for record in records:
        value = getattr(record, field, None)
        if value is None:
            continue
        key = (value.year, value.month)
        buckets[key] += 1
        labels[key] = month_key(value)
    return {labels[key]: buckets[key] for key in sorted(buckets)}


def working_days_between(start: date, end: date) -> int:
    """Weekdays (Mon–Fri) in ``[start, end]``; 0 when end precedes start."""
    count = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            count += 1
        current += timedelta(days=1)
    return count


def leave_days(leave: Any) -> int:
    """Stored day count, or the inclusive span when none was stored."""
    if getattr(leave, "number_of_days", None) is not None:
        return int(leave.number_of_days)
    if leave.start_date is None or leave.end_date is None:
        return 0
    try:
        return leave_day_count(leave.start_date, leave.end_date)
    except ValueError:
        return 0


# ── Department partitioning ─────────────────────────────────────────

def department_of(staff: Iterable[Any]) -> dict[uuid.UUID, Optional[str]]:
    """staff id → department lookup built from staff profiles."""
    return {member.id: member.department for member in staff}


def partition_by_department(
    records: Iterable[Any],
    departments: Mapping[uuid.UUID, Optional[str]],
) -> dict[str, list[Any]]:
    """Group records by their staff member's department.

    Records whose staff member is unknown, or has no department, are grouped
    under ``unspecified``. Every record lands in exactly one group.
    """
    groups: dict[str, list[Any]] = defaultdict(list)
    for record in records:
        department = plain(departments.get(record.staff_id))
        groups[department or UNSPECIFIED].append(record)
    return dict(sorted(groups.items()))


def department_rollup(
    records: Sequence[Any],
    departments: Mapping[uuid.UUID, Optional[str]],
    summarize: Callable[[Sequence[Any]], dict[str, int]],
) -> dict[str, dict[str, int]]:
    """Apply *summarize* to each department group independently.

    Each group also carries its ``total``; the totals sum to ``len(records)``.
    """
    return {
        department: {"total": len(group), **summarize(group)}
        for department, group in partition_by_department(records, departments).items()
    }


def attendance_status_counts(records: Iterable[Any]) -> dict[str, int]:
    return tally((r.status for r in records), _ATTENDANCE_KEYS)


def leave_status_counts(leaves: Iterable[Any]) -> dict[str, int]:
    return tally((l.status for l in leaves), _LEAVE_KEYS)


def case_status_counts(cases: Iterable[Any]) -> dict[str, int]:
    return tally((c.status for c in cases), _CASE_KEYS)


# ── Attendance ──────────────────────────────────────────────────────

def summarize_attendance(
    records: Sequence[Any],
    departments: Optional[Mapping[uuid.UUID, Optional[str]]] = None,
) -> AttendanceSummary:
    """Status tally and accounted-for rate.

    Accounted-for days are present, late, leave and off-duty.
    """
    counts = attendance_status_counts(records)
    accounted = sum(1 for r in records if plain(r.status) in ACCOUNTED_FOR_STATUSES)
    by_department = (
        department_rollup(records, departments, attendance_status_counts)
        if departments is not None
        else {}
    )
    return AttendanceSummary(
        total_days=len(records),
        average_attendance=rate(accounted, len(records)),
        by_department=by_department,
        **counts,
    )


# ── Leave ───────────────────────────────────────────────────────────

def summarize_leave(leaves: Sequence[Any]) -> LeaveStatistics:
    """Status counts, approval rate, per-type and per-month breakdowns.

    Months are keyed by each application's start date.
    """
    counts = leave_status_counts(leaves)

    by_type: dict[str, LeaveTypeBreakdown] = {}
    for leave in leaves:
        key = plain(leave.leave_type) or UNSPECIFIED
        entry = by_type.setdefault(key, LeaveTypeBreakdown())
        days = leave_days(leave)
        entry.total += 1
        entry.total_days += days
        if plain(leave.status) == LeaveStatus.approved.value:
            entry.approved += 1
            entry.days += days

    return LeaveStatistics(
        total=len(leaves),
        approval_rate=rate(counts["approved"], len(leaves)),
        by_type=dict(sorted(by_type.items())),
        by_month=count_by_month(leaves, "start_date"),
        **counts,
    )


# ── Disciplinary ────────────────────────────────────────────────────

def summarize_disciplinary(
    cases: Sequence[Any],
    departments: Optional[Mapping[uuid.UUID, Optional[str]]] = None,
) -> DisciplinaryStatistics:
    counts = case_status_counts(cases)
    by_department = (
        department_rollup(cases, departments, case_status_counts)
        if departments is not None
        else {}
    )
    return DisciplinaryStatistics(
        total=len(cases),
        resolution_rate=rate(counts["resolved"], len(cases)),
        by_infraction_type=dict(sorted(count_by(cases, "infraction_type").items())),
        by_sanction=dict(sorted(count_by(cases, "sanction", missing="none").items())),
        by_department=by_department,
        **counts,
    )


# ── Per staff ───────────────────────────────────────────────────────

def group_by_staff(records: Iterable[Any]) -> dict[uuid.UUID, list[Any]]:
    groups: dict[uuid.UUID, list[Any]] = defaultdict(list)
    for record in records:
        groups[record.staff_id].append(record)
    return groups
