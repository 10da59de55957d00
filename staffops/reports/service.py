"""Report Composer — orchestrates filter building, fetching, aggregation,
scoring and trends into one ``Report`` per request.

Independent sub-fetches run concurrently through ``gather_all``; the first
failure cancels the rest and fails the whole report. The composition as a
whole runs under a timeout. No partial reports are ever returned.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import date, datetime
from typing import Any, Awaitable, Mapping, Optional
from zoneinfo import ZoneInfo

from staffops.attendance.models import compute_hours_worked
from staffops.common.constants import (
    OPEN_CASE_STATUSES,
    REPORT_ACCESS,
    UNSPECIFIED,
    AttendanceStatus,
    EntityKind,
    LeaveStatus,
    ReportPeriod,
    ReportType,
    UserRole,
)
from staffops.common.exceptions import (
    AccessDeniedException,
    AppException,
    InvalidParameterException,
    NotFoundException,
    UpstreamFetchError,
)
from staffops.config import settings
from staffops.leave.policy import LeaveEntitlementPolicy
from staffops.reports.aggregator import (
    attendance_status_counts,
    department_of,
    group_by_staff,
    leave_days,
    partition_by_department,
    plain,
    rate,
    summarize_attendance,
    summarize_disciplinary,
    summarize_leave,
    working_days_between,
)
from staffops.reports.filters import FilterBuilder, RecordFilter, range_filter
from staffops.reports.schemas import (
    CallerScope,
    DashboardSummary,
    Report,
    ReportParams,
    ReportPeriodInfo,
)
from staffops.reports.scoring import (
    DEFAULT_WEIGHTS,
    ScoreWeights,
    as_period,
    lookback_start,
    score_staff,
)
from staffops.reports.store import RecordStore
from staffops.reports.trends import (
    daily_trend,
    daily_window,
    monthly_trend,
    monthly_window,
    shift_months,
)

logger = logging.getLogger(__name__)

TITLES: dict[ReportType, str] = {
    ReportType.attendance: "Attendance Report",
    ReportType.leave: "Leave Report",
    ReportType.disciplinary: "Disciplinary Report",
    ReportType.performance: "Performance Report",
    ReportType.department: "Department Report",
    ReportType.dashboard: "Dashboard Report",
    ReportType.staff: "Staff Report",
    ReportType.leave_balance: "Leave Balance Report",
}


def _now() -> datetime:
    """Current time in the organisation's timezone."""
    return datetime.now(ZoneInfo(settings.TIMEZONE))


def _today() -> date:
    return _now().date()


async def gather_all(*awaitables: Awaitable[Any]) -> list[Any]:
    """Await all *awaitables* concurrently.

    If any of them fails, the others are cancelled and the failure is
    re-raised.
    """
    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def as_report_type(value: Any) -> ReportType:
    try:
        return ReportType(plain(value))
    except ValueError:
        raise InvalidParameterException(
            "reportType", f"must be one of {[t.value for t in ReportType]}"
        ) from None


# ── Detail rows ─────────────────────────────────────────────────────

def _staff_columns(staff_id: uuid.UUID, profiles: Mapping[uuid.UUID, Any]) -> dict[str, Any]:
    member = profiles.get(staff_id)
    if member is None:
        return {"employee_code": None, "name": None, "department": None}
    return {
        "employee_code": member.employee_code,
        "name": member.full_name,
        "department": member.department,
    }


def attendance_row(record: Any, profiles: Mapping[uuid.UUID, Any]) -> dict[str, Any]:
    return {
        **_staff_columns(record.staff_id, profiles),
        "date": record.date,
        "status": plain(record.status),
        "check_in": record.check_in_time,
        "check_out": record.check_out_time,
        "hours_worked": _hours(record),
        "remarks": record.remarks,
    }


def leave_row(leave: Any, profiles: Mapping[uuid.UUID, Any]) -> dict[str, Any]:
    return {
        **_staff_columns(leave.staff_id, profiles),
        "leave_type": plain(leave.leave_type),
        "start_date": leave.start_date,
        "end_date": leave.end_date,
        "number_of_days": leave_days(leave),
        "status": plain(leave.status),
        "rejection_reason": leave.rejection_reason,
        "created_at": leave.created_at,
    }


def case_row(case: Any, profiles: Mapping[uuid.UUID, Any]) -> dict[str, Any]:
    return {
        **_staff_columns(case.staff_id, profiles),
        "infraction_type": plain(case.infraction_type),
        "status": plain(case.status),
        "date_of_infraction": case.date_of_infraction,
        "sanction": case.sanction,
        "description": case.description,
        "created_at": case.created_at,
    }


def profile_row(member: Any) -> dict[str, Any]:
    return {
        "employee_code": member.employee_code,
        "name": member.full_name,
        "email": member.email,
        "department": member.department,
        "position": member.position,
        "role": plain(member.role),
        "is_active": member.is_active,
        "date_of_joining": member.date_of_joining,
    }


def _hours(record: Any) -> Optional[float]:
    hours = record.hours_worked
    if hours is None:
        hours = compute_hours_worked(record.check_in_time, record.check_out_time)
    return None if hours is None else round(hours, 2)


def _by_name(row: dict[str, Any]) -> str:
    return row.get("name") or ""


class ReportComposer:
    """Single entry point for building ``Report`` objects.

    ``policy`` and ``weights`` are explicit values; nothing reads entitlement
    defaults or score weights from module state.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        policy: Optional[LeaveEntitlementPolicy] = None,
        weights: ScoreWeights = DEFAULT_WEIGHTS,
        timeout: Optional[float] = None,
    ) -> None:
        self._store = store
        self._filters = FilterBuilder(store)
        self._policy = policy or LeaveEntitlementPolicy()
        self._weights = weights
        self._timeout = settings.REPORT_TIMEOUT_SECONDS if timeout is None else timeout

    async def compose_report(
        self,
        report_type: ReportType | str,
        params: ReportParams | Mapping[str, Any] | None = None,
        scope: Optional[CallerScope] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Report:
        """Build one report.

        Parameters are validated and the caller's scope is checked before
        anything is fetched.
        """
        report_type = as_report_type(report_type)
        scope = scope or CallerScope.full_access()
        try:
            if not isinstance(params, ReportParams):
                params = ReportParams.parse(params)
            self._validate(report_type, params)
        except InvalidParameterException as exc:
            exc.report_type = report_type.value
            raise
        self._authorize(report_type, params, scope)

        timeout = self._timeout if timeout is None else timeout
        builder = getattr(self, f"_compose_{report_type.name}")
        started = time.perf_counter()
        logger.info(
            "Composing %s report for %s", report_type.value, scope.role.value,
            extra={"report_type": report_type.value},
        )
        try:
            report = await asyncio.wait_for(builder(params, scope), timeout)
        except asyncio.TimeoutError:
            logger.error(
                "%s report timed out after %ss", report_type.value, timeout,
                extra={"report_type": report_type.value},
            )
            raise UpstreamFetchError(report_type.value, f"timed out after {timeout}s") from None
        except AppException as exc:
            logger.warning(
                "%s report failed: %s", report_type.value, exc.detail,
                extra={"report_type": report_type.value},
            )
            raise
        except Exception as exc:
            logger.exception(
                "%s report failed unexpectedly", report_type.value,
                extra={"report_type": report_type.value},
            )
            raise UpstreamFetchError(report_type.value, exc.__class__.__name__) from exc

        duration_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.info(
            "Composed %s report with %d records in %sms",
            report_type.value, report.total_records, duration_ms,
            extra={"report_type": report_type.value, "duration_ms": duration_ms},
        )
        return report

    # ═════════════════════════════════════════════════════════════════
    # Gates
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    def _validate(report_type: ReportType, params: ReportParams) -> None:
        if report_type == ReportType.attendance:
            if params.start_date is None:
                raise InvalidParameterException("startDate", "is required")
            if params.end_date is None:
                raise InvalidParameterException("endDate", "is required")
        if report_type == ReportType.staff and params.staff_id is None:
            raise InvalidParameterException("staffId", "is required")

    @staticmethod
    def _authorize(report_type: ReportType, params: ReportParams, scope: CallerScope) -> None:
        if scope.role not in REPORT_ACCESS[report_type]:
            raise AccessDeniedException(
                detail=f"Role '{scope.role.value}' may not view the {report_type.value} report.",
                report_type=report_type.value,
            )
        if report_type == ReportType.staff:
            target = params.staff_id
            own = scope.staff_id is not None and target == scope.staff_id
            if (scope.role == UserRole.staff and not own) or not (own or scope.permits(target)):
                raise AccessDeniedException(
                    detail=f"Staff report for '{target}' is outside your viewing scope.",
                    report_type=report_type.value,
                )

    # ═════════════════════════════════════════════════════════════════
    # Fetch helpers
    # ═════════════════════════════════════════════════════════════════

    async def _profiles(self, staff_ids: Optional[frozenset[uuid.UUID]]) -> dict[uuid.UUID, Any]:
        staff = await self._store.fetch(
            EntityKind.staff,
            RecordFilter(entity=EntityKind.staff, staff_ids=staff_ids),
        )
        return {member.id: member for member in staff}

    async def _active_staff(self, params: ReportParams, scope: CallerScope) -> list[Any]:
        staff_filter = await self._filters.build(EntityKind.staff, params, scope)
        staff = await self._store.fetch(EntityKind.staff, staff_filter)
        return sorted(staff, key=lambda m: (m.department or "", m.last_name, m.first_name))

    # ═════════════════════════════════════════════════════════════════
    # Attendance / leave / disciplinary
    # ═════════════════════════════════════════════════════════════════

    async def _compose_attendance(self, params: ReportParams, scope: CallerScope) -> Report:
        record_filter = await self._filters.build(EntityKind.attendance, params, scope)
        records, profiles = await gather_all(
            self._store.fetch(EntityKind.attendance, record_filter, sort="date"),
            self._profiles(record_filter.staff_ids),
        )
        summary = summarize_attendance(records, department_of(profiles.values()))
        rows = sorted(
            (attendance_row(r, profiles) for r in records),
            key=lambda row: (row["date"], _by_name(row)),
        )
        return Report(
            report_type=ReportType.attendance,
            title=TITLES[ReportType.attendance],
            period=ReportPeriodInfo(start_date=params.start_date, end_date=params.end_date),
            filters=params.echo(),
            summary_key="summary",
            statistics={"summary": summary.model_dump(mode="json")},
            detail_key="attendance",
            details=rows,
            generated_at=_now(),
        )

    async def _compose_leave(self, params: ReportParams, scope: CallerScope) -> Report:
        record_filter = await self._filters.build(EntityKind.leave, params, scope)
        leaves, profiles = await gather_all(
            self._store.fetch(EntityKind.leave, record_filter, sort="-created_at"),
            self._profiles(record_filter.staff_ids),
        )
        statistics = summarize_leave(leaves)
        return Report(
            report_type=ReportType.leave,
            title=TITLES[ReportType.leave],
            period=ReportPeriodInfo(start_date=params.start_date, end_date=params.end_date),
            filters=params.echo(),
            statistics={"statistics": statistics.model_dump(mode="json")},
            detail_key="leaves",
            details=[leave_row(l, profiles) for l in leaves],
            generated_at=_now(),
        )

    async def _compose_disciplinary(self, params: ReportParams, scope: CallerScope) -> Report:
        record_filter = await self._filters.build(EntityKind.disciplinary, params, scope)
        cases, profiles = await gather_all(
            self._store.fetch(EntityKind.disciplinary, record_filter, sort="-created_at"),
            self._profiles(record_filter.staff_ids),
        )
        statistics = summarize_disciplinary(cases, department_of(profiles.values()))
        return Report(
            report_type=ReportType.disciplinary,
            title=TITLES[ReportType.disciplinary],
            period=ReportPeriodInfo(start_date=params.start_date, end_date=params.end_date),
            filters=params.echo(),
            statistics={"statistics": statistics.model_dump(mode="json")},
            detail_key="cases",
            details=[case_row(c, profiles) for c in cases],
            generated_at=_now(),
        )

    # ═════════════════════════════════════════════════════════════════
    # Performance
    # ═════════════════════════════════════════════════════════════════

    async def _score_window(
        self,
        staff_ids: frozenset[uuid.UUID],
        start: date,
    ) -> tuple[dict, dict, dict]:
        """Attendance, approved leave and open cases since *start*, per staff id."""
        attendance, leaves, cases = await gather_all(
            self._store.fetch(
                EntityKind.attendance,
                range_filter(EntityKind.attendance, start, None).narrowed(staff_ids=staff_ids),
            ),
            self._store.fetch(
                EntityKind.leave,
                range_filter(EntityKind.leave, start, None, date_field="start_date").narrowed(
                    staff_ids=staff_ids,
                    equals={"status": LeaveStatus.approved.value},
                ),
            ),
            self._store.fetch(
                EntityKind.disciplinary,
                range_filter(EntityKind.disciplinary, start, None).narrowed(
                    staff_ids=staff_ids,
                    any_of={"status": OPEN_CASE_STATUSES},
                ),
            ),
        )
        return group_by_staff(attendance), group_by_staff(leaves), group_by_staff(cases)

    async def _compose_performance(self, params: ReportParams, scope: CallerScope) -> Report:
        period = as_period(params.period or ReportPeriod.month)
        today = params.reference_date or _today()
        start = lookback_start(period, today)

        staff = await self._active_staff(params, scope)
        attendance, leaves, cases = await self._score_window(
            frozenset(member.id for member in staff), start
        )

        rows = []
        for member in staff:
            result = score_staff(
                attendance.get(member.id, []),
                leaves.get(member.id, []),
                cases.get(member.id, []),
                period=period,
                start_date=start,
                end_date=today,
                weights=self._weights,
            )
            rows.append({
                "employee_code": member.employee_code,
                "name": member.full_name,
                "department": member.department,
                "position": member.position,
                **result.model_dump(include={
                    "total_days", "present_days", "attendance_rate", "leaves_taken",
                    "leave_applications", "disciplinary_cases", "score",
                }),
            })
        rows.sort(key=lambda row: (-row["score"], _by_name(row)))

        scores = [row["score"] for row in rows]
        statistics = {
            "period": period.value,
            "department": params.department or "All",
            "total_staff": len(rows),
            "average_score": round(sum(scores) / len(scores), 2) if scores else 0.0,
            "highest_score": max(scores, default=0.0),
            "lowest_score": min(scores, default=0.0),
            "average_attendance_rate": (
                round(sum(r["attendance_rate"] for r in rows) / len(rows), 2) if rows else 0.0
            ),
            "open_disciplinary_cases": sum(r["disciplinary_cases"] for r in rows),
        }
        return Report(
            report_type=ReportType.performance,
            title=TITLES[ReportType.performance],
            period=ReportPeriodInfo(start_date=start, end_date=today, label=period.value),
            filters=params.echo(),
            statistics={"statistics": statistics},
            detail_key="data",
            details=rows,
            generated_at=_now(),
        )

    # ═════════════════════════════════════════════════════════════════
    # Department
    # ═════════════════════════════════════════════════════════════════

    async def _compose_department(self, params: ReportParams, scope: CallerScope) -> Report:
        """Per-department rollup from one fetch per entity kind.

        Attendance and leave default to all records; disciplinary cases
        default to the last six months. A date range narrows all three.

        Records count toward their owner's department whatever the owner's
        role or active flag; ``staff_count`` is active staff only.
        """
        today = params.reference_date or _today()
        staff_ids = await self._filters.resolve_staff_ids(params, scope)

        if params.has_date_range:
            windows = {kind: (params.start_date, params.end_date) for kind in EntityKind}
        else:
            windows = {kind: (None, None) for kind in EntityKind}
            windows[EntityKind.disciplinary] = (shift_months(today, -6), None)

        profiles, attendance, leaves, cases = await gather_all(
            self._profiles(staff_ids),
            *(
                self._store.fetch(kind, range_filter(kind, *windows[kind]).narrowed(staff_ids=staff_ids))
                for kind in (EntityKind.attendance, EntityKind.leave, EntityKind.disciplinary)
            ),
        )
        departments = department_of(profiles.values())
        staff = [
            member for member in profiles.values()
            if plain(member.role) == UserRole.staff.value and member.is_active
        ]

        attendance_groups = partition_by_department(attendance, departments)
        leave_groups = partition_by_department(leaves, departments)
        case_groups = partition_by_department(cases, departments)
        staff_groups = partition_by_department(
            [_StaffRef(member) for member in staff], departments
        )

        rows: list[dict[str, Any]] = []
        by_type: list[dict[str, Any]] = []
        seen = set(staff_groups) | set(attendance_groups) | set(leave_groups) | set(case_groups)
        for department in sorted(seen):
            dept_attendance = attendance_groups.get(department, [])
            dept_leaves = leave_groups.get(department, [])
            counts = attendance_status_counts(dept_attendance)
            summary = summarize_attendance(dept_attendance)
            leave_stats = summarize_leave(dept_leaves)
            rows.append({
                "department": department,
                "staff_count": len(staff_groups.get(department, [])),
                **{key: counts[key] for key in ("present", "absent", "late", "leave", "off_duty", UNSPECIFIED)},
                "attendance_rate": summary.average_attendance,
                "leaves_approved": leave_stats.approved,
                "leaves_pending": leave_stats.pending,
                "leave_days": sum(b.total_days for b in leave_stats.by_type.values()),
                "disciplinary_cases": len(case_groups.get(department, [])),
            })
            for leave_type, breakdown in leave_stats.by_type.items():
                pending = sum(
                    1 for l in dept_leaves
                    if (plain(l.leave_type) or UNSPECIFIED) == leave_type
                    and plain(l.status) == LeaveStatus.pending.value
                )
                by_type.append({
                    "department": department,
                    "leave_type": leave_type,
                    "approved": breakdown.approved,
                    "pending": pending,
                    "total_days": breakdown.total_days,
                })

        overall = summarize_attendance(attendance)
        statistics = {
            "total_departments": len(rows),
            "total_staff": len(staff),
            "attendance_records": overall.total_days,
            "attendance_rate": overall.average_attendance,
            "total_leaves": len(leaves),
            "disciplinary_cases": len(cases),
        }
        return Report(
            report_type=ReportType.department,
            title=TITLES[ReportType.department],
            period=ReportPeriodInfo(start_date=params.start_date, end_date=params.end_date),
            filters=params.echo(),
            statistics={"statistics": statistics},
            detail_key="departments",
            details=rows,
            sections={"leaves_by_type": by_type},
            generated_at=_now(),
        )

    # ═════════════════════════════════════════════════════════════════
    # Dashboard
    # ═════════════════════════════════════════════════════════════════

    async def _compose_dashboard(self, params: ReportParams, scope: CallerScope) -> Report:
        period = as_period(params.period or ReportPeriod.month)
        today = params.reference_date or _today()
        start = lookback_start(period, today)
        month_ago = shift_months(today, -1)
        present_from = min(start, month_ago, daily_window(today)[0])
        trend_start, trend_end = monthly_window(today)

        present_filter = range_filter(EntityKind.attendance, present_from, today).narrowed(
            equals={"status": AttendanceStatus.present.value},
        )
        (
            total_staff,
            active_staff,
            today_attendance,
            pending_leaves,
            open_cases,
            present,
            trend_leaves,
            staff,
            approved_leaves,
        ) = await gather_all(
            self._store.count(
                EntityKind.staff,
                RecordFilter(entity=EntityKind.staff, equals={"role": UserRole.staff.value}),
            ),
            self._store.get_active_staff_count(),
            self._store.count(EntityKind.attendance, range_filter(EntityKind.attendance, today, today)),
            self._store.count(
                EntityKind.leave,
                RecordFilter(entity=EntityKind.leave, equals={"status": LeaveStatus.pending.value}),
            ),
            self._store.count(
                EntityKind.disciplinary,
                RecordFilter(entity=EntityKind.disciplinary, any_of={"status": OPEN_CASE_STATUSES}),
            ),
            self._store.fetch(EntityKind.attendance, present_filter),
            self._store.fetch(EntityKind.leave, range_filter(EntityKind.leave, trend_start, trend_end)),
            self._active_staff(ReportParams(), scope),
            self._store.fetch(
                EntityKind.leave,
                range_filter(EntityKind.leave, month_ago, None, date_field="start_date").narrowed(
                    equals={"status": LeaveStatus.approved.value},
                ),
            ),
        )

        in_period = [r for r in present if r.date >= start]
        expected = active_staff * working_days_between(start, today)
        summary = DashboardSummary(
            total_staff=total_staff,
            active_staff=active_staff,
            today_attendance=today_attendance,
            pending_leaves=pending_leaves,
            open_disciplinary=open_cases,
            attendance_rate=rate(len(in_period), expected),
        )

        departments = department_of(staff)
        staff_groups = partition_by_department([_StaffRef(m) for m in staff], departments)
        recent_present = partition_by_department(
            [r for r in present if r.date >= month_ago and r.staff_id in departments], departments
        )
        leave_groups = partition_by_department(
            [l for l in approved_leaves if l.staff_id in departments], departments
        )
        rows = []
        for department, members in staff_groups.items():
            headcount = len(members)
            rows.append({
                "department": department,
                "staff_count": headcount,
                "attendance_rate": rate(
                    len(recent_present.get(department, [])),
                    headcount * settings.WORKING_DAYS_PER_MONTH,
                ),
                "approved_leaves": len(leave_groups.get(department, [])),
            })

        return Report(
            report_type=ReportType.dashboard,
            title=TITLES[ReportType.dashboard],
            period=ReportPeriodInfo(start_date=start, end_date=today, label=period.value),
            filters=params.echo(),
            summary_key="summary",
            statistics={"summary": summary.model_dump(mode="json")},
            detail_key="departments",
            details=rows,
            trends={
                "attendance": [
                    p.model_dump(mode="json") for p in daily_trend(present, today, active_staff)
                ],
                "leaves": [p.model_dump(mode="json") for p in monthly_trend(trend_leaves, today)],
            },
            generated_at=_now(),
        )

    # ═════════════════════════════════════════════════════════════════
    # Per staff
    # ═════════════════════════════════════════════════════════════════

    async def _compose_staff(self, params: ReportParams, scope: CallerScope) -> Report:
        staff_id = params.staff_id
        period = as_period(params.period or ReportPeriod.year)
        today = params.reference_date or _today()
        start = lookback_start(period, today)
        only = frozenset({staff_id})

        profiles, attendance, leaves, cases, scored = await gather_all(
            self._profiles(only),
            self._store.fetch(
                EntityKind.attendance,
                range_filter(EntityKind.attendance, start, None).narrowed(staff_ids=only),
                sort="-date",
            ),
            self._store.fetch(
                EntityKind.leave,
                range_filter(EntityKind.leave, start, None).narrowed(staff_ids=only),
                sort="-start_date",
            ),
            self._store.fetch(
                EntityKind.disciplinary,
                range_filter(EntityKind.disciplinary, start, None).narrowed(staff_ids=only),
                sort="-created_at",
            ),
            self._score_window(only, start),
        )
        member = profiles.get(staff_id)
        if member is None:
            raise NotFoundException("Staff", staff_id)

        score_attendance, score_leaves, score_cases = scored
        performance = score_staff(
            score_attendance.get(staff_id, []),
            score_leaves.get(staff_id, []),
            score_cases.get(staff_id, []),
            period=period,
            start_date=start,
            end_date=today,
            weights=self._weights,
        )
        statistics = {
            "attendance": summarize_attendance(attendance).model_dump(
                mode="json", exclude={"by_department"}
            ),
            "leave": summarize_leave(leaves).model_dump(mode="json"),
            "disciplinary": summarize_disciplinary(cases).model_dump(
                mode="json", exclude={"by_department"}
            ),
            "performance": performance.model_dump(mode="json"),
        }
        return Report(
            report_type=ReportType.staff,
            title=f"{TITLES[ReportType.staff]}: {member.full_name}",
            period=ReportPeriodInfo(start_date=start, end_date=today, label=period.value),
            filters=params.echo(),
            statistics=statistics,
            detail_key="records",
            details=[attendance_row(r, profiles) for r in attendance],
            sections={
                "profile": [profile_row(member)],
                "leaves": [leave_row(l, profiles) for l in leaves],
                "cases": [case_row(c, profiles) for c in cases],
            },
            generated_at=_now(),
        )

    # ═════════════════════════════════════════════════════════════════
    # Leave balance
    # ═════════════════════════════════════════════════════════════════

    async def _compose_leave_balance(self, params: ReportParams, scope: CallerScope) -> Report:
        staff = await self._active_staff(params, scope)
        remaining = {leave_type: 0 for leave_type in self._policy.days}

        rows = []
        for member in staff:
            balance = self._policy.balance_for(member.leave_balance)
            row = {
                "employee_code": member.employee_code,
                "name": member.full_name,
                "department": member.department,
                "position": member.position,
            }
            for leave_type, entry in balance.items():
                remaining[leave_type] += entry["remaining"]
                for key in ("total", "taken", "remaining"):
                    row[f"{leave_type}_{key}"] = entry[key]
            rows.append(row)

        statistics = {
            "department": params.department or "All Departments",
            "total_staff": len(rows),
            "policy_version": self._policy.version,
            "entitlements": dict(self._policy.days),
            "remaining_days": remaining,
        }
        return Report(
            report_type=ReportType.leave_balance,
            title=TITLES[ReportType.leave_balance],
            filters=params.echo(),
            statistics={"statistics": statistics},
            detail_key="data",
            details=rows,
            generated_at=_now(),
        )


class _StaffRef:
    """Lets staff profiles go through ``partition_by_department``."""

    __slots__ = ("staff_id",)

    def __init__(self, member: Any) -> None:
        self.staff_id = member.id
