"""Report Composer tests — gating before fetch, all-or-nothing composition,
and every report type against the SQLite-backed record store."""

from __future__ import annotations

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from staffops.attendance.models import AttendanceRecord
from staffops.common.constants import EntityKind, UserRole, UNSPECIFIED
from staffops.common.exceptions import (
    AccessDeniedException,
    InvalidParameterException,
    NotFoundException,
    UpstreamFetchError,
)
from staffops.disciplinary.models import DisciplinaryCase
from staffops.leave.models import LeaveApplication
from staffops.leave.policy import LeaveEntitlementPolicy
from staffops.reports.aggregator import rate, working_days_between
from staffops.reports.schemas import CallerScope
from staffops.reports.service import ReportComposer, gather_all
from staffops.staff.models import Staff
from tests.conftest import (
    TODAY,
    _make_attendance,
    _make_case,
    _make_leave,
    _make_staff,
    _seed,
)

# Ten weekdays in February 2026
FEB_WEEKDAYS = [
    date(2026, 2, d) for d in (2, 3, 4, 5, 6, 9, 10, 11, 12, 13)
]


class _FakeStore:
    """In-memory ``RecordStore`` that returns nothing and records every call.

    ``fail_on`` makes fetches of that entity raise; ``delay`` makes every
    other fetch wait first.
    """

    def __init__(self, *, fail_on: EntityKind | None = None, delay: float = 0.0):
        self.fail_on = fail_on
        self.delay = delay
        self.calls: list[str] = []
        self.cancelled: list[str] = []

    async def fetch(self, entity, record_filter=None, *, sort=None):
        self.calls.append(entity.value)
        if entity == self.fail_on:
            raise UpstreamFetchError(entity.value, "connection reset")
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled.append(entity.value)
            raise
        return []

    async def count(self, entity, record_filter=None):
        self.calls.append(f"count:{entity.value}")
        return 0

    async def resolve_staff_ids_by_department(self, department):
        self.calls.append(f"department:{department}")
        return []

    async def resolve_supervised_staff_ids(self, supervisor_id):
        return []

    async def get_active_staff_count(self):
        self.calls.append("active_staff")
        return 0


ATTENDANCE_RANGE = {"startDate": "2026-02-01", "endDate": "2026-02-20"}


# ═════════════════════════════════════════════════════════════════════
# Gates: nothing is fetched for an invalid or unauthorised request
# ═════════════════════════════════════════════════════════════════════


class TestGates:
    async def test_attendance_without_dates_rejected_before_fetch(self):
        store = _FakeStore()
        composer = ReportComposer(store)

        with pytest.raises(InvalidParameterException) as exc:
            await composer.compose_report("attendance", {"startDate": "2026-02-01"})

        assert exc.value.field == "endDate"
        assert exc.value.report_type == "attendance"
        assert store.calls == []

    async def test_staff_report_requires_staff_id(self):
        store = _FakeStore()
        with pytest.raises(InvalidParameterException) as exc:
            await ReportComposer(store).compose_report("staff", {})
        assert exc.value.field == "staffId"
        assert store.calls == []

    async def test_unknown_report_type(self):
        with pytest.raises(InvalidParameterException) as exc:
            await ReportComposer(_FakeStore()).compose_report("payroll")
        assert exc.value.field == "reportType"

    @pytest.mark.parametrize("report_type", ["dashboard", "performance", "disciplinary", "department"])
    async def test_role_gate_denies_before_fetch(self, report_type):
        store = _FakeStore()
        scope = CallerScope(
            role=UserRole.staff,
            staff_id=uuid.uuid4(),
            allowed_staff_ids=frozenset(),
        )
        with pytest.raises(AccessDeniedException):
            await ReportComposer(store).compose_report(report_type, {}, scope)
        assert store.calls == []

    async def test_staff_role_cannot_view_another_members_report(self):
        store = _FakeStore()
        me = uuid.uuid4()
        scope = CallerScope(role=UserRole.staff, staff_id=me, allowed_staff_ids=frozenset({me}))

        with pytest.raises(AccessDeniedException):
            await ReportComposer(store).compose_report("staff", {"staffId": str(uuid.uuid4())}, scope)
        assert store.calls == []

    async def test_staff_role_own_report_passes_gate(self):
        store = _FakeStore()
        me = uuid.uuid4()
        scope = CallerScope(role=UserRole.staff, staff_id=me, allowed_staff_ids=frozenset({me}))

        # The fake store knows nobody, so the gate is passed and the lookup fails.
        with pytest.raises(NotFoundException):
            await ReportComposer(store).compose_report("staff", {"staffId": str(me)}, scope)
        assert "staff" in store.calls

    async def test_supervisor_target_outside_scope_denied_before_fetch(self):
        store = _FakeStore()
        supervisor = uuid.uuid4()
        scope = CallerScope(
            role=UserRole.supervisor,
            staff_id=supervisor,
            allowed_staff_ids=frozenset({supervisor}),
        )
        with pytest.raises(AccessDeniedException):
            await ReportComposer(store).compose_report(
                "leave", {"staffId": str(uuid.uuid4())}, scope
            )
        assert store.calls == []


# ═════════════════════════════════════════════════════════════════════
# All-or-nothing composition
# ═════════════════════════════════════════════════════════════════════


class TestFailures:
    async def test_failed_sub_fetch_fails_report_and_cancels_siblings(self):
        store = _FakeStore(fail_on=EntityKind.attendance, delay=5.0)
        composer = ReportComposer(store, timeout=30)

        with pytest.raises(UpstreamFetchError) as exc:
            await composer.compose_report("attendance", ATTENDANCE_RANGE)

        assert exc.value.source == "attendance"
        assert exc.value.status_code == 502
        assert store.cancelled == ["staff"]

    async def test_timeout_raises_upstream_failure(self):
        store = _FakeStore(delay=5.0)
        composer = ReportComposer(store)

        with pytest.raises(UpstreamFetchError) as exc:
            await composer.compose_report("leave", {}, timeout=0.05)

        assert "timed out" in exc.value.detail
        assert set(store.cancelled) == {"leave", "staff"}

    async def test_unexpected_store_error_becomes_upstream_failure(self):
        class _DroppedStore(_FakeStore):
            async def fetch(self, entity, record_filter=None, *, sort=None):
                raise ConnectionError("db down")

        with pytest.raises(UpstreamFetchError) as exc:
            await ReportComposer(_DroppedStore()).compose_report("leave", {})

        assert exc.value.status_code == 502
        assert exc.value.source == "leave"
        assert "ConnectionError" in exc.value.detail
        assert isinstance(exc.value.__cause__, ConnectionError)

    async def test_gather_all_returns_in_order(self):
        async def value(v, wait):
            await asyncio.sleep(wait)
            return v

        assert await gather_all(value(1, 0.02), value(2, 0.0), value(3, 0.01)) == [1, 2, 3]


# ═════════════════════════════════════════════════════════════════════
# Attendance / leave / disciplinary against the SQL store
# ═════════════════════════════════════════════════════════════════════


class TestAttendanceReport:
    async def test_accounted_for_scenario(self, db, store):
        member = _make_staff(first_name="Amina", last_name="Otieno")
        await _seed(db, Staff, member)
        statuses = ["present"] * 7 + ["absent", "late", "leave"]
        await _seed(
            db, AttendanceRecord,
            *(_make_attendance(member["id"], day, status) for day, status in zip(FEB_WEEKDAYS, statuses)),
            _make_attendance(member["id"], date(2026, 1, 15)),   # outside the range
        )

        report = await ReportComposer(store).compose_report("attendance", ATTENDANCE_RANGE)
        payload = report.to_payload()

        assert payload["reportType"] == "attendance"
        assert payload["summary"]["total_days"] == 10
        assert payload["summary"]["present"] == 7
        assert payload["summary"]["average_attendance"] == 90.0
        assert payload["summary"]["by_department"]["Health"]["total"] == 10
        assert payload["totalRecords"] == 10
        assert len(payload["attendance"]) == 10
        assert payload["filters"] == ATTENDANCE_RANGE
        assert [row["date"] for row in payload["attendance"]] == sorted(d.isoformat() for d in FEB_WEEKDAYS)

    async def test_rows_carry_staff_columns_and_hours(self, db, store):
        member = _make_staff(first_name="Amina", last_name="Otieno")
        await _seed(db, Staff, member)
        await _seed(
            db, AttendanceRecord,
            _make_attendance(
                member["id"], date(2026, 2, 16),
                check_in=datetime(2026, 2, 16, 8, 0, tzinfo=timezone.utc),
                check_out=datetime(2026, 2, 16, 16, 0, tzinfo=timezone.utc),
            ),
            _make_attendance(member["id"], date(2026, 2, 17)),
        )

        report = await ReportComposer(store).compose_report("attendance", ATTENDANCE_RANGE)

        first, second = report.details
        assert first["name"] == "Amina Otieno"
        assert first["department"] == "Health"
        assert first["hours_worked"] == 8.0
        assert second["hours_worked"] is None

    async def test_empty_range_is_a_valid_report(self, store):
        report = await ReportComposer(store).compose_report("attendance", ATTENDANCE_RANGE)
        assert report.total_records == 0
        assert report.statistics["summary"]["average_attendance"] == 0.0


class TestLeaveReport:
    async def test_statistics_and_status_filter(self, db, store):
        a = _make_staff(first_name="Amina")
        b = _make_staff(first_name="Brian", department="Finance")
        await _seed(db, Staff, a, b)
        await _seed(
            db, LeaveApplication,
            _make_leave(a["id"], leave_type="annual", status="approved", days=5),
            _make_leave(a["id"], leave_type="annual", status="rejected", days=2),
            _make_leave(b["id"], leave_type="sick", status="approved", days=1),
            _make_leave(b["id"], leave_type="sick", status="pending", days=3),
        )
        composer = ReportComposer(store)

        everything = await composer.compose_report("leave", {})
        stats = everything.to_payload()["statistics"]
        assert stats["total"] == 4
        assert stats["approved"] == 2
        assert stats["approval_rate"] == 50.0
        assert stats["by_type"]["annual"] == {"total": 2, "approved": 1, "days": 5, "total_days": 7}

        approved = await composer.compose_report("leave", {"status": "approved"})
        assert approved.total_records == 2
        assert all(row["status"] == "approved" for row in approved.to_payload()["leaves"])

    async def test_supervisor_sees_only_supervised_staff(self, db, store):
        supervisor = _make_staff(first_name="Sara", role=UserRole.supervisor)
        mine = _make_staff(first_name="Amina", supervisor_id=supervisor["id"])
        other = _make_staff(first_name="Brian")
        await _seed(db, Staff, supervisor, mine, other)
        await _seed(
            db, LeaveApplication,
            _make_leave(mine["id"]),
            _make_leave(other["id"]),
            _make_leave(other["id"]),
        )
        scope = CallerScope(
            role=UserRole.supervisor,
            staff_id=supervisor["id"],
            allowed_staff_ids=frozenset({supervisor["id"], mine["id"]}),
        )

        report = await ReportComposer(store).compose_report("leave", {}, scope)

        assert report.total_records == 1
        assert report.details[0]["name"] == "Amina Staff"

    async def test_created_at_range_uses_local_calendar_days(self, db, store):
        member = _make_staff()
        await _seed(db, Staff, member)
        await _seed(
            db, LeaveApplication,
            # 00:30 on 1 March in Nairobi
            _make_leave(member["id"], created_at=datetime(2026, 2, 28, 21, 30, tzinfo=timezone.utc)),
            # 00:30 on 1 April in Nairobi
            _make_leave(member["id"], created_at=datetime(2026, 3, 31, 21, 30, tzinfo=timezone.utc)),
        )

        report = await ReportComposer(store).compose_report(
            "leave", {"startDate": "2026-03-01", "endDate": "2026-03-31"}
        )

        assert report.total_records == 1
        assert report.statistics["statistics"]["total"] == 1


class TestDisciplinaryReport:
    async def test_statistics(self, db, store):
        member = _make_staff()
        await _seed(db, Staff, member)
        await _seed(
            db, DisciplinaryCase,
            _make_case(member["id"], infraction_type="minor"),
            _make_case(member["id"], infraction_type="major", status="resolved", sanction="warning"),
        )

        report = await ReportComposer(store).compose_report("disciplinary", {})
        payload = report.to_payload()

        assert payload["statistics"]["total"] == 2
        assert payload["statistics"]["resolution_rate"] == 50.0
        assert payload["statistics"]["by_sanction"] == {"none": 1, "warning": 1}
        assert payload["statistics"]["by_department"]["Health"]["total"] == 2
        assert len(payload["cases"]) == 2


# ═════════════════════════════════════════════════════════════════════
# Performance / department / dashboard
# ═════════════════════════════════════════════════════════════════════


class TestPerformanceReport:
    async def test_sorted_by_score(self, db, store):
        a = _make_staff(first_name="Amina")
        b = _make_staff(first_name="Brian")
        await _seed(db, Staff, a, b)
        a_statuses = ["present"] * 8 + ["absent"] * 2
        await _seed(
            db, AttendanceRecord,
            *(_make_attendance(a["id"], d, s) for d, s in zip(FEB_WEEKDAYS, a_statuses)),
            *(_make_attendance(b["id"], d) for d in FEB_WEEKDAYS),
        )
        await _seed(db, LeaveApplication, _make_leave(a["id"], status="approved"))
        await _seed(db, DisciplinaryCase, _make_case(b["id"]))

        with patch("staffops.reports.service._today", return_value=TODAY):
            report = await ReportComposer(store).compose_report("performance", {})

        rows = report.details
        assert [row["name"] for row in rows] == ["Brian Staff", "Amina Staff"]
        assert rows[0]["score"] == 50.0   # 60 − 10
        assert rows[1]["score"] == 46.0   # 48 − 2
        stats = report.statistics["statistics"]
        assert stats["highest_score"] == 50.0
        assert stats["lowest_score"] == 46.0
        assert stats["average_score"] == 48.0
        assert stats["period"] == "month"
        assert report.period.start_date == date(2026, 1, 20)

    async def test_inactive_staff_not_scored(self, db, store):
        await _seed(
            db, Staff,
            _make_staff(first_name="Amina"),
            _make_staff(first_name="Gone", is_active=False),
        )
        with patch("staffops.reports.service._today", return_value=TODAY):
            report = await ReportComposer(store).compose_report("performance", {"period": "week"})
        assert [row["name"] for row in report.details] == ["Amina Staff"]

    async def test_invalid_period(self, store):
        with pytest.raises(InvalidParameterException) as exc:
            await ReportComposer(store).compose_report("performance", {"period": "decade"})
        assert exc.value.field == "period"


class TestDepartmentReport:
    async def test_rollup_partitions_with_unspecified(self, db, store):
        h1 = _make_staff(first_name="Amina", department="Health")
        h2 = _make_staff(first_name="Brian", department="Health")
        f1 = _make_staff(first_name="Chao", department="Finance")
        floating = _make_staff(first_name="Dana", department=None)
        await _seed(db, Staff, h1, h2, f1, floating)
        await _seed(
            db, AttendanceRecord,
            _make_attendance(h1["id"], date(2026, 2, 16)),
            _make_attendance(h2["id"], date(2026, 2, 16), "absent"),
            _make_attendance(f1["id"], date(2026, 2, 16)),
            _make_attendance(floating["id"], date(2026, 2, 16), "late"),
        )
        await _seed(
            db, LeaveApplication,
            _make_leave(h1["id"], status="approved"),
            _make_leave(f1["id"], leave_type="sick"),
        )
        await _seed(
            db, DisciplinaryCase,
            _make_case(h2["id"]),
            _make_case(h2["id"], created_at=datetime(2025, 6, 1, tzinfo=timezone.utc)),  # older than 6 months
        )

        with patch("staffops.reports.service._today", return_value=TODAY):
            report = await ReportComposer(store).compose_report("department", {})

        rows = {row["department"]: row for row in report.details}
        assert set(rows) == {"Finance", "Health", UNSPECIFIED}
        assert sum(row["staff_count"] for row in rows.values()) == 4
        assert rows["Health"]["present"] == 1
        assert rows["Health"]["absent"] == 1
        assert rows["Health"]["attendance_rate"] == 50.0
        assert rows[UNSPECIFIED]["late"] == 1
        assert rows["Health"]["leaves_approved"] == 1
        assert rows["Finance"]["leaves_pending"] == 1
        assert rows["Health"]["disciplinary_cases"] == 1
        assert report.statistics["statistics"]["disciplinary_cases"] == 1

        by_type = report.sections["leaves_by_type"]
        assert {(r["department"], r["leave_type"]) for r in by_type} == {
            ("Health", "annual"), ("Finance", "sick"),
        }

    async def test_records_of_inactive_and_non_staff_members_are_counted(self, db, store):
        active = _make_staff(first_name="Amina", department="Health")
        departed = _make_staff(first_name="Brian", department="Health", is_active=False)
        supervisor = _make_staff(first_name="Sara", department="Finance", role=UserRole.supervisor)
        await _seed(db, Staff, active, departed, supervisor)
        await _seed(
            db, AttendanceRecord,
            _make_attendance(active["id"], date(2026, 2, 16)),
            _make_attendance(departed["id"], date(2026, 2, 16), "absent"),
            _make_attendance(supervisor["id"], date(2026, 2, 16)),
        )
        await _seed(db, LeaveApplication, _make_leave(departed["id"], status="approved"))
        composer = ReportComposer(store)

        with patch("staffops.reports.service._today", return_value=TODAY):
            report = await composer.compose_report("department", {})
            health_only = await composer.compose_report("department", {"department": "Health"})

        rows = {row["department"]: row for row in report.details}
        assert rows["Health"]["staff_count"] == 1
        assert (rows["Health"]["present"], rows["Health"]["absent"]) == (1, 1)
        assert rows["Health"]["leaves_approved"] == 1
        assert rows["Finance"]["staff_count"] == 0
        assert rows["Finance"]["present"] == 1
        assert UNSPECIFIED not in rows
        stats = report.statistics["statistics"]
        assert stats["attendance_records"] == 3
        assert stats["total_staff"] == 1

        assert [row["department"] for row in health_only.details] == ["Health"]
        assert health_only.details[0]["absent"] == 1


class TestDashboardReport:
    async def test_summary_and_fixed_length_trends(self, db, store):
        a = _make_staff(first_name="Amina")
        b = _make_staff(first_name="Brian")
        gone = _make_staff(first_name="Gone", is_active=False)
        await _seed(db, Staff, a, b, gone)
        await _seed(
            db, AttendanceRecord,
            _make_attendance(a["id"], TODAY),
            _make_attendance(b["id"], TODAY, "absent"),
            _make_attendance(a["id"], TODAY - timedelta(days=2)),
        )
        await _seed(
            db, LeaveApplication,
            _make_leave(a["id"], status="pending"),                                # created 2 Feb 2026
            _make_leave(b["id"], status="approved", start=date(2025, 10, 12)),     # created 5 Oct 2025
        )
        await _seed(db, DisciplinaryCase, _make_case(b["id"]))

        with patch("staffops.reports.service._today", return_value=TODAY):
            report = await ReportComposer(store).compose_report("dashboard", {})

        summary = report.to_payload()["summary"]
        assert summary["total_staff"] == 3
        assert summary["active_staff"] == 2
        assert summary["today_attendance"] == 2
        assert summary["pending_leaves"] == 1
        assert summary["open_disciplinary"] == 1
        assert summary["attendance_rate"] == rate(2, 2 * working_days_between(date(2026, 1, 20), TODAY))

        daily = report.trends["attendance"]
        assert len(daily) == 7
        assert daily[-1]["date"] == TODAY.isoformat()
        assert daily[-1]["attendance"] == 1
        assert daily[-1]["rate"] == 50.0
        assert daily[-3]["attendance"] == 1

        monthly = report.trends["leaves"]
        assert [(p["month"], p["year"]) for p in monthly][0] == ("Sep", 2025)
        assert [p["leaves"] for p in monthly] == [0, 1, 0, 0, 0, 1]

        (health,) = report.details
        assert health["staff_count"] == 2
        assert health["attendance_rate"] == 5.0   # 2 present / (2 × 20)
        assert health["approved_leaves"] == 0

    async def test_reference_date_anchors_windows(self, store):
        report = await ReportComposer(store).compose_report(
            "dashboard", {"referenceDate": "2026-02-20"}
        )
        assert report.trends["attendance"][-1]["date"] == "2026-02-20"
        assert report.trends["leaves"][-1]["month"] == "Feb"
        assert report.period.start_date == date(2026, 1, 20)

    async def test_empty_store_still_has_full_trends(self, store):
        with patch("staffops.reports.service._today", return_value=TODAY):
            report = await ReportComposer(store).compose_report("dashboard", {})
        assert len(report.trends["attendance"]) == 7
        assert len(report.trends["leaves"]) == 6
        assert report.statistics["summary"]["attendance_rate"] == 0.0


# ═════════════════════════════════════════════════════════════════════
# Per staff / leave balance
# ═════════════════════════════════════════════════════════════════════


class TestStaffReport:
    async def test_unknown_staff_not_found(self, store):
        with pytest.raises(NotFoundException):
            await ReportComposer(store).compose_report("staff", {"staffId": str(uuid.uuid4())})

    async def test_own_report_has_all_blocks(self, db, store):
        member = _make_staff(first_name="Amina", last_name="Otieno")
        await _seed(db, Staff, member)
        await _seed(
            db, AttendanceRecord,
            *(_make_attendance(member["id"], d) for d in FEB_WEEKDAYS[:4]),
        )
        await _seed(db, LeaveApplication, _make_leave(member["id"], status="approved"))
        await _seed(db, DisciplinaryCase, _make_case(member["id"], status="resolved"))
        scope = CallerScope(
            role=UserRole.staff,
            staff_id=member["id"],
            allowed_staff_ids=frozenset({member["id"]}),
        )

        with patch("staffops.reports.service._today", return_value=TODAY):
            report = await ReportComposer(store).compose_report(
                "staff", {"staffId": str(member["id"])}, scope
            )

        assert report.title == "Staff Report: Amina Otieno"
        assert set(report.statistics) == {"attendance", "leave", "disciplinary", "performance"}
        assert report.statistics["attendance"]["total_days"] == 4
        assert report.statistics["leave"]["approved"] == 1
        assert report.statistics["disciplinary"]["resolved"] == 1
        # 100% attendance, one approved leave, no open cases
        assert report.statistics["performance"]["score"] == 58.0
        assert report.sections["profile"][0]["name"] == "Amina Otieno"
        assert len(report.sections["leaves"]) == 1
        assert report.period.label == "year"
        # Newest attendance first
        assert report.details[0]["date"] == FEB_WEEKDAYS[3]


class TestLeaveBalanceReport:
    async def test_missing_balances_come_from_policy(self, db, store):
        await _seed(
            db, Staff,
            _make_staff(first_name="Amina"),
            _make_staff(first_name="Brian", leave_balance={"annual": {"total": 25, "taken": 5}}),
        )

        report = await ReportComposer(store).compose_report("leave-balance", {})

        rows = {row["name"]: row for row in report.details}
        assert rows["Amina Staff"]["annual_total"] == 21
        assert rows["Amina Staff"]["annual_remaining"] == 21
        assert rows["Brian Staff"]["annual_remaining"] == 20
        assert rows["Brian Staff"]["maternity_total"] == 90
        stats = report.statistics["statistics"]
        assert stats["policy_version"] == "2024.1"
        assert stats["remaining_days"]["annual"] == 41

    async def test_custom_policy_is_used(self, db, store):
        await _seed(db, Staff, _make_staff())
        policy = LeaveEntitlementPolicy(version="2026.1", days={"annual": 30})

        report = await ReportComposer(store, policy=policy).compose_report("leave-balance", {})

        assert report.details[0]["annual_total"] == 30
        assert "sick_total" not in report.details[0]
        assert report.statistics["statistics"]["policy_version"] == "2026.1"
