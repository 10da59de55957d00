"""Performance Scorer — a bounded heuristic score per staff member.

    score = 100 × (attendanceRate / 100) × 0.6
            − min(approvedLeaveCount × 2, 30)
            − openCaseCount × 10

clamped to [0, 100] and rounded to 2 dp. The weights are held in
``ScoreWeights``; changing them changes reported scores.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict

from staffops.common.constants import (
    OPEN_CASE_STATUSES,
    AttendanceStatus,
    LeaveStatus,
    ReportPeriod,
)
from staffops.common.exceptions import InvalidParameterException
from staffops.reports.aggregator import leave_days, plain, rate
from staffops.reports.schemas import PerformanceResult
from staffops.reports.trends import shift_months


class ScoreWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    attendance_weight: float = 0.6
    leave_penalty: float = 2.0
    leave_penalty_cap: float = 30.0
    case_penalty: float = 10.0


DEFAULT_WEIGHTS = ScoreWeights()


def as_period(value: Any) -> ReportPeriod:
    try:
        return ReportPeriod(plain(value))
    except ValueError:
        raise InvalidParameterException(
            "period", f"must be one of {[p.value for p in ReportPeriod]}"
        ) from None


def lookback_start(period: Any, today: date) -> date:
    """First day of the lookback window for *period* ending at *today*."""
    period = as_period(period)
    if period == ReportPeriod.week:
        return today - timedelta(days=7)
    if period == ReportPeriod.month:
        return shift_months(today, -1)
    if period == ReportPeriod.quarter:
        return shift_months(today, -3)
    return shift_months(today, -12)


def attendance_rate(present_days: int, total_days: int) -> float:
    return rate(present_days, total_days)


def performance_score(
    attendance_rate: float,
    leave_count: int,
    case_count: int,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> float:
    """Bounded score in [0, 100], rounded to 2 dp."""
    if math.isnan(attendance_rate):
        attendance_rate = 0.0
    score = 100 * (attendance_rate / 100) * weights.attendance_weight
    score -= min(max(leave_count, 0) * weights.leave_penalty, weights.leave_penalty_cap)
    score -= max(case_count, 0) * weights.case_penalty
    return round(max(0.0, min(100.0, score)), 2)


def score_staff(
    attendance: Sequence[Any],
    leaves: Sequence[Any],
    cases: Sequence[Any],
    *,
    period: ReportPeriod,
    start_date: date,
    end_date: date,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> PerformanceResult:
    """Score one staff member from records already fetched for the window.

    Only approved leave and open or under-review cases count against the
    score.
    """
    present = sum(1 for r in attendance if plain(r.status) == AttendanceStatus.present.value)
    approved = [l for l in leaves if plain(l.status) == LeaveStatus.approved.value]
    open_cases = [c for c in cases if plain(c.status) in OPEN_CASE_STATUSES]
    rate_ = attendance_rate(present, len(attendance))

    return PerformanceResult(
        period=period,
        start_date=start_date,
        end_date=end_date,
        total_days=len(attendance),
        present_days=present,
        attendance_rate=rate_,
        leaves_taken=sum(leave_days(l) for l in approved),
        leave_applications=len(approved),
        disciplinary_cases=len(open_cases),
        score=performance_score(rate_, len(approved), len(open_cases), weights),
    )
