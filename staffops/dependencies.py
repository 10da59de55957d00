"""Shared FastAPI dependencies."""

from fastapi import Depends

from staffops.database import async_session_factory
from staffops.leave.policy import LeaveEntitlementPolicy
from staffops.reports.scoring import DEFAULT_WEIGHTS
from staffops.reports.service import ReportComposer
from staffops.reports.store import RecordStore, SqlRecordStore


def get_record_store() -> RecordStore:
    """Read-only record store over the application's session factory."""
    return SqlRecordStore(async_session_factory)


def get_leave_policy() -> LeaveEntitlementPolicy:
    return LeaveEntitlementPolicy()


def get_report_composer(
    store: RecordStore = Depends(get_record_store),
    policy: LeaveEntitlementPolicy = Depends(get_leave_policy),
) -> ReportComposer:
    return ReportComposer(store, policy=policy, weights=DEFAULT_WEIGHTS)
