"""
Read side of the leave workflow: request lists, balances and dashboard
totals, per employee or organization-wide ("all").

Every call is a one-shot snapshot. Workflow calls commit before returning,
so a caller always reads its own writes here.
"""
from datetime import date
from typing import List, Optional, Union

from sqlalchemy import func

from leave_portal.core.exceptions import ValidationError
from leave_portal.models.leave_request import LeaveRequest, LeaveStatus, lookup_leave_status, normalize_leave_status
from leave_portal.schemas.leave import BalanceView, EmployeeContext, LeaveSummary
from leave_portal.services.balance_reconciler import BalanceReconciler
from leave_portal.services.base import BaseService
from leave_portal.services.leave_ledger import BalanceLedger
from leave_portal.services.leave_type_registry import LeaveTypeRegistry

ALL_EMPLOYEES = "all"


def _scope(employee_id: Optional[str]) -> Optional[str]:
    return None if employee_id in (None, ALL_EMPLOYEES) else employee_id


def _status_filter(value: Union[str, LeaveStatus]) -> LeaveStatus:
    status = lookup_leave_status(value)
    if status is None:
        raise ValidationError(
            f"Unknown leave status '{value}'",
            field="status",
            details={"allowed": [s.value for s in LeaveStatus]}
        )
    return status


class LeaveQueryService(BaseService):

    def requests_for(
        self,
        employee_id: str = ALL_EMPLOYEES,
        status: Optional[Union[str, LeaveStatus]] = None,
        leave_type_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> List[LeaveRequest]:
        """Requests newest first. The date range matches any overlap with [start, end]."""
        query = self.db.query(LeaveRequest)
        scoped = _scope(employee_id)
        if scoped:
            query = query.filter(LeaveRequest.employee_id == scoped)
        if status:
            query = query.filter(LeaveRequest.status == _status_filter(status).value)
        if leave_type_id:
            query = query.filter(LeaveRequest.leave_type_id == leave_type_id)
        if start:
            query = query.filter(LeaveRequest.end_date >= start)
        if end:
            query = query.filter(LeaveRequest.start_date <= end)
        return query.order_by(LeaveRequest.submitted_at.desc(), LeaveRequest.id.desc()).all()

    def balances_for(
        self,
        employee_id: str = ALL_EMPLOYEES,
        year: Optional[int] = None,
        as_of: Optional[date] = None
    ) -> List[BalanceView]:
        """Materialized balances only; see balances_for_employee to create missing rows."""
        as_of = as_of or date.today()
        ledger = BalanceLedger(self.db)
        rows = ledger.list_rows(_scope(employee_id), year or as_of.year)
        return [ledger.view(row, as_of) for row in rows]

    def balances_for_employee(
        self,
        employee: EmployeeContext,
        year: Optional[int] = None,
        as_of: Optional[date] = None
    ) -> List[BalanceView]:
        """Balances for every active leave type that applies to the employee, created on first read."""
        as_of = as_of or date.today()
        year = year or as_of.year
        ledger = BalanceLedger(self.db)
        reconciler = BalanceReconciler(self.db)
        views = []
        for leave_type in LeaveTypeRegistry(self.db).list_active(employee.role, employee.department):
            key = (employee.employee_id, leave_type.id, year)
            balance = ledger.find(*key)
            if balance is None:
                balance = reconciler.run_exclusive(key, lambda lt=leave_type: ledger.balance_for(employee, lt, year))
            views.append(ledger.view(balance, as_of))
        return views

    def summary(self, employee_id: str = ALL_EMPLOYEES, year: Optional[int] = None) -> LeaveSummary:
        query = self.db.query(
            LeaveRequest.status,
            func.count(LeaveRequest.id),
            func.coalesce(func.sum(LeaveRequest.total_days), 0)
        )
        scoped = _scope(employee_id)
        if scoped:
            query = query.filter(LeaveRequest.employee_id == scoped)
        if year:
            query = query.filter(LeaveRequest.balance_year == year)

        summary = LeaveSummary()
        for status, count, days in query.group_by(LeaveRequest.status).all():
            normalized = normalize_leave_status(status)
            setattr(summary, normalized.value, getattr(summary, normalized.value) + count)
            summary.total_requests += count
            if normalized is LeaveStatus.APPROVED:
                summary.approved_days += float(days)
            elif normalized is LeaveStatus.PENDING:
                summary.pending_days += float(days)
        return summary
