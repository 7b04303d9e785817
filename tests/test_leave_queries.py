import pytest
from datetime import date

from leave_portal.core.exceptions import ValidationError
from leave_portal.models.leave_balance import LeaveBalance
from leave_portal.models.leave_request import LeaveStatus, normalize_leave_status
from leave_portal.schemas.leave import EmployeeContext, LeaveRequestCreate
from leave_portal.services.leave_queries import ALL_EMPLOYEES, LeaveQueryService
from leave_portal.services.leave_workflow import LeaveWorkflowService

TODAY = date(2026, 3, 2)


@pytest.fixture
def history(db_session, employee, approver, annual_type, make_leave_type):
    """Three requests for the employee and one for a colleague."""
    sick = make_leave_type(name="Sick Leave", max_days=10)
    colleague = EmployeeContext(employee_id="emp-101", name="Lee Park", department="Engineering")
    workflow = LeaveWorkflowService(db_session)

    def submit(who, leave_type, start, end):
        payload = LeaveRequestCreate(leave_type_id=leave_type.id, start_date=start, end_date=end, reason="Time off")
        return workflow.submit(who, payload, today=TODAY)

    approved = submit(employee, annual_type, date(2026, 4, 6), date(2026, 4, 10))
    workflow.approve(approved.id, approver.employee_id, today=TODAY)
    rejected = submit(employee, sick, date(2026, 5, 4), date(2026, 5, 4))
    workflow.reject(rejected.id, approver.employee_id, today=TODAY)
    pending = submit(employee, annual_type, date(2026, 7, 1), date(2026, 7, 3))
    other = submit(colleague, annual_type, date(2026, 4, 8), date(2026, 4, 9))
    return {"approved": approved, "rejected": rejected, "pending": pending, "other": other, "sick": sick}


def test_requests_newest_first(db_session, employee, history):
    requests = LeaveQueryService(db_session).requests_for(employee.employee_id)
    assert [r.id for r in requests] == [history["pending"].id, history["rejected"].id, history["approved"].id]

def test_requests_for_everyone(db_session, history):
    assert len(LeaveQueryService(db_session).requests_for(ALL_EMPLOYEES)) == 4

def test_requests_filter_by_loose_status(db_session, employee, history):
    requests = LeaveQueryService(db_session).requests_for(employee.employee_id, status="Approved")
    assert [r.id for r in requests] == [history["approved"].id]

def test_requests_filter_rejects_unknown_status(db_session, employee, history):
    with pytest.raises(ValidationError) as exc:
        LeaveQueryService(db_session).requests_for(employee.employee_id, status="archived")
    assert exc.value.field == "status"
    assert exc.value.status_code == 422

def test_requests_filter_by_type(db_session, employee, history):
    requests = LeaveQueryService(db_session).requests_for(employee.employee_id, leave_type_id=history["sick"].id)
    assert [r.id for r in requests] == [history["rejected"].id]

def test_requests_filter_by_overlapping_dates(db_session, history):
    requests = LeaveQueryService(db_session).requests_for(ALL_EMPLOYEES, start=date(2026, 4, 9), end=date(2026, 4, 30))
    assert {r.id for r in requests} == {history["approved"].id, history["other"].id}

def test_summary_for_employee(db_session, employee, history):
    summary = LeaveQueryService(db_session).summary(employee.employee_id, year=2026)
    assert summary.total_requests == 3
    assert summary.approved == 1
    assert summary.rejected == 1
    assert summary.pending == 1
    assert summary.cancelled == 0
    assert summary.approved_days == 5
    assert summary.pending_days == 3

def test_summary_for_other_year_is_empty(db_session, employee, history):
    assert LeaveQueryService(db_session).summary(employee.employee_id, year=2025).total_requests == 0

def test_balances_for_everyone(db_session, history):
    views = LeaveQueryService(db_session).balances_for(ALL_EMPLOYEES, year=2026, as_of=TODAY)
    assert len(views) == 3
    mine = next(v for v in views if v.employee_id == "emp-100" and v.leave_type_name == "Annual Leave")
    assert mine.used_days == 5
    assert mine.pending_days == 3
    assert mine.remaining_days == 12

def test_balances_for_employee_materializes_missing_rows(db_session, employee, annual_type, make_leave_type):
    make_leave_type(name="Sick Leave", max_days=10)
    make_leave_type(name="Finance Offsite", applicable_departments=["Finance"])
    queries = LeaveQueryService(db_session)

    views = queries.balances_for_employee(employee, year=2026, as_of=TODAY)

    assert [v.leave_type_name for v in views] == ["Annual Leave", "Sick Leave"]
    assert [v.remaining_days for v in views] == [20, 10]
    assert db_session.query(LeaveBalance).count() == 2
    # A second read reuses the rows
    queries.balances_for_employee(employee, year=2026, as_of=TODAY)
    assert db_session.query(LeaveBalance).count() == 2

@pytest.mark.parametrize("raw, expected", [
    ("Approved", LeaveStatus.APPROVED),
    (" reject ", LeaveStatus.REJECTED),
    ("canceled", LeaveStatus.CANCELLED),
    (None, LeaveStatus.PENDING),
    ("on hold", LeaveStatus.PENDING),
])
def test_normalize_leave_status(raw, expected):
    assert normalize_leave_status(raw) is expected
