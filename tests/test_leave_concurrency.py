import threading
from datetime import date, timedelta

from leave_portal.core.exceptions import InsufficientBalanceError, InvalidStateError
from leave_portal.core.locks import KeyedLockRegistry
from leave_portal.models.leave_balance import LeaveBalance
from leave_portal.models.leave_request import LeaveRequest, LeaveStatus
from leave_portal.schemas.leave import LeaveRequestCreate, LeaveTypeCreate
from leave_portal.services.leave_type_registry import LeaveTypeRegistry
from leave_portal.services.leave_workflow import LeaveWorkflowService

TODAY = date(2026, 3, 2)


def _run_together(workers):
    """Start every worker on the same barrier and collect results or errors."""
    barrier = threading.Barrier(len(workers))
    outcomes = [None] * len(workers)

    def runner(index, work):
        barrier.wait()
        try:
            outcomes[index] = work()
        except Exception as e:
            outcomes[index] = e

    threads = [threading.Thread(target=runner, args=(i, w)) for i, w in enumerate(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def test_concurrent_submissions_never_overdraw(file_sessionmaker, employee):
    setup = file_sessionmaker()
    leave_type = LeaveTypeRegistry(setup).create_type(LeaveTypeCreate(name="Personal Leave", max_days_per_year=5))
    type_id = leave_type.id
    setup.close()

    locks = KeyedLockRegistry()
    sessions = [file_sessionmaker(), file_sessionmaker()]

    def submit(session, start):
        payload = LeaveRequestCreate(
            leave_type_id=type_id, start_date=start, end_date=start + timedelta(days=2),
            reason="Moving house"
        )
        return LeaveWorkflowService(session, locks=locks).submit(employee, payload, today=TODAY)

    outcomes = _run_together([
        lambda: submit(sessions[0], date(2026, 4, 6)),
        lambda: submit(sessions[1], date(2026, 5, 4)),
    ])

    errors = [o for o in outcomes if isinstance(o, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], InsufficientBalanceError)

    check = file_sessionmaker()
    assert check.query(LeaveRequest).count() == 1
    balance = check.query(LeaveBalance).one()
    assert balance.pending_days == 3
    for s in sessions + [check]:
        s.close()


def test_concurrent_approvals_apply_once(file_sessionmaker, employee):
    setup = file_sessionmaker()
    leave_type = LeaveTypeRegistry(setup).create_type(LeaveTypeCreate(name="Annual Leave", max_days_per_year=20))
    payload = LeaveRequestCreate(
        leave_type_id=leave_type.id, start_date=date(2026, 4, 6), end_date=date(2026, 4, 10), reason="Holiday"
    )
    request_id = LeaveWorkflowService(setup).submit(employee, payload, today=TODAY).id
    setup.close()

    locks = KeyedLockRegistry()
    sessions = [file_sessionmaker(), file_sessionmaker()]

    def approve(session, approver_id):
        return LeaveWorkflowService(session, locks=locks).approve(request_id, approver_id, today=TODAY)

    outcomes = _run_together([
        lambda: approve(sessions[0], "mgr-1"),
        lambda: approve(sessions[1], "mgr-2"),
    ])

    errors = [o for o in outcomes if isinstance(o, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], InvalidStateError)

    check = file_sessionmaker()
    assert check.get(LeaveRequest, request_id).status == LeaveStatus.APPROVED.value
    balance = check.query(LeaveBalance).one()
    assert balance.used_days == 5
    assert balance.pending_days == 0
    for s in sessions + [check]:
        s.close()
