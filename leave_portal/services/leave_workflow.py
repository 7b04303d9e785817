"""
Leave Request Lifecycle

This module is the sole writer of LeaveRequest.status.

States: pending -> approved | rejected | cancelled. Terminal states never
change again. Balance effects go through the BalanceReconciler inside its
critical section, so the sufficiency check and the reservation are one unit,
and every status change is a compare-and-swap on `status = 'pending'`.

Architecture:
- Router -> LeaveWorkflowService (this module) -> Reconciler/Ledger -> Models
- Each public call commits before returning (read-your-writes for the caller)
- Events go to NotificationService after the transition committed
"""
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from leave_portal.core.exceptions import (
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from leave_portal.core.locks import KeyedLockRegistry
from leave_portal.models.leave_request import LeaveRequest, LeaveStatus
from leave_portal.models.leave_type import LeaveType
from leave_portal.schemas.leave import EmployeeContext, LeaveRequestCreate
from leave_portal.services.balance_reconciler import BalanceReconciler
from leave_portal.services.base import BaseService
from leave_portal.services.leave_ledger import EPSILON, BalanceLedger, calculate_total_days, remaining_days
from leave_portal.services.leave_type_registry import LeaveTypeRegistry
from leave_portal.services.notification import (
    NotificationService,
    REQUEST_APPROVED,
    REQUEST_CANCELLED,
    REQUEST_REJECTED,
    REQUEST_SUBMITTED,
)

SYSTEM_ACTOR = "system"

REQUIRED_FIELDS = ("leave_type_id", "start_date", "end_date", "reason")

_EVENTS = {
    LeaveStatus.APPROVED: REQUEST_APPROVED,
    LeaveStatus.REJECTED: REQUEST_REJECTED,
    LeaveStatus.CANCELLED: REQUEST_CANCELLED,
}


class LeaveWorkflowService(BaseService):

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationService] = None,
        locks: Optional[KeyedLockRegistry] = None
    ):
        super().__init__(db)
        self.registry = LeaveTypeRegistry(db)
        self.ledger = BalanceLedger(db)
        self.reconciler = BalanceReconciler(db, locks=locks)
        self.notifier = notifier or NotificationService(db)

    # --- Submission ---

    def submit(
        self,
        employee: EmployeeContext,
        payload: LeaveRequestCreate,
        today: Optional[date] = None
    ) -> LeaveRequest:
        """
        Validate, check the balance and reserve the days as one unit.

        The balance year is the current year at submission. Display fields
        (employee name, department, leave type name) are copied now and are
        intentionally never refreshed afterwards.

        Raises:
            ValidationError: missing field, bad dates, inactive or
                inapplicable leave type, missing documentation.
            InsufficientBalanceError: remaining days < requested days.
            TransientError: balance contention or database trouble while
                reserving. A type without approval whose auto-approval hits
                this is returned still pending instead.
        """
        today = today or date.today()
        for field in REQUIRED_FIELDS:
            value = getattr(payload, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"{field} is required", field=field)

        total_days = calculate_total_days(payload.start_date, payload.end_date)
        leave_type = self._resolve_leave_type(payload.leave_type_id, employee)
        if leave_type.requires_documentation and not payload.attachments:
            raise ValidationError(
                f"{leave_type.name} requires supporting documentation",
                field="attachments",
                details={"leave_type_id": leave_type.id}
            )

        year = today.year
        key = (employee.employee_id, leave_type.id, year)

        def unit() -> LeaveRequest:
            balance = self.ledger.balance_for(employee, leave_type, year)
            available = remaining_days(balance, today)
            if available + EPSILON < total_days:
                raise InsufficientBalanceError(
                    leave_type_id=leave_type.id,
                    leave_type_name=leave_type.name,
                    requested_days=total_days,
                    remaining_days=max(available, 0.0),
                )
            request = LeaveRequest(
                employee_id=employee.employee_id,
                employee_name=employee.name,
                department=employee.department,
                leave_type_id=leave_type.id,
                leave_type_name=leave_type.name,
                start_date=payload.start_date,
                end_date=payload.end_date,
                total_days=total_days,
                balance_year=year,
                reason=payload.reason.strip(),
                urgency_level=payload.urgency_level.value,
                business_impact=payload.business_impact,
                coverage_arrangements=payload.coverage_arrangements,
                attachments=list(payload.attachments),
                status=LeaveStatus.PENDING.value,
                submitted_at=datetime.now(timezone.utc),
            )
            self.db.add(request)
            self.reconciler.reserve(balance, total_days, as_of=today)
            return request

        request = self.reconciler.run_exclusive(key, unit)
        self.log_info(
            f"Leave request {request.id} submitted by {employee.employee_id}: "
            f"{total_days} day(s) of {leave_type.name}"
        )
        self.notifier.emit(REQUEST_SUBMITTED, request, actor_id=employee.employee_id)

        if not leave_type.requires_approval:
            # The pending request is already committed at this point
            try:
                request = self.approve(
                    request.id, SYSTEM_ACTOR,
                    note="Auto-approved: leave type does not require approval",
                    today=today
                )
            except TransientError as e:
                self.log_warning(f"Auto-approval of leave request {request.id} deferred, left pending: {e}")
                self.db.refresh(request)
        return request

    def _resolve_leave_type(self, leave_type_id: int, employee: EmployeeContext) -> LeaveType:
        try:
            leave_type = self.registry.get(leave_type_id)
        except NotFoundError:
            raise ValidationError(f"Unknown leave type {leave_type_id}", field="leave_type_id")
        if not leave_type.is_active:
            raise ValidationError(
                f"{leave_type.name} is no longer available for new requests",
                field="leave_type_id",
                details={"leave_type_id": leave_type.id}
            )
        if not self.registry.is_applicable(leave_type, employee.role, employee.department):
            raise ValidationError(
                f"{leave_type.name} does not apply to your role or department",
                field="leave_type_id",
                details={"leave_type_id": leave_type.id}
            )
        return leave_type

    # --- Transitions ---

    def approve(self, request_id: int, approver_id: str, note: Optional[str] = None,
                today: Optional[date] = None) -> LeaveRequest:
        """pending -> approved; reserved days move from pending to used."""
        return self._transition(request_id, approver_id, LeaveStatus.APPROVED, "approve", note, today)

    def reject(self, request_id: int, approver_id: str, reason: Optional[str] = None,
               today: Optional[date] = None) -> LeaveRequest:
        """pending -> rejected; the reservation is released."""
        return self._transition(request_id, approver_id, LeaveStatus.REJECTED, "reject", reason, today)

    def cancel(self, request_id: int, actor_id: str, today: Optional[date] = None) -> LeaveRequest:
        """
        pending -> cancelled, by the requesting employee only.
        Approved requests cannot be cancelled here.
        """
        request = self._get(request_id)
        if request.employee_id != actor_id:
            raise ValidationError(
                "Only the requesting employee can cancel a leave request",
                field="actor_id",
                details={"request_id": request_id}
            )
        return self._transition(request_id, actor_id, LeaveStatus.CANCELLED, "cancel", None, today)

    def _transition(
        self,
        request_id: int,
        actor_id: str,
        target: LeaveStatus,
        action: str,
        note: Optional[str],
        today: Optional[date]
    ) -> LeaveRequest:
        today = today or date.today()
        request = self._get(request_id)
        if request.status != LeaveStatus.PENDING.value:
            raise InvalidStateError(request_id, request.status, action)

        key = (request.employee_id, request.leave_type_id, request.balance_year)
        days = request.total_days

        def unit() -> None:
            # Compare-and-swap: only a still-pending row flips
            updated = self.db.query(LeaveRequest).filter(
                LeaveRequest.id == request_id,
                LeaveRequest.status == LeaveStatus.PENDING.value
            ).update({
                LeaveRequest.status: target.value,
                LeaveRequest.resolved_by: actor_id,
                LeaveRequest.resolved_at: datetime.now(timezone.utc),
                LeaveRequest.resolution_note: note,
            }, synchronize_session=False)
            if updated == 0:
                current = self.db.query(LeaveRequest.status).filter(LeaveRequest.id == request_id).scalar()
                raise InvalidStateError(request_id, current, action)

            balance = self.ledger.require(*key)
            if target is LeaveStatus.APPROVED:
                self.reconciler.commit(balance, days, as_of=today)
            else:
                self.reconciler.release(balance, days, as_of=today)

        self.reconciler.run_exclusive(key, unit)
        self.db.refresh(request)
        self.log_info(f"Leave request {request_id} {target.value} by {actor_id}")
        self.notifier.emit(_EVENTS[target], request, actor_id=actor_id)
        return request

    def _get(self, request_id: int) -> LeaveRequest:
        request = self.db.get(LeaveRequest, request_id)
        if not request:
            raise NotFoundError("LeaveRequest", request_id)
        return request
