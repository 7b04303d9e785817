from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from leave_portal.core.config import settings
from leave_portal.core.limiter import limiter
from leave_portal.core.schemas import ApiResponse
from leave_portal.database import get_db
from leave_portal.routers.auth_deps import get_current_employee, is_approver, require_approver
from leave_portal.schemas.leave import (
    BalanceView,
    EmployeeContext,
    LeaveDecision,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveSummary,
    LeaveTypeCreate,
    LeaveTypeResponse,
    LeaveTypeUpdate,
    NotificationResponse,
)
from leave_portal.services.leave_ledger import display_view
from leave_portal.services.leave_queries import ALL_EMPLOYEES, LeaveQueryService
from leave_portal.services.leave_type_registry import LeaveTypeRegistry
from leave_portal.services.leave_workflow import LeaveWorkflowService
from leave_portal.services.notification import NotificationService

router = APIRouter(prefix="/leave", tags=["leave"])


def _scope_for(employee: EmployeeContext, requested: Optional[str]) -> str:
    """Approvers may read anyone (or "all"); employees only themselves."""
    if is_approver(employee):
        return requested or ALL_EMPLOYEES
    return employee.employee_id


# --- Leave types (HR) ---

@router.post("/types", response_model=LeaveTypeResponse, status_code=201)
def create_leave_type(
    config: LeaveTypeCreate,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(require_approver)
):
    return LeaveTypeRegistry(db).create_type(config, created_by=current.employee_id)

@router.patch("/types/{type_id}", response_model=LeaveTypeResponse)
def update_leave_type(
    type_id: int,
    changes: LeaveTypeUpdate,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(require_approver)
):
    return LeaveTypeRegistry(db).update_type(type_id, changes)

@router.post("/types/{type_id}/deactivate", response_model=LeaveTypeResponse)
def deactivate_leave_type(
    type_id: int,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(require_approver)
):
    return LeaveTypeRegistry(db).deactivate(type_id)

@router.get("/types", response_model=List[LeaveTypeResponse])
def list_leave_types(
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(get_current_employee)
):
    registry = LeaveTypeRegistry(db)
    if is_approver(current):
        return registry.list_active()
    return registry.list_active(role=current.role, department=current.department)

@router.get("/types/{type_id}", response_model=LeaveTypeResponse)
def get_leave_type(
    type_id: int,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(get_current_employee)
):
    return LeaveTypeRegistry(db).get(type_id)


# --- Requests ---

@router.post("/requests", response_model=LeaveRequestResponse, status_code=201)
@limiter.limit(settings.submit_rate_limit)
def submit_leave_request(
    request: Request,
    payload: LeaveRequestCreate = Body(...),
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(get_current_employee)
):
    return LeaveWorkflowService(db).submit(current, payload)

@router.get("/requests", response_model=List[LeaveRequestResponse])
def list_leave_requests(
    employee_id: Optional[str] = None,
    status: Optional[str] = None,
    leave_type_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(get_current_employee)
):
    return LeaveQueryService(db).requests_for(
        _scope_for(current, employee_id),
        status=status,
        leave_type_id=leave_type_id,
        start=start,
        end=end,
    )

@router.post("/requests/{request_id}/approve", response_model=LeaveRequestResponse)
def approve_leave_request(
    request_id: int,
    decision: Optional[LeaveDecision] = None,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(require_approver)
):
    return LeaveWorkflowService(db).approve(request_id, current.employee_id, decision.note if decision else None)

@router.post("/requests/{request_id}/reject", response_model=LeaveRequestResponse)
def reject_leave_request(
    request_id: int,
    decision: Optional[LeaveDecision] = None,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(require_approver)
):
    return LeaveWorkflowService(db).reject(request_id, current.employee_id, decision.note if decision else None)

@router.post("/requests/{request_id}/cancel", response_model=LeaveRequestResponse)
def cancel_leave_request(
    request_id: int,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(get_current_employee)
):
    return LeaveWorkflowService(db).cancel(request_id, current.employee_id)


# --- Balances & dashboard ---

@router.get("/balances", response_model=ApiResponse[List[BalanceView]])
def get_leave_balances(
    year: Optional[int] = None,
    employee_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(get_current_employee)
):
    queries = LeaveQueryService(db)
    scope = _scope_for(current, employee_id)
    if scope == current.employee_id:
        views = queries.balances_for_employee(current, year)
    else:
        views = queries.balances_for(scope, year)
    return ApiResponse.ok([display_view(v) for v in views], metadata={"employee_id": scope})

@router.get("/summary", response_model=ApiResponse[LeaveSummary])
def get_leave_summary(
    year: Optional[int] = None,
    employee_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(get_current_employee)
):
    scope = _scope_for(current, employee_id)
    return ApiResponse.ok(LeaveQueryService(db).summary(scope, year), metadata={"employee_id": scope})


# --- Notifications ---

@router.get("/notifications", response_model=List[NotificationResponse])
def get_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(get_current_employee)
):
    return NotificationService(db).list_for(current.employee_id, unread_only=unread_only)

@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current: EmployeeContext = Depends(get_current_employee)
):
    return NotificationService(db).mark_read(notification_id, current.employee_id)
