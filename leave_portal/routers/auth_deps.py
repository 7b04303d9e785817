"""
Identity dependencies.

Authentication happens upstream; the gateway forwards the resolved identity
as X-Employee-* headers and the leave API trusts them as given.
"""
import logging
from datetime import date
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from leave_portal.schemas.leave import EmployeeContext

logger = logging.getLogger(__name__)

# Roles allowed to manage leave types and decide on requests
APPROVER_ROLES = {"HR_ADMIN", "HR_MANAGER", "MANAGER"}


def get_current_employee(
    x_employee_id: Optional[str] = Header(default=None),
    x_employee_name: Optional[str] = Header(default=None),
    x_employee_department: Optional[str] = Header(default=None),
    x_employee_role: Optional[str] = Header(default=None),
    x_employee_hire_date: Optional[date] = Header(default=None),
) -> EmployeeContext:
    if not x_employee_id or not x_employee_id.strip():
        logger.warning("Authentication failed: missing employee identity")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not resolve employee identity",
        )
    return EmployeeContext(
        employee_id=x_employee_id.strip(),
        name=x_employee_name,
        department=x_employee_department,
        role=x_employee_role.upper() if x_employee_role else None,
        hire_date=x_employee_hire_date,
    )


def is_approver(employee: EmployeeContext) -> bool:
    return employee.role in APPROVER_ROLES


def require_approver(employee: EmployeeContext = Depends(get_current_employee)) -> EmployeeContext:
    if not is_approver(employee):
        logger.warning(f"Access denied for {employee.employee_id} (role={employee.role})")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return employee
