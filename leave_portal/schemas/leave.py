from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import List, Optional

from leave_portal.models.leave_request import UrgencyLevel


class EmployeeContext(BaseModel):
    """Identity as supplied by the session provider. Trusted as given."""
    employee_id: str = Field(min_length=1)
    name: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    hire_date: Optional[date] = None


# --- Leave types ---

class CarryOverRules(BaseModel):
    enabled: bool = False
    max_carry_over_days: float = 0.0
    expiry_months: int = 0  # 0 = never expires

class AccrualRules(BaseModel):
    enabled: bool = False
    accrual_rate: float = 0.0  # days per month
    max_accrual_days: float = 0.0
    start_accrual_after_months: int = 0

class LeaveTypeCreate(BaseModel):
    name: str
    description: str = ""
    color: str = "#3b82f6"
    max_days_per_year: float
    requires_approval: bool = True
    requires_documentation: bool = False
    carry_over_rules: CarryOverRules = Field(default_factory=CarryOverRules)
    accrual_rules: AccrualRules = Field(default_factory=AccrualRules)
    applicable_roles: List[str] = Field(default_factory=list)
    applicable_departments: List[str] = Field(default_factory=list)

class LeaveTypeUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    max_days_per_year: Optional[float] = None
    requires_approval: Optional[bool] = None
    requires_documentation: Optional[bool] = None
    carry_over_rules: Optional[CarryOverRules] = None
    accrual_rules: Optional[AccrualRules] = None
    applicable_roles: Optional[List[str]] = None
    applicable_departments: Optional[List[str]] = None

class LeaveTypeResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    max_days_per_year: float
    requires_approval: bool
    requires_documentation: bool
    carry_over_enabled: bool
    max_carry_over_days: Optional[float] = None
    carry_over_expiry_months: Optional[int] = None
    accrual_enabled: bool
    accrual_rate: Optional[float] = None
    max_accrual_days: Optional[float] = None
    start_accrual_after_months: Optional[int] = None
    applicable_roles: List[str] = Field(default_factory=list)
    applicable_departments: List[str] = Field(default_factory=list)
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# --- Leave requests ---

class LeaveRequestCreate(BaseModel):
    # Required fields are Optional here so the workflow can report exactly
    # which one is missing.
    leave_type_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    business_impact: Optional[str] = None
    coverage_arrangements: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)

class LeaveRequestResponse(BaseModel):
    id: int
    employee_id: str
    employee_name: Optional[str] = None
    department: Optional[str] = None
    leave_type_id: int
    leave_type_name: str
    start_date: date
    end_date: date
    total_days: int
    balance_year: int
    reason: str
    urgency_level: str
    business_impact: Optional[str] = None
    coverage_arrangements: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    status: str
    submitted_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class LeaveDecision(BaseModel):
    note: Optional[str] = None


# --- Balances ---

class Entitlement(BaseModel):
    base_days: float
    accrued_days: float
    carry_over_days: float
    total_entitlement: float

class BalanceView(BaseModel):
    employee_id: str
    leave_type_id: int
    leave_type_name: Optional[str] = None
    year: int
    base_entitlement: float
    accrued_days: float
    carry_over_days: float
    carry_over_expires_on: Optional[date] = None
    total_entitlement: float
    used_days: float
    pending_days: float
    remaining_days: float
    version: int

class LeaveSummary(BaseModel):
    total_requests: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    cancelled: int = 0
    approved_days: float = 0.0
    pending_days: float = 0.0


# --- Notifications ---

class NotificationResponse(BaseModel):
    id: int
    event_type: str
    request_id: int
    employee_id: str
    leave_type_id: int
    actor_id: Optional[str] = None
    message: Optional[str] = None
    is_read: bool
    timestamp: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
