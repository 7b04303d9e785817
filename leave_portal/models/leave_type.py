from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Text, JSON
from sqlalchemy.sql import func
from leave_portal.database import Base

class LeaveType(Base):
    """
    Policy configuration for one category of leave.
    Written only by the LeaveTypeRegistry.
    """
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, default="")
    color = Column(String, default="#3b82f6")  # presentation only

    max_days_per_year = Column(Float, nullable=False)
    requires_approval = Column(Boolean, default=True, nullable=False)
    requires_documentation = Column(Boolean, default=False, nullable=False)

    # Carry-over rules
    carry_over_enabled = Column(Boolean, default=False, nullable=False)
    max_carry_over_days = Column(Float, default=0.0)
    carry_over_expiry_months = Column(Integer, default=0)  # 0 = never expires

    # Accrual rules
    accrual_enabled = Column(Boolean, default=False, nullable=False)
    accrual_rate = Column(Float, default=0.0)  # days per month
    max_accrual_days = Column(Float, default=0.0)
    start_accrual_after_months = Column(Integer, default=0)

    # Scope; empty list = applies to everyone
    applicable_roles = Column(JSON, default=list)
    applicable_departments = Column(JSON, default=list)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<LeaveType {self.name} ({self.max_days_per_year:g}d)>"

    def applies_to(self, role=None, department=None) -> bool:
        roles = self.applicable_roles or []
        departments = self.applicable_departments or []
        if roles and role not in roles:
            return False
        if departments and department not in departments:
            return False
        return True
