from sqlalchemy import Column, Integer, String, Date, ForeignKey, DateTime, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_portal.database import Base
import enum
from typing import Optional
import logging

logger = logging.getLogger(__name__)

class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not LeaveStatus.PENDING

_STATUS_ALIASES = {
    "pending": LeaveStatus.PENDING,
    "approved": LeaveStatus.APPROVED,
    "approve": LeaveStatus.APPROVED,
    "rejected": LeaveStatus.REJECTED,
    "reject": LeaveStatus.REJECTED,
    "cancelled": LeaveStatus.CANCELLED,
    "canceled": LeaveStatus.CANCELLED,
    "cancel": LeaveStatus.CANCELLED,
}

def lookup_leave_status(value) -> Optional[LeaveStatus]:
    """Strict variant: the matching LeaveStatus, or None for an unknown spelling."""
    if isinstance(value, LeaveStatus):
        return value
    return _STATUS_ALIASES.get(str(value).strip().lower())

def normalize_leave_status(value) -> LeaveStatus:
    """Map loose spellings ("Approved", " reject ") onto LeaveStatus. Unknown -> pending."""
    if not value:
        return LeaveStatus.PENDING
    status = lookup_leave_status(value)
    if status is None:
        logger.warning(f"Unknown leave status {value!r}, defaulting to pending")
        return LeaveStatus.PENDING
    return status

class UrgencyLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)

    # Snapshot at submission time. Later renames of the employee or the
    # leave type are intentionally not propagated here.
    employee_name = Column(String, nullable=True)
    department = Column(String, nullable=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), index=True, nullable=False)
    leave_type_name = Column(String, nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Integer, nullable=False)
    balance_year = Column(Integer, nullable=False)  # ledger year holding the reservation

    reason = Column(Text, nullable=False)
    urgency_level = Column(String, default=UrgencyLevel.MEDIUM.value)
    business_impact = Column(Text, nullable=True)
    coverage_arrangements = Column(Text, nullable=True)
    attachments = Column(JSON, default=list)

    # Stored as the enum value for simplicity with SQLite.
    # Only LeaveWorkflowService writes this column.
    status = Column(String, default=LeaveStatus.PENDING.value, index=True, nullable=False)

    submitted_at = Column(DateTime(timezone=True), server_default=func.now())
    resolved_by = Column(String, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolution_note = Column(Text, nullable=True)

    leave_type = relationship("LeaveType")

    def __repr__(self):
        return f"<LeaveRequest {self.id} {self.employee_id} {self.status}>"
