# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import leave_type, leave_request, leave_balance, notification

# Explicit class exports for cleaner imports
from .leave_type import LeaveType
from .leave_request import LeaveRequest, LeaveStatus, UrgencyLevel
from .leave_balance import LeaveBalance
from .notification import Notification

__all__ = [
    "LeaveType",
    "LeaveRequest",
    "LeaveStatus",
    "UrgencyLevel",
    "LeaveBalance",
    "Notification",
]
