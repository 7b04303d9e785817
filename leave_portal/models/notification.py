from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from leave_portal.database import Base

class Notification(Base):
    """Outbox of leave workflow events. Delivery is the dispatcher's job."""
    __tablename__ = "leave_notifications"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(50), nullable=False, index=True)  # e.g. request.submitted
    request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    leave_type_id = Column(Integer, nullable=False)
    actor_id = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    is_read = Column(Boolean, default=False, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())

    def to_payload(self) -> dict:
        return {
            "requestId": self.request_id,
            "employeeId": self.employee_id,
            "leaveTypeId": self.leave_type_id,
            "actorId": self.actor_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
