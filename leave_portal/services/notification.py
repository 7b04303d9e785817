from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leave_portal.core.exceptions import NotFoundError
from leave_portal.models.leave_request import LeaveRequest
from leave_portal.models.notification import Notification
from leave_portal.services.base import BaseService

REQUEST_SUBMITTED = "request.submitted"
REQUEST_APPROVED = "request.approved"
REQUEST_REJECTED = "request.rejected"
REQUEST_CANCELLED = "request.cancelled"

EVENT_TYPES = (REQUEST_SUBMITTED, REQUEST_APPROVED, REQUEST_REJECTED, REQUEST_CANCELLED)

_VERBS = {
    REQUEST_SUBMITTED: "was submitted",
    REQUEST_APPROVED: "has been APPROVED",
    REQUEST_REJECTED: "has been REJECTED",
    REQUEST_CANCELLED: "was cancelled",
}

# Delivery hooks: called with (event_type, payload) after the event is stored
Subscriber = Callable[[str, dict], None]


class NotificationService(BaseService):
    def __init__(self, db: Session, subscribers: Optional[List[Subscriber]] = None):
        super().__init__(db)
        self.subscribers = list(subscribers or [])

    def emit(self, event_type: str, request: LeaveRequest, actor_id: Optional[str]) -> Optional[Notification]:
        """
        Record a workflow event for the external dispatcher.
        Called after the state transition committed; a failure here is logged
        and never undoes the transition.
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown leave event: {event_type}")

        notification = Notification(
            event_type=event_type,
            request_id=request.id,
            employee_id=request.employee_id,
            leave_type_id=request.leave_type_id,
            actor_id=actor_id,
            message=(
                f"{request.leave_type_name} request for {request.total_days} day(s) "
                f"({request.start_date} to {request.end_date}) {_VERBS[event_type]}."
            ),
        )
        try:
            self.db.add(notification)
            self.db.commit()
            self.db.refresh(notification)
        except SQLAlchemyError as e:
            # Don't fail the request if notification fails
            self.db.rollback()
            self._logger.warning(f"Notification failed: {e}", exc_info=True)
            return None

        payload = notification.to_payload()
        self._logger.info(f"Leave event {event_type}", extra={"event": event_type, **payload})
        for subscriber in self.subscribers:
            try:
                subscriber(event_type, payload)
            except Exception as e:
                self._logger.warning(f"Notification subscriber failed for {event_type}: {e}", exc_info=True)
        return notification

    def list_for(self, employee_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.employee_id == employee_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712
        return query.order_by(Notification.timestamp.desc(), Notification.id.desc()).limit(limit).all()

    def mark_read(self, notification_id: int, employee_id: str) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.employee_id == employee_id
        ).first()
        if not notification:
            raise NotFoundError("Notification", notification_id)
        notification.is_read = True
        self._commit()
        self.db.refresh(notification)
        return notification
