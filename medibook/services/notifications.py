"""Creates in-app notifications for appointment lifecycle events."""

import logging

from sqlalchemy.orm import Session

from medibook.models.notification import Notification

logger = logging.getLogger(__name__)

APPOINTMENT_BOOKED = 'appointment_booked'
APPOINTMENT_CONFIRMED = 'appointment_confirmed'
APPOINTMENT_REJECTED = 'appointment_rejected'
APPOINTMENT_COMPLETED = 'appointment_completed'
APPOINTMENT_CANCELLED = 'appointment_cancelled'
APPOINTMENT_RESCHEDULED = 'appointment_rescheduled'


def queue_notification(
    db: Session,
    user_id: int,
    notification_type: str,
    title: str,
    message: str,
    data: dict | None = None,
) -> Notification:
    """Add a notification to the session; the caller owns the commit."""
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        data=data or {},
        is_read=False,
    )
    db.add(notification)
    logger.debug('Queued %s notification for user %s', notification_type, user_id)
    return notification
