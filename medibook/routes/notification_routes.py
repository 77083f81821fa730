from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.auth.dependencies import SessionContext, get_session_context
from medibook.core import config
from medibook.database import get_db
from medibook.models.notification import Notification
from medibook.routes.common import database_unavailable

router = APIRouter(tags=['notifications'])


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: dict | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class NotificationPageResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int
    page: int
    limit: int


class MarkAllReadResponse(BaseModel):
    updated: int


@router.get('/', response_model=NotificationPageResponse)
def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.NOTIFICATION_PAGE_SIZE, ge=1, le=100),
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    try:
        notifications = db.query(Notification).filter(
            Notification.user_id == session.user_id,
        ).order_by(
            Notification.created_at.desc(),
            Notification.id.desc(),
        ).offset((page - 1) * limit).limit(limit).all()

        unread_count = db.query(Notification).filter(
            Notification.user_id == session.user_id,
            Notification.is_read.is_(False),
        ).count()

        return NotificationPageResponse(
            notifications=[NotificationResponse.model_validate(notification) for notification in notifications],
            unread_count=unread_count,
            page=page,
            limit=limit,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/{notification_id}/read', response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    try:
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == session.user_id,
        ).first()
        if notification is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Notification not found.',
            )

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now()
            db.commit()
            db.refresh(notification)

        return notification
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/read-all', response_model=MarkAllReadResponse)
def mark_all_notifications_read(
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    try:
        updated = db.query(Notification).filter(
            Notification.user_id == session.user_id,
            Notification.is_read.is_(False),
        ).update({'is_read': True, 'read_at': datetime.now()}, synchronize_session=False)
        db.commit()

        return MarkAllReadResponse(updated=updated)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
