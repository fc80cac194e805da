from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.lending_models import NotificationQueue


def queue_notification(
    db: Session,
    notification_type: str,
    payload: str,
    rental_id: int | None = None,
    user_id: int | None = None,
) -> NotificationQueue:
    notification = NotificationQueue(
        RentalID=rental_id,
        UserID=user_id,
        NotificationType=notification_type,
        Payload=payload,
        CreatedAt=datetime.now(),
    )
    db.add(notification)
    return notification


def has_pending_notification(db: Session, notification_type: str, rental_id: int | None = None, user_id: int | None = None) -> bool:
    stmt = (
        select(NotificationQueue.NotificationID)
        .where(NotificationQueue.NotificationType == notification_type)
        .where(NotificationQueue.SentAt.is_(None))
    )
    if rental_id is not None:
        stmt = stmt.where(NotificationQueue.RentalID == rental_id)
    if user_id is not None:
        stmt = stmt.where(NotificationQueue.UserID == user_id)
    return db.execute(stmt.limit(1)).first() is not None


def list_pending_notifications(db: Session) -> list[dict]:
    notifications = db.execute(
        select(NotificationQueue)
        .where(NotificationQueue.SentAt.is_(None))
        .order_by(NotificationQueue.NotificationID)
    ).scalars().all()
    return [
        {
            "notificationID": n.NotificationID,
            "rentalID": n.RentalID,
            "userID": n.UserID,
            "type": n.NotificationType,
            "payload": n.Payload,
            "createdAt": n.CreatedAt,
        }
        for n in notifications
    ]
