from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

import config
from models.enums import RentalStatus, UserRole, UserStatus
from models.lending_models import Rental, User
from services.errors import ConflictError
from services.notification_service import has_pending_notification, queue_notification
from services.rental_service import mark_rental_late


logger = logging.getLogger("tool_lending.reconcile")


def reconcile_overdue_rentals(db: Session, today: date | None = None) -> dict:
    """Promote active rentals past their end date to ``late``.

    Each rental is committed on its own so a conflict on one row does not undo
    the promotions already made.
    """
    current_date = today or date.today()
    candidates = db.execute(
        select(Rental.RentalID)
        .where(Rental.Status == RentalStatus.ACTIVE.value)
        .where(Rental.ActualReturnDate.is_(None))
        .where(Rental.EndDate <= current_date)
        .order_by(Rental.RentalID)
    ).scalars().all()

    marked = 0
    conflicts = 0
    for rental_id in candidates:
        rental = db.get(Rental, rental_id)
        if rental is None:
            continue
        try:
            if not mark_rental_late(db, rental, current_date):
                continue
        except ConflictError:
            conflicts += 1
            logger.warning("Skipped overdue rental id=%s: status changed concurrently", rental_id)
            continue
        queue_notification(
            db,
            "Overdue",
            f"Rental {rental.RentalID} was due {rental.EndDate.isoformat()}",
            rental_id=rental.RentalID,
            user_id=rental.UserID,
        )
        db.commit()
        marked += 1

    logger.info("Overdue reconciliation checked=%s marked_late=%s conflicts=%s", len(candidates), marked, conflicts)
    return {"checked": len(candidates), "markedLate": marked, "conflicts": conflicts}


def queue_membership_reminders(db: Session, today: date | None = None) -> int:
    current_date = today or date.today()
    limit = current_date + timedelta(days=config.MEMBERSHIP_EXPIRING_DAYS)
    users = db.execute(
        select(User)
        .where(User.Role == UserRole.MEMBER.value)
        .where(User.Status == UserStatus.ACTIVE.value)
        .where(User.MembershipExpiry >= current_date)
        .where(User.MembershipExpiry < limit)
    ).scalars().all()

    created = 0
    for user in users:
        if has_pending_notification(db, "MembershipExpiring", user_id=user.UserID):
            continue
        queue_notification(
            db,
            "MembershipExpiring",
            f"Membership of {user.Name} expires {user.MembershipExpiry.isoformat()}",
            user_id=user.UserID,
        )
        created += 1
    db.commit()
    return created


def run_reconciliation(db: Session, today: date | None = None) -> dict:
    summary = reconcile_overdue_rentals(db, today)
    summary["membershipReminders"] = queue_membership_reminders(db, today)
    return summary
