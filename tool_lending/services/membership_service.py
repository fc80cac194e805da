from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

import config
from models.enums import MembershipBucket, TransactionStatus, TransactionType
from models.lending_models import MembershipRenewal, Transaction, User
from services.audit_service import log_audit
from services.errors import ValidationError
from services.maintenance_service import add_months
from services.pricing_service import as_calendar_date
from services.transaction_service import recalculate_user_debt


logger = logging.getLogger("tool_lending.membership")


def is_membership_active(expiry_date, today: date | None = None) -> bool:
    expiry = as_calendar_date(expiry_date)
    if expiry is None:
        return False
    current_date = today or date.today()
    return expiry >= current_date


def is_membership_expiring_soon(expiry_date, today: date | None = None, window_days: int | None = None) -> bool:
    """True when the membership is still valid but ends inside the window.

    Memberships that already expired are not "expiring soon".
    """
    expiry = as_calendar_date(expiry_date)
    if expiry is None:
        return False
    current_date = today or date.today()
    window = config.MEMBERSHIP_EXPIRING_DAYS if window_days is None else window_days
    return current_date <= expiry < current_date + timedelta(days=window)


def membership_bucket(expiry_date, today: date | None = None) -> MembershipBucket:
    if not is_membership_active(expiry_date, today):
        return MembershipBucket.EXPIRED
    if is_membership_expiring_soon(expiry_date, today):
        return MembershipBucket.EXPIRING_SOON
    return MembershipBucket.ACTIVE


def bucket_window(bucket: str, today: date | None = None) -> tuple[date | None, date | None]:
    """Half-open [lower, upper) expiry range matching a bucket, None meaning unbounded."""
    current_date = today or date.today()
    expiring_limit = current_date + timedelta(days=config.MEMBERSHIP_EXPIRING_DAYS)
    if bucket == MembershipBucket.EXPIRED.value:
        return None, current_date
    if bucket == MembershipBucket.EXPIRING_SOON.value:
        return current_date, expiring_limit
    if bucket == MembershipBucket.ACTIVE.value:
        return expiring_limit, None
    raise ValidationError(f"Unknown membership filter '{bucket}'.", field="membershipFilter")


def renew_membership(
    db: Session,
    user: User,
    amount: float,
    payment_method: str | None,
    duration_months: int | None = None,
    admin_id: int | None = None,
    today: date | None = None,
) -> User:
    if amount is None or float(amount) < 0:
        raise ValidationError("amount must be zero or greater.", field="amount")
    months = duration_months or config.DEFAULT_MEMBERSHIP_MONTHS
    if months < 1 or months > 24:
        raise ValidationError("durationMonths must be between 1 and 24.", field="durationMonths")

    current_date = today or date.today()
    previous_expiry = user.MembershipExpiry
    base = previous_expiry if previous_expiry and previous_expiry > current_date else current_date
    new_expiry = add_months(base, months)

    user.MembershipExpiry = new_expiry
    user.UpdatedDate = datetime.now()
    db.add(
        MembershipRenewal(
            UserID=user.UserID,
            AdminID=admin_id,
            PreviousExpiry=previous_expiry,
            NewExpiry=new_expiry,
            Amount=amount,
            PaymentMethod=payment_method,
        )
    )
    db.add(
        Transaction(
            UserID=user.UserID,
            Amount=amount,
            Type=TransactionType.MEMBERSHIP_FEE.value,
            Status=TransactionStatus.PENDING.value,
            Method=payment_method,
            TransactionDate=current_date,
            Description=f"Membership fee - {new_expiry.year}",
        )
    )
    recalculate_user_debt(db, user)
    log_audit(db, "User", user.UserID, "renewed", f"Membership extended to {new_expiry.isoformat()}", user_id=admin_id)
    db.commit()
    logger.info("Membership renewed user_id=%s previous=%s new=%s", user.UserID, previous_expiry, new_expiry)
    return user
