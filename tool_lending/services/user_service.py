from __future__ import annotations

import logging
import math
from datetime import date, datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from models.enums import UserRole, UserStatus
from models.lending_models import User
from services.errors import ConflictError, NotFoundError, PermissionDeniedError
from services.membership_service import bucket_window, is_membership_expiring_soon, membership_bucket


logger = logging.getLogger("tool_lending.users")

STAFF_ROLES = {UserRole.STAFF.value, UserRole.ADMIN.value}

_USER_FIELDS = {
    "name": "Name",
    "email": "Email",
    "phone": "Phone",
    "badgeNumber": "BadgeNumber",
    "employer": "Employer",
    "role": "Role",
    "status": "Status",
    "membershipExpiry": "MembershipExpiry",
}


def is_staff(actor: User | None) -> bool:
    return bool(actor and actor.Role in STAFF_ROLES)


def require_staff(actor: User | None) -> User:
    if not is_staff(actor):
        raise PermissionDeniedError("Staff role required.")
    return actor


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _ensure_unique(db: Session, email: str | None, badge_number: str | None, exclude_user_id: int | None = None) -> None:
    if email:
        stmt = select(User.UserID).where(func.lower(User.Email) == email.strip().lower())
        if exclude_user_id:
            stmt = stmt.where(User.UserID != exclude_user_id)
        if db.execute(stmt).first():
            raise ConflictError("A user with this email already exists.", field="email")
    if badge_number:
        stmt = select(User.UserID).where(User.BadgeNumber == badge_number.strip())
        if exclude_user_id:
            stmt = stmt.where(User.UserID != exclude_user_id)
        if db.execute(stmt).first():
            raise ConflictError("A user with this badge number already exists.", field="badgeNumber")


def create_user(db: Session, values: dict) -> User:
    _ensure_unique(db, values.get("email"), values.get("badgeNumber"))
    user = User(
        Role=UserRole.MEMBER.value,
        Status=UserStatus.ACTIVE.value,
        TotalDebt=0,
        CreatedDate=datetime.now(),
        UpdatedDate=datetime.now(),
    )
    for field, column in _USER_FIELDS.items():
        if values.get(field) is not None:
            setattr(user, column, values[field])
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User created id=%s role=%s", user.UserID, user.Role)
    return user


def update_user(db: Session, user_id: int, values: dict, actor: User | None) -> User:
    user = get_user_or_404(db, user_id)
    if not is_staff(actor):
        if not actor or actor.UserID != user_id:
            raise PermissionDeniedError("You can only update your own profile.")
        for restricted in ("status", "role", "membershipExpiry"):
            if values.get(restricted) is not None:
                raise PermissionDeniedError(f"Only staff can change {restricted}.")
    _ensure_unique(db, values.get("email"), values.get("badgeNumber"), exclude_user_id=user_id)
    for field, column in _USER_FIELDS.items():
        if field in values and values[field] is not None:
            setattr(user, column, values[field])
    user.UpdatedDate = datetime.now()
    db.commit()
    return user


def delete_user(db: Session, user_id: int) -> None:
    user = get_user_or_404(db, user_id)
    if user.Rentals or user.Transactions:
        raise ConflictError("Cannot delete a user with rentals or transactions; archive it instead.")
    db.delete(user)
    db.commit()
    logger.info("User deleted id=%s", user_id)


def list_users(
    db: Session,
    search: str | None = None,
    status: str | None = None,
    membership_filter: str | None = None,
    page: int = 1,
    limit: int = 50,
    today: date | None = None,
) -> dict:
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(User.Name.ilike(pattern), User.Email.ilike(pattern), User.BadgeNumber.ilike(pattern)))
    if status:
        filters.append(User.Status == status)
    if membership_filter:
        lower, upper = bucket_window(membership_filter, today)
        if lower is None:
            filters.append(or_(User.MembershipExpiry.is_(None), User.MembershipExpiry < upper))
        else:
            filters.append(User.MembershipExpiry >= lower)
            if upper is not None:
                filters.append(User.MembershipExpiry < upper)

    total = db.execute(select(func.count(User.UserID)).where(*filters)).scalar() or 0
    users = db.execute(
        select(User)
        .where(*filters)
        .order_by(User.Name)
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return {
        "data": [serialize_user(user, today) for user in users],
        "meta": {"total": total, "page": page, "limit": limit, "totalPages": math.ceil(total / limit) if limit else 0},
    }


def serialize_user(user: User, today: date | None = None) -> dict:
    return {
        "userID": user.UserID,
        "name": user.Name,
        "email": user.Email,
        "phone": user.Phone,
        "badgeNumber": user.BadgeNumber,
        "employer": user.Employer,
        "role": user.Role,
        "status": user.Status,
        "membershipExpiry": user.MembershipExpiry,
        "membershipStatus": membership_bucket(user.MembershipExpiry, today).value,
        "isMembershipExpiringSoon": is_membership_expiring_soon(user.MembershipExpiry, today),
        "totalDebt": float(user.TotalDebt or 0),
        "createdDate": user.CreatedDate,
        "updatedDate": user.UpdatedDate,
    }
