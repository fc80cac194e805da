from __future__ import annotations

import logging
import math
from datetime import date, datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

import config
from models.enums import RentalStatus, ToolStatus, TransactionStatus, TransactionType, UserStatus
from models.lending_models import Rental, Tool, Transaction, User
from services.audit_service import log_audit
from services.errors import (
    ConflictError,
    InvalidTransitionError,
    LendingError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from services.guards import compare_and_set_status
from services.maintenance_service import tool_is_blocked
from services.membership_service import is_membership_active
from services.pricing_service import as_calendar_date, billable_weeks, calculate_rental_cost
from services.transaction_service import create_transaction, recalculate_user_debt
from services.user_service import is_staff, require_staff


logger = logging.getLogger("tool_lending.rentals")

RENTAL_TRANSITIONS = {
    RentalStatus.PENDING.value: {RentalStatus.ACTIVE.value, RentalStatus.REJECTED.value},
    RentalStatus.ACTIVE.value: {RentalStatus.COMPLETED.value, RentalStatus.LATE.value},
    RentalStatus.LATE.value: {RentalStatus.COMPLETED.value},
    RentalStatus.COMPLETED.value: set(),
    RentalStatus.REJECTED.value: set(),
}
OPEN_STATES = {RentalStatus.PENDING.value, RentalStatus.ACTIVE.value, RentalStatus.LATE.value}
LENT_STATES = {RentalStatus.ACTIVE.value, RentalStatus.LATE.value}


def check_transition(current: str, target: str) -> None:
    if target not in RENTAL_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Invalid state transition: {current} -> {target}")


def is_rental_overdue(end_date, status: str | None, actual_return_date=None, today: date | None = None) -> bool:
    """Live check: the tool is still out and its due date has begun.

    An end date is due from midnight at its start, so a rental ending today is
    already overdue.

    This never changes the stored status; promotion to ``late`` belongs to the
    reconciliation job.
    """
    if actual_return_date is not None or status not in LENT_STATES:
        return False
    end = as_calendar_date(end_date)
    if end is None:
        return False
    return end <= (today or date.today())


def rental_is_overdue(rental: Rental, today: date | None = None) -> bool:
    return is_rental_overdue(rental.EndDate, rental.Status, rental.ActualReturnDate, today)


def returned_late(rental: Rental) -> bool:
    return bool(rental.ActualReturnDate and rental.EndDate and rental.ActualReturnDate > rental.EndDate)


def get_rental(db: Session, rental_id: int, actor: User | None = None) -> Rental:
    rental = db.get(Rental, rental_id)
    if not rental:
        raise NotFoundError("Rental not found")
    if actor is not None and not is_staff(actor) and rental.UserID != actor.UserID:
        raise PermissionDeniedError("Access denied")
    return rental


def ensure_tool_rentable(tool: Tool, today: date | None = None) -> None:
    if tool.Status == ToolStatus.MAINTENANCE.value:
        raise InvalidTransitionError("Tool is currently in maintenance")
    if tool.Status == ToolStatus.UNAVAILABLE.value:
        raise InvalidTransitionError("Tool is not available")
    if tool_is_blocked(tool, today):
        raise InvalidTransitionError("Tool requires maintenance before rental")


def has_overlapping_rental(db: Session, tool_id: int, start_date: date, end_date: date, exclude_rental_id: int | None = None) -> bool:
    stmt = (
        select(Rental.RentalID)
        .where(Rental.ToolID == tool_id)
        .where(Rental.Status.in_(OPEN_STATES))
        .where(Rental.StartDate < end_date)
        .where(Rental.EndDate > start_date)
    )
    if exclude_rental_id:
        stmt = stmt.where(Rental.RentalID != exclude_rental_id)
    return db.execute(stmt.limit(1)).first() is not None


def create_rental(
    db: Session,
    user_id: int,
    tool_id: int,
    start_date: date,
    end_date: date,
    actor: User | None,
    total_price: float | None = None,
    today: date | None = None,
) -> Rental:
    if actor is None:
        raise PermissionDeniedError("Not logged in.")
    staff = is_staff(actor)
    if not staff and actor.UserID != user_id:
        raise PermissionDeniedError("Members can only request rentals for themselves.")
    if end_date <= start_date:
        raise ValidationError("End date must be after start date", field="endDate")
    if config.REQUIRE_FRIDAY_DATES:
        if start_date.weekday() != 4:
            raise ValidationError("Start date must be a Friday", field="startDate")
        if end_date.weekday() != 4:
            raise ValidationError("End date must be a Friday", field="endDate")
    if total_price is not None and total_price < 0:
        raise ValidationError("totalPrice must be zero or greater.", field="totalPrice")

    current_date = today or date.today()
    tool = db.get(Tool, tool_id)
    if not tool:
        raise NotFoundError("Tool not found")
    ensure_tool_rentable(tool, current_date)

    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.Status != UserStatus.ACTIVE.value:
        raise ValidationError(f"User account is {user.Status}", field="userID")
    if not is_membership_active(user.MembershipExpiry, current_date):
        raise ValidationError("User membership has expired", field="userID")

    if has_overlapping_rental(db, tool_id, start_date, end_date):
        raise ConflictError("Tool is already reserved for this period")

    price = total_price if total_price is not None else calculate_rental_cost(start_date, end_date, tool.WeeklyPrice)
    rental = Rental(
        UserID=user_id,
        ToolID=tool_id,
        StartDate=start_date,
        EndDate=end_date,
        Status=RentalStatus.PENDING.value,
        TotalPrice=price,
        PriceOverridden=total_price is not None,
        CreatedDate=datetime.now(),
        UpdatedDate=datetime.now(),
    )
    db.add(rental)
    db.flush()
    weeks = billable_weeks(start_date, end_date)
    log_audit(db, "Rental", rental.RentalID, "created", f"Rental created ({weeks} week(s))", user_id=actor.UserID)

    if staff:
        try:
            _activate(db, rental, tool, actor.UserID, current_date)
        except LendingError:
            db.rollback()
            raise
    db.commit()
    logger.info("Rental created id=%s user_id=%s tool_id=%s status=%s", rental.RentalID, user_id, tool_id, rental.Status)
    return rental


def _activate(db: Session, rental: Rental, tool: Tool, actor_id: int | None, today: date) -> None:
    current = rental.Status
    check_transition(current, RentalStatus.ACTIVE.value)
    ensure_tool_rentable(tool, today)
    if tool.Status != ToolStatus.AVAILABLE.value:
        raise ConflictError(f"Tool {tool.ToolID} is already {tool.Status}.")

    values = {"Status": RentalStatus.ACTIVE.value, "UpdatedDate": datetime.now()}
    if not rental.PriceOverridden:
        values["TotalPrice"] = calculate_rental_cost(rental.StartDate, rental.EndDate, tool.WeeklyPrice)
    compare_and_set_status(db, Rental, Rental.RentalID, rental.RentalID, current, values, "Rental")
    compare_and_set_status(
        db,
        Tool,
        Tool.ToolID,
        tool.ToolID,
        ToolStatus.AVAILABLE.value,
        {"Status": ToolStatus.RENTED.value, "UpdatedDate": datetime.now()},
        "Tool",
    )
    db.refresh(rental)
    db.refresh(tool)
    log_audit(db, "Rental", rental.RentalID, "approved", None, user_id=actor_id)
    logger.info("Rental transition id=%s %s -> %s", rental.RentalID, current, RentalStatus.ACTIVE.value)


def activate_rental(db: Session, rental_id: int, actor: User | None, today: date | None = None) -> Rental:
    require_staff(actor)
    rental = get_rental(db, rental_id)
    tool = db.get(Tool, rental.ToolID)
    if not tool:
        raise NotFoundError("Tool not found")
    _activate(db, rental, tool, actor.UserID, today or date.today())
    db.commit()
    return rental


def reject_rental(db: Session, rental_id: int, actor: User | None, comment: str | None = None) -> Rental:
    require_staff(actor)
    rental = get_rental(db, rental_id)
    current = rental.Status
    check_transition(current, RentalStatus.REJECTED.value)
    compare_and_set_status(
        db,
        Rental,
        Rental.RentalID,
        rental_id,
        current,
        {"Status": RentalStatus.REJECTED.value, "ReturnComment": comment, "UpdatedDate": datetime.now()},
        "Rental",
    )
    db.refresh(rental)
    log_audit(db, "Rental", rental_id, "rejected", comment, user_id=actor.UserID)
    db.commit()
    logger.info("Rental transition id=%s %s -> %s", rental_id, current, RentalStatus.REJECTED.value)
    return rental


def release_tool(db: Session, tool: Tool, today: date | None = None) -> str:
    """Put a rented tool back in circulation, or into maintenance when it is blocked."""
    next_status = ToolStatus.MAINTENANCE.value if tool_is_blocked(tool, today) else ToolStatus.AVAILABLE.value
    result = db.execute(
        update(Tool)
        .where(Tool.ToolID == tool.ToolID)
        .where(Tool.Status == ToolStatus.RENTED.value)
        .values(Status=next_status, UpdatedDate=datetime.now())
        .execution_options(synchronize_session=False)
    )
    db.refresh(tool)
    if result.rowcount != 1:
        logger.info("Tool id=%s not in rented status on release; keeping %s", tool.ToolID, tool.Status)
    return tool.Status


def ensure_rental_charge(db: Session, rental: Rental, tool: Tool | None, actor_id: int | None, today: date) -> Transaction:
    existing = db.execute(
        select(Transaction)
        .where(Transaction.RentalID == rental.RentalID)
        .where(Transaction.Type == TransactionType.RENTAL.value)
        .order_by(Transaction.TransactionID)
    ).scalars().first()
    if existing:
        return existing
    title = tool.Title if tool else f"tool #{rental.ToolID}"
    return create_transaction(
        db,
        rental.UserID,
        float(rental.TotalPrice or 0),
        TransactionType.RENTAL.value,
        description=f"Rental: {title}",
        rental_id=rental.RentalID,
        actor_id=actor_id,
        today=today,
        commit=False,
    )


def return_rental(
    db: Session,
    rental_id: int,
    actor: User | None,
    return_date: date | None = None,
    comment: str | None = None,
    today: date | None = None,
) -> Rental:
    if actor is None:
        raise PermissionDeniedError("Not logged in.")
    rental = get_rental(db, rental_id, actor)
    current = rental.Status
    check_transition(current, RentalStatus.COMPLETED.value)

    current_date = today or date.today()
    actual = return_date or current_date
    if actual < rental.StartDate:
        raise ValidationError("Return date cannot be before the start date", field="returnDate")

    compare_and_set_status(
        db,
        Rental,
        Rental.RentalID,
        rental_id,
        current,
        {
            "Status": RentalStatus.COMPLETED.value,
            "ActualReturnDate": actual,
            "ReturnComment": comment,
            "UpdatedDate": datetime.now(),
        },
        "Rental",
    )
    db.refresh(rental)

    tool = db.get(Tool, rental.ToolID)
    if tool:
        release_tool(db, tool, current_date)
    ensure_rental_charge(db, rental, tool, actor.UserID, current_date)
    recalculate_user_debt(db, db.get(User, rental.UserID))

    details = comment or "Returned"
    if returned_late(rental):
        details = f"{details} ({(rental.ActualReturnDate - rental.EndDate).days} day(s) late)"
    log_audit(db, "Rental", rental_id, "returned", details, user_id=actor.UserID)
    db.commit()
    logger.info("Rental transition id=%s %s -> %s", rental_id, current, RentalStatus.COMPLETED.value)
    return rental


def mark_rental_late(db: Session, rental: Rental, today: date | None = None) -> bool:
    if rental.Status != RentalStatus.ACTIVE.value or not rental_is_overdue(rental, today):
        return False
    check_transition(rental.Status, RentalStatus.LATE.value)
    compare_and_set_status(
        db,
        Rental,
        Rental.RentalID,
        rental.RentalID,
        RentalStatus.ACTIVE.value,
        {"Status": RentalStatus.LATE.value, "UpdatedDate": datetime.now()},
        "Rental",
    )
    db.refresh(rental)
    log_audit(db, "Rental", rental.RentalID, "marked_late", f"Due {rental.EndDate.isoformat()}")
    logger.info("Rental transition id=%s %s -> %s", rental.RentalID, RentalStatus.ACTIVE.value, RentalStatus.LATE.value)
    return True


def delete_rental(db: Session, rental_id: int, actor: User | None, today: date | None = None) -> None:
    require_staff(actor)
    rental = get_rental(db, rental_id)
    if rental.Status in LENT_STATES:
        tool = db.get(Tool, rental.ToolID)
        if tool:
            release_tool(db, tool, today)

    for transaction in db.execute(select(Transaction).where(Transaction.RentalID == rental_id)).scalars().all():
        if transaction.Status == TransactionStatus.PENDING.value:
            db.delete(transaction)
        else:
            # Settled money stays on the books without the rental link.
            transaction.RentalID = None

    user = db.get(User, rental.UserID)
    db.delete(rental)
    if user:
        recalculate_user_debt(db, user)
    log_audit(db, "Rental", rental_id, "deleted", None, user_id=actor.UserID)
    db.commit()
    logger.info("Rental deleted id=%s", rental_id)


def rental_filters(
    actor: User | None,
    status: str | None = None,
    user_id: int | None = None,
    tool_id: int | None = None,
    start_date_from: date | None = None,
    start_date_to: date | None = None,
) -> list:
    """Listing filters; members are always limited to their own rentals."""
    if actor is None:
        raise PermissionDeniedError("Not logged in.")
    filters = []
    if not is_staff(actor):
        filters.append(Rental.UserID == actor.UserID)
    elif user_id is not None:
        filters.append(Rental.UserID == user_id)
    if status:
        filters.append(Rental.Status == status)
    if tool_id is not None:
        filters.append(Rental.ToolID == tool_id)
    if start_date_from:
        filters.append(Rental.StartDate >= start_date_from)
    if start_date_to:
        filters.append(Rental.StartDate <= start_date_to)
    return filters


def list_rentals(
    db: Session,
    actor: User | None,
    status: str | None = None,
    user_id: int | None = None,
    tool_id: int | None = None,
    start_date_from: date | None = None,
    start_date_to: date | None = None,
    page: int = 1,
    limit: int = 50,
    today: date | None = None,
) -> dict:
    filters = rental_filters(actor, status, user_id, tool_id, start_date_from, start_date_to)
    total = db.execute(select(func.count(Rental.RentalID)).where(*filters)).scalar() or 0
    rentals = db.execute(
        select(Rental)
        .options(selectinload(Rental.User), selectinload(Rental.Tool))
        .where(*filters)
        .order_by(Rental.RentalID.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return {
        "data": [serialize_rental(rental, today) for rental in rentals],
        "meta": {"total": total, "page": page, "limit": limit, "totalPages": math.ceil(total / limit) if limit else 0},
    }


def serialize_rental(rental: Rental, today: date | None = None) -> dict:
    return {
        "rentalID": rental.RentalID,
        "userID": rental.UserID,
        "toolID": rental.ToolID,
        "status": rental.Status,
        "startDate": rental.StartDate,
        "endDate": rental.EndDate,
        "actualReturnDate": rental.ActualReturnDate,
        "totalPrice": float(rental.TotalPrice) if rental.TotalPrice is not None else None,
        "priceOverridden": bool(rental.PriceOverridden),
        "billableWeeks": billable_weeks(rental.StartDate, rental.EndDate),
        "returnComment": rental.ReturnComment,
        "isOverdue": rental_is_overdue(rental, today),
        "returnedLate": returned_late(rental),
        "createdDate": rental.CreatedDate,
        "updatedDate": rental.UpdatedDate,
        "user": {
            "userID": rental.User.UserID,
            "name": rental.User.Name,
            "badgeNumber": rental.User.BadgeNumber,
            "email": rental.User.Email,
        } if rental.User else None,
        "tool": {
            "toolID": rental.Tool.ToolID,
            "title": rental.Tool.Title,
            "weeklyPrice": float(rental.Tool.WeeklyPrice or 0),
        } if rental.Tool else None,
    }
