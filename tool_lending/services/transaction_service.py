from __future__ import annotations

import logging
import math
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models.enums import TransactionStatus, TransactionType
from models.lending_models import Transaction, User
from services.audit_service import log_audit
from services.errors import InvalidTransitionError, NotFoundError, ValidationError
from services.guards import compare_and_set_status


logger = logging.getLogger("tool_lending.transactions")

TRANSACTION_TRANSITIONS = {
    TransactionStatus.PENDING.value: {TransactionStatus.PAID.value},
    TransactionStatus.PAID.value: set(),
}


def compute_user_debt(db: Session, user_id: int) -> float:
    total = db.execute(
        select(func.coalesce(func.sum(Transaction.Amount), 0))
        .where(Transaction.UserID == user_id)
        .where(Transaction.Status == TransactionStatus.PENDING.value)
    ).scalar()
    return round(float(total or 0), 2)


def recalculate_user_debt(db: Session, user: User) -> float:
    """Refresh the cached debt column from unpaid transactions.

    Runs inside the caller's transaction so the cached value commits or rolls
    back together with the transaction rows that changed it.
    """
    db.flush()
    debt = compute_user_debt(db, user.UserID)
    user.TotalDebt = debt
    return debt


def get_transaction_or_404(db: Session, transaction_id: int) -> Transaction:
    transaction = db.get(Transaction, transaction_id)
    if not transaction:
        raise NotFoundError("Transaction not found")
    return transaction


def create_transaction(
    db: Session,
    user_id: int,
    amount: float,
    transaction_type: str,
    method: str | None = None,
    description: str | None = None,
    rental_id: int | None = None,
    actor_id: int | None = None,
    today: date | None = None,
    commit: bool = True,
) -> Transaction:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if amount is None or not math.isfinite(float(amount)) or float(amount) < 0:
        raise ValidationError("amount must be zero or greater.", field="amount")
    if transaction_type not in {item.value for item in TransactionType}:
        raise ValidationError(f"Unknown transaction type '{transaction_type}'.", field="type")

    current_date = today or date.today()
    # Payments record money already received, so they are settled on creation.
    is_payment = transaction_type == TransactionType.PAYMENT.value
    transaction = Transaction(
        UserID=user_id,
        RentalID=rental_id,
        Amount=amount,
        Type=transaction_type,
        Status=TransactionStatus.PAID.value if is_payment else TransactionStatus.PENDING.value,
        Method=method,
        TransactionDate=current_date,
        PaidDate=current_date if is_payment else None,
        Description=description,
    )
    db.add(transaction)
    recalculate_user_debt(db, user)
    log_audit(db, "Transaction", transaction.TransactionID, "created", f"{transaction_type} {float(amount):.2f}", user_id=actor_id)
    if commit:
        db.commit()
    logger.info("Transaction created id=%s user_id=%s type=%s amount=%s", transaction.TransactionID, user_id, transaction_type, amount)
    return transaction


def pay_transaction(
    db: Session,
    transaction_id: int,
    method: str | None = None,
    actor_id: int | None = None,
    today: date | None = None,
) -> Transaction:
    transaction = get_transaction_or_404(db, transaction_id)
    current = transaction.Status
    target = TransactionStatus.PAID.value
    if target not in TRANSACTION_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Invalid transaction transition: {current} -> {target}")

    values = {"Status": target, "PaidDate": today or date.today()}
    if method:
        values["Method"] = method
    compare_and_set_status(db, Transaction, Transaction.TransactionID, transaction_id, current, values, "Transaction")
    db.refresh(transaction)

    user = db.get(User, transaction.UserID)
    recalculate_user_debt(db, user)
    log_audit(db, "Transaction", transaction_id, "paid", f"Paid {float(transaction.Amount):.2f}", user_id=actor_id)
    db.commit()
    logger.info("Transaction transition id=%s %s -> %s", transaction_id, current, target)
    return transaction


def update_transaction_method(db: Session, transaction_id: int, method: str, actor_id: int | None = None) -> Transaction:
    transaction = get_transaction_or_404(db, transaction_id)
    if transaction.Status != TransactionStatus.PENDING.value:
        raise InvalidTransitionError("Only pending transactions can change payment method.")
    transaction.Method = method
    log_audit(db, "Transaction", transaction_id, "method_changed", method, user_id=actor_id)
    db.commit()
    return transaction


def delete_transaction(db: Session, transaction_id: int, actor_id: int | None = None) -> None:
    transaction = get_transaction_or_404(db, transaction_id)
    owner_id = transaction.UserID
    user = db.get(User, owner_id)
    db.delete(transaction)
    if user:
        recalculate_user_debt(db, user)
    log_audit(db, "Transaction", transaction_id, "deleted", None, user_id=actor_id)
    db.commit()
    logger.info("Transaction deleted id=%s user_id=%s", transaction_id, owner_id)


def transaction_filters(
    user_id: int | None = None,
    transaction_type: str | None = None,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list:
    filters = []
    if user_id is not None:
        filters.append(Transaction.UserID == user_id)
    if transaction_type:
        filters.append(Transaction.Type == transaction_type)
    if status:
        filters.append(Transaction.Status == status)
    if date_from:
        filters.append(Transaction.TransactionDate >= date_from)
    if date_to:
        filters.append(Transaction.TransactionDate <= date_to)
    return filters


def list_transactions(
    db: Session,
    user_id: int | None = None,
    transaction_type: str | None = None,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    filters = transaction_filters(user_id, transaction_type, status, date_from, date_to)
    total = db.execute(select(func.count(Transaction.TransactionID)).where(*filters)).scalar() or 0
    rows = db.execute(
        select(Transaction)
        .where(*filters)
        .order_by(Transaction.TransactionID.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    sums = dict(
        db.execute(
            select(Transaction.Status, func.sum(Transaction.Amount))
            .where(*filters)
            .group_by(Transaction.Status)
        ).all()
    )
    return {
        "data": [serialize_transaction(row) for row in rows],
        "meta": {"total": total, "page": page, "limit": limit, "totalPages": math.ceil(total / limit) if limit else 0},
        "summary": {
            "totalPending": float(sums.get(TransactionStatus.PENDING.value) or 0),
            "totalPaid": float(sums.get(TransactionStatus.PAID.value) or 0),
        },
    }


def serialize_transaction(transaction: Transaction) -> dict:
    return {
        "transactionID": transaction.TransactionID,
        "userID": transaction.UserID,
        "rentalID": transaction.RentalID,
        "amount": float(transaction.Amount or 0),
        "type": transaction.Type,
        "status": transaction.Status,
        "method": transaction.Method,
        "date": transaction.TransactionDate,
        "paidDate": transaction.PaidDate,
        "description": transaction.Description,
        "createdDate": transaction.CreatedDate,
    }
