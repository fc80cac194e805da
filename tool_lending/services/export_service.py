from __future__ import annotations

import logging
from datetime import date

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from models.lending_models import Rental, Tool, Transaction, User
from services.maintenance_service import tool_maintenance_state
from services.rental_service import rental_filters, rental_is_overdue
from services.tool_service import filter_tools
from services.transaction_service import transaction_filters
from services.user_service import require_staff


logger = logging.getLogger("tool_lending.exports")

RENTAL_COLUMNS = [
    "ID",
    "User",
    "Email",
    "Badge",
    "Tool",
    "Category",
    "Start date",
    "End date",
    "Return date",
    "Status",
    "Overdue",
    "Total price",
    "Comment",
    "Created",
]
TOOL_COLUMNS = [
    "ID",
    "Title",
    "Description",
    "Category",
    "Weekly price",
    "Purchase price",
    "Purchase date",
    "Status",
    "Maintenance importance",
    "Maintenance interval",
    "Last maintenance",
    "Maintenance status",
    "Created",
]
TRANSACTION_COLUMNS = [
    "ID",
    "User",
    "Email",
    "Amount",
    "Type",
    "Method",
    "Date",
    "Description",
    "Status",
    "Paid date",
    "Created",
]


def _to_csv_bytes(rows: list[dict], columns: list[str]) -> bytes:
    df = pd.DataFrame(rows, columns=columns)
    return df.to_csv(index=False).encode("utf-8")


def _money(value) -> float | None:
    return float(value) if value is not None else None


def export_rentals_csv(
    db: Session,
    actor: User | None,
    status: str | None = None,
    user_id: int | None = None,
    tool_id: int | None = None,
    start_date_from: date | None = None,
    start_date_to: date | None = None,
    today: date | None = None,
) -> bytes:
    require_staff(actor)
    filters = rental_filters(actor, status, user_id, tool_id, start_date_from, start_date_to)
    rentals = db.execute(
        select(Rental)
        .options(selectinload(Rental.User), selectinload(Rental.Tool).selectinload(Tool.Category))
        .where(*filters)
        .order_by(Rental.RentalID)
    ).scalars().all()
    rows = []
    for rental in rentals:
        user = rental.User
        tool = rental.Tool
        rows.append(
            {
                "ID": rental.RentalID,
                "User": user.Name if user else None,
                "Email": user.Email if user else None,
                "Badge": user.BadgeNumber if user else None,
                "Tool": tool.Title if tool else None,
                "Category": tool.Category.Name if tool and tool.Category else None,
                "Start date": rental.StartDate,
                "End date": rental.EndDate,
                "Return date": rental.ActualReturnDate,
                "Status": rental.Status,
                "Overdue": "yes" if rental_is_overdue(rental, today) else "no",
                "Total price": _money(rental.TotalPrice),
                "Comment": rental.ReturnComment,
                "Created": rental.CreatedDate,
            }
        )
    logger.info("Rental export rows=%s actor=%s", len(rows), actor.UserID)
    return _to_csv_bytes(rows, RENTAL_COLUMNS)


def export_tools_csv(
    db: Session,
    actor: User | None,
    search: str | None = None,
    category_id: int | None = None,
    status: str | None = None,
    maintenance_alert: bool = False,
    today: date | None = None,
) -> bytes:
    require_staff(actor)
    rows = []
    for tool in filter_tools(db, search, category_id, status, maintenance_alert, today):
        rows.append(
            {
                "ID": tool.ToolID,
                "Title": tool.Title,
                "Description": tool.Description,
                "Category": tool.Category.Name if tool.Category else None,
                "Weekly price": _money(tool.WeeklyPrice),
                "Purchase price": _money(tool.PurchasePrice),
                "Purchase date": tool.PurchaseDate,
                "Status": tool.Status,
                "Maintenance importance": tool.MaintenanceImportance,
                "Maintenance interval": tool.MaintenanceInterval,
                "Last maintenance": tool.LastMaintenanceDate,
                "Maintenance status": tool_maintenance_state(tool, today).value,
                "Created": tool.CreatedDate,
            }
        )
    logger.info("Tool export rows=%s actor=%s", len(rows), actor.UserID)
    return _to_csv_bytes(rows, TOOL_COLUMNS)


def export_transactions_csv(
    db: Session,
    actor: User | None,
    user_id: int | None = None,
    transaction_type: str | None = None,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> bytes:
    require_staff(actor)
    filters = transaction_filters(user_id, transaction_type, status, date_from, date_to)
    transactions = db.execute(
        select(Transaction)
        .options(selectinload(Transaction.User))
        .where(*filters)
        .order_by(Transaction.TransactionID)
    ).scalars().all()
    rows = [
        {
            "ID": transaction.TransactionID,
            "User": transaction.User.Name if transaction.User else None,
            "Email": transaction.User.Email if transaction.User else None,
            "Amount": _money(transaction.Amount),
            "Type": transaction.Type,
            "Method": transaction.Method,
            "Date": transaction.TransactionDate,
            "Description": transaction.Description,
            "Status": transaction.Status,
            "Paid date": transaction.PaidDate,
            "Created": transaction.CreatedDate,
        }
        for transaction in transactions
    ]
    logger.info("Transaction export rows=%s actor=%s", len(rows), actor.UserID)
    return _to_csv_bytes(rows, TRANSACTION_COLUMNS)
