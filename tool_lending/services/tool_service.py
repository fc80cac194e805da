from __future__ import annotations

import logging
import math
from datetime import date, datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from models.enums import MaintenanceImportance, RentalStatus, ToolStatus, TransactionType
from models.lending_models import Category, Rental, Tool
from services.audit_service import log_audit
from services.errors import ConflictError, NotFoundError, ValidationError
from services.maintenance_service import needs_maintenance_alert, serialize_maintenance
from services.transaction_service import create_transaction


logger = logging.getLogger("tool_lending.tools")

OPEN_RENTAL_STATES = {RentalStatus.PENDING.value, RentalStatus.ACTIVE.value, RentalStatus.LATE.value}

_TOOL_FIELDS = {
    "title": "Title",
    "description": "Description",
    "categoryID": "CategoryID",
    "weeklyPrice": "WeeklyPrice",
    "purchasePrice": "PurchasePrice",
    "purchaseDate": "PurchaseDate",
    "status": "Status",
    "lastMaintenanceDate": "LastMaintenanceDate",
    "maintenanceInterval": "MaintenanceInterval",
    "maintenanceImportance": "MaintenanceImportance",
}


def get_tool_or_404(db: Session, tool_id: int) -> Tool:
    tool = db.get(Tool, tool_id)
    if not tool:
        raise NotFoundError("Tool not found")
    return tool


def has_open_rental(db: Session, tool_id: int) -> bool:
    stmt = (
        select(Rental.RentalID)
        .where(Rental.ToolID == tool_id)
        .where(Rental.Status.in_(OPEN_RENTAL_STATES))
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def _apply_values(db: Session, tool: Tool, values: dict) -> None:
    category_id = values.get("categoryID")
    if category_id is not None and not db.get(Category, category_id):
        raise NotFoundError(f"Category {category_id} not found.")
    for field, column in _TOOL_FIELDS.items():
        if field in values and values[field] is not None:
            setattr(tool, column, values[field])


def create_tool(db: Session, values: dict) -> Tool:
    if not (values.get("title") or "").strip():
        raise ValidationError("title is required", field="title")
    if values.get("weeklyPrice") is None:
        raise ValidationError("weeklyPrice is required", field="weeklyPrice")
    if values.get("status") == ToolStatus.RENTED.value:
        raise ValidationError("A new tool cannot start as rented.", field="status")

    tool = Tool(
        Status=ToolStatus.AVAILABLE.value,
        MaintenanceImportance=MaintenanceImportance.LOW.value,
        CreatedDate=datetime.now(),
        UpdatedDate=datetime.now(),
    )
    _apply_values(db, tool, values)
    db.add(tool)
    db.commit()
    db.refresh(tool)
    logger.info("Tool created id=%s title=%s", tool.ToolID, tool.Title)
    return tool


def update_tool(db: Session, tool_id: int, values: dict) -> Tool:
    tool = get_tool_or_404(db, tool_id)
    new_status = values.get("status")
    if new_status is not None and new_status != tool.Status:
        # Rented is only ever set by a rental activation.
        if new_status == ToolStatus.RENTED.value:
            raise ValidationError("Tool status 'rented' is managed by rentals.", field="status")
        if tool.Status == ToolStatus.RENTED.value:
            raise ConflictError("Tool is currently rented; return the rental first.", field="status")
    _apply_values(db, tool, values)
    tool.UpdatedDate = datetime.now()
    db.commit()
    return tool


def delete_tool(db: Session, tool_id: int) -> None:
    tool = get_tool_or_404(db, tool_id)
    if has_open_rental(db, tool_id):
        raise ConflictError("Cannot delete tool with active rentals")
    db.delete(tool)
    db.commit()
    logger.info("Tool deleted id=%s", tool_id)


def record_maintenance(
    db: Session,
    tool_id: int,
    status_at_time: str,
    comment: str | None = None,
    cost: float | None = None,
    charge_user_id: int | None = None,
    actor_id: int | None = None,
    today: date | None = None,
) -> Tool:
    tool = get_tool_or_404(db, tool_id)
    if tool.Status == ToolStatus.RENTED.value:
        raise ConflictError("Tool is currently rented; return the rental first.")
    if status_at_time == ToolStatus.RENTED.value:
        raise ValidationError("Maintenance cannot set a tool to rented.", field="statusAtTime")
    if cost and not charge_user_id:
        raise ValidationError("chargeUserID is required when cost is set", field="chargeUserID")

    current_date = today or date.today()
    tool.Status = status_at_time
    if status_at_time in {ToolStatus.AVAILABLE.value, ToolStatus.MAINTENANCE.value}:
        tool.LastMaintenanceDate = current_date
    tool.UpdatedDate = datetime.now()

    if cost:
        create_transaction(
            db,
            charge_user_id,
            cost,
            TransactionType.REPAIR_COST.value,
            description=f"Repair: {tool.Title}",
            actor_id=actor_id,
            today=current_date,
            commit=False,
        )
    log_audit(db, "Tool", tool_id, "maintenance", f"{status_at_time}: {comment or ''}".strip(), user_id=actor_id)
    db.commit()
    logger.info("Maintenance recorded tool_id=%s status=%s", tool_id, status_at_time)
    return tool


def filter_tools(
    db: Session,
    search: str | None = None,
    category_id: int | None = None,
    status: str | None = None,
    maintenance_alert: bool = False,
    today: date | None = None,
) -> list[Tool]:
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(Tool.Title.ilike(pattern), Tool.Description.ilike(pattern)))
    if category_id is not None:
        filters.append(Tool.CategoryID == category_id)
    if status:
        filters.append(Tool.Status == status)

    tools = db.execute(select(Tool).where(*filters).order_by(Tool.Title)).scalars().all()
    if maintenance_alert:
        # Expiration is month arithmetic, so the alert filter runs in Python.
        tools = [tool for tool in tools if needs_maintenance_alert(tool, today)]
    return tools


def list_tools(
    db: Session,
    search: str | None = None,
    category_id: int | None = None,
    status: str | None = None,
    maintenance_alert: bool = False,
    page: int = 1,
    limit: int = 50,
    today: date | None = None,
) -> dict:
    tools = filter_tools(db, search, category_id, status, maintenance_alert, today)
    total = len(tools)
    window = tools[(page - 1) * limit: page * limit]
    return {
        "data": [serialize_tool(tool, today) for tool in window],
        "meta": {"total": total, "page": page, "limit": limit, "totalPages": math.ceil(total / limit) if limit else 0},
    }


def serialize_tool(tool: Tool, today: date | None = None) -> dict:
    payload = {
        "toolID": tool.ToolID,
        "title": tool.Title,
        "description": tool.Description,
        "categoryID": tool.CategoryID,
        "weeklyPrice": float(tool.WeeklyPrice or 0),
        "purchasePrice": float(tool.PurchasePrice) if tool.PurchasePrice is not None else None,
        "purchaseDate": tool.PurchaseDate,
        "status": tool.Status,
        "lastMaintenanceDate": tool.LastMaintenanceDate,
        "maintenanceInterval": tool.MaintenanceInterval,
        "maintenanceImportance": tool.MaintenanceImportance,
        "createdDate": tool.CreatedDate,
        "updatedDate": tool.UpdatedDate,
    }
    payload.update(serialize_maintenance(tool, today))
    return payload
