from __future__ import annotations

import calendar
from datetime import date, timedelta

import config
from models.enums import MaintenanceImportance, MaintenanceState, ToolStatus
from models.lending_models import Tool
from services.pricing_service import as_calendar_date


MAINTENANCE_LABELS = {
    MaintenanceState.IN_SERVICE: "In service",
    MaintenanceState.EXPIRED: "Maintenance expired",
    MaintenanceState.DUE_SOON: "Due soon",
    MaintenanceState.COMPLIANT: "Compliant",
}


def add_months(start: date, months: int) -> date:
    year = start.year + (start.month - 1 + months) // 12
    month = (start.month - 1 + months) % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    day = min(start.day, last_day)
    return date(year, month, day)


def get_maintenance_expiration(last_maintenance_date, maintenance_interval: int | None) -> date | None:
    last = as_calendar_date(last_maintenance_date)
    if last is None or not maintenance_interval or maintenance_interval <= 0:
        return None
    return add_months(last, int(maintenance_interval))


def is_maintenance_expired(last_maintenance_date, maintenance_interval: int | None, today: date | None = None) -> bool:
    expiration = get_maintenance_expiration(last_maintenance_date, maintenance_interval)
    if expiration is None:
        return False
    current_date = today or date.today()
    return expiration < current_date


def is_maintenance_due_soon(
    last_maintenance_date,
    maintenance_interval: int | None,
    today: date | None = None,
    window_days: int | None = None,
) -> bool:
    expiration = get_maintenance_expiration(last_maintenance_date, maintenance_interval)
    if expiration is None:
        return False
    current_date = today or date.today()
    window = config.MAINTENANCE_DUE_SOON_DAYS if window_days is None else window_days
    return expiration < current_date + timedelta(days=window)


def get_maintenance_status(
    status: str | None,
    last_maintenance_date,
    maintenance_interval: int | None,
    today: date | None = None,
) -> MaintenanceState:
    if status == ToolStatus.MAINTENANCE.value:
        return MaintenanceState.IN_SERVICE
    if is_maintenance_expired(last_maintenance_date, maintenance_interval, today):
        return MaintenanceState.EXPIRED
    if is_maintenance_due_soon(last_maintenance_date, maintenance_interval, today):
        return MaintenanceState.DUE_SOON
    return MaintenanceState.COMPLIANT


def is_maintenance_blocked(
    importance: str | None,
    last_maintenance_date,
    maintenance_interval: int | None,
    today: date | None = None,
) -> bool:
    if (importance or MaintenanceImportance.LOW.value) == MaintenanceImportance.LOW.value:
        return False
    return is_maintenance_expired(last_maintenance_date, maintenance_interval, today)


def tool_maintenance_state(tool: Tool, today: date | None = None) -> MaintenanceState:
    return get_maintenance_status(tool.Status, tool.LastMaintenanceDate, tool.MaintenanceInterval, today)


def tool_is_blocked(tool: Tool, today: date | None = None) -> bool:
    return is_maintenance_blocked(
        tool.MaintenanceImportance,
        tool.LastMaintenanceDate,
        tool.MaintenanceInterval,
        today,
    )


def needs_maintenance_alert(tool: Tool, today: date | None = None) -> bool:
    state = tool_maintenance_state(tool, today)
    return state in {MaintenanceState.EXPIRED, MaintenanceState.DUE_SOON} or tool_is_blocked(tool, today)


def serialize_maintenance(tool: Tool, today: date | None = None) -> dict:
    state = tool_maintenance_state(tool, today)
    return {
        "maintenanceExpiration": get_maintenance_expiration(tool.LastMaintenanceDate, tool.MaintenanceInterval),
        "maintenanceStatus": state.value,
        "maintenanceLabel": MAINTENANCE_LABELS[state],
        "maintenanceBlocked": tool_is_blocked(tool, today),
    }
