from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    categoryID: Optional[int] = None
    weeklyPrice: Optional[float] = Field(default=None, ge=0)
    purchasePrice: Optional[float] = Field(default=None, ge=0)
    purchaseDate: Optional[date] = None
    status: Optional[Literal["available", "rented", "maintenance", "unavailable"]] = None
    lastMaintenanceDate: Optional[date] = None
    maintenanceInterval: Optional[int] = Field(default=None, ge=1)
    maintenanceImportance: Optional[Literal["low", "medium", "high"]] = None


class MaintenanceRecordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    statusAtTime: Literal["available", "maintenance", "unavailable"]
    comment: Optional[str] = None
    cost: Optional[float] = Field(default=None, ge=0)
    chargeUserID: Optional[int] = None
