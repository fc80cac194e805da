from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateRentalDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    userID: int
    toolID: int
    startDate: date
    endDate: date
    totalPrice: Optional[float] = Field(default=None, ge=0)


class RejectRentalRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    comment: Optional[str] = None


class ReturnRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    returnDate: Optional[date] = None
    comment: Optional[str] = None
