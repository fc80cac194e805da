from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.enums import PaymentMethod, TransactionType


class CreateTransactionDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    userID: int
    amount: float = Field(ge=0)
    type: TransactionType
    method: Optional[PaymentMethod] = None
    description: Optional[str] = Field(default=None, max_length=500)
    rentalID: Optional[int] = None


class PayTransactionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    method: Optional[PaymentMethod] = None


class UpdateTransactionDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    method: PaymentMethod
