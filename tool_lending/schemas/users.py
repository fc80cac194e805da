from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from models.enums import PaymentMethod


class CreateUserDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(min_length=2, max_length=255)
    email: EmailStr
    badgeNumber: str = Field(min_length=2, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=50)
    employer: Optional[str] = Field(default=None, max_length=255)
    role: Optional[Literal["member", "staff", "admin"]] = None
    status: Optional[Literal["active", "suspended", "archived"]] = None
    membershipExpiry: Optional[date] = None


class UpdateUserDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    badgeNumber: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=50)
    employer: Optional[str] = Field(default=None, max_length=255)
    role: Optional[Literal["member", "staff", "admin"]] = None
    status: Optional[Literal["active", "suspended", "archived"]] = None
    membershipExpiry: Optional[date] = None


class RenewMembershipRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    amount: float = Field(ge=0)
    paymentMethod: PaymentMethod
    durationMonths: Optional[int] = Field(default=None, ge=1, le=24)
