from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import (
    CategoryType,
    RecurringInterval,
    ReminderCategory,
    ReminderStatus,
    TransactionType,
)


EMAIL_PATTERN = r"^\S+@\S+\.\S+$"


class UserRegisterIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=100)
    password: str = Field(..., min_length=6, max_length=128)


class UserLoginIn(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=100)
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: CategoryType
    icon: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=9)
    description: Optional[str] = Field(default=None, max_length=100)


class CategoryUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    type: Optional[CategoryType] = None
    icon: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=9)
    description: Optional[str] = Field(default=None, max_length=100)


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: TransactionType
    amount_cents: int = Field(..., gt=0)
    category_id: Optional[int] = None
    category: Optional[str] = Field(default=None, max_length=50)
    subcategory: Optional[str] = Field(default=None, max_length=60)
    date: datetime
    payee: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=200)
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None

    @model_validator(mode="after")
    def _needs_category(self) -> "TransactionIn":
        if self.category_id is None and not (self.category or "").strip():
            raise ValueError("Category is required")
        return self


class TransactionUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Optional[TransactionType] = None
    amount_cents: Optional[int] = Field(default=None, gt=0)
    category_id: Optional[int] = None
    category: Optional[str] = Field(default=None, max_length=50)
    subcategory: Optional[str] = Field(default=None, max_length=60)
    date: Optional[datetime] = None
    payee: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=200)
    is_recurring: Optional[bool] = None
    recurring_interval: Optional[RecurringInterval] = None


class ReminderIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    due_date: datetime
    category: ReminderCategory = ReminderCategory.bill
    amount_cents: Optional[int] = Field(default=None, ge=0)
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    status: Optional[ReminderStatus] = None


class ReminderUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    category: Optional[ReminderCategory] = None
    amount_cents: Optional[int] = Field(default=None, ge=0)
    is_recurring: Optional[bool] = None
    recurring_interval: Optional[RecurringInterval] = None
    status: Optional[ReminderStatus] = None


class BulkDeleteIn(BaseModel):
    ids: list[int] = Field(..., min_length=1)
