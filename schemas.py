"""Validated inputs for the server actions and the HTTP API."""

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

AccountType = Literal["cash", "investment", "liability", "other_asset"]
TransactionType = Literal["inflow", "outflow"]
CategoryType = Literal["inflow", "outflow"]
CurrencyCode = Literal["USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "CNY", "SEK", "NZD"]
DateFormat = Literal["DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD"]
DateRange = Literal["all", "today", "week", "month", "year"]
AnalyticsRange = Literal["30d", "90d", "6m", "1y"]

# Largest amount accepted, in major units; keeps cents within a 64-bit integer
MAX_AMOUNT = 1_000_000_000_000


class IdInput(BaseModel):
    id: int


# --- Accounts ---

class NewAccount(BaseModel):
    type: AccountType
    name: str = Field(..., min_length=1, max_length=100, description="Account name")
    balance: float = Field(
        0.0, ge=-MAX_AMOUNT, le=MAX_AMOUNT, allow_inf_nan=False, description="Opening balance"
    )
    currency: CurrencyCode = "EUR"
    subtype: Optional[str] = None


class EditAccount(NewAccount):
    id: int
    is_active: bool = True


# --- Transactions ---

class NewTransaction(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    account_id: int
    category_id: Optional[int] = None
    date: date
    amount: float = Field(
        ..., ge=0.01, le=MAX_AMOUNT, allow_inf_nan=False, description="Always positive, direction comes from type"
    )
    type: TransactionType
    description: str = Field("", max_length=255)


class UpdateTransaction(NewTransaction):
    id: int


class TransferInput(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: float = Field(..., ge=0.01, le=MAX_AMOUNT, allow_inf_nan=False)
    date: date

    @model_validator(mode="after")
    def accounts_differ(self):
        if self.from_account_id == self.to_account_id:
            raise ValueError("Source and destination accounts must be different")
        return self


class TransactionFilters(BaseModel):
    search: Optional[str] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    date_range: DateRange = "all"
    page: int = Field(1, ge=1)
    page_size: int = Field(10, ge=1, le=100)


class CsvImport(BaseModel):
    csv: str


# --- Categories ---

class NewCategory(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: CategoryType
    color: str = Field("#6b7280", pattern=r"^#[0-9a-fA-F]{6}$")


class UpdateCategory(NewCategory):
    id: int


# --- Budgets ---

class NewBudget(BaseModel):
    category_id: int
    amount: float = Field(..., ge=0.01, le=MAX_AMOUNT, allow_inf_nan=False, description="Monthly budget")


class EditBudget(NewBudget):
    id: int


# --- Preferences ---

class UpdateUserPreferences(BaseModel):
    currency: CurrencyCode
    region: str = Field(..., pattern=r"^[A-Z]{2}$", description="ISO 3166 country code")
    date_format: DateFormat
    timezone: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z_]+(/[A-Za-z0-9_+\-]+)*$")
