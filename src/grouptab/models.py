"""Pydantic models for grouptab expense tracking."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_serializer, field_validator

# Membership cap per group
MAX_PARTICIPANTS = 4

# Display name used when an identifier can't be resolved to a snapshot
UNKNOWN_NAME = "Unknown"


def _new_id() -> str:
    return uuid4().hex


def to_decimal(v: Any) -> Decimal:
    if isinstance(v, float):
        v = Decimal(str(v))
    try:
        d = v if isinstance(v, Decimal) else Decimal(v)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"'{v}' is not a valid amount") from e
    if not d.is_finite():
        raise ValueError(f"'{v}' is not a valid amount")
    return d


class SplitMode(str, Enum):
    """How an expense is divided among its participants."""

    EQUAL = "equal"
    PERCENTAGE = "percentage"
    CUSTOM = "custom"


class Participant(BaseModel):
    """A member of a group."""

    user_id: str
    name: str
    color: str = "#3B82F6"


class Share(BaseModel):
    """A single participant's portion of an expense."""

    user_id: str
    name: str = UNKNOWN_NAME
    amount: Decimal = Decimal("0")
    percentage: Decimal = Decimal("0")

    @field_validator("amount", "percentage", mode="before")
    @classmethod
    def coerce_decimal(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("amount", "percentage")
    @classmethod
    def non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Share amounts and percentages cannot be negative")
        return v

    @field_serializer("amount", "percentage")
    def serialize_decimal(self, v: Decimal) -> str:
        return str(v)


class Expense(BaseModel):
    """An expense paid by one member and shared among several."""

    id: str = Field(default_factory=_new_id)
    group_id: str
    amount: Decimal
    description: str
    date: datetime = Field(default_factory=datetime.now)
    payer_id: str
    payer_name: str = UNKNOWN_NAME
    split_mode: SplitMode = SplitMode.EQUAL
    shares: list[Share]
    notes: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("amount")
    @classmethod
    def positive_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Expense amount must be positive")
        return v

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Description is required")
        return v

    @field_serializer("amount")
    def serialize_amount(self, v: Decimal) -> str:
        return str(v)


class Balance(BaseModel):
    """A net debt inside a group: debtor owes creditor `amount`."""

    id: str = Field(default_factory=_new_id)
    group_id: str
    debtor_id: str
    debtor_name: str = UNKNOWN_NAME
    creditor_id: str
    creditor_name: str = UNKNOWN_NAME
    amount: Decimal

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("amount")
    @classmethod
    def positive_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Balance amount must be positive")
        return v

    @field_serializer("amount")
    def serialize_amount(self, v: Decimal) -> str:
        return str(v)


class SettlementSuggestion(BaseModel):
    """A suggested payment. Computed on demand, never stored."""

    from_id: str
    from_name: str
    to_id: str
    to_name: str
    amount: Decimal

    @field_serializer("amount")
    def serialize_amount(self, v: Decimal) -> str:
        return str(v)


class Group(BaseModel):
    """A group of people sharing expenses."""

    id: str = Field(default_factory=_new_id)
    name: str
    owner_id: str
    participants: list[Participant] = Field(default_factory=list)
    total_spent: Decimal = Decimal("0")
    description: str = ""
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Group name is required")
        return v

    @field_validator("total_spent", mode="before")
    @classmethod
    def coerce_total(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_serializer("total_spent")
    def serialize_total(self, v: Decimal) -> str:
        return str(v)

    def is_member(self, user_id: str) -> bool:
        """Owner or listed participant."""
        return user_id == self.owner_id or any(p.user_id == user_id for p in self.participants)

    def participant_name(self, user_id: str) -> str:
        for p in self.participants:
            if p.user_id == user_id:
                return p.name
        return UNKNOWN_NAME


class BalanceSummary(BaseModel):
    """Balances of a group as seen by one member."""

    total_owed: Decimal = Decimal("0")  # Others owe the viewer
    total_owes: Decimal = Decimal("0")  # Viewer owes others
    balances: list[Balance] = Field(default_factory=list)

    @field_serializer("total_owed", "total_owes")
    def serialize_totals(self, v: Decimal) -> str:
        return str(v)
