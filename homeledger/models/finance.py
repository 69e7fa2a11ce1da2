"""
Core Data Models for Home Ledger

These models define the schemas for every record the engine moves between
the local mirror, the remote store and the in-memory snapshot.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Round-trip through the camelCase wire form used by both storage tiers

DESIGN DECISION: Amounts are plain floats. Aggregates are sums of native
floating-point values and carry no precision guarantee beyond that.
"""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntryType(str, Enum):
    """Direction of a ledger entry."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class EntryCategory(str, Enum):
    """
    Ledger entry categories.

    The allowed subset depends on the entry type, see CATEGORIES_BY_TYPE.
    """
    RENT = "RENT"
    MORTGAGE = "MORTGAGE"
    GROCERIES = "GROCERIES"
    FUEL = "FUEL"
    UTILITIES = "UTILITIES"
    SUBSCRIPTION = "SUBSCRIPTION"
    SALARY = "SALARY"
    ENTERTAINMENT = "ENTERTAINMENT"
    HEALTH = "HEALTH"
    EDUCATION = "EDUCATION"
    OTHER = "OTHER"


CATEGORIES_BY_TYPE: dict[EntryType, tuple[EntryCategory, ...]] = {
    EntryType.EXPENSE: (
        EntryCategory.RENT,
        EntryCategory.MORTGAGE,
        EntryCategory.GROCERIES,
        EntryCategory.FUEL,
        EntryCategory.UTILITIES,
        EntryCategory.SUBSCRIPTION,
        EntryCategory.ENTERTAINMENT,
        EntryCategory.HEALTH,
        EntryCategory.EDUCATION,
        EntryCategory.OTHER,
    ),
    EntryType.INCOME: (
        EntryCategory.SALARY,
        EntryCategory.OTHER,
    ),
}


class AssetType(str, Enum):
    """Kinds of non-cash holdings."""
    CAR = "CAR"
    PROPERTY = "PROPERTY"
    INVESTMENT = "INVESTMENT"
    SAVING_PLAN = "SAVING_PLAN"
    JEWELRY = "JEWELRY"
    OTHER = "OTHER"


class LiabilityType(str, Enum):
    """Kinds of debt."""
    LOAN = "LOAN"
    CREDIT_CARD = "CREDIT_CARD"
    MORTGAGE = "MORTGAGE"
    OTHER = "OTHER"


def _date_part(value: Any) -> Any:
    """
    Reduce datetimes and ISO datetime strings to their calendar date.

    Older clients stored effective dates as full ISO timestamps
    ("2024-12-31T00:00:00.000Z"); only the date part is meaningful.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


# =============================================================================
# WIRE BASE
# =============================================================================

class WireModel(BaseModel):
    """
    Base for every record stored remotely or in the local mirror.

    Python attributes are snake_case; the stored field map is camelCase.
    Both spellings are accepted on input.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_wire(self, include_id: bool = False) -> dict[str, Any]:
        """
        Flat field map in the stored (camelCase, JSON-safe) form.

        The identity is left out by default because the remote store keeps
        it in the document path, not in the document body.
        """
        exclude = None if include_id else {"id"}
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude=exclude,
        )

    def check_write(self) -> None:
        """Rules that hold for records this client writes. None by default."""

    @classmethod
    def _validate_field(cls, name: str, value: Any) -> Any:
        info = cls.model_fields[name]
        if info.annotation in (date, Optional[date]):
            value = _date_part(value)
        annotation = info.annotation
        if info.metadata:
            # Carry field constraints such as ge=0 over to the bare type
            annotation = Annotated[(info.annotation, *info.metadata)]
        adapter = TypeAdapter(annotation, config=ConfigDict(str_strip_whitespace=True))
        return adapter.validate_python(value)

    @classmethod
    def wire_fields(
        cls,
        changes: dict[str, Any],
        current: Optional["WireModel"] = None,
    ) -> dict[str, Any]:
        """
        Translate a partial update keyed by attribute name into wire form.

        Args:
            changes: New values keyed by attribute name
            current: The record as last delivered. When given, the merged
                     record is validated as a whole, including check_write().

        Raises:
            ValueError: If a key is not a field of this model or is the
                        identity, or if a value breaks the model's rules
        """
        for name in changes:
            if name == "id" or name not in cls.model_fields:
                raise ValueError(f"{cls.__name__} has no updatable field '{name}'")

        if current is not None:
            merged = cls.model_validate({**current.model_dump(), **changes})
            merged.check_write()
            values = {name: getattr(merged, name) for name in changes}
        else:
            values = {name: cls._validate_field(name, value) for name, value in changes.items()}

        fields: dict[str, Any] = {}
        for name, value in values.items():
            info = cls.model_fields[name]
            adapter = TypeAdapter(info.annotation)
            fields[info.alias or name] = adapter.dump_python(value, mode="json")
        return fields


# =============================================================================
# LEDGER
# =============================================================================

class LedgerEntry(WireModel):
    """
    A single income or expense record.

    Stored in the remote collection `transactions/{householdId}/items`.
    The type is editable; every aggregate re-reads it.
    """

    id: Optional[str] = Field(
        default=None,
        description="Store-assigned identity"
    )
    type: EntryType = Field(
        ...,
        description="INCOME or EXPENSE"
    )
    amount: float = Field(
        ...,
        ge=0,
        description="Non-negative amount in the household currency"
    )
    category: EntryCategory = Field(
        ...,
        description="Category, restricted by type"
    )
    description: Optional[str] = Field(
        default=None,
        description="Free-text note"
    )
    entry_date: date = Field(
        ...,
        alias="date",
        description="Effective date of the entry"
    )
    is_fixed: bool = Field(
        default=False,
        description="Recurring every month"
    )
    created_at: Optional[datetime] = Field(
        default=None,
        description="Creation timestamp (server-assigned remotely)"
    )

    @field_validator("entry_date", mode="before")
    @classmethod
    def strip_time_component(cls, v: Any) -> Any:
        return _date_part(v)

    def check_write(self) -> None:
        """
        Category must belong to the entry type's closed set.

        Checked only for writes made by this client. Stored entries with a
        mismatched pair still load, so every aggregate keeps counting them.
        """
        if self.category not in CATEGORIES_BY_TYPE[self.type]:
            raise ValueError(
                f"Category {self.category.value} is not valid for {self.type.value} entries"
            )

    @property
    def is_income(self) -> bool:
        return self.type == EntryType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == EntryType.EXPENSE


# =============================================================================
# BALANCE SHEET
# =============================================================================

class Asset(WireModel):
    """
    A non-cash holding.

    The cash balance is never stored as an asset; it is always derived
    from the ledger.
    """

    id: Optional[str] = None
    type: AssetType
    name: str = Field(
        ...,
        description="Display name"
    )
    value: float = Field(
        ...,
        description="Current value, may be zero"
    )
    last_updated_at: datetime = Field(
        default_factory=datetime.utcnow,
    )
    created_at: Optional[datetime] = None


class Liability(WireModel):
    """
    A debt owed by the household.

    remaining_amount is deliberately not checked against total_amount:
    manual corrections may leave it above the total for a while.
    """

    id: Optional[str] = None
    type: LiabilityType
    name: str = Field(
        ...,
        description="Display name"
    )
    total_amount: float = Field(
        ...,
        description="Original amount borrowed"
    )
    remaining_amount: float = Field(
        ...,
        description="Amount still owed"
    )
    monthly_payment: Optional[float] = None
    due_date: Optional[date] = None
    last_updated_at: datetime = Field(
        default_factory=datetime.utcnow,
    )
    created_at: Optional[datetime] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def strip_time_component(cls, v: Any) -> Any:
        return _date_part(v)


class CategoryConfig(WireModel):
    """User-defined category label kept in the local mirror."""

    id: str
    name: str
    icon: Optional[str] = None
    type: EntryType


# =============================================================================
# DERIVED VIEWS (never persisted)
# =============================================================================

class MonthlySummary(BaseModel):
    """Income and expenses for one calendar month."""

    income: float = 0.0
    expenses: float = 0.0
    balance: float = 0.0


class FinancialOverview(BaseModel):
    """Everything the dashboard shows, derived from one snapshot."""

    current_balance: float
    total_assets: float
    total_liabilities: float
    net_worth: float
    month: int = Field(..., ge=1, le=12)
    year: int
    monthly_summary: MonthlySummary
    fixed_expenses_total: float
