"""
Household Models

A household is the shared financial unit. Every ledger entry, asset and
liability belongs to exactly one household, and every user belongs to
exactly one household at a time.

DESIGN DECISION: The join code is a plain 6-digit string. It is shown to
people as "XXX-XXX" but stored and matched without the separator.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from homeledger.models.finance import WireModel


HOUSEHOLD_CODE_PATTERN = re.compile(r"^\d{6}$")


class MemberRole(str, Enum):
    """Role a user holds inside their household."""
    OWNER = "owner"
    MEMBER = "member"


class Household(WireModel):
    """
    Household profile and settings.

    Stored as the document `households/{id}`.
    """

    id: Optional[str] = None
    name: str = Field(
        default="",
        description="Display name"
    )
    currency: str = Field(
        default="₪",
        description="Currency symbol"
    )
    month_start_day: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Day of month the household budget month starts"
    )
    initial_balance: float = Field(
        default=0.0,
        description="Money held before tracking began; may be negative"
    )
    balance_updated_at: Optional[datetime] = Field(
        default=None,
        description="When initial_balance was last set"
    )
    # Opaque secret forwarded to the assistant collaborator, never inspected
    assistant_api_key: Optional[str] = Field(
        default=None,
        alias="openaiApiKey",
    )
    owner_ids: list[str] = Field(
        default_factory=list,
        description="User identities attached to this household"
    )
    household_code: Optional[str] = Field(
        default=None,
        description="6-digit join code"
    )
    created_at: Optional[datetime] = None

    @field_validator("household_code")
    @classmethod
    def validate_household_code(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not HOUSEHOLD_CODE_PATTERN.match(v):
            raise ValueError("Household code must be exactly 6 digits")
        return v

    @field_validator("owner_ids")
    @classmethod
    def dedupe_owner_ids(cls, v: list[str]) -> list[str]:
        """Member identities behave as a set; keep first-seen order."""
        return list(dict.fromkeys(v))

    def has_member(self, user_id: str) -> bool:
        return user_id in self.owner_ids


class HouseholdMember(BaseModel):
    """A user's attachment to a household, as returned by create/join."""

    user_id: str
    household_id: str
    role: MemberRole


def format_household_code(code: str) -> str:
    """Format a join code for display, e.g. "748392" -> "748-392"."""
    if len(code) != 6:
        return code
    return f"{code[:3]}-{code[3:]}"


def parse_household_code(raw: str) -> Optional[str]:
    """
    Normalize user input to a bare 6-digit code.

    Accepts "748392", "748-392" and surrounding whitespace.
    Returns None if the input cannot be a join code.
    """
    candidate = raw.strip().replace("-", "").replace(" ", "")
    if HOUSEHOLD_CODE_PATTERN.match(candidate):
        return candidate
    return None
