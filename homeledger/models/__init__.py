"""
Data Models Package

This package contains all Pydantic models used by the Home Ledger engine.
All data flowing through the storage tiers must conform to these schemas.
"""

from homeledger.models.finance import (
    CATEGORIES_BY_TYPE,
    Asset,
    AssetType,
    CategoryConfig,
    EntryCategory,
    EntryType,
    FinancialOverview,
    LedgerEntry,
    Liability,
    LiabilityType,
    MonthlySummary,
    WireModel,
)
from homeledger.models.household import (
    Household,
    HouseholdMember,
    MemberRole,
    format_household_code,
    parse_household_code,
)

__all__ = [
    # Ledger and balance sheet
    "CATEGORIES_BY_TYPE",
    "Asset",
    "AssetType",
    "CategoryConfig",
    "EntryCategory",
    "EntryType",
    "FinancialOverview",
    "LedgerEntry",
    "Liability",
    "LiabilityType",
    "MonthlySummary",
    "WireModel",
    # Household
    "Household",
    "HouseholdMember",
    "MemberRole",
    "format_household_code",
    "parse_household_code",
]
