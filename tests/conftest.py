"""Pytest configuration and fixtures."""

from datetime import date

import pytest
import pytest_asyncio

from homeledger.models import (
    Asset,
    AssetType,
    EntryCategory,
    EntryType,
    Household,
    LedgerEntry,
    Liability,
    LiabilityType,
)
from homeledger.storage import InMemoryBackend, InMemoryRemoteChannel, RecordStore


def make_entry(
    amount: float,
    entry_type: EntryType = EntryType.EXPENSE,
    on: date = date(2024, 12, 15),
    category: EntryCategory = EntryCategory.OTHER,
    is_fixed: bool = False,
    entry_id: str = None,
) -> LedgerEntry:
    return LedgerEntry(
        id=entry_id,
        type=entry_type,
        amount=amount,
        category=category,
        entry_date=on,
        is_fixed=is_fixed,
    )


def make_asset(value: float, name: str = "Car") -> Asset:
    return Asset(type=AssetType.CAR, name=name, value=value)


def make_liability(remaining: float, total: float = 10000.0) -> Liability:
    return Liability(
        type=LiabilityType.LOAN,
        name="Bank loan",
        total_amount=total,
        remaining_amount=remaining,
    )


@pytest.fixture
def remote():
    """Fresh in-memory authoritative store."""
    return InMemoryRemoteChannel()


@pytest.fixture
def record_store():
    """Local mirror backed by memory."""
    return RecordStore(InMemoryBackend())


@pytest_asyncio.fixture
async def household_id(remote):
    """A stored household with a known join code."""
    return await remote.create_household(
        Household(
            id="house-1",
            name="The Cohens",
            currency="₪",
            initial_balance=500.0,
            owner_ids=["user-owner"],
            household_code="748392",
        )
    )
