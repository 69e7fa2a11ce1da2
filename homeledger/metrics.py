"""
Metrics Engine

DESIGN DECISION: Every derived number is recomputed from the raw records
on every call. There is no cached or incremental aggregate state to drift
out of sync with the snapshot.

All functions here are pure: they never mutate their inputs and never
touch storage. Sums use native float addition.
"""

from datetime import date
from typing import Iterable, Optional, Sequence

from homeledger.models.finance import (
    Asset,
    EntryType,
    FinancialOverview,
    LedgerEntry,
    Liability,
    MonthlySummary,
)
from homeledger.models.household import Household


def _sum_by_type(entries: Iterable[LedgerEntry], entry_type: EntryType) -> float:
    return sum((e.amount for e in entries if e.type == entry_type), 0.0)


def total_income(entries: Iterable[LedgerEntry]) -> float:
    return _sum_by_type(entries, EntryType.INCOME)


def total_expenses(entries: Iterable[LedgerEntry]) -> float:
    return _sum_by_type(entries, EntryType.EXPENSE)


def monthly_summary(entries: Sequence[LedgerEntry], month: int, year: int) -> MonthlySummary:
    """
    Income and expenses for entries dated in the given calendar month.

    Args:
        entries: Ledger entries in any order
        month: Calendar month, 1-12
        year: Four-digit year
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")

    in_month = [
        e for e in entries
        if e.entry_date.month == month and e.entry_date.year == year
    ]
    income = total_income(in_month)
    expenses = total_expenses(in_month)
    return MonthlySummary(income=income, expenses=expenses, balance=income - expenses)


def current_balance(initial_balance: float, entries: Iterable[LedgerEntry]) -> float:
    """Initial balance plus all income minus all expenses, regardless of date."""
    entries = list(entries)
    return initial_balance + total_income(entries) - total_expenses(entries)


def total_assets(assets: Iterable[Asset]) -> float:
    return sum((a.value for a in assets), 0.0)


def total_liabilities(liabilities: Iterable[Liability]) -> float:
    return sum((liability.remaining_amount for liability in liabilities), 0.0)


def net_worth(
    current_balance: float,
    assets: Iterable[Asset],
    liabilities: Iterable[Liability],
) -> float:
    """Cash balance plus asset values minus remaining liability amounts."""
    return current_balance + total_assets(assets) - total_liabilities(liabilities)


def recent_entries(entries: Sequence[LedgerEntry], limit: int = 10) -> list[LedgerEntry]:
    """
    The `limit` most recent entries, newest effective date first.

    Entries sharing a date keep their input order. The input is not modified.
    """
    if limit <= 0:
        return []
    # sorted() is stable, including with reverse=True
    return sorted(entries, key=lambda e: e.entry_date, reverse=True)[:limit]


def fixed_expenses(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """Recurring expenses, largest first."""
    return sorted(
        (e for e in entries if e.type == EntryType.EXPENSE and e.is_fixed),
        key=lambda e: e.amount,
        reverse=True,
    )


def fixed_expenses_total(entries: Iterable[LedgerEntry]) -> float:
    return sum((e.amount for e in fixed_expenses(entries)), 0.0)


def financial_overview(
    household: Optional[Household],
    entries: Sequence[LedgerEntry],
    assets: Sequence[Asset],
    liabilities: Sequence[Liability],
    today: Optional[date] = None,
) -> FinancialOverview:
    """
    Dashboard figures for one snapshot.

    A missing household (not yet delivered) counts as a zero initial balance.
    """
    today = today or date.today()
    initial = household.initial_balance if household else 0.0
    balance = current_balance(initial, entries)
    return FinancialOverview(
        current_balance=balance,
        total_assets=total_assets(assets),
        total_liabilities=total_liabilities(liabilities),
        net_worth=net_worth(balance, assets, liabilities),
        month=today.month,
        year=today.year,
        monthly_summary=monthly_summary(entries, today.month, today.year),
        fixed_expenses_total=fixed_expenses_total(entries),
    )


def format_currency(amount: float, currency: str = "₪") -> str:
    """Symbol, space, grouped amount: format_currency(1234.5) -> '₪ 1,234.5'."""
    return f"{currency} {amount:,.2f}".rstrip("0").rstrip(".")
