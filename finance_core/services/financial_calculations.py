# =============================================================================
# finance_core/services/financial_calculations.py
# Financial Summary and Statement Calculations
# =============================================================================
"""
Pure calculations over the rows returned by the data layer.

Income and expense rows carry an ``amount`` and a ``frequency``; everything
is normalised to monthly figures before totals and ratios are computed.
Rows are handled as pandas DataFrames so that missing columns and
unparseable amounts degrade to zero instead of raising.
"""

from __future__ import annotations
import math
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

# Monthly multipliers per income/expense frequency; anything else is monthly
FREQUENCY_FACTORS = {
    "weekly": 4.33,
    "bi-weekly": 2.17,
    "monthly": 1.0,
    "annually": 1 / 12,
}

# Share of total assets assumed to be held as cash
CASH_SHARE_OF_ASSETS = 0.10

HOUSING_CATEGORY = "housing"
DEFAULT_COUNTRY = "United States"

Rows = Optional[List[Dict[str, Any]]]


# =============================================================================
# SCALAR HELPERS
# =============================================================================

def safe_parse_float(value: Any) -> float:
    """Parse a number, returning 0.0 for None, garbage or NaN."""
    if value is None:
        return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(parsed) else parsed


def convert_to_monthly(amount: float, frequency: Optional[str]) -> float:
    """
    >>> convert_to_monthly(100, "weekly")
    433.0
    >>> convert_to_monthly(1200, "annually")
    100.0
    """
    return amount * FREQUENCY_FACTORS.get(frequency, 1.0)


def format_currency(value: float, currency: str = "$") -> str:
    """
    >>> format_currency(1234.5)
    '$1,234.50'
    """
    return f"{currency}{value:,.2f}"


def format_percentage(value: float, decimals: int = 1) -> str:
    """
    >>> format_percentage(0.256)
    '25.6%'
    """
    return f"{value * 100:.{decimals}f}%"


# =============================================================================
# DATAFRAME HELPERS
# =============================================================================

def to_frame(rows: Rows) -> pd.DataFrame:
    if isinstance(rows, dict):
        rows = [rows]
    return pd.DataFrame(rows or [])


def numeric_column(df: pd.DataFrame, column: str) -> pd.Series:
    """Column as floats; missing column or unparseable cells become 0."""
    if column not in df.columns:
        return pd.Series(0.0, index=df.index)
    return pd.to_numeric(df[column], errors="coerce").fillna(0.0)


def monthly_amounts(rows: Rows) -> pd.Series:
    """Monthly equivalent of every income/expense row."""
    df = to_frame(rows)
    amounts = numeric_column(df, "amount")
    if "frequency" not in df.columns:
        return amounts
    factors = df["frequency"].map(lambda f: FREQUENCY_FACTORS.get(f, 1.0))
    return amounts * factors.astype(float)


def monthly_total(rows: Rows, category: Optional[str] = None) -> float:
    """Sum of monthly amounts, optionally for one category (case-insensitive)."""
    df = to_frame(rows)
    if df.empty:
        return 0.0

    amounts = monthly_amounts(rows)
    if category is not None:
        if "category" not in df.columns:
            return 0.0
        mask = df["category"].astype(str).str.lower() == category.lower()
        amounts = amounts[mask]

    return float(amounts.sum())


def column_total(rows: Rows, column: str) -> float:
    df = to_frame(rows)
    if df.empty:
        return 0.0
    return float(numeric_column(df, column).sum())


# =============================================================================
# SUMMARY
# =============================================================================

@dataclass
class FinancialSummary:
    """Dashboard figures; ratios are None when their denominator is zero."""
    total_assets: float = 0.0
    total_liabilities: float = 0.0
    net_worth: float = 0.0
    monthly_income: float = 0.0
    monthly_expenses: float = 0.0
    monthly_cash_flow: float = 0.0
    debt_to_asset_ratio: Optional[float] = None
    savings_rate: Optional[float] = None
    emergency_fund_ratio: float = 0.0
    housing_cost_ratio: float = 0.0
    # True when any input came from a stale cache or a fallback
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def compute_summary(
    assets: Rows,
    liabilities: Rows,
    income: Rows,
    expenses: Rows,
) -> FinancialSummary:
    total_assets = column_total(assets, "value")
    total_liabilities = column_total(liabilities, "amount")
    monthly_income = monthly_total(income)
    monthly_expenses = monthly_total(expenses)
    housing = monthly_total(expenses, category=HOUSING_CATEGORY)

    cash = total_assets * CASH_SHARE_OF_ASSETS

    return FinancialSummary(
        total_assets=total_assets,
        total_liabilities=total_liabilities,
        net_worth=total_assets - total_liabilities,
        monthly_income=monthly_income,
        monthly_expenses=monthly_expenses,
        monthly_cash_flow=monthly_income - monthly_expenses,
        debt_to_asset_ratio=total_liabilities / total_assets if total_assets > 0 else None,
        savings_rate=(
            (monthly_income - monthly_expenses) / monthly_income if monthly_income > 0 else None
        ),
        emergency_fund_ratio=cash / monthly_expenses if monthly_expenses > 0 else 0.0,
        housing_cost_ratio=housing / monthly_income if monthly_income > 0 else 0.0,
    )


# =============================================================================
# STATEMENT
# =============================================================================

def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _statement_items(rows: Rows, name_column: str, value_column: str) -> List[Dict[str, Any]]:
    items = []
    for row in (rows or []):
        items.append({
            "id": row.get("id"),
            "name": _text(row.get(name_column)),
            "value": _text(row.get(value_column, 0)),
            "include_in_report": True,
        })
    return items


def build_financial_statement(
    personal_info: Optional[Dict[str, Any]],
    assets: Rows,
    liabilities: Rows,
    income: Rows,
    expenses: Rows,
    statement_date: Optional[date] = None,
) -> Dict[str, Any]:
    """Shape the raw rows into the personal financial statement document."""
    info = personal_info or {}
    full_name = f"{info.get('first_name') or ''} {info.get('last_name') or ''}".strip()

    return {
        "profile_image": info.get("profile_image") or None,
        "full_name": full_name or "Anonymous User",
        "email": info.get("email") or "",
        "phone": info.get("phone") or "",
        "address": {
            "street": info.get("address") or "",
            "city": info.get("city") or "",
            "state": info.get("state") or "",
            "zip_code": info.get("zip_code") or "",
            "country": DEFAULT_COUNTRY,
            "include_in_report": True,
        },
        "assets": _statement_items(assets, "name", "value"),
        "liabilities": _statement_items(liabilities, "name", "amount"),
        "incomes": _statement_items(income, "source", "amount"),
        "expenses": _statement_items(expenses, "name", "amount"),
        "statement_date": (statement_date or date.today()).isoformat(),
    }
