# =============================================================================
# finance_core/services/__init__.py
# Service Layer for FinanceHub
# Separates financial logic from the data layer and the UI
# =============================================================================
"""
Service Layer for FinanceHub

Usage Example:
-------------
    from finance_core.services import FinancialService, format_currency

    service = FinancialService()
    summary = await service.get_financial_summary(user_id)

    st.metric("Net worth", format_currency(summary.net_worth))
    if summary.degraded:
        st.caption("Estimated from offline data")
"""

from .base_service import BaseService
from .financial_calculations import (
    FinancialSummary,
    compute_summary,
    build_financial_statement,
    convert_to_monthly,
    format_currency,
    format_percentage,
    safe_parse_float,
)
from .financial_service import FinancialService

__all__ = [
    # Base classes
    "BaseService",
    # Financial operations
    "FinancialService",
    "FinancialSummary",
    "compute_summary",
    "build_financial_statement",
    # Formatting helpers
    "convert_to_monthly",
    "format_currency",
    "format_percentage",
    "safe_parse_float",
]
