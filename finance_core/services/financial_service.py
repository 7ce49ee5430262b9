# =============================================================================
# finance_core/services/financial_service.py
# Financial Summary and Statement Service
# =============================================================================
"""
FinancialService - dashboard figures and the personal financial statement.

Reads go through the DataService, so both operations keep working offline
on cached data; the summary then carries degraded=True.
"""

from __future__ import annotations
import asyncio
from datetime import date
from typing import Any, Dict, List, Optional

from finance_core.offline.cache_store import EntityKind
from finance_core.offline.data_service import DataService, get_data_service
from finance_core.offline.outcomes import QueryResult
from finance_core.services.base_service import BaseService
from finance_core.services.financial_calculations import (
    FinancialSummary,
    build_financial_statement,
    compute_summary,
)

SUMMARY_KINDS = [
    EntityKind.ASSETS,
    EntityKind.LIABILITIES,
    EntityKind.INCOME,
    EntityKind.EXPENSES,
]

STATEMENT_KINDS = [EntityKind.PERSONAL_INFO] + SUMMARY_KINDS


class FinancialService(BaseService):

    def __init__(self, data_service: Optional[DataService] = None):
        super().__init__()
        self._data_service = data_service

    @property
    def data(self) -> DataService:
        if self._data_service is None:
            self._data_service = get_data_service()
        return self._data_service

    async def _load(
        self,
        kinds: List[EntityKind],
        user_id: Optional[str],
    ) -> Dict[EntityKind, QueryResult]:
        results = await asyncio.gather(
            *(self.data.get_entity(kind, user_id) for kind in kinds)
        )
        loaded = dict(zip(kinds, results))

        for kind, result in loaded.items():
            if not result.success:
                self.logger.warning(
                    f"{kind.value} unavailable [{result.error.kind.value}]"
                    f"{', using cached copy' if result.used_cache else ''}"
                )
        return loaded

    async def get_financial_summary(self, user_id: Optional[str] = None) -> FinancialSummary:
        """
        Totals, monthly cash flow and ratios for a user.

        Returns:
            FinancialSummary; degraded is True when any input is not fresh
            remote data
        """
        with self.log_operation("Computing financial summary"):
            loaded = await self._load(SUMMARY_KINDS, user_id)

            summary = compute_summary(
                loaded[EntityKind.ASSETS].data,
                loaded[EntityKind.LIABILITIES].data,
                loaded[EntityKind.INCOME].data,
                loaded[EntityKind.EXPENSES].data,
            )
            summary.degraded = any(not r.success for r in loaded.values())
            return summary

    async def generate_financial_statement(
        self,
        user_id: Optional[str] = None,
        statement_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Personal financial statement document, with a degraded marker."""
        with self.log_operation("Generating financial statement"):
            self._update_progress(10, "Loading profile and entries")
            loaded = await self._load(STATEMENT_KINDS, user_id)

            self._update_progress(70, "Building statement")
            statement = build_financial_statement(
                loaded[EntityKind.PERSONAL_INFO].data,
                loaded[EntityKind.ASSETS].data,
                loaded[EntityKind.LIABILITIES].data,
                loaded[EntityKind.INCOME].data,
                loaded[EntityKind.EXPENSES].data,
                statement_date=statement_date,
            )
            statement["degraded"] = any(not r.success for r in loaded.values())

            self._update_progress(100, "Statement ready")
            return statement
