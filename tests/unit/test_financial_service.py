# =============================================================================
# tests/unit/test_financial_service.py
# Unit Tests for FinancialService
# =============================================================================

from datetime import date

import pytest

from tests.conftest import network_down


@pytest.fixture
def seeded_gateway(gateway, sample_personal_info, sample_assets, sample_liabilities,
                   sample_income, sample_expenses):
    gateway.seed("personal_info", sample_personal_info)
    gateway.seed("assets", *sample_assets)
    gateway.seed("liabilities", *sample_liabilities)
    gateway.seed("income", *sample_income)
    gateway.seed("expenses", *sample_expenses)
    return gateway


class TestFinancialSummary:
    """Test summary over the data layer"""

    @pytest.mark.asyncio
    async def test_summary_from_remote(self, data_service, seeded_gateway):
        from finance_core.services.financial_service import FinancialService

        summary = await FinancialService(data_service).get_financial_summary()

        assert summary.net_worth == 120000
        assert not summary.degraded

    @pytest.mark.asyncio
    async def test_summary_degraded_from_stale_cache(self, data_service, seeded_gateway, clock):
        from finance_core.services.financial_service import FinancialService

        service = FinancialService(data_service)
        await service.get_financial_summary()

        clock.advance(hours=1)
        seeded_gateway.fail("select", network_down())
        summary = await service.get_financial_summary()

        assert summary.degraded
        assert summary.net_worth == 120000

    @pytest.mark.asyncio
    async def test_summary_offline_without_cache(self, data_service, gateway):
        from finance_core.services.financial_service import FinancialService

        gateway.fail("select", network_down())
        summary = await FinancialService(data_service).get_financial_summary()

        assert summary.degraded
        assert summary.total_assets == 0.0


class TestFinancialStatement:
    """Test statement generation"""

    @pytest.mark.asyncio
    async def test_statement_with_progress(self, data_service, seeded_gateway):
        from finance_core.services.financial_service import FinancialService

        progress = []
        service = FinancialService(data_service)
        service.set_progress_callback(lambda pct, msg: progress.append(pct))

        statement = await service.generate_financial_statement(statement_date=date(2024, 1, 31))

        assert statement["full_name"] == "Ada Lovelace"
        assert len(statement["expenses"]) == 2
        assert statement["degraded"] is False
        assert progress == [10, 70, 100]

    @pytest.mark.asyncio
    async def test_statement_for_other_user_is_empty(self, data_service, seeded_gateway):
        from finance_core.services.financial_service import FinancialService

        statement = await FinancialService(data_service).generate_financial_statement("nobody")

        assert statement["full_name"] == "Anonymous User"
        assert statement["assets"] == []
