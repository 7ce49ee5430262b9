# =============================================================================
# tests/unit/test_financial_calculations.py
# Unit Tests for Financial Calculations
# =============================================================================

from datetime import date

import pytest


class TestScalarHelpers:
    """Test parsing, conversion and formatting"""

    @pytest.mark.parametrize("value,expected", [
        (None, 0.0),
        ("12.5", 12.5),
        (7, 7.0),
        ("abc", 0.0),
        (float("nan"), 0.0),
    ])
    def test_safe_parse_float(self, value, expected):
        from finance_core.services.financial_calculations import safe_parse_float

        assert safe_parse_float(value) == expected

    @pytest.mark.parametrize("frequency,expected", [
        ("weekly", 433.0),
        ("bi-weekly", 217.0),
        ("monthly", 100.0),
        ("annually", 100 / 12),
        (None, 100.0),
        ("quarterly", 100.0),
    ])
    def test_convert_to_monthly(self, frequency, expected):
        from finance_core.services.financial_calculations import convert_to_monthly

        assert convert_to_monthly(100, frequency) == pytest.approx(expected)

    def test_format_currency(self):
        from finance_core.services.financial_calculations import format_currency

        assert format_currency(1234567.891) == "$1,234,567.89"
        assert format_currency(5, currency="€") == "€5.00"

    def test_format_percentage(self):
        from finance_core.services.financial_calculations import format_percentage

        assert format_percentage(0.256) == "25.6%"
        assert format_percentage(0.5, decimals=0) == "50%"


class TestMonthlyTotals:
    """Test DataFrame-based aggregation"""

    def test_monthly_total_mixed_frequencies(self):
        from finance_core.services.financial_calculations import monthly_total

        rows = [
            {"amount": 100, "frequency": "weekly"},
            {"amount": "1200", "frequency": "annually"},
            {"amount": 50},
        ]

        assert monthly_total(rows) == pytest.approx(433 + 100 + 50)

    def test_monthly_total_by_category(self, sample_expenses):
        from finance_core.services.financial_calculations import monthly_total

        assert monthly_total(sample_expenses, category="housing") == pytest.approx(2000)
        assert monthly_total(sample_expenses, category="travel") == 0.0

    def test_empty_and_missing_columns(self):
        from finance_core.services.financial_calculations import column_total, monthly_total

        assert monthly_total(None) == 0.0
        assert monthly_total([{"name": "no amount"}]) == 0.0
        assert monthly_total([{"amount": 5}], category="housing") == 0.0
        assert column_total([], "value") == 0.0


class TestComputeSummary:
    """Test summary totals and ratios"""

    def test_summary_figures(self, sample_assets, sample_liabilities, sample_income, sample_expenses):
        from finance_core.services.financial_calculations import compute_summary

        summary = compute_summary(sample_assets, sample_liabilities, sample_income, sample_expenses)

        monthly_expenses = 2000 + 250 * 4.33
        assert summary.total_assets == 320000
        assert summary.total_liabilities == 200000
        assert summary.net_worth == 120000
        assert summary.monthly_income == pytest.approx(7000)
        assert summary.monthly_expenses == pytest.approx(monthly_expenses)
        assert summary.monthly_cash_flow == pytest.approx(7000 - monthly_expenses)
        assert summary.debt_to_asset_ratio == pytest.approx(200000 / 320000)
        assert summary.savings_rate == pytest.approx((7000 - monthly_expenses) / 7000)
        assert summary.emergency_fund_ratio == pytest.approx(32000 / monthly_expenses)
        assert summary.housing_cost_ratio == pytest.approx(2000 / 7000)
        assert summary.degraded is False

    def test_zero_denominators(self):
        from finance_core.services.financial_calculations import compute_summary

        summary = compute_summary([], [], [], [])

        assert summary.debt_to_asset_ratio is None
        assert summary.savings_rate is None
        assert summary.emergency_fund_ratio == 0.0
        assert summary.housing_cost_ratio == 0.0

    def test_to_dict_is_plain(self):
        from finance_core.services.financial_calculations import compute_summary

        data = compute_summary([{"value": 10}], [], [], []).to_dict()

        assert data["total_assets"] == 10.0
        assert isinstance(data["total_assets"], float)


class TestBuildStatement:
    """Test statement document shaping"""

    def test_statement(self, sample_personal_info, sample_assets, sample_liabilities,
                       sample_income, sample_expenses):
        from finance_core.services.financial_calculations import build_financial_statement

        statement = build_financial_statement(
            sample_personal_info, sample_assets, sample_liabilities,
            sample_income, sample_expenses, statement_date=date(2024, 3, 31),
        )

        assert statement["full_name"] == "Ada Lovelace"
        assert statement["address"]["country"] == "United States"
        assert statement["address"]["zip_code"] == "N1"
        assert statement["assets"][0] == {
            "id": 1, "name": "House", "value": "300000", "include_in_report": True,
        }
        assert statement["incomes"][1]["name"] == "Bonus"
        assert statement["liabilities"][0]["value"] == "200000"
        assert statement["statement_date"] == "2024-03-31"

    def test_anonymous_statement(self):
        from finance_core.services.financial_calculations import build_financial_statement

        statement = build_financial_statement(None, None, [], [], [])

        assert statement["full_name"] == "Anonymous User"
        assert statement["email"] == ""
        assert statement["assets"] == []
        assert statement["profile_image"] is None
