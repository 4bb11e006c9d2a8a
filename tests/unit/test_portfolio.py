import json
from datetime import datetime
from decimal import Decimal

import pytest

from py_holdings.domain import AssetClass, AssetClassResult, AccountSlice, Holding, LedgerKey
from py_holdings.portfolio import PortfolioAggregator, report_to_dict, normalize_account_name


def result(asset_class, invested, market, day_change="0", slices=()):
    return AssetClassResult(
        asset_class=asset_class,
        invested=Decimal(invested),
        market_value=Decimal(market),
        day_change=Decimal(day_change),
        account_slices=[AccountSlice(name, Decimal(i), Decimal(m)) for name, i, m in slices],
    )


@pytest.fixture
def results():
    return [
        result(AssetClass.STOCK, "10000", "13000", "200", [("Zerodha", "6000", "8000"), ("Groww", "4000", "5000")]),
        result(AssetClass.MF, "5000", "5500", "-50", [("Zerodha", "5000", "5500")]),
        result(AssetClass.BANK, "3000", "3000", "0", [("", "3000", "3000")]),
        result(AssetClass.EPF, "2000", "2300", "0", [(None, "2000", "2300")]),
    ]


class TestAllocationRows:

    def test_one_row_per_asset_class_in_order(self, results):
        report = PortfolioAggregator().aggregate(results)

        assert [r.asset_class for r in report.rows] == [
            AssetClass.STOCK, AssetClass.ETF, AssetClass.MF, AssetClass.BANK,
            AssetClass.PPF, AssetClass.EPF, AssetClass.NPS, AssetClass.FD,
        ]
        etf = report.rows[1]
        assert etf.invested == 0 and etf.market_allocation == 0

    def test_allocations_sum_to_hundred(self, results):
        report = PortfolioAggregator().aggregate(results, charges_total=Decimal("500"))

        assert float(sum(r.market_allocation for r in report.rows)) == pytest.approx(100.0, abs=1e-6)
        assert float(sum(r.invested_allocation for r in report.rows)) == pytest.approx(100.0, abs=1e-6)

    def test_allocations_are_zero_without_value(self):
        report = PortfolioAggregator().aggregate([])

        assert all(r.market_allocation == 0 and r.invested_allocation == 0 for r in report.rows)
        assert report.summary.total_market_value == 0
        assert report.summary.profit_percent == 0

    def test_charges_reduce_stock_invested(self, results):
        report = PortfolioAggregator().aggregate(results, charges_total=Decimal("500"))

        stock = report.rows[0]
        assert stock.invested == Decimal("9500")
        assert stock.profit == Decimal("3500")
        assert report.summary.total_invested == Decimal("19500")
        assert report.summary.charges == Decimal("500")

    def test_summary_totals(self, results):
        report = PortfolioAggregator().aggregate(results)

        summary = report.summary
        assert summary.total_invested == Decimal("20000")
        assert summary.total_market_value == Decimal("23800")
        assert summary.total_profit == Decimal("3800")
        assert summary.profit_percent == Decimal("19")
        assert summary.day_change == Decimal("150")
        # Against the previous close value 23650
        assert float(summary.day_change_percent) == pytest.approx(150 / 23650 * 100)


class TestPerAccount:

    def test_accounts_merge_across_asset_classes(self, results):
        report = PortfolioAggregator().aggregate(results)

        accounts = {a.account_name: a for a in report.per_account}
        zerodha = accounts["Zerodha"]
        assert zerodha.invested == Decimal("11000")
        assert zerodha.market_value == Decimal("13500")
        assert zerodha.breakdown["Stock"].market_value == Decimal("8000")
        assert zerodha.breakdown["MF"].invested == Decimal("5000")
        assert zerodha.profit == Decimal("2500")

    def test_blank_accounts_are_other_accounts(self, results):
        report = PortfolioAggregator().aggregate(results)

        other = [a for a in report.per_account if a.account_name == "Other Accounts"][0]
        assert other.invested == Decimal("5000")
        assert set(other.breakdown) == {"Bank", "EPF"}

    def test_sorted_by_market_value(self, results):
        report = PortfolioAggregator().aggregate(results)

        values = [a.market_value for a in report.per_account]
        assert values == sorted(values, reverse=True)

    def test_excluded_accounts(self, results):
        report = PortfolioAggregator(excluded_accounts=["Groww"]).aggregate(results)

        assert "Groww" not in [a.account_name for a in report.per_account]
        # Totals are unaffected
        assert report.summary.total_market_value == Decimal("23800")

    def test_zero_invested_account_has_zero_percent(self):
        report = PortfolioAggregator().aggregate([result(AssetClass.BANK, "0", "0", slices=[("X", "0", "0")])])

        assert report.per_account[0].profit_percent == 0

    def test_normalize_account_name(self):
        assert normalize_account_name("  ") == "Other Accounts"
        assert normalize_account_name(None, "Misc") == "Misc"
        assert normalize_account_name(" A ") == "A"


class TestReportToDict:

    def test_json_ready(self, results):
        results[0].holdings.append(Holding(
            key=LedgerKey("INFY", "Zerodha"), units=Decimal("10"), invested=Decimal("1000"),
            market_value=Decimal("1500"), day_change=Decimal("10"), xirr=None,
            first_open_date=datetime(2023, 1, 1)
        ))
        report = PortfolioAggregator().aggregate(results, as_of=datetime(2024, 6, 30))

        output = report_to_dict(report)
        text = json.dumps(output)

        assert output["as_of"] == "2024-06-30T00:00:00"
        assert output["rows"][0]["asset_class"] == "Stock"
        assert isinstance(output["summary"]["total_invested"], float)
        holding = output["asset_classes"]["Stock"]["holdings"][0]
        assert holding["key"] == {"instrument": "INFY", "account": "Zerodha"}
        assert holding["unrealized_gain"] == 500.0
        assert holding["xirr"] is None
        assert holding["first_open_date"] == "2023-01-01T00:00:00"
        assert output["per_account"][0]["profit"] == pytest.approx(
            output["per_account"][0]["market_value"] - output["per_account"][0]["invested"]
        )
        assert "Stock" in text
