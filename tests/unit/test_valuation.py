from datetime import datetime
from decimal import Decimal

import pytest

from py_holdings.domain import LedgerKey, Lot, ClosedLot
from py_holdings.valuation import (
    PriceBook, Quote, ValuationEngine, value_ledger, summarize_closed, lot_cashflows
)

AS_OF = datetime(2024, 1, 1)


def lot(units, cost, day):
    return Lot(units=Decimal(units), cost_basis=Decimal(cost), open_date=day, origin_sequence=0)


class TestValueLedger:

    def test_invested_market_value_and_day_change(self):
        lots = [lot("100", "1000", datetime(2023, 1, 1)), lot("50", "600", datetime(2023, 6, 1))]

        holding = value_ledger(lots, Decimal("12"), Decimal("11.5"), key=LedgerKey("X", "A"), as_of=AS_OF)

        assert holding.units == Decimal("150")
        assert holding.invested == Decimal("1600")
        assert holding.market_value == Decimal("1800")
        assert holding.day_change == Decimal("75")
        assert holding.unrealized_gain == Decimal("200")
        assert holding.gain_percent == Decimal("12.5")
        assert holding.first_open_date == datetime(2023, 1, 1)
        assert holding.xirr is not None and holding.xirr > 0

    def test_zero_invested_gives_zero_percent(self):
        holding = value_ledger([lot("10", "0", datetime(2023, 1, 1))], Decimal("5"), Decimal("5"), as_of=AS_OF)

        assert holding.invested == 0
        assert holding.gain_percent == 0

    def test_zero_price_has_no_return(self):
        holding = value_ledger([lot("10", "100", datetime(2023, 1, 1))], Decimal("0"), Decimal("0"), as_of=AS_OF)

        assert holding.market_value == 0
        assert holding.xirr is None

    def test_cashflows_skip_undated_lots(self):
        lots = [lot("10", "100", None), lot("10", "100", datetime(2023, 1, 1))]

        flows = lot_cashflows(lots, Decimal("250"), AS_OF)

        assert [f.amount for f in flows] == [-100.0, 250.0]
        assert flows[-1].date == AS_OF

    def test_one_year_return(self):
        holding = value_ledger([lot("100", "1000", datetime(2023, 1, 1))], Decimal("11"), Decimal("11"), as_of=AS_OF)

        assert holding.xirr == pytest.approx(10.0, abs=0.01)


class TestSummarizeClosed:

    def test_closed_position_totals(self):
        closed = [
            ClosedLot(Decimal("100"), Decimal("1000"), Decimal("1500"), datetime(2023, 1, 1), datetime(2024, 1, 1)),
            ClosedLot(Decimal("20"), Decimal("240"), Decimal("300"), datetime(2023, 1, 2), datetime(2024, 1, 1)),
        ]

        position = summarize_closed(LedgerKey("X", "A"), closed)

        assert position.units == Decimal("120")
        assert position.invested == Decimal("1240")
        assert position.closed_value == Decimal("1800")
        assert position.gain == Decimal("560")
        assert position.open_date == datetime(2023, 1, 1)
        assert position.close_date == datetime(2024, 1, 1)
        assert position.xirr is not None and position.xirr > 0

    def test_charges_reduce_gain(self):
        closed = [ClosedLot(Decimal("1"), Decimal("100"), Decimal("150"), datetime(2023, 1, 1), datetime(2024, 1, 1))]

        position = summarize_closed(LedgerKey("X"), closed, charges=Decimal("10"))

        assert position.gain == Decimal("40")
        assert position.gain_percent == Decimal("40")


class TestPriceBook:

    def test_from_rows(self):
        book = PriceBook.from_rows(
            [{"stock_name": " INFY ", "cmp": "1,500.5", "lcp": 1490, "sector": "IT"}, {"stock_name": "", "cmp": 1}],
            ("stock_name",)
        )

        quote = book.get_quote("INFY")
        assert quote.cmp == Decimal("1500.5")
        assert quote.lcp == Decimal("1490")
        assert quote.sector == "IT"
        assert quote.category == "Unknown"
        assert "INFY" in book
        assert len(book.quotes) == 1

    def test_missing_instrument_warns_once(self, caplog):
        book = PriceBook(label="stock")

        first = book.get_quote("NOPE")
        second = book.get_quote("NOPE")

        assert first.cmp == 0 and second.cmp == 0
        assert caplog.text.count("No stock quote for 'NOPE'") == 1

    def test_engine_uses_quotes(self):
        book = PriceBook({"X": Quote(cmp=Decimal("2"), lcp=Decimal("1"))})
        engine = ValuationEngine(book, as_of=AS_OF)

        holding = engine.value(LedgerKey("X", "A"), [lot("10", "10", datetime(2023, 1, 1))])

        assert holding.market_value == Decimal("20")
        assert holding.day_change == Decimal("10")
        assert holding.key == LedgerKey("X", "A")

    def test_engine_floors_negative_value(self):
        book = PriceBook({"X": Quote(cmp=Decimal("-1"), lcp=Decimal("0"))})

        holding = ValuationEngine(book, as_of=AS_OF).value(LedgerKey("X"), [lot("10", "10", None)], floor_at_zero=True)

        assert holding.market_value == 0
