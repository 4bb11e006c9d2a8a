"""
Equity / ETF aggregation.

Open rows (no sell_date) are buy lots fed through a FIFO ledger per
(stock_name, account_name) and valued against the stock price book. Rows
that carry a sell_date are already matched trades: their realized gain is
read directly as (sell - buy) x qty minus their share of the charges.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .domain import (
    AssetClass, AssetClassResult, AccountSlice, ClosedPosition, Holding,
    LedgerKey, TransactionEvent, TransactionKind, CashflowPoint, EPSILON, ZERO
)
from .errors import MalformedRecordError
from .fifo_engine import FifoEngine
from .normalizer import clean_name, coerce_numeric, parse_date, to_decimal
from .reconciliation import ReconciliationLog
from .valuation import PriceBook, ValuationEngine
from . import xirr

TOP_MOVERS = 5
ETF_ACCOUNT_TYPE = "ETF"


def total_charges(rows: Optional[Iterable[Dict[str, Any]]]) -> Decimal:
    """ Sum of other_charges + dp_charges over charge rows that carry a year. """
    records = [r for r in (rows or []) if r.get("year") is not None]
    if not records:
        return ZERO
    frame = pd.DataFrame.from_records(records)
    total = ZERO
    for column in ("other_charges", "dp_charges"):
        if column in frame.columns:
            total += to_decimal(coerce_numeric(frame[column]).sum())
    return total


def top_movers(holdings: List[Holding], count: int = TOP_MOVERS) -> Tuple[List[Holding], List[Holding]]:
    """ (gainers, losers) by unrealized profit; a holding appears in at most one list. """
    gainers = sorted((h for h in holdings if h.unrealized_gain > 0), key=lambda h: h.unrealized_gain, reverse=True)
    losers = sorted((h for h in holdings if h.unrealized_gain < 0), key=lambda h: h.unrealized_gain)
    return gainers[:count], losers[:count]


def _account_slices(holdings: List[Holding]) -> List[AccountSlice]:
    slices: Dict[str, AccountSlice] = {}
    for h in holdings:
        entry = slices.setdefault(h.account, AccountSlice(account_name=h.account or None, invested=ZERO, market_value=ZERO))
        entry.invested += h.invested
        entry.market_value += h.market_value
    return list(slices.values())


class EquityAggregator:
    def __init__(self, prices: PriceBook, as_of: Optional[datetime] = None,
                 reconciliation: Optional[ReconciliationLog] = None):
        self.prices = prices
        self.valuation = ValuationEngine(prices, as_of)
        self.reconciliation = reconciliation if reconciliation is not None else ReconciliationLog()

    def _frame(self, rows) -> pd.DataFrame:
        records = list(rows or [])
        if not records:
            return pd.DataFrame()
        frame = pd.DataFrame.from_records(records).reset_index(drop=True)
        for column in ("stock_name", "account_name", "account_type", "sell_date", "buy_date"):
            if column not in frame.columns:
                frame[column] = None
        for column in ("quantity", "buy_price", "sell_price", "charges"):
            frame[column] = coerce_numeric(frame[column]) if column in frame.columns else 0.0
        return frame

    def aggregate(self, rows: Optional[Iterable[Dict[str, Any]]], charges_total: Decimal = ZERO
                  ) -> Tuple[AssetClassResult, AssetClassResult]:
        """ Returns (Stock result, ETF result). """
        frame = self._frame(rows)
        stock = AssetClassResult(asset_class=AssetClass.STOCK)
        etf = AssetClassResult(asset_class=AssetClass.ETF)
        if frame.empty:
            return stock, etf

        engines = {
            AssetClass.STOCK: FifoEngine(self.reconciliation),
            AssetClass.ETF: FifoEngine(self.reconciliation),
        }
        closed_rows = []

        for position in range(len(frame)):
            row = frame.iloc[position]
            name = clean_name(row["stock_name"])
            if not name:
                self.reconciliation.record(MalformedRecordError(f"row {position}: missing stock_name"),
                                           ledger="stock_transactions")
                continue

            bucket = AssetClass.ETF if clean_name(row["account_type"]).upper() == ETF_ACCOUNT_TYPE else AssetClass.STOCK
            key = LedgerKey(name, clean_name(row["account_name"]))

            # Any sell_date marks a matched trade, never an open lot
            sell_text = "" if pd.isna(row["sell_date"]) else clean_name(row["sell_date"])
            if sell_text:
                if parse_date(row["sell_date"]) is None:
                    self.reconciliation.record(
                        MalformedRecordError(f"row {position}: unparseable sell_date '{sell_text}'"),
                        ledger="stock_transactions"
                    )
                    continue
                closed_rows.append((bucket, key, row))
                continue

            units = to_decimal(row["quantity"])
            if units <= EPSILON:
                logging.debug(f"stock_transactions: row {position} has no quantity, skipped")
                continue
            engines[bucket].apply_event(key, TransactionEvent(
                key=key,
                kind=TransactionKind.BUY,
                effective_date=parse_date(row["buy_date"]),
                sequence=position,
                units=units,
                price=to_decimal(row["buy_price"]),
            ))

        closed = self._closed_positions(closed_rows, charges_total)

        for result in (stock, etf):
            engine = engines[result.asset_class]
            for key in engine.keys():
                lots = engine.open_lots(key)
                if not lots:
                    continue
                holding = self.valuation.value(key, lots)
                result.holdings.append(holding)
                result.invested += holding.invested
                result.market_value += holding.market_value
                result.day_change += holding.day_change

            result.closed = [position for bucket, position in closed if bucket == result.asset_class]
            result.account_slices = _account_slices(result.holdings)
            gainers, losers = top_movers(result.holdings)
            result.details["top_gainers"] = gainers
            result.details["top_losers"] = losers
            result.details["realized_profit"] = sum((c.gain for c in result.closed), ZERO)

        logging.info(f"Equity: {len(stock.holdings)} stock and {len(etf.holdings)} ETF holdings, "
                     f"{len(closed)} closed trades")
        return stock, etf

    def _closed_positions(self, closed_rows, charges_total: Decimal) -> List[Tuple[AssetClass, ClosedPosition]]:
        """ Matched trades, charges allocated in proportion to each trade's invested amount. """
        invested_all = sum((abs(to_decimal(r["quantity"])) * to_decimal(r["buy_price"]) for _, _, r in closed_rows), ZERO)
        results = []
        for bucket, key, row in closed_rows:
            units = abs(to_decimal(row["quantity"]))
            invested = units * to_decimal(row["buy_price"])
            closed_value = units * to_decimal(row["sell_price"])
            allocated = to_decimal(row["charges"])
            if charges_total > 0 and invested_all > EPSILON:
                allocated += charges_total * invested / invested_all

            open_date = parse_date(row["buy_date"])
            close_date = parse_date(row["sell_date"])
            flows = []
            if open_date is not None:
                flows.append(CashflowPoint(amount=-float(invested), date=open_date))
            flows.append(CashflowPoint(amount=float(closed_value - allocated), date=close_date))

            results.append((bucket, ClosedPosition(
                key=key,
                units=units,
                invested=invested,
                closed_value=closed_value,
                charges=allocated,
                open_date=open_date,
                close_date=close_date,
                xirr=xirr.solve(flows)
            )))
        return results
