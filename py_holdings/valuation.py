import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from .domain import (
    LedgerKey, Lot, ClosedLot, Holding, ClosedPosition, CashflowPoint, ZERO
)
from .normalizer import clean_name, coerce_numeric, to_decimal
from . import xirr

import pandas as pd


@dataclass
class Quote:
    cmp: Decimal = ZERO  # current market price
    lcp: Decimal = ZERO  # previous close
    category: str = "Unknown"
    sector: str = "Unknown"
    extra: Dict[str, Any] = field(default_factory=dict)


class IPriceProvider(Protocol):
    def get_quote(self, instrument: str) -> Quote: ...


class PriceBook(IPriceProvider):
    """ Instrument name -> Quote, built from a master table. """

    def __init__(self, quotes: Optional[Dict[str, Quote]] = None, label: str = "prices"):
        self.quotes: Dict[str, Quote] = quotes or {}
        self.label = label
        self.logged_warnings: set = set()  # one warning per instrument

    @classmethod
    def from_rows(cls, rows: Optional[Iterable[Dict[str, Any]]], name_fields: Sequence[str],
                  label: str = "prices") -> "PriceBook":
        records = list(rows or [])
        book = cls(label=label)
        if not records:
            return book

        frame = pd.DataFrame.from_records(records)
        cmp = coerce_numeric(frame["cmp"]) if "cmp" in frame.columns else pd.Series([0.0] * len(frame))
        lcp = coerce_numeric(frame["lcp"]) if "lcp" in frame.columns else pd.Series([0.0] * len(frame))

        for position, row in enumerate(records):
            name = ""
            for field_name in name_fields:
                name = clean_name(row.get(field_name))
                if name:
                    break
            if not name:
                continue
            extra = {k: v for k, v in row.items() if k not in ("cmp", "lcp", *name_fields)}
            book.quotes[name] = Quote(
                cmp=to_decimal(cmp.iloc[position]),
                lcp=to_decimal(lcp.iloc[position]),
                category=clean_name(row.get("category")) or "Unknown",
                sector=clean_name(row.get("sector")) or "Unknown",
                extra=extra
            )
        return book

    def __contains__(self, instrument: str) -> bool:
        return instrument in self.quotes

    def get_quote(self, instrument: str) -> Quote:
        quote = self.quotes.get(instrument)
        if quote is not None:
            return quote
        if instrument not in self.logged_warnings:
            logging.warning(f"No {self.label} quote for '{instrument}'. Using fallback 0.00")
            self.logged_warnings.add(instrument)
        return Quote()


# --- Cashflows ---
def lot_cashflows(open_lots: Sequence[Lot], market_value: Decimal, as_of: datetime) -> List[CashflowPoint]:
    """ -cost at each lot's open date, +market value now (when positive). """
    flows = [
        CashflowPoint(amount=-float(lot.cost_basis), date=lot.open_date)
        for lot in open_lots if lot.open_date is not None
    ]
    if market_value > 0:
        flows.append(CashflowPoint(amount=float(market_value), date=as_of))
    return flows


def closed_cashflows(closed_lots: Sequence[ClosedLot], charges: Decimal = ZERO) -> List[CashflowPoint]:
    flows = []
    for lot in closed_lots:
        if lot.open_date is not None:
            flows.append(CashflowPoint(amount=-float(lot.cost_basis_consumed), date=lot.open_date))
        if lot.close_date is not None:
            flows.append(CashflowPoint(amount=float(lot.sale_proceeds), date=lot.close_date))
    if charges and flows:
        last_close = max((lot.close_date for lot in closed_lots if lot.close_date), default=None)
        if last_close is not None:
            flows.append(CashflowPoint(amount=-float(charges), date=last_close))
    return flows


# --- Valuation ---
def value_ledger(open_lots: Sequence[Lot], current_price: Decimal, previous_close: Decimal,
                 key: LedgerKey = LedgerKey(""), as_of: Optional[datetime] = None) -> Holding:
    """
    invested = sum of cost basis, market value = units * CMP,
    day change = units * (CMP - LCP), XIRR over the lot cashflows.
    """
    as_of = as_of or datetime.now()
    units = sum((lot.units for lot in open_lots), ZERO)
    invested = sum((max(lot.cost_basis, ZERO) for lot in open_lots), ZERO)
    market_value = units * current_price
    day_change = units * (current_price - previous_close)
    dated = [lot.open_date for lot in open_lots if lot.open_date is not None]

    return Holding(
        key=key,
        units=units,
        invested=invested,
        market_value=market_value,
        day_change=day_change,
        xirr=xirr.solve(lot_cashflows(open_lots, market_value, as_of)),
        current_price=current_price,
        previous_close=previous_close,
        first_open_date=min(dated) if dated else None
    )


def summarize_closed(key: LedgerKey, closed_lots: Sequence[ClosedLot], charges: Decimal = ZERO) -> ClosedPosition:
    opens = [lot.open_date for lot in closed_lots if lot.open_date is not None]
    closes = [lot.close_date for lot in closed_lots if lot.close_date is not None]
    return ClosedPosition(
        key=key,
        units=sum((lot.units_sold for lot in closed_lots), ZERO),
        invested=sum((lot.cost_basis_consumed for lot in closed_lots), ZERO),
        closed_value=sum((lot.sale_proceeds for lot in closed_lots), ZERO),
        charges=charges,
        open_date=min(opens) if opens else None,
        close_date=max(closes) if closes else None,
        xirr=xirr.solve(closed_cashflows(closed_lots, charges))
    )


class ValuationEngine:
    """ Values ledgers against a price provider at a fixed instant. """

    def __init__(self, prices: IPriceProvider, as_of: Optional[datetime] = None):
        self.prices = prices
        self.as_of = as_of or datetime.now()

    def value(self, key: LedgerKey, open_lots: Sequence[Lot], floor_at_zero: bool = False) -> Holding:
        quote = self.prices.get_quote(key.instrument)
        holding = value_ledger(open_lots, quote.cmp, quote.lcp, key=key, as_of=self.as_of)
        if floor_at_zero and holding.market_value < 0:
            holding.market_value = ZERO
        return holding
