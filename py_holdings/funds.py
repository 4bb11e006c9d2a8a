"""
Unit based fund aggregation (mutual funds, NPS pension schemes).

Both keep one FIFO ledger per (scheme, account). Mutual funds are valued
against the fund master (CMP/LCP, category, AMC); NPS schemes against the
pension fund master, with market value floored at zero per scheme.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .domain import (
    AssetClass, AssetClassResult, AccountSlice, Holding, LedgerKey, Lot, ZERO, percent_of
)
from .fifo_engine import FifoEngine
from .normalizer import TransactionNormalizer, classify_fund_type
from .reconciliation import ReconciliationLog
from .valuation import PriceBook, ValuationEngine, lot_cashflows, summarize_closed
from . import xirr


@dataclass
class SchemeSummary:
    """ One scheme rolled up across accounts. """
    scheme: str
    units: Decimal
    invested: Decimal
    market_value: Decimal
    day_change: Decimal
    xirr: Optional[float]
    category: str = "Unknown"
    amc: str = ""
    accounts: int = 0

    @property
    def profit(self) -> Decimal:
        return self.market_value - self.invested

    @property
    def profit_percent(self) -> Decimal:
        return percent_of(self.profit, self.invested)


class FundAggregator:
    """ FIFO ledgers per (scheme, account), valued against a scheme price book. """

    asset_class = AssetClass.MF
    table = "mf_transactions"
    name_fields: Sequence[str] = ("fund_short_name",)
    floor_at_zero = False

    def __init__(self, prices: PriceBook, as_of: Optional[datetime] = None,
                 reconciliation: Optional[ReconciliationLog] = None):
        self.prices = prices
        self.valuation = ValuationEngine(prices, as_of)
        self.reconciliation = reconciliation if reconciliation is not None else ReconciliationLog()
        self.normalizer = TransactionNormalizer(self.reconciliation)

    def aggregate(self, rows: Optional[Iterable[Dict[str, Any]]]) -> AssetClassResult:
        result = AssetClassResult(asset_class=self.asset_class)
        events = self.normalizer.normalize_unit_rows(
            rows,
            instrument_fields=self.name_fields,
            classifier=classify_fund_type,
            table=self.table,
        )
        if not events:
            return result

        engine = FifoEngine(self.reconciliation)
        engine.process(events)

        lots_by_scheme: Dict[str, List[Lot]] = {}
        slices: Dict[str, AccountSlice] = {}

        for key in engine.keys():
            lots = engine.open_lots(key)
            if lots:
                holding = self.valuation.value(key, lots, floor_at_zero=self.floor_at_zero)
                result.holdings.append(holding)
                result.invested += holding.invested
                result.market_value += holding.market_value
                result.day_change += holding.day_change
                lots_by_scheme.setdefault(key.instrument, []).extend(lots)

                entry = slices.setdefault(key.account, AccountSlice(key.account or None, ZERO, ZERO))
                entry.invested += holding.invested
                entry.market_value += holding.market_value

            # A partially exited ledger has both an active holding and a closed position
            closed_lots = engine.closed(key)
            if closed_lots:
                result.closed.append(summarize_closed(key, closed_lots))

        result.account_slices = list(slices.values())
        result.details["schemes"] = self._scheme_rollup(result.holdings, lots_by_scheme)
        result.details["realized_profit"] = sum((c.gain for c in result.closed), ZERO)

        logging.info(f"{self.asset_class.value}: {len(result.holdings)} active, {len(result.closed)} closed ledgers")
        return result

    def _scheme_rollup(self, holdings: List[Holding], lots_by_scheme: Dict[str, List[Lot]]) -> List[SchemeSummary]:
        grouped: Dict[str, List[Holding]] = {}
        for h in holdings:
            grouped.setdefault(h.instrument, []).append(h)

        summaries = []
        for scheme, members in grouped.items():
            quote = self.prices.get_quote(scheme)
            market_value = sum((h.market_value for h in members), ZERO)
            if self.floor_at_zero:
                market_value = max(market_value, ZERO)
            lots = sorted(lots_by_scheme.get(scheme, []), key=lambda lot: lot.sort_key())
            summaries.append(SchemeSummary(
                scheme=scheme,
                units=sum((h.units for h in members), ZERO),
                invested=sum((h.invested for h in members), ZERO),
                market_value=market_value,
                day_change=sum((h.day_change for h in members), ZERO),
                xirr=xirr.solve(lot_cashflows(lots, market_value, self.valuation.as_of)),
                category=quote.category,
                amc=str(quote.extra.get("amc_name") or ""),
                accounts=len(members)
            ))
        summaries.sort(key=lambda s: s.market_value, reverse=True)
        return summaries


class MutualFundAggregator(FundAggregator):
    asset_class = AssetClass.MF
    table = "mf_transactions"
    name_fields = ("fund_short_name",)


class PensionFundAggregator(FundAggregator):
    asset_class = AssetClass.NPS
    table = "nps_transactions"
    name_fields = ("scheme_name", "fund_name")
    floor_at_zero = True
