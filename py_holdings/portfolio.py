"""
Portfolio aggregation: merges the per asset class results into allocation
rows, per account summaries and grand totals.
"""
import logging
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .domain import AssetClass, AssetClassResult, ASSET_CLASS_ORDER, ZERO, percent_of

OTHER_ACCOUNTS = "Other Accounts"


@dataclass
class AllocationRow:
    asset_class: AssetClass
    invested: Decimal
    market_value: Decimal
    day_change: Decimal
    profit: Decimal
    profit_percent: Decimal
    market_allocation: Decimal = ZERO
    invested_allocation: Decimal = ZERO


@dataclass
class BucketTotals:
    invested: Decimal = ZERO
    market_value: Decimal = ZERO


@dataclass
class AccountSummary:
    account_name: str
    invested: Decimal = ZERO
    market_value: Decimal = ZERO
    breakdown: Dict[str, BucketTotals] = field(default_factory=dict)

    @property
    def profit(self) -> Decimal:
        return self.market_value - self.invested

    @property
    def profit_percent(self) -> Decimal:
        return percent_of(self.profit, self.invested)


@dataclass
class PortfolioSummary:
    total_invested: Decimal
    total_market_value: Decimal
    total_profit: Decimal
    profit_percent: Decimal
    day_change: Decimal
    day_change_percent: Decimal
    charges: Decimal = ZERO


@dataclass
class PortfolioReport:
    rows: List[AllocationRow]
    per_account: List[AccountSummary]
    summary: PortfolioSummary
    as_of: Optional[datetime] = None
    results: Dict[AssetClass, AssetClassResult] = field(default_factory=dict)


def normalize_account_name(name: Optional[str], other_label: str = OTHER_ACCOUNTS) -> str:
    trimmed = str(name or "").strip()
    return trimmed or other_label


class PortfolioAggregator:
    def __init__(self, excluded_accounts: Sequence[str] = (), other_accounts_label: str = OTHER_ACCOUNTS):
        self.excluded_accounts = {a.strip() for a in excluded_accounts}
        self.other_accounts_label = other_accounts_label

    def aggregate(self, results: Iterable[AssetClassResult], charges_total: Decimal = ZERO,
                  as_of: Optional[datetime] = None) -> PortfolioReport:
        by_class: Dict[AssetClass, AssetClassResult] = {}
        for result in results:
            by_class[result.asset_class] = result

        rows = self._rows(by_class, charges_total)
        total_invested = sum((r.invested for r in rows), ZERO)
        total_market = sum((r.market_value for r in rows), ZERO)
        # Both allocations are computed on the post-charge rows, so each column sums to 100
        for row in rows:
            row.market_allocation = percent_of(row.market_value, total_market) if total_market > 0 else ZERO
            row.invested_allocation = percent_of(row.invested, total_invested) if total_invested > 0 else ZERO

        total_profit = total_market - total_invested
        day_change = sum((r.day_change for r in rows), ZERO)
        summary = PortfolioSummary(
            total_invested=total_invested,
            total_market_value=total_market,
            total_profit=total_profit,
            profit_percent=percent_of(total_profit, total_invested),
            day_change=day_change,
            day_change_percent=percent_of(day_change, total_market - day_change),
            charges=charges_total
        )

        logging.info(f"Portfolio: market {total_market:.2f}, invested {total_invested:.2f}, profit {total_profit:.2f}")
        return PortfolioReport(
            rows=rows,
            per_account=self._per_account(by_class),
            summary=summary,
            as_of=as_of,
            results=by_class
        )

    def _rows(self, by_class: Dict[AssetClass, AssetClassResult], charges_total: Decimal) -> List[AllocationRow]:
        rows = []
        for asset_class in ASSET_CLASS_ORDER:
            result = by_class.get(asset_class) or AssetClassResult(asset_class=asset_class)
            invested = result.invested
            if asset_class == AssetClass.STOCK:
                invested -= charges_total
            profit = result.market_value - invested
            rows.append(AllocationRow(
                asset_class=asset_class,
                invested=invested,
                market_value=result.market_value,
                day_change=result.day_change,
                profit=profit,
                profit_percent=percent_of(profit, invested)
            ))
        return rows

    def _per_account(self, by_class: Dict[AssetClass, AssetClassResult]) -> List[AccountSummary]:
        accounts: Dict[str, AccountSummary] = {}
        for asset_class in ASSET_CLASS_ORDER:
            result = by_class.get(asset_class)
            if result is None:
                continue
            for piece in result.account_slices:
                name = normalize_account_name(piece.account_name, self.other_accounts_label)
                if name in self.excluded_accounts:
                    continue
                summary = accounts.setdefault(name, AccountSummary(account_name=name))
                summary.invested += piece.invested
                summary.market_value += piece.market_value
                bucket = summary.breakdown.setdefault(asset_class.value, BucketTotals())
                bucket.invested += piece.invested
                bucket.market_value += piece.market_value

        return sorted(accounts.values(), key=lambda a: a.market_value, reverse=True)


# --- Serialization ---
def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        data = {f.name: _plain(getattr(value, f.name)) for f in fields(value)}
        # Derived figures are part of the output records
        for name in ("profit", "profit_percent", "gain", "gain_percent", "unrealized_gain", "total", "delta"):
            attr = getattr(type(value), name, None)
            if isinstance(attr, property):
                data[name] = _plain(getattr(value, name))
        return data
    if isinstance(value, dict):
        return {str(_plain(k)): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def report_to_dict(report: PortfolioReport, include_details: bool = True) -> Dict[str, Any]:
    """ JSON-ready dicts: Decimal -> float, datetime -> ISO string, Enum -> value. """
    output = {
        "as_of": _plain(report.as_of),
        "rows": _plain(report.rows),
        "per_account": _plain(report.per_account),
        "summary": _plain(report.summary),
    }
    if include_details:
        output["asset_classes"] = {
            asset_class.value: _plain(result) for asset_class, result in report.results.items()
        }
    return output
