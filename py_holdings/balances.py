"""
Balance based asset classes: bank accounts, EPF, PPF and fixed deposits.

None of these hold unit lots. Bank balances are month-end snapshots; EPF,
PPF and FD keep a principal and an interest pool per account, where a
withdrawal (or maturity) drains the interest pool before the principal.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .domain import (
    AssetClass, AssetClassResult, AccountSlice, Holding, LedgerKey, TransactionEvent,
    TransactionKind, EPSILON, ZERO
)
from .errors import MalformedRecordError, OverconsumptionWarning
from .normalizer import (
    TransactionNormalizer, classify_balance_type, classify_retirement_type, clean_name,
    parse_date, to_decimal, coerce_numeric
)
from .reconciliation import ReconciliationLog

import pandas as pd

EPF_COMPONENTS = ("employee_share", "employer_share", "pension_share")


@dataclass
class BalancePool:
    principal: Decimal = ZERO
    interest: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.principal + self.interest

    def apply(self, kind: TransactionKind, amount: Decimal) -> Decimal:
        """ Applies one entry. Returns the part of a withdrawal the pool could not cover. """
        unmatched = ZERO
        if amount <= 0:
            return unmatched
        if kind in (TransactionKind.CONTRIBUTION, TransactionKind.BUY):
            self.principal += amount
        elif kind == TransactionKind.INTEREST:
            self.interest += amount
        elif kind in (TransactionKind.WITHDRAWAL, TransactionKind.SELL, TransactionKind.CHARGE):
            from_interest = min(amount, self.interest)
            self.interest -= from_interest
            from_principal = min(amount - from_interest, self.principal)
            self.principal -= from_principal
            unmatched = amount - from_interest - from_principal
        self.principal = max(self.principal, ZERO)
        self.interest = max(self.interest, ZERO)
        return unmatched


def _run_pools(events: List[TransactionEvent], reconciliation: ReconciliationLog) -> Dict[LedgerKey, BalancePool]:
    pools: Dict[LedgerKey, BalancePool] = {}
    for event in sorted(events, key=lambda e: e.sort_key()):
        unmatched = pools.setdefault(event.key, BalancePool()).apply(event.kind, event.amount)
        if unmatched > EPSILON:
            reconciliation.record(
                OverconsumptionWarning(f"{event.kind.value} of {event.amount} exceeds balance by {unmatched}"),
                ledger=event.key.label()
            )
    return pools


def _pool_holding(key: LedgerKey, pool: BalancePool) -> Holding:
    return Holding(key=key, units=ZERO, invested=pool.principal, market_value=pool.total, day_change=ZERO)


def _slices_from(holdings: List[Holding]) -> List[AccountSlice]:
    slices: Dict[str, AccountSlice] = {}
    for h in holdings:
        entry = slices.setdefault(h.account, AccountSlice(h.account or None, ZERO, ZERO))
        entry.invested += h.invested
        entry.market_value += h.market_value
    return list(slices.values())


# --- Bank ---
@dataclass
class BankSnapshot:
    month: Optional[Tuple[int, int]]
    prior_month: Optional[Tuple[int, int]]
    current_by_type: Dict[str, Decimal] = field(default_factory=dict)
    prior_by_type: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def current_total(self) -> Decimal:
        return sum(self.current_by_type.values(), ZERO)

    @property
    def prior_total(self) -> Decimal:
        return sum(self.prior_by_type.values(), ZERO)

    @property
    def delta(self) -> Decimal:
        return self.current_total - self.prior_total


def _previous_month(month: Tuple[int, int]) -> Tuple[int, int]:
    year, number = month
    return (year - 1, 12) if number == 1 else (year, number - 1)


class BankAggregator:
    """
    The balance of a bank account is the amount on its latest transaction
    within a calendar month. Balances are summed by account type for the most
    recent month in the data and for the month before it.
    """

    def __init__(self, reconciliation: Optional[ReconciliationLog] = None):
        self.reconciliation = reconciliation if reconciliation is not None else ReconciliationLog()

    def snapshot(self, rows: Optional[Iterable[Dict[str, Any]]]) -> Tuple[BankSnapshot, Dict[Tuple[str, str, str], Decimal]]:
        records = list(rows or [])
        if not records:
            return BankSnapshot(month=None, prior_month=None), {}

        frame = pd.DataFrame.from_records(records).reset_index(drop=True)
        amounts = coerce_numeric(frame["amount"]) if "amount" in frame.columns else pd.Series([0.0] * len(frame))

        # (account, bank, type) -> month -> (date, position, amount) of the latest entry
        latest: Dict[Tuple[str, str, str], Dict[Tuple[int, int], tuple]] = {}
        for position, row in enumerate(records):
            txn_date = parse_date(row.get("txn_date"))
            account_type = clean_name(row.get("account_type")).lower()
            if txn_date is None or not account_type:
                self.reconciliation.record(
                    MalformedRecordError(f"row {position}: missing txn_date or account_type"),
                    ledger="bank_transactions"
                )
                continue
            group = (clean_name(row.get("account_name")), clean_name(row.get("bank_name")), account_type)
            month = (txn_date.year, txn_date.month)
            candidate = (txn_date, position, to_decimal(amounts.iloc[position]))
            months = latest.setdefault(group, {})
            if month not in months or candidate[:2] > months[month][:2]:
                months[month] = candidate

        all_months = [m for months in latest.values() for m in months]
        if not all_months:
            return BankSnapshot(month=None, prior_month=None), {}

        current = max(all_months)
        prior = _previous_month(current)
        snapshot = BankSnapshot(month=current, prior_month=prior)
        balances = {}
        for group, months in latest.items():
            account_type = group[2]
            if current in months:
                amount = months[current][2]
                balances[group] = amount
                snapshot.current_by_type[account_type] = snapshot.current_by_type.get(account_type, ZERO) + amount
            if prior in months:
                snapshot.prior_by_type[account_type] = snapshot.prior_by_type.get(account_type, ZERO) + months[prior][2]
        return snapshot, balances

    def aggregate(self, rows: Optional[Iterable[Dict[str, Any]]]) -> AssetClassResult:
        snapshot, balances = self.snapshot(rows)
        result = AssetClassResult(asset_class=AssetClass.BANK)
        for (account, bank, account_type), amount in sorted(balances.items()):
            result.holdings.append(Holding(
                key=LedgerKey(f"{bank} {account_type}".strip(), account),
                units=ZERO, invested=amount, market_value=amount, day_change=ZERO
            ))
        result.invested = snapshot.current_total
        result.market_value = snapshot.current_total
        result.account_slices = _slices_from(result.holdings)
        result.details["snapshot"] = snapshot
        return result


# --- EPF ---
@dataclass
class CompanyBalance:
    company: str
    contributions: Decimal
    interest: Decimal

    @property
    def total(self) -> Decimal:
        return self.contributions + self.interest


class EpfAggregator:
    """ Passbook entries: employee + employer + pension share per row. """

    def __init__(self, reconciliation: Optional[ReconciliationLog] = None):
        self.reconciliation = reconciliation if reconciliation is not None else ReconciliationLog()
        self.normalizer = TransactionNormalizer(self.reconciliation)

    def aggregate(self, rows: Optional[Iterable[Dict[str, Any]]]) -> AssetClassResult:
        result = AssetClassResult(asset_class=AssetClass.EPF)
        events = self.normalizer.normalize_amount_rows(
            rows,
            instrument_fields=("company_name", "establishment_name"),
            type_fields=("invest_type", "transaction_type"),
            amount_fields=EPF_COMPONENTS,
            classifier=classify_retirement_type,
            date_fields=("contribution_date", "txn_date", "date"),
            table="epf_transactions",
        )
        pools = _run_pools(events, self.reconciliation)

        companies: Dict[str, CompanyBalance] = {}
        for key in sorted(pools):
            pool = pools[key]
            result.holdings.append(_pool_holding(key, pool))
            entry = companies.setdefault(key.instrument, CompanyBalance(key.instrument, ZERO, ZERO))
            entry.contributions += pool.principal
            entry.interest += pool.interest

        result.invested = sum((h.invested for h in result.holdings), ZERO)
        result.market_value = sum((h.market_value for h in result.holdings), ZERO)
        result.account_slices = _slices_from(result.holdings)
        result.details["companies"] = sorted(companies.values(), key=lambda c: c.total, reverse=True)
        result.details["interest"] = result.market_value - result.invested
        return result


# --- PPF / FD ---
class DepositAggregator:
    """ Provident fund or fixed deposit rows, selected by their account_type tag. """

    def __init__(self, asset_class: AssetClass, reconciliation: Optional[ReconciliationLog] = None):
        if asset_class not in (AssetClass.PPF, AssetClass.FD):
            raise ValueError(f"DepositAggregator handles PPF and FD, not {asset_class.value}")
        self.asset_class = asset_class
        self.reconciliation = reconciliation if reconciliation is not None else ReconciliationLog()
        self.normalizer = TransactionNormalizer(self.reconciliation)

    def aggregate(self, rows: Optional[Iterable[Dict[str, Any]]]) -> AssetClassResult:
        result = AssetClassResult(asset_class=self.asset_class)
        tag = self.asset_class.value.lower()
        selected = [r for r in (rows or []) if clean_name(r.get("account_type")).lower() == tag]

        events = self.normalizer.normalize_amount_rows(
            selected,
            instrument_fields=("bank_name",),
            classifier=classify_balance_type,
            table=f"{tag}_transactions",
        )
        ignored = sum(1 for e in events if e.amount <= 0)
        if ignored:
            logging.debug(f"{self.asset_class.value}: {ignored} non-positive amounts ignored")

        pools = _run_pools(events, self.reconciliation)
        for key in sorted(pools):
            result.holdings.append(_pool_holding(key, pools[key]))

        result.invested = sum((h.invested for h in result.holdings), ZERO)
        result.market_value = sum((h.market_value for h in result.holdings), ZERO)
        result.account_slices = _slices_from(result.holdings)
        result.details["interest"] = result.market_value - result.invested
        return result
