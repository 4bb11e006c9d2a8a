"""
Transaction Normalizer.

Turns raw table rows (dicts as delivered by the data store) into canonical
TransactionEvents. Free-text transaction types are mapped onto the closed
TransactionKind enumeration here, so nothing downstream looks at raw text.
"""
import re
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .domain import LedgerKey, TransactionEvent, TransactionKind, ZERO
from .errors import MalformedRecordError
from .reconciliation import ReconciliationLog

# --- Keyword Tables ---
# Sale keywords are checked first: "switch out" must win over "switch"
FUND_SALE_KEYWORDS = (
    'sell', 'redeem', 'redemption', 'withdraw', 'switch out', 'switch-out',
    'switch to', 'switch-to', 'stp out', 'stp-out', 'charges', 'exit',
    'migration', 'transfer', 'payout',
)
FUND_BUY_KEYWORDS = (
    'buy', 'purchase', 'sip', 'switch in', 'switch-in', 'stp in', 'stp-in',
    'contribution', 'allotment', 'dividend',
)
BALANCE_OPEN_KEYWORDS = ('deposit', 'create', 'open', 'contribution')
BALANCE_CLOSE_KEYWORDS = ('withdraw', 'maturity')

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_WHITESPACE = re.compile(r"\s+")

Classifier = Callable[[str, Decimal], Optional[TransactionKind]]


def _clean_text(raw: Any) -> str:
    if raw is None or (isinstance(raw, float) and np.isnan(raw)):
        return ""
    return _WHITESPACE.sub(" ", str(raw).strip().lower())


def _kind_from_sign(units: Decimal) -> Optional[TransactionKind]:
    if units < 0:
        return TransactionKind.SELL
    if units > 0:
        return TransactionKind.BUY
    return None


def classify_fund_type(raw_type: Any, units: Decimal = ZERO) -> Optional[TransactionKind]:
    """
    Maps a fund transaction type (free text) onto a TransactionKind.
    Falls back to the sign of units when the text is absent or ambiguous.
    """
    text = _clean_text(raw_type)
    if not text:
        return _kind_from_sign(units)

    if any(keyword in text for keyword in FUND_SALE_KEYWORDS):
        if 'charge' in text:
            return TransactionKind.CHARGE
        if 'withdraw' in text:
            return TransactionKind.WITHDRAWAL
        return TransactionKind.SELL

    if any(keyword in text for keyword in FUND_BUY_KEYWORDS):
        if 'contribution' in text:
            return TransactionKind.CONTRIBUTION
        return TransactionKind.BUY

    if 'charge' in text or 'fee' in text or 'tax' in text:
        return TransactionKind.CHARGE
    if 'interest' in text:
        return TransactionKind.INTEREST

    return _kind_from_sign(units)


def classify_balance_type(raw_type: Any, amount: Decimal = ZERO) -> Optional[TransactionKind]:
    """ Provident fund / fixed deposit ledger entries. """
    text = _clean_text(raw_type)
    if any(keyword in text for keyword in BALANCE_OPEN_KEYWORDS):
        return TransactionKind.CONTRIBUTION
    if 'interest' in text:
        return TransactionKind.INTEREST
    if any(keyword in text for keyword in BALANCE_CLOSE_KEYWORDS):
        return TransactionKind.WITHDRAWAL
    if 'charge' in text or 'fee' in text:
        return TransactionKind.CHARGE
    return None


def classify_retirement_type(raw_type: Any, amount: Decimal = ZERO) -> Optional[TransactionKind]:
    """ EPF passbook entries: anything not a withdrawal or interest is a contribution. """
    text = _clean_text(raw_type)
    if 'withdraw' in text:
        return TransactionKind.WITHDRAWAL
    if 'interest' in text:
        return TransactionKind.INTEREST
    return TransactionKind.CONTRIBUTION


# --- Coercion ---
def coerce_numeric(series: pd.Series) -> pd.Series:
    """
    Numeric coercion for a raw column. Strings like "Rs 1,200.50" are
    stripped to digits first; anything unparseable or infinite becomes 0.
    """
    numeric = pd.to_numeric(series, errors="coerce")
    text_mask = numeric.isna() & series.notna()
    if text_mask.any():
        cleaned = series[text_mask].astype(str).str.replace(_NON_NUMERIC, "", regex=True)
        numeric = numeric.astype(float)
        numeric[text_mask] = pd.to_numeric(cleaned, errors="coerce")
    return numeric.astype(float).replace([np.inf, -np.inf], np.nan).fillna(0.0)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return ZERO
    return result if result.is_finite() else ZERO


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parses ISO strings, date/datetime objects and epoch milliseconds.
    Timezone-aware values are converted to naive UTC. Returns None if invalid.
    """
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    try:
        if isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool):
            stamp = pd.Timestamp(int(value), unit="ms")
        elif isinstance(value, str) and value.strip().isdigit() and len(value.strip()) >= 10:
            stamp = pd.Timestamp(int(value.strip()), unit="ms")
        elif isinstance(value, (date, datetime, pd.Timestamp)):
            stamp = pd.Timestamp(value)
        else:
            raw = str(value).strip()
            if not raw:
                return None
            stamp = pd.Timestamp(raw)
    except (ValueError, TypeError, OverflowError):
        return None

    if pd.isna(stamp):
        return None
    if stamp.tzinfo is not None:
        stamp = stamp.tz_convert("UTC").tz_localize(None)
    return stamp.to_pydatetime()


def clean_name(value: Any) -> str:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return ""
    return str(value).strip()


def _column(frame: pd.DataFrame, fields: Sequence[str]) -> pd.Series:
    """ First non-empty value across candidate columns, per row. """
    result = pd.Series([None] * len(frame), index=frame.index, dtype=object)
    for name in fields:
        if name not in frame.columns:
            continue
        values = frame[name]
        missing = result.isna() | (result.astype(str).str.strip() == "")
        present = values.notna() & (values.astype(str).str.strip() != "")
        result[missing & present] = values[missing & present]
    return result


class TransactionNormalizer:
    """
    Builds TransactionEvents from raw rows. Rows without a required
    identifier are recorded as MalformedRecordError and skipped.
    """

    def __init__(self, reconciliation: Optional[ReconciliationLog] = None):
        self.reconciliation = reconciliation if reconciliation is not None else ReconciliationLog()

    def _frame(self, rows: Optional[Iterable[Dict[str, Any]]]) -> pd.DataFrame:
        records = list(rows or [])
        if not records:
            return pd.DataFrame()
        return pd.DataFrame.from_records(records).reset_index(drop=True)

    def _malformed(self, table: str, position: int, reason: str) -> None:
        self.reconciliation.record(MalformedRecordError(f"row {position}: {reason}"), ledger=table)

    def normalize_unit_rows(
        self,
        rows: Optional[Iterable[Dict[str, Any]]],
        instrument_fields: Sequence[str],
        account_fields: Sequence[str] = ("account_name",),
        type_fields: Sequence[str] = ("transaction_type",),
        units_fields: Sequence[str] = ("units",),
        price_fields: Sequence[str] = ("nav",),
        date_fields: Sequence[str] = ("date", "txn_date", "created_at"),
        classifier: Classifier = classify_fund_type,
        table: str = "",
    ) -> List[TransactionEvent]:
        """
        Unit based rows (mutual funds, pension schemes).
        Zero-unit rows carry no position and are dropped without a warning.
        """
        frame = self._frame(rows)
        if frame.empty:
            return []

        names = _column(frame, instrument_fields).map(clean_name)
        accounts = _column(frame, account_fields).map(clean_name)
        types = _column(frame, type_fields)
        units = coerce_numeric(_column(frame, units_fields))
        prices = coerce_numeric(_column(frame, price_fields))
        dates = _column(frame, date_fields).map(parse_date)

        events = []
        for position in range(len(frame)):
            if not names.iloc[position]:
                self._malformed(table, position, f"missing {'/'.join(instrument_fields)}")
                continue

            unit_value = to_decimal(units.iloc[position])
            if abs(unit_value) <= Decimal("1e-8"):
                logging.debug(f"{table}: row {position} has no units, skipped")
                continue

            kind = classifier(types.iloc[position], unit_value)
            if kind is None:
                self._malformed(table, position, f"unclassifiable transaction type '{types.iloc[position]}'")
                continue

            events.append(TransactionEvent(
                key=LedgerKey(names.iloc[position], accounts.iloc[position]),
                kind=kind,
                effective_date=dates.iloc[position],
                sequence=position,
                units=unit_value,
                price=to_decimal(prices.iloc[position]),
            ))
        return events

    def normalize_amount_rows(
        self,
        rows: Optional[Iterable[Dict[str, Any]]],
        instrument_fields: Sequence[str],
        account_fields: Sequence[str] = ("account_name",),
        type_fields: Sequence[str] = ("transaction_type",),
        amount_fields: Sequence[str] = ("amount",),
        date_fields: Sequence[str] = ("txn_date", "date"),
        classifier: Classifier = classify_balance_type,
        table: str = "",
        require_instrument: bool = False,
    ) -> List[TransactionEvent]:
        """
        Balance based rows (PPF, FD, EPF). Each name in amount_fields is a
        separate component column and the components are summed.
        """
        frame = self._frame(rows)
        if frame.empty:
            return []

        names = _column(frame, instrument_fields).map(clean_name)
        accounts = _column(frame, account_fields).map(clean_name)
        types = _column(frame, type_fields)
        dates = _column(frame, date_fields).map(parse_date)

        amounts = pd.Series([0.0] * len(frame), index=frame.index)
        for name in amount_fields:
            if name in frame.columns:
                amounts = amounts + coerce_numeric(frame[name])

        events = []
        for position in range(len(frame)):
            if require_instrument and not names.iloc[position]:
                self._malformed(table, position, f"missing {'/'.join(instrument_fields)}")
                continue

            amount = to_decimal(amounts.iloc[position])
            kind = classifier(types.iloc[position], amount)
            if kind is None:
                self._malformed(table, position, f"unclassifiable transaction type '{types.iloc[position]}'")
                continue

            events.append(TransactionEvent(
                key=LedgerKey(names.iloc[position], accounts.iloc[position]),
                kind=kind,
                effective_date=dates.iloc[position],
                sequence=position,
                amount=amount,
            ))
        return events
