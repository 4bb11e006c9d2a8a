from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple
from decimal import Decimal
from datetime import datetime

EPSILON = Decimal("1e-8")
ZERO = Decimal("0")

# --- Enums ---
class TransactionKind(Enum):
    BUY = "Buy"
    SELL = "Sell"
    CONTRIBUTION = "Contribution"
    WITHDRAWAL = "Withdrawal"
    INTEREST = "Interest"
    CHARGE = "Charge"

OPENING_KINDS = (TransactionKind.BUY, TransactionKind.CONTRIBUTION)
# Charges on unit-based funds are paid by redeeming units
CONSUMING_KINDS = (TransactionKind.SELL, TransactionKind.WITHDRAWAL, TransactionKind.CHARGE)

class AssetClass(Enum):
    STOCK = "Stock"
    ETF = "ETF"
    MF = "MF"
    BANK = "Bank"
    PPF = "PPF"
    EPF = "EPF"
    NPS = "NPS"
    FD = "FD"

# Row order of the allocation table
ASSET_CLASS_ORDER = [
    AssetClass.STOCK, AssetClass.ETF, AssetClass.MF, AssetClass.BANK,
    AssetClass.PPF, AssetClass.EPF, AssetClass.NPS, AssetClass.FD,
]

# --- Keys ---
@dataclass(frozen=True, order=True)
class LedgerKey:
    """ Composite (instrument, account) identity of a ledger. """
    instrument: str
    account: str = ""

    def label(self) -> str:
        return f"{self.instrument} [{self.account or '-'}]"

# --- Input ---
@dataclass(frozen=True)
class TransactionEvent:
    key: LedgerKey
    kind: TransactionKind
    effective_date: Optional[datetime]
    sequence: int
    units: Decimal = ZERO
    price: Decimal = ZERO   # price or NAV per unit
    amount: Decimal = ZERO  # for balance based accounts

    @property
    def instrument(self) -> str:
        return self.key.instrument

    @property
    def account(self) -> str:
        return self.key.account

    def sort_key(self) -> Tuple[bool, datetime, int]:
        # Undated events go last, then arrival order
        return (self.effective_date is None, self.effective_date or datetime.max, self.sequence)

# --- Ledger State ---
@dataclass
class Lot:
    units: Decimal
    cost_basis: Decimal
    open_date: Optional[datetime]
    origin_sequence: int
    price: Decimal = ZERO

    @property
    def unit_cost(self) -> Decimal:
        if self.units > EPSILON:
            return self.cost_basis / self.units
        return self.price

    def sort_key(self) -> Tuple[bool, datetime, int]:
        return (self.open_date is None, self.open_date or datetime.max, self.origin_sequence)

@dataclass(frozen=True)
class ClosedLot:
    units_sold: Decimal
    cost_basis_consumed: Decimal
    sale_proceeds: Decimal
    open_date: Optional[datetime]
    close_date: Optional[datetime]

    @property
    def gain(self) -> Decimal:
        return self.sale_proceeds - self.cost_basis_consumed

@dataclass
class LedgerUpdate:
    """ Result of applying one event to a ledger. """
    opened_lot: Optional[Lot] = None
    closed_lots: List[ClosedLot] = field(default_factory=list)
    unmatched_units: Decimal = ZERO

# --- Valuation Output ---
@dataclass(frozen=True)
class CashflowPoint:
    amount: float
    date: datetime

@dataclass
class Holding:
    key: LedgerKey
    units: Decimal
    invested: Decimal
    market_value: Decimal
    day_change: Decimal
    xirr: Optional[float] = None
    current_price: Decimal = ZERO
    previous_close: Decimal = ZERO
    first_open_date: Optional[datetime] = None

    @property
    def instrument(self) -> str:
        return self.key.instrument

    @property
    def account(self) -> str:
        return self.key.account

    @property
    def unrealized_gain(self) -> Decimal:
        return self.market_value - self.invested

    @property
    def gain_percent(self) -> Decimal:
        return percent_of(self.unrealized_gain, self.invested)

    @property
    def average_cost(self) -> Decimal:
        return self.invested / self.units if self.units > EPSILON else ZERO

@dataclass
class ClosedPosition:
    key: LedgerKey
    units: Decimal
    invested: Decimal
    closed_value: Decimal
    charges: Decimal = ZERO
    open_date: Optional[datetime] = None
    close_date: Optional[datetime] = None
    xirr: Optional[float] = None

    @property
    def gain(self) -> Decimal:
        return self.closed_value - self.charges - self.invested

    @property
    def gain_percent(self) -> Decimal:
        return percent_of(self.gain, self.invested)

@dataclass
class AccountSlice:
    """ Contribution of one account to one asset class. """
    account_name: Optional[str]
    invested: Decimal
    market_value: Decimal

@dataclass
class AssetClassResult:
    asset_class: AssetClass
    invested: Decimal = ZERO
    market_value: Decimal = ZERO
    day_change: Decimal = ZERO
    holdings: List[Holding] = field(default_factory=list)
    closed: List[ClosedPosition] = field(default_factory=list)
    account_slices: List[AccountSlice] = field(default_factory=list)
    details: Dict[str, object] = field(default_factory=dict)

    @property
    def profit(self) -> Decimal:
        return self.market_value - self.invested

# --- Helpers ---
def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """ part / whole * 100, or 0 when whole is (near) zero. """
    if whole > EPSILON:
        return part / whole * 100
    return ZERO
