import logging
from bisect import bisect_right
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from .domain import (
    LedgerKey, TransactionEvent, TransactionKind, Lot, ClosedLot, LedgerUpdate,
    OPENING_KINDS, CONSUMING_KINDS, EPSILON, ZERO
)
from .errors import MissingIdentifierError, OverconsumptionWarning
from .reconciliation import ReconciliationLog

# Consumed prefix size at which the arena is compacted
COMPACT_THRESHOLD = 64


class LotLedger:
    """
    Open cost lots of one (instrument, account) pair, oldest first.

    Lots live in a growable list; consumption only advances a head index and
    the consumed prefix is dropped once it dominates the list.
    """

    def __init__(self, key: LedgerKey):
        self.key = key
        self._lots: List[Lot] = []
        self._head = 0

    def __len__(self) -> int:
        return len(self._lots) - self._head

    def open_lots(self) -> List[Lot]:
        return self._lots[self._head:]

    def total_units(self) -> Decimal:
        return sum((lot.units for lot in self.open_lots()), ZERO)

    def total_cost(self) -> Decimal:
        return sum((lot.cost_basis for lot in self.open_lots()), ZERO)

    def add(self, lot: Lot) -> None:
        # Appending is the common case; backfilled lots go to their FIFO slot
        if len(self) == 0 or self._lots[-1].sort_key() <= lot.sort_key():
            self._lots.append(lot)
            return
        keys = [existing.sort_key() for existing in self.open_lots()]
        position = self._head + bisect_right(keys, lot.sort_key())
        self._lots.insert(position, lot)

    def consume(self, units: Decimal, price: Decimal, close_date) -> Tuple[List[ClosedLot], Decimal]:
        """
        Removes `units` from the head of the queue.
        Returns the closed lot records and the demand that could not be met.
        """
        remaining = units
        closed: List[ClosedLot] = []

        while remaining > EPSILON and self._head < len(self._lots):
            lot = self._lots[self._head]
            if lot.units <= EPSILON:
                self._head += 1
                continue

            deduction = min(remaining, lot.units)
            unit_cost = lot.unit_cost
            cost_portion = deduction * unit_cost

            closed.append(ClosedLot(
                units_sold=deduction,
                cost_basis_consumed=cost_portion,
                sale_proceeds=deduction * price,
                open_date=lot.open_date,
                close_date=close_date
            ))

            lot.units -= deduction
            lot.cost_basis = max(lot.cost_basis - cost_portion, ZERO)
            remaining -= deduction

            if lot.units <= EPSILON:
                self._head += 1

        self._compact()
        return closed, max(remaining, ZERO)

    def _compact(self) -> None:
        if self._head >= COMPACT_THRESHOLD and self._head * 2 >= len(self._lots):
            self._lots = self._lots[self._head:]
            self._head = 0


class FifoEngine:
    def __init__(self, reconciliation: Optional[ReconciliationLog] = None):
        # LedgerKey -> open lots
        self.ledgers: Dict[LedgerKey, LotLedger] = {}
        # LedgerKey -> closed lot records, in sale order
        self.closed_lots: Dict[LedgerKey, List[ClosedLot]] = {}
        self.reconciliation = reconciliation if reconciliation is not None else ReconciliationLog()

    def _ledger(self, key: LedgerKey) -> LotLedger:
        if key not in self.ledgers:
            self.ledgers[key] = LotLedger(key)
        return self.ledgers[key]

    def apply_event(self, key: LedgerKey, event: TransactionEvent) -> LedgerUpdate:
        if key is None or not key.instrument:
            raise MissingIdentifierError(f"Event {event.sequence} has no instrument identifier")

        ledger = self._ledger(key)
        update = LedgerUpdate()

        if event.kind in OPENING_KINDS and event.units > 0:
            lot = Lot(
                units=event.units,
                cost_basis=event.units * event.price,
                open_date=event.effective_date,
                origin_sequence=event.sequence,
                price=event.price
            )
            ledger.add(lot)
            update.opened_lot = lot
            return update

        if event.units < 0 or event.kind in CONSUMING_KINDS:
            requested = abs(event.units)
            closed, unmatched = ledger.consume(requested, event.price, event.effective_date)
            update.closed_lots = closed
            update.unmatched_units = unmatched
            if closed:
                self.closed_lots.setdefault(key, []).extend(closed)

            if unmatched > EPSILON:
                # Lenient policy: the excess demand is dropped
                self.reconciliation.record(
                    OverconsumptionWarning(
                        f"{event.kind.value} of {requested} units exceeds open units by {unmatched}"
                    ),
                    ledger=key.label()
                )
            return update

        if event.kind == TransactionKind.INTEREST:
            logging.debug(f"Interest event {event.sequence} on unit ledger {key.label()} ignored")
        return update

    def process(self, events: Iterable[TransactionEvent]) -> None:
        """ Applies events in (effective_date, sequence) order regardless of arrival order. """
        for event in sorted(events, key=lambda e: e.sort_key()):
            self.apply_event(event.key, event)

    def open_lots(self, key: LedgerKey) -> List[Lot]:
        ledger = self.ledgers.get(key)
        return ledger.open_lots() if ledger else []

    def closed(self, key: LedgerKey) -> List[ClosedLot]:
        return self.closed_lots.get(key, [])

    def keys(self) -> List[LedgerKey]:
        """ Every ledger that has seen an event, in a stable order. """
        return sorted(set(self.ledgers) | set(self.closed_lots))
