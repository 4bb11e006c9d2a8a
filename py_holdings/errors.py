"""
Error types of the holdings engine.

Data-quality problems are "soft": they are recorded on a ReconciliationLog and
the computation continues with best-effort numbers. Only a
MissingIdentifierError is raised to the caller.
"""


class HoldingsError(Exception):
    """Base class for all holdings engine errors."""
    category = "ERROR"


class DataGapError(HoldingsError):
    """A table fetch returned no rows or failed; its slice is valued at zero."""
    category = "DATA_GAP"


class OverconsumptionWarning(HoldingsError):
    """A sale requested more units than the ledger held; the excess is dropped."""
    category = "OVERCONSUMPTION"


class MalformedRecordError(HoldingsError):
    """A row is missing a required key and is excluded from every ledger."""
    category = "MALFORMED_RECORD"


class UnsolvableReturnError(HoldingsError):
    """XIRR could not bracket a root within its bounds."""
    category = "UNSOLVABLE_RETURN"


class MissingIdentifierError(HoldingsError, ValueError):
    """Programmer error: required identifiers missing at the engine boundary."""
    category = "MISSING_IDENTIFIER"
