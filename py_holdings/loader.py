"""
Dataset loading at the fetch boundary.

Each table is fetched independently; a fetch that fails or returns no rows
is recorded as a DataGapError and replaced by an empty table so aggregation
can proceed with whatever data is available.
"""
import json
import os
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .errors import DataGapError
from .reconciliation import ReconciliationLog

Rows = List[Dict[str, Any]]
Fetcher = Callable[[], Optional[Rows]]

TABLES = (
    "stock_transactions",
    "stock_master",
    "equity_charges",
    "mf_transactions",
    "fund_master",
    "bank_transactions",
    "ppf_transactions",
    "epf_transactions",
    "nps_transactions",
    "nps_pension_fund_master",
)


@dataclass
class PortfolioDataset:
    tables: Dict[str, Rows] = field(default_factory=dict)
    gaps: List[str] = field(default_factory=list)

    def rows(self, table: str) -> Rows:
        return self.tables.get(table) or []


def _unwrap(payload: Any) -> Optional[Rows]:
    # Accepts plain row lists and {"data": [...]} envelopes
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"]
    if payload is None:
        return None
    if not isinstance(payload, list):
        raise ValueError(f"expected a list of rows, got {type(payload).__name__}")
    return [row for row in payload if isinstance(row, dict)]


def load_dataset(fetchers: Dict[str, Fetcher], reconciliation: Optional[ReconciliationLog] = None,
                 max_workers: int = 4) -> PortfolioDataset:
    """ Runs the table fetchers in parallel. Missing tables become data gaps. """
    reconciliation = reconciliation if reconciliation is not None else ReconciliationLog()
    dataset = PortfolioDataset()

    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        futures = {ex.submit(fetch): table for table, fetch in fetchers.items()}
        for fut in as_completed(futures):
            table = futures[fut]
            try:
                rows = _unwrap(fut.result())
            except Exception as e:
                reconciliation.record(DataGapError(f"fetch failed: {e}"), ledger=table)
                rows = None
            else:
                if not rows:
                    reconciliation.record(DataGapError("no rows returned"), ledger=table)

            if not rows:
                dataset.gaps.append(table)
            dataset.tables[table] = rows or []

    for table in TABLES:
        if table not in dataset.tables:
            dataset.tables[table] = []
            dataset.gaps.append(table)
            reconciliation.record(DataGapError("table not provided"), ledger=table)

    dataset.gaps.sort()
    logging.info(f"Loaded {len(dataset.tables) - len(dataset.gaps)} tables, {len(dataset.gaps)} gaps")
    return dataset


def load_dataset_file(path: str, reconciliation: Optional[ReconciliationLog] = None) -> PortfolioDataset:
    """ Reads a JSON export {table: rows} and loads it through load_dataset. """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Dataset file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Dataset file {path} must contain a JSON object of tables")

    fetchers = {table: (lambda payload=payload: payload) for table, payload in data.items()}
    return load_dataset(fetchers, reconciliation)
