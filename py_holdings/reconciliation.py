"""
Reconciliation log for soft data-quality issues.

Collects DataGap / Overconsumption / MalformedRecord issues raised during one
aggregation run so the calling layer can surface them, and optionally appends
them to a structured CSV file for later analysis.
"""
import csv
import os
import logging
from datetime import datetime
from dataclasses import dataclass
from typing import List, Optional

from .errors import HoldingsError

HEADER = ["Timestamp", "Category", "Ledger", "Detail"]


@dataclass
class ReconciliationIssue:
    """Represents a single recorded issue."""
    timestamp: str
    category: str
    ledger: str
    detail: str


class ReconciliationLog:
    """
    Keeps issues in memory for the caller. When an output directory is given,
    every issue is also appended to a CSV file.
    """

    def __init__(self, output_dir: Optional[str] = None, filename: str = "reconciliation_issues.csv"):
        """
        Args:
            output_dir: Directory for the CSV file. None keeps issues in memory only.
            filename: Name of the CSV file (default: reconciliation_issues.csv).
        """
        self.output_dir = output_dir
        self.filepath = os.path.join(output_dir, filename) if output_dir else None
        self.issues: List[ReconciliationIssue] = []
        if self.filepath:
            self._ensure_header()

    def _ensure_header(self) -> None:
        """Creates file with header if it doesn't exist."""
        if not os.path.exists(self.filepath):
            os.makedirs(self.output_dir, exist_ok=True)
            with open(self.filepath, 'w', newline='', encoding='utf-8') as f:
                csv.writer(f).writerow(HEADER)

    def record(self, error: HoldingsError, ledger: str = "") -> ReconciliationIssue:
        """
        Records a soft error and logs it as a warning.

        Args:
            error: The issue, one of the HoldingsError subclasses.
            ledger: Label of the ledger or table the issue belongs to.
        """
        # Sanitize detail to avoid breaking CSV format
        detail = str(error).replace('\n', ' ').replace('\r', ' ').strip()
        issue = ReconciliationIssue(
            timestamp=datetime.now().isoformat(),
            category=error.category,
            ledger=ledger,
            detail=detail
        )
        self.issues.append(issue)
        logging.warning(f"[{issue.category}] {ledger}: {detail}")

        if self.filepath:
            with open(self.filepath, 'a', newline='', encoding='utf-8') as f:
                csv.writer(f).writerow([issue.timestamp, issue.category, issue.ledger, issue.detail])
        return issue

    def by_category(self, category: str) -> List[ReconciliationIssue]:
        return [i for i in self.issues if i.category == category]

    def get_logged_issues(self) -> List[ReconciliationIssue]:
        """
        Reads and returns all issues persisted in the CSV file.

        Returns:
            List of ReconciliationIssue objects (empty without a file).
        """
        results = []
        if not self.filepath or not os.path.exists(self.filepath):
            return results

        with open(self.filepath, 'r', encoding='utf-8') as f:
            reader = csv.DictReader(f)
            for row in reader:
                results.append(ReconciliationIssue(
                    timestamp=row.get("Timestamp", ""),
                    category=row.get("Category", ""),
                    ledger=row.get("Ledger", ""),
                    detail=row.get("Detail", "")
                ))
        return results

    def clear_log(self) -> None:
        """Drops in-memory issues and recreates the file with only the header."""
        self.issues = []
        if self.filepath:
            with open(self.filepath, 'w', newline='', encoding='utf-8') as f:
                csv.writer(f).writerow(HEADER)
