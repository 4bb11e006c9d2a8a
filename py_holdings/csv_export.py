import csv
import io
import os
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from .portfolio import PortfolioReport

ALLOCATION_FILE = "allocation.csv"
HOLDINGS_FILE = "holdings.csv"
ACCOUNTS_FILE = "accounts.csv"
SUMMARY_FILE = "summary.csv"


class CsvReportGenerator:
    """
    Writes a PortfolioReport as semicolon separated CSV files, the format the
    dashboard reads with pd.read_csv(sep=";").
    """

    def __init__(self):
        self.allocation_fields = [
            'asset_class', 'invested', 'market_value', 'day_change', 'profit',
            'profit_percent', 'market_allocation', 'invested_allocation',
        ]
        self.holding_fields = [
            'asset_class', 'instrument', 'account', 'units', 'invested', 'market_value',
            'day_change', 'profit', 'profit_percent', 'xirr',
        ]
        self.account_fields = ['account_name', 'invested', 'market_value', 'profit', 'profit_percent']
        self.summary_fields = [
            'as_of', 'total_invested', 'total_market_value', 'total_profit', 'profit_percent',
            'day_change', 'day_change_percent', 'charges',
        ]

    def _fmt(self, d: Optional[Decimal]) -> str:
        if d is None: return "0.00"
        return f"{d:.2f}"

    def _write(self, fieldnames: List[str], rows: List[Dict[str, object]]) -> str:
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=fieldnames, delimiter=';')
        writer.writeheader()
        writer.writerows(rows)
        return output.getvalue()

    def generate_allocation(self, report: PortfolioReport) -> str:
        return self._write(self.allocation_fields, [
            {
                'asset_class': row.asset_class.value,
                'invested': self._fmt(row.invested),
                'market_value': self._fmt(row.market_value),
                'day_change': self._fmt(row.day_change),
                'profit': self._fmt(row.profit),
                'profit_percent': self._fmt(row.profit_percent),
                'market_allocation': self._fmt(row.market_allocation),
                'invested_allocation': self._fmt(row.invested_allocation),
            }
            for row in report.rows
        ])

    def generate_holdings(self, report: PortfolioReport) -> str:
        rows = []
        for asset_class, result in report.results.items():
            for h in result.holdings:
                rows.append({
                    'asset_class': asset_class.value,
                    'instrument': h.instrument,
                    'account': h.account,
                    'units': f"{h.units:.4f}",
                    'invested': self._fmt(h.invested),
                    'market_value': self._fmt(h.market_value),
                    'day_change': self._fmt(h.day_change),
                    'profit': self._fmt(h.unrealized_gain),
                    'profit_percent': self._fmt(h.gain_percent),
                    # Empty when the return is unavailable
                    'xirr': f"{h.xirr:.2f}" if h.xirr is not None else "",
                })
        return self._write(self.holding_fields, rows)

    def generate_accounts(self, report: PortfolioReport) -> str:
        return self._write(self.account_fields, [
            {
                'account_name': a.account_name,
                'invested': self._fmt(a.invested),
                'market_value': self._fmt(a.market_value),
                'profit': self._fmt(a.profit),
                'profit_percent': self._fmt(a.profit_percent),
            }
            for a in report.per_account
        ])

    def generate_summary(self, report: PortfolioReport) -> str:
        s = report.summary
        return self._write(self.summary_fields, [{
            'as_of': report.as_of.strftime("%Y-%m-%d %H:%M:%S") if report.as_of else "",
            'total_invested': self._fmt(s.total_invested),
            'total_market_value': self._fmt(s.total_market_value),
            'total_profit': self._fmt(s.total_profit),
            'profit_percent': self._fmt(s.profit_percent),
            'day_change': self._fmt(s.day_change),
            'day_change_percent': self._fmt(s.day_change_percent),
            'charges': self._fmt(s.charges),
        }])

    def write(self, report: PortfolioReport, output_dir: str) -> List[str]:
        os.makedirs(output_dir, exist_ok=True)
        outputs = {
            ALLOCATION_FILE: self.generate_allocation(report),
            HOLDINGS_FILE: self.generate_holdings(report),
            ACCOUNTS_FILE: self.generate_accounts(report),
            SUMMARY_FILE: self.generate_summary(report),
        }
        paths = []
        for filename, content in outputs.items():
            path = os.path.join(output_dir, filename)
            with open(path, 'w', newline='', encoding='utf-8') as f:
                f.write(content)
            paths.append(path)
        logging.info(f"CSV report written to {output_dir}")
        return paths
