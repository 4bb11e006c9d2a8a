import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .balances import BankAggregator, DepositAggregator, EpfAggregator
from .config_loader import AppConfig
from .domain import AssetClass
from .equity import EquityAggregator, total_charges
from .funds import MutualFundAggregator, PensionFundAggregator
from .loader import PortfolioDataset
from .portfolio import PortfolioAggregator, PortfolioReport
from .reconciliation import ReconciliationLog
from .valuation import PriceBook


class PortfolioService:
    """
    Runs every asset class aggregator over one dataset and merges the results.
    Each call builds its own ledgers, so repeated calls with the same dataset
    and as_of produce identical reports.
    """

    def __init__(self, config: Optional[AppConfig] = None, as_of: Optional[datetime] = None,
                 reconciliation: Optional[ReconciliationLog] = None):
        self.config = config or AppConfig()
        self.as_of = as_of
        if reconciliation is None:
            reconciliation = ReconciliationLog(self.config.reconciliation_dir)
        self.reconciliation = reconciliation

    def charges(self, dataset: PortfolioDataset) -> Decimal:
        if self.config.charges_total is not None:
            return self.config.charges_total
        return total_charges(dataset.rows("equity_charges"))

    def compute_report(self, dataset: PortfolioDataset) -> PortfolioReport:
        as_of = self.as_of or datetime.now()
        charges = self.charges(dataset)

        stock_prices = PriceBook.from_rows(dataset.rows("stock_master"), ("stock_name",), label="stock")
        fund_prices = PriceBook.from_rows(dataset.rows("fund_master"), ("fund_short_name",), label="fund")
        nps_prices = PriceBook.from_rows(dataset.rows("nps_pension_fund_master"), ("scheme_name",), label="NPS")

        stock, etf = EquityAggregator(stock_prices, as_of, self.reconciliation).aggregate(
            dataset.rows("stock_transactions"), charges_total=charges
        )
        results = [
            stock,
            etf,
            MutualFundAggregator(fund_prices, as_of, self.reconciliation).aggregate(dataset.rows("mf_transactions")),
            BankAggregator(self.reconciliation).aggregate(dataset.rows("bank_transactions")),
            DepositAggregator(AssetClass.PPF, self.reconciliation).aggregate(dataset.rows("ppf_transactions")),
            EpfAggregator(self.reconciliation).aggregate(dataset.rows("epf_transactions")),
            PensionFundAggregator(nps_prices, as_of, self.reconciliation).aggregate(dataset.rows("nps_transactions")),
            DepositAggregator(AssetClass.FD, self.reconciliation).aggregate(dataset.rows("ppf_transactions")),
        ]

        aggregator = PortfolioAggregator(self.config.excluded_accounts, self.config.other_accounts_label)
        report = aggregator.aggregate(results, charges_total=charges, as_of=as_of)
        if self.reconciliation.issues:
            logging.warning(f"Report computed with {len(self.reconciliation.issues)} reconciliation issues")
        return report
