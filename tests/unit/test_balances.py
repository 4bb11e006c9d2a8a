from decimal import Decimal

import pytest

from py_holdings.balances import BalancePool, BankAggregator, DepositAggregator, EpfAggregator
from py_holdings.domain import AssetClass, TransactionKind
from py_holdings.reconciliation import ReconciliationLog


class TestBalancePool:

    def test_withdrawal_drains_interest_first(self):
        pool = BalancePool()
        pool.apply(TransactionKind.CONTRIBUTION, Decimal("1000"))
        pool.apply(TransactionKind.INTEREST, Decimal("100"))
        pool.apply(TransactionKind.WITHDRAWAL, Decimal("150"))

        assert pool.interest == 0
        assert pool.principal == Decimal("950")

    def test_balances_clamp_at_zero(self):
        pool = BalancePool()
        pool.apply(TransactionKind.CONTRIBUTION, Decimal("100"))
        pool.apply(TransactionKind.WITHDRAWAL, Decimal("500"))

        assert pool.principal == 0
        assert pool.total == 0

    def test_apply_returns_uncovered_withdrawal(self):
        pool = BalancePool()
        pool.apply(TransactionKind.CONTRIBUTION, Decimal("100"))
        pool.apply(TransactionKind.INTEREST, Decimal("20"))

        assert pool.apply(TransactionKind.WITHDRAWAL, Decimal("500")) == Decimal("380")
        assert pool.apply(TransactionKind.CONTRIBUTION, Decimal("50")) == 0

    def test_non_positive_amounts_are_ignored(self):
        pool = BalancePool()
        pool.apply(TransactionKind.CONTRIBUTION, Decimal("-100"))
        pool.apply(TransactionKind.INTEREST, Decimal("0"))

        assert pool.total == 0


class TestBankAggregator:

    @pytest.fixture
    def rows(self):
        return [
            {"account_name": "A", "bank_name": "HDFC", "account_type": "Savings", "amount": 100, "txn_date": "2024-01-05"},
            {"account_name": "A", "bank_name": "HDFC", "account_type": "Savings", "amount": 150, "txn_date": "2024-01-25"},
            {"account_name": "A", "bank_name": "HDFC", "account_type": "Savings", "amount": 200, "txn_date": "2024-02-10"},
            {"account_name": "B", "bank_name": "ICICI", "account_type": "Demat", "amount": "50", "txn_date": "2024-02-03"},
            {"account_name": "B", "bank_name": "ICICI", "account_type": "Demat", "amount": 999, "txn_date": "2023-11-03"},
        ]

    def test_latest_month_balances(self, rows):
        snapshot, balances = BankAggregator().snapshot(rows)

        assert snapshot.month == (2024, 2)
        assert snapshot.prior_month == (2024, 1)
        assert snapshot.current_by_type == {"savings": Decimal("200"), "demat": Decimal("50")}
        assert snapshot.prior_by_type == {"savings": Decimal("150")}
        assert snapshot.delta == Decimal("100")
        assert len(balances) == 2

    def test_result_invested_equals_market_value(self, rows):
        result = BankAggregator().aggregate(rows)

        assert result.asset_class == AssetClass.BANK
        assert result.invested == Decimal("250")
        assert result.market_value == Decimal("250")
        assert result.profit == 0
        assert {s.account_name for s in result.account_slices} == {"A", "B"}

    def test_january_prior_month_is_december(self):
        rows = [
            {"account_name": "A", "bank_name": "X", "account_type": "savings", "amount": 10, "txn_date": "2023-12-31"},
            {"account_name": "A", "bank_name": "X", "account_type": "savings", "amount": 20, "txn_date": "2024-01-02"},
        ]
        snapshot, _ = BankAggregator().snapshot(rows)

        assert snapshot.prior_month == (2023, 12)
        assert snapshot.prior_total == Decimal("10")

    def test_undated_rows_are_recorded(self):
        log = ReconciliationLog()
        result = BankAggregator(log).aggregate([{"account_type": "savings", "amount": 10}])

        assert result.market_value == 0
        assert len(log.by_category("MALFORMED_RECORD")) == 1

    def test_empty(self):
        result = BankAggregator().aggregate(None)

        assert result.market_value == 0
        assert result.details["snapshot"].month is None


class TestEpfAggregator:

    def test_components_interest_and_withdrawal(self):
        rows = [
            {"company_name": "Acme", "invest_type": "Contribution", "employee_share": 1000,
             "employer_share": 1000, "pension_share": 500, "txn_date": "2023-01-31"},
            {"company_name": "Acme", "invest_type": "Interest", "employee_share": 300, "txn_date": "2023-03-31"},
            {"company_name": "Acme", "invest_type": "Withdrawal", "employee_share": 500, "txn_date": "2023-06-30"},
            {"company_name": "Globex", "invest_type": "Contribution", "employee_share": 100, "txn_date": "2023-07-31"},
        ]

        result = EpfAggregator().aggregate(rows)

        assert result.asset_class == AssetClass.EPF
        assert result.invested == Decimal("2400")
        assert result.market_value == Decimal("2400")
        companies = {c.company: c for c in result.details["companies"]}
        assert companies["Acme"].contributions == Decimal("2300")
        assert companies["Acme"].interest == 0
        assert companies["Globex"].total == Decimal("100")
        # No account name on passbook rows
        assert result.account_slices[0].account_name is None

    def test_passbook_rows_apply_in_contribution_date_order(self):
        # ARRANGE: rows arrive out of date order, dated only by contribution_date
        rows = [
            {"company_name": "Acme", "invest_type": "Withdrawal", "employee_share": 500, "contribution_date": "2023-06-30"},
            {"company_name": "Acme", "invest_type": "Contribution", "employee_share": 1000, "contribution_date": "2023-01-31"},
            {"company_name": "Acme", "invest_type": "Interest", "employee_share": 100, "contribution_date": "2023-03-31"},
        ]
        log = ReconciliationLog()

        # ACT
        result = EpfAggregator(log).aggregate(rows)

        # ASSERT
        assert result.market_value == Decimal("600")
        assert result.invested == Decimal("600")
        assert result.details["interest"] == 0
        assert log.issues == []

    def test_withdrawal_beyond_balance_is_recorded(self):
        rows = [
            {"company_name": "Acme", "invest_type": "Contribution", "employee_share": 100, "txn_date": "2023-01-31"},
            {"company_name": "Acme", "invest_type": "Withdrawal", "employee_share": 250, "txn_date": "2023-02-28"},
        ]
        log = ReconciliationLog()

        result = EpfAggregator(log).aggregate(rows)

        assert result.market_value == 0
        issues = log.by_category("OVERCONSUMPTION")
        assert len(issues) == 1
        assert issues[0].ledger == "Acme [-]"
        assert "exceeds balance by 150" in issues[0].detail

    def test_interest_is_profit(self):
        rows = [
            {"company_name": "Acme", "invest_type": "Contribution", "employee_share": 1000, "txn_date": "2023-01-31"},
            {"company_name": "Acme", "invest_type": "Interest", "employee_share": 80, "txn_date": "2023-03-31"},
        ]

        result = EpfAggregator().aggregate(rows)

        assert result.profit == Decimal("80")
        assert result.details["interest"] == Decimal("80")


class TestDepositAggregator:

    @pytest.fixture
    def rows(self):
        return [
            {"account_name": "A", "bank_name": "SBI", "account_type": "PPF", "transaction_type": "Deposit", "amount": 1000, "txn_date": "2022-04-01"},
            {"account_name": "A", "bank_name": "SBI", "account_type": "PPF", "transaction_type": "Interest", "amount": 100, "txn_date": "2023-03-31"},
            {"account_name": "A", "bank_name": "SBI", "account_type": "PPF", "transaction_type": "Withdrawal", "amount": 150, "txn_date": "2023-05-01"},
            {"account_name": "A", "bank_name": "HDFC", "account_type": "FD", "transaction_type": "FD Created", "amount": 5000, "txn_date": "2023-01-01"},
            {"account_name": "A", "bank_name": "HDFC", "account_type": "FD", "transaction_type": "Interest", "amount": 400, "txn_date": "2024-01-01"},
            {"account_name": "B", "bank_name": "HDFC", "account_type": "fd", "transaction_type": "Deposit", "amount": 2000, "txn_date": "2023-01-01"},
            {"account_name": "B", "bank_name": "HDFC", "account_type": "fd", "transaction_type": "Deposit", "amount": -50, "txn_date": "2023-02-01"},
        ]

    def test_ppf_running_balance(self, rows):
        result = DepositAggregator(AssetClass.PPF).aggregate(rows)

        assert result.invested == Decimal("950")
        assert result.market_value == Decimal("950")

    def test_fd_accounts_are_separate(self, rows):
        result = DepositAggregator(AssetClass.FD).aggregate(rows)

        assert result.invested == Decimal("7000")
        assert result.market_value == Decimal("7400")
        assert result.details["interest"] == Decimal("400")
        assert len(result.holdings) == 2

    def test_maturity_closes_the_deposit(self):
        rows = [
            {"account_name": "A", "bank_name": "HDFC", "account_type": "FD", "transaction_type": "Create", "amount": 5000, "txn_date": "2023-01-01"},
            {"account_name": "A", "bank_name": "HDFC", "account_type": "FD", "transaction_type": "Interest", "amount": 400, "txn_date": "2024-01-01"},
            {"account_name": "A", "bank_name": "HDFC", "account_type": "FD", "transaction_type": "Maturity", "amount": 5400, "txn_date": "2024-01-01"},
        ]

        result = DepositAggregator(AssetClass.FD).aggregate(rows)

        assert result.market_value == 0

    def test_other_asset_classes_are_rejected(self):
        with pytest.raises(ValueError):
            DepositAggregator(AssetClass.MF)
