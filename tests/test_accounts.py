"""
Test suite for the account model

Tests per-variant withdrawal policies, interest per period, maturity dates
and the transactions produced by each balance change.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from bank_ledger.accounts import (
    Account, AccountStatus, AccountType, InterestPeriod, check_withdrawal
)
from bank_ledger.errors import AccountClosed, InsufficientFunds, InvalidAmount, TermLocked
from bank_ledger.ledger import TransactionType


NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def make_savings(balance="1000.00", minimum="100.00", rate="0.04"):
    return Account(
        account_number="SAV001",
        holder_name="Alice Smith",
        account_type=AccountType.SAVINGS,
        balance=Decimal(balance),
        interest_rate=Decimal(rate),
        created_at=NOW,
        minimum_balance=Decimal(minimum)
    )


def make_checking(balance="0.00", overdraft="500.00", rate="0.01"):
    return Account(
        account_number="CHK001",
        holder_name="Bob Jones",
        account_type=AccountType.CHECKING,
        balance=Decimal(balance),
        interest_rate=Decimal(rate),
        created_at=NOW,
        overdraft_limit=Decimal(overdraft)
    )


def make_fixed_term(balance="5000.00", term_months=12, created_at=NOW):
    return Account(
        account_number="FXD001",
        holder_name="Carol White",
        account_type=AccountType.FIXED_TERM,
        balance=Decimal(balance),
        interest_rate=Decimal("0.07"),
        created_at=created_at,
        term_months=term_months
    )


class TestAccountCreation:
    """Test variant validation and derived fields"""

    def test_fixed_term_maturity_date(self):
        account = make_fixed_term(term_months=12)
        assert account.maturity_date == datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_fixed_term_maturity_clamps_to_month_end(self):
        created = datetime(2024, 1, 31, tzinfo=timezone.utc)
        account = make_fixed_term(term_months=1, created_at=created)
        assert account.maturity_date == datetime(2024, 2, 29, tzinfo=timezone.utc)

    def test_fixed_term_requires_positive_term(self):
        with pytest.raises(ValueError, match="positive term"):
            make_fixed_term(term_months=0)

    def test_savings_requires_minimum_balance(self):
        with pytest.raises(ValueError, match="minimum balance"):
            Account(
                account_number="SAV002",
                holder_name="Dan",
                account_type=AccountType.SAVINGS,
                balance=Decimal("500"),
                interest_rate=Decimal("0.04"),
                created_at=NOW
            )

    def test_balance_is_quantized(self):
        account = make_checking(balance="10.005")
        assert account.balance == Decimal("10.01")

    def test_rejects_unusable_interest_rate(self):
        for rate in ("-0.01", "NaN", "Infinity"):
            with pytest.raises(InvalidAmount):
                make_checking(rate=rate)

    def test_account_type_labels(self):
        assert make_savings().account_type_label == "Savings Account"
        assert make_checking().account_type_label == "Checking Account"
        assert make_fixed_term(term_months=6).account_type_label == "Fixed Deposit Account (6 months)"

    def test_serialization(self):
        account = make_fixed_term()
        restored = Account.from_dict(account.to_dict())
        assert restored == account


class TestSavingsPolicy:
    """Savings accounts keep the minimum balance"""

    def test_withdrawal_below_minimum_rejected(self):
        account = make_savings()

        with pytest.raises(InsufficientFunds, match="minimum balance"):
            account.withdraw(Decimal("950"), NOW)

        assert account.balance == Decimal("1000.00")

    def test_withdrawal_down_to_minimum_allowed(self):
        account = make_savings()

        transaction = account.withdraw(Decimal("900"), NOW)

        assert account.balance == Decimal("100.00")
        assert transaction.transaction_type == TransactionType.WITHDRAWAL
        assert transaction.amount == Decimal("900.00")
        assert transaction.balance_after == Decimal("100.00")


class TestCheckingPolicy:
    """Checking accounts may overdraw down to the overdraft limit"""

    def test_overdraft_up_to_limit(self):
        account = make_checking(balance="0.00")

        account.withdraw("500.00", NOW)

        assert account.balance == Decimal("-500.00")

    def test_overdraft_beyond_limit_rejected(self):
        account = make_checking(balance="0.00")

        with pytest.raises(InsufficientFunds, match="overdraft"):
            account.withdraw("500.01", NOW)

        assert account.balance == Decimal("0.00")


class TestFixedTermPolicy:
    """Fixed-term accounts are locked until maturity"""

    def test_withdrawal_before_maturity_rejected(self):
        account = make_fixed_term()

        with pytest.raises(TermLocked):
            account.withdraw("100", datetime(2024, 6, 1, tzinfo=timezone.utc))

        assert account.balance == Decimal("5000.00")

    def test_withdrawal_after_maturity_allowed(self):
        account = make_fixed_term()

        account.withdraw("5000", datetime(2025, 1, 16, tzinfo=timezone.utc))

        assert account.balance == Decimal("0.00")

    def test_withdrawal_after_maturity_limited_to_balance(self):
        account = make_fixed_term()

        with pytest.raises(InsufficientFunds):
            account.withdraw("5000.01", datetime(2025, 2, 1, tzinfo=timezone.utc))

    def test_can_withdraw(self):
        account = make_fixed_term()
        assert not account.can_withdraw(Decimal("1"), datetime(2024, 2, 1, tzinfo=timezone.utc))
        assert account.can_withdraw(Decimal("1"), datetime(2025, 2, 1, tzinfo=timezone.utc))


class TestBalanceChanges:
    """Test deposits and validation"""

    def test_deposit(self):
        account = make_checking(balance="10.00")

        transaction = account.deposit("25.50", NOW)

        assert account.balance == Decimal("35.50")
        assert transaction.transaction_type == TransactionType.DEPOSIT
        assert transaction.balance_after == Decimal("35.50")
        assert transaction.timestamp == NOW
        assert transaction.description == "Cash deposit"

    @pytest.mark.parametrize("amount", ["0", "-5", "0.001", "abc", "NaN", "Infinity"])
    def test_invalid_amounts_rejected(self, amount):
        account = make_checking(balance="10.00")

        with pytest.raises(InvalidAmount):
            account.deposit(amount, NOW)
        with pytest.raises(InvalidAmount):
            account.withdraw(amount, NOW)

        assert account.balance == Decimal("10.00")

    def test_closed_account_rejects_changes(self):
        account = make_checking(balance="10.00")
        account.status = AccountStatus.CLOSED

        with pytest.raises(AccountClosed):
            account.deposit("1", NOW)
        with pytest.raises(AccountClosed):
            account.withdraw("1", NOW)
        with pytest.raises(AccountClosed):
            account.apply_interest(InterestPeriod.MONTHLY, NOW)

    def test_transfer_entries_name_counterparty(self):
        source = make_savings()
        destination = make_checking()

        debit = source.transfer_out("200", destination.account_number, NOW)
        credit = destination.transfer_in("200", source.account_number, NOW)

        assert debit.transaction_type == TransactionType.TRANSFER_OUT
        assert debit.counterparty_account == "CHK001"
        assert credit.transaction_type == TransactionType.TRANSFER_IN
        assert credit.counterparty_account == "SAV001"
        assert source.balance == Decimal("800.00")
        assert destination.balance == Decimal("200.00")

    def test_check_withdrawal_rejects_non_positive(self):
        with pytest.raises(InvalidAmount):
            check_withdrawal(make_checking(), Decimal("0"), NOW)


class TestInterest:
    """Interest per calculation mode"""

    @pytest.mark.parametrize("period,expected", [
        (InterestPeriod.DAILY, Decimal("0.11")),
        (InterestPeriod.MONTHLY, Decimal("3.33")),
        (InterestPeriod.QUARTERLY, Decimal("10.00")),
        (InterestPeriod.YEARLY, Decimal("40.00")),
    ])
    def test_interest_per_period(self, period, expected):
        account = make_savings(balance="1000.00", rate="0.04")

        transaction = account.apply_interest(period, NOW)

        assert transaction.transaction_type == TransactionType.INTEREST
        assert transaction.amount == expected
        assert account.balance == Decimal("1000.00") + expected

    def test_no_interest_on_negative_balance(self):
        account = make_checking(balance="-100.00")

        assert account.apply_interest(InterestPeriod.MONTHLY, NOW) is None
        assert account.balance == Decimal("-100.00")

    def test_no_interest_when_rounded_to_zero(self):
        account = make_checking(balance="0.01", rate="0.01")

        assert account.apply_interest(InterestPeriod.DAILY, NOW) is None
        assert account.balance == Decimal("0.01")

    def test_period_from_code(self):
        assert InterestPeriod.from_code("Quarterly") == InterestPeriod.QUARTERLY
        assert InterestPeriod.MONTHLY.periods_per_year == 12
        with pytest.raises(ValueError):
            InterestPeriod.from_code("hourly")
