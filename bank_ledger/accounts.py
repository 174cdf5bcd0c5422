"""
Account Model

Three fixed account variants (savings, checking, fixed term) sharing one
record type. Per-variant behaviour is limited to the withdrawal policy and
the display label; both dispatch on AccountType through plain functions.

Account methods compute the new balance and return the Transaction to
persist. They are only called by the TransactionProcessor, which holds the
account lock and writes both the balance and the entry in one unit.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .dates import add_months
from .errors import AccountClosed, InsufficientFunds, InvalidAmount, TermLocked
from .ledger import Transaction, TransactionType
from .money import ZERO, format_money, positive_amount, quantize_money, to_decimal


class AccountType(Enum):
    """Account variants"""
    SAVINGS = "savings"        # Minimum balance floor
    CHECKING = "checking"      # Overdraft allowed down to -limit
    FIXED_TERM = "fixed_term"  # Locked until maturity


class AccountStatus(Enum):
    """Account lifecycle states"""
    ACTIVE = "active"
    CLOSED = "closed"


class InterestPeriod(Enum):
    """Interest calculation modes with the divisor applied to the annual rate"""
    DAILY = ("daily", 365)
    MONTHLY = ("monthly", 12)
    QUARTERLY = ("quarterly", 4)
    YEARLY = ("yearly", 1)

    def __init__(self, code: str, periods_per_year: int):
        self.code = code
        self.periods_per_year = periods_per_year

    @classmethod
    def from_code(cls, code: str) -> 'InterestPeriod':
        for period in cls:
            if period.code == code.lower():
                return period
        raise ValueError(f"Unknown interest period: {code}")


ACCOUNT_NUMBER_PREFIXES = {
    AccountType.SAVINGS: "SAV",
    AccountType.CHECKING: "CHK",
    AccountType.FIXED_TERM: "FXD",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Account:
    """
    Bank account

    Variant data: minimum_balance (savings), overdraft_limit (checking),
    term_months and maturity_date (fixed term).
    """
    account_number: str
    holder_name: str
    account_type: AccountType
    balance: Decimal
    interest_rate: Decimal  # Annual rate, e.g. 0.04 for 4%
    created_at: datetime
    status: AccountStatus = AccountStatus.ACTIVE
    minimum_balance: Optional[Decimal] = None
    overdraft_limit: Optional[Decimal] = None
    term_months: Optional[int] = None
    maturity_date: Optional[datetime] = None

    def __post_init__(self):
        self.balance = quantize_money(self.balance)
        self.interest_rate = to_decimal(self.interest_rate)

        if not self.interest_rate.is_finite() or self.interest_rate < Decimal('0'):
            raise InvalidAmount(f"Interest rate must be a non-negative number, got {self.interest_rate}")

        if self.account_type == AccountType.SAVINGS and self.minimum_balance is None:
            raise ValueError("Savings account requires a minimum balance")

        if self.account_type == AccountType.CHECKING and self.overdraft_limit is None:
            raise ValueError("Checking account requires an overdraft limit")

        if self.account_type == AccountType.FIXED_TERM:
            if not self.term_months or self.term_months <= 0:
                raise ValueError("Fixed-term account requires a positive term in months")
            if self.maturity_date is None:
                self.maturity_date = add_months(self.created_at, self.term_months)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def account_type_label(self) -> str:
        """Human readable account type"""
        if self.account_type == AccountType.FIXED_TERM:
            return f"Fixed Deposit Account ({self.term_months} months)"
        return f"{self.account_type.value.title()} Account"

    def is_matured(self, now: Optional[datetime] = None) -> bool:
        """Fixed-term accounts mature at maturity_date; others are always liquid"""
        if self.maturity_date is None:
            return True
        return (now or _utcnow()) >= self.maturity_date

    def can_withdraw(self, amount: Decimal, now: Optional[datetime] = None) -> bool:
        try:
            check_withdrawal(self, amount, now)
        except (InsufficientFunds, TermLocked):
            return False
        return True

    def calculate_interest(self, period: InterestPeriod = InterestPeriod.MONTHLY) -> Decimal:
        """Interest due for one period; zero for non-positive balances"""
        if self.balance <= ZERO:
            return ZERO
        return quantize_money(self.balance * self.interest_rate / Decimal(period.periods_per_year))

    def deposit(self, amount: Any, now: Optional[datetime] = None,
                description: str = "Cash deposit") -> Transaction:
        amount = positive_amount(amount)
        return self._post(TransactionType.DEPOSIT, amount, now, description)

    def withdraw(self, amount: Any, now: Optional[datetime] = None,
                 description: str = "Cash withdrawal") -> Transaction:
        amount = positive_amount(amount)
        self._ensure_open()
        check_withdrawal(self, amount, now)
        return self._post(TransactionType.WITHDRAWAL, amount, now, description)

    def transfer_out(self, amount: Any, counterparty: str, now: Optional[datetime] = None,
                     description: Optional[str] = None) -> Transaction:
        amount = positive_amount(amount)
        self._ensure_open()
        check_withdrawal(self, amount, now)
        return self._post(TransactionType.TRANSFER_OUT, amount, now,
                          description or f"Transfer to {counterparty}", counterparty)

    def transfer_in(self, amount: Any, counterparty: str, now: Optional[datetime] = None,
                    description: Optional[str] = None) -> Transaction:
        amount = positive_amount(amount)
        return self._post(TransactionType.TRANSFER_IN, amount, now,
                          description or f"Transfer from {counterparty}", counterparty)

    def apply_interest(self, period: InterestPeriod = InterestPeriod.MONTHLY,
                       now: Optional[datetime] = None) -> Optional[Transaction]:
        """Credit one period of interest; None when nothing is due"""
        self._ensure_open()
        interest = self.calculate_interest(period)
        if interest <= ZERO:
            return None
        return self._post(TransactionType.INTEREST, interest, now,
                          f"{period.code.title()} interest credit")

    def initial_deposit(self, now: Optional[datetime] = None) -> Optional[Transaction]:
        """Entry for the opening balance; None for accounts opened empty"""
        if self.balance <= ZERO:
            return None
        return Transaction.record(
            account_number=self.account_number,
            transaction_type=TransactionType.INITIAL_DEPOSIT,
            amount=self.balance,
            balance_after=self.balance,
            timestamp=now or self.created_at,
            description="Account opening deposit"
        )

    def _ensure_open(self) -> None:
        if not self.is_active:
            raise AccountClosed(self.account_number)

    def _post(self, transaction_type: TransactionType, amount: Decimal,
              now: Optional[datetime], description: str,
              counterparty: Optional[str] = None) -> Transaction:
        self._ensure_open()
        if transaction_type.is_credit:
            self.balance = self.balance + amount
        else:
            self.balance = self.balance - amount
        return Transaction.record(
            account_number=self.account_number,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=self.balance,
            timestamp=now or _utcnow(),
            description=description,
            counterparty_account=counterparty
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert Account to dictionary for storage"""
        return {
            'account_number': self.account_number,
            'holder_name': self.holder_name,
            'account_type': self.account_type.value,
            'balance': str(self.balance),
            'interest_rate': str(self.interest_rate),
            'created_at': self.created_at.isoformat(),
            'status': self.status.value,
            'minimum_balance': str(self.minimum_balance) if self.minimum_balance is not None else None,
            'overdraft_limit': str(self.overdraft_limit) if self.overdraft_limit is not None else None,
            'term_months': self.term_months,
            'maturity_date': self.maturity_date.isoformat() if self.maturity_date else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """Convert dictionary to Account"""
        return cls(
            account_number=data['account_number'],
            holder_name=data['holder_name'],
            account_type=AccountType(data['account_type']),
            balance=Decimal(data['balance']),
            interest_rate=Decimal(data['interest_rate']),
            created_at=datetime.fromisoformat(data['created_at']),
            status=AccountStatus(data['status']),
            minimum_balance=Decimal(data['minimum_balance']) if data.get('minimum_balance') else None,
            overdraft_limit=Decimal(data['overdraft_limit']) if data.get('overdraft_limit') else None,
            term_months=data.get('term_months'),
            maturity_date=datetime.fromisoformat(data['maturity_date']) if data.get('maturity_date') else None
        )

    def __str__(self) -> str:
        return (f"{self.account_number} | {self.holder_name} | {self.account_type_label} | "
                f"{format_money(self.balance)} | {self.status.value.upper()}")


# Withdrawal policies: each raises when the withdrawal is not allowed

def _savings_policy(account: Account, amount: Decimal, now: datetime) -> None:
    if account.balance - amount < account.minimum_balance:
        raise InsufficientFunds(
            f"Withdrawal of {format_money(amount)} would take {account.account_number} "
            f"below its minimum balance of {format_money(account.minimum_balance)}"
        )


def _checking_policy(account: Account, amount: Decimal, now: datetime) -> None:
    if account.balance - amount < -account.overdraft_limit:
        raise InsufficientFunds(
            f"Withdrawal of {format_money(amount)} exceeds the overdraft limit of "
            f"{format_money(account.overdraft_limit)} on {account.account_number}"
        )


def _fixed_term_policy(account: Account, amount: Decimal, now: datetime) -> None:
    if not account.is_matured(now):
        raise TermLocked(
            f"Account {account.account_number} is locked until "
            f"{account.maturity_date:%Y-%m-%d}"
        )
    if account.balance < amount:
        raise InsufficientFunds(
            f"Insufficient funds: available {format_money(account.balance)}, "
            f"requested {format_money(amount)}"
        )


WITHDRAWAL_POLICIES: Dict[AccountType, Callable[[Account, Decimal, datetime], None]] = {
    AccountType.SAVINGS: _savings_policy,
    AccountType.CHECKING: _checking_policy,
    AccountType.FIXED_TERM: _fixed_term_policy,
}


def check_withdrawal(account: Account, amount: Decimal, now: Optional[datetime] = None) -> None:
    """
    Apply the account's withdrawal policy

    Raises:
        InvalidAmount: amount is not positive
        InsufficientFunds: the balance floor would be broken
        TermLocked: fixed-term account before maturity
    """
    if amount <= ZERO:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    WITHDRAWAL_POLICIES[account.account_type](account, amount, now or _utcnow())
