"""
Money-Movement Service

TransactionProcessor is the only writer of balances and transaction
history. Every mutating operation runs as: acquire the account lock(s),
open a storage unit, read, compute through the Account Model, persist the
new balance and append the transaction, commit. Multi-account operations
lock in sorted account-number order.
"""

import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from .accounts import (
    ACCOUNT_NUMBER_PREFIXES, Account, AccountStatus, AccountType, InterestPeriod
)
from .audit import AuditEventType, AuditTrail
from .config import LedgerConfig, get_config
from .errors import (
    AccountClosed, InvalidAccountDetails, InvalidAmount, InvalidSchedule, InvalidTransfer
)
from .ledger import Transaction
from .logging_config import get_logger, log_action
from .money import ZERO, AmountLike, positive_amount, quantize_money, to_decimal
from .store import LedgerStore


class AccountLocks:
    """
    Registry of per-account reentrant locks

    Locks are created on first use and kept for the life of the process.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def lock_for(self, account_number: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(account_number)
            if lock is None:
                lock = threading.RLock()
                self._locks[account_number] = lock
            return lock

    @contextmanager
    def hold(self, *account_numbers: str) -> Iterator[None]:
        """Acquire the locks of all given accounts in sorted order"""
        locks = [self.lock_for(n) for n in sorted(set(account_numbers))]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


@dataclass
class InterestRunSummary:
    """Outcome of one interest batch"""
    period: InterestPeriod
    accounts_processed: int = 0
    accounts_skipped: int = 0
    total_interest_paid: Decimal = ZERO
    failed_accounts: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'period': self.period.code,
            'accounts_processed': self.accounts_processed,
            'accounts_skipped': self.accounts_skipped,
            'total_interest_paid': str(self.total_interest_paid),
            'failed_accounts': list(self.failed_accounts)
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionProcessor:
    """
    Deposits, withdrawals, transfers and interest credits with per-account
    serialization and all-or-nothing persistence
    """

    def __init__(
        self,
        store: LedgerStore,
        audit_trail: Optional[AuditTrail] = None,
        config: Optional[LedgerConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.clock = clock or _utcnow
        self.account_locks = AccountLocks()
        self.logger = get_logger("bank_ledger.transactions")

    # Account lifecycle

    def open_account(
        self,
        holder_name: str,
        account_type: Union[AccountType, str],
        initial_deposit: AmountLike = 0,
        term_months: Optional[int] = None,
        interest_rate: Optional[AmountLike] = None
    ) -> Account:
        """
        Open a new account with the product defaults of its type

        Args:
            holder_name: Account holder
            account_type: AccountType or its value ("savings", "checking", "fixed_term")
            initial_deposit: Opening balance, recorded as INITIAL_DEPOSIT when positive
            term_months: Required for fixed-term accounts
            interest_rate: Overrides the configured annual rate

        Returns:
            The persisted Account
        """
        if not holder_name or not holder_name.strip():
            raise InvalidAccountDetails("Holder name is required")
        if isinstance(account_type, str):
            try:
                account_type = AccountType(account_type.lower())
            except ValueError:
                raise InvalidAccountDetails(f"Unknown account type: {account_type}")

        rate = None
        if interest_rate is not None:
            rate = to_decimal(interest_rate)
            if not rate.is_finite() or rate < ZERO:
                raise InvalidAmount(f"Interest rate must be a non-negative number, got {interest_rate}")

        opening = to_decimal(initial_deposit)
        if not opening.is_finite() or opening < ZERO:
            raise InvalidAmount(f"Initial deposit cannot be negative, got {initial_deposit}")
        opening = quantize_money(opening)

        minimum_balance = None
        overdraft_limit = None
        if account_type == AccountType.SAVINGS:
            minimum_balance = quantize_money(self.config.savings_minimum_balance)
            default_rate = self.config.savings_interest_rate
            if opening < minimum_balance:
                raise InvalidAmount(
                    f"Savings account requires a minimum initial deposit of ${minimum_balance:,.2f}"
                )
        elif account_type == AccountType.CHECKING:
            overdraft_limit = quantize_money(self.config.checking_overdraft_limit)
            default_rate = self.config.checking_interest_rate
        else:
            if term_months is None or term_months <= 0:
                raise InvalidSchedule("Fixed-term account requires a positive term in months")
            default_rate = self.config.fixed_term_interest_rate

        now = self.clock()
        account = Account(
            account_number=self._generate_account_number(account_type),
            holder_name=holder_name.strip(),
            account_type=account_type,
            balance=opening,
            interest_rate=rate if rate is not None else to_decimal(default_rate),
            created_at=now,
            minimum_balance=minimum_balance,
            overdraft_limit=overdraft_limit,
            term_months=term_months if account_type == AccountType.FIXED_TERM else None
        )
        opening_entry = account.initial_deposit(now)

        with self.account_locks.hold(account.account_number):
            with self.store.unit():
                self.store.create_account(account)
                if opening_entry:
                    self.store.append_transaction(opening_entry)

        self._audit(AuditEventType.ACCOUNT_OPENED, "account", account.account_number, {
            'holder_name': account.holder_name,
            'account_type': account.account_type.value,
            'initial_deposit': opening
        })
        log_action(
            self.logger, "info", f"Account opened: {account.account_number}",
            account=account.account_number, action="open_account",
            resource=f"account:{account.account_number}",
            extra={"account_type": account.account_type.value, "initial_deposit": str(opening)}
        )
        return account

    def close_account(self, account_number: str) -> Account:
        """Mark an account CLOSED; the record and its history are kept"""
        with self.account_locks.hold(account_number):
            with self.store.unit():
                account = self.store.require_account(account_number)
                if account.status == AccountStatus.CLOSED:
                    raise AccountClosed(account_number)
                self.store.set_account_status(account_number, AccountStatus.CLOSED)
                account.status = AccountStatus.CLOSED

        self._audit(AuditEventType.ACCOUNT_CLOSED, "account", account_number,
                    {'final_balance': account.balance})
        log_action(
            self.logger, "info", f"Account closed: {account_number}",
            account=account_number, action="close_account",
            resource=f"account:{account_number}",
            extra={"final_balance": str(account.balance)}
        )
        return account

    # Money movement

    def deposit(self, account_number: str, amount: AmountLike,
                description: Optional[str] = None) -> Transaction:
        """Credit an account; returns the DEPOSIT transaction"""
        amount = positive_amount(amount)

        with self.account_locks.hold(account_number):
            with self.store.unit():
                account = self.store.require_account(account_number)
                transaction = account.deposit(amount, self.clock(), description or "Cash deposit")
                self._persist(account, transaction)

        self._log_movement("deposit", transaction)
        return transaction

    def withdraw(self, account_number: str, amount: AmountLike,
                 description: Optional[str] = None) -> Transaction:
        """Debit an account subject to its withdrawal policy"""
        amount = positive_amount(amount)

        with self.account_locks.hold(account_number):
            with self.store.unit():
                account = self.store.require_account(account_number)
                transaction = account.withdraw(amount, self.clock(), description or "Cash withdrawal")
                self._persist(account, transaction)

        self._log_movement("withdraw", transaction)
        return transaction

    def transfer(self, from_account: str, to_account: str, amount: AmountLike,
                 description: Optional[str] = None) -> Tuple[Transaction, Transaction]:
        """
        Move money between two accounts atomically

        Returns:
            (TRANSFER_OUT on the source, TRANSFER_IN on the destination)
        """
        amount = positive_amount(amount)
        if from_account == to_account:
            raise InvalidTransfer(f"Cannot transfer from {from_account} to itself")

        with self.account_locks.hold(from_account, to_account):
            with self.store.unit():
                source = self.store.require_account(from_account)
                destination = self.store.require_account(to_account)
                if not destination.is_active:
                    raise AccountClosed(to_account)

                now = self.clock()
                debit = source.transfer_out(amount, to_account, now, description)
                credit = destination.transfer_in(amount, from_account, now, description)
                self._persist(source, debit)
                self._persist(destination, credit)

        log_action(
            self.logger, "info", f"Transfer completed: {from_account} -> {to_account}",
            account=from_account, action="transfer",
            resource=f"transaction:{debit.id}",
            extra={"from_account": from_account, "to_account": to_account, "amount": str(amount)}
        )
        return debit, credit

    def apply_interest(self, account_number: str,
                       period: InterestPeriod = InterestPeriod.MONTHLY) -> Optional[Transaction]:
        """Credit one period of interest; None when nothing was due"""
        with self.account_locks.hold(account_number):
            with self.store.unit():
                account = self.store.require_account(account_number)
                transaction = account.apply_interest(period, self.clock())
                if transaction is not None:
                    self._persist(account, transaction)

        if transaction is not None:
            self._log_movement("apply_interest", transaction)
        return transaction

    def apply_interest_to_all(self, period: InterestPeriod = InterestPeriod.MONTHLY) -> InterestRunSummary:
        """
        Credit interest to every ACTIVE account

        A failure on one account is logged and the batch continues.
        """
        summary = InterestRunSummary(period=period)

        for account in self.store.list_active_accounts():
            try:
                transaction = self.apply_interest(account.account_number, period)
            except Exception as e:
                self.logger.error(
                    f"Failed to apply interest to account {account.account_number}: {e}",
                    exc_info=True
                )
                summary.failed_accounts.append(account.account_number)
                continue

            if transaction is None:
                summary.accounts_skipped += 1
            else:
                summary.accounts_processed += 1
                summary.total_interest_paid += transaction.amount

        log_action(
            self.logger, "info", f"Interest run finished ({period.code})",
            action="apply_interest_to_all", resource="interest_run",
            extra=summary.to_dict()
        )
        return summary

    # Queries

    def get_account(self, account_number: str) -> Account:
        return self.store.require_account(account_number)

    def get_all_accounts(self) -> List[Account]:
        return self.store.list_accounts()

    def search_accounts(self, holder_query: str) -> List[Account]:
        return self.store.search_accounts(holder_query)

    def get_transaction_history(self, account_number: str,
                                limit: Optional[int] = None) -> List[Transaction]:
        """Transactions of one account, newest first"""
        self.store.require_account(account_number)
        return self.store.get_transactions(account_number, limit)

    def get_recent_transactions(self, limit: int = 10) -> List[Transaction]:
        return self.store.get_recent_transactions(limit)

    # Helpers

    def _persist(self, account: Account, transaction: Transaction) -> None:
        self.store.update_balance(account.account_number, account.balance)
        self.store.append_transaction(transaction)

    def _generate_account_number(self, account_type: AccountType) -> str:
        while True:
            number = f"{ACCOUNT_NUMBER_PREFIXES[account_type]}{uuid.uuid4().hex[:10].upper()}"
            if not self.store.account_exists(number):
                return number

    def _log_movement(self, action: str, transaction: Transaction) -> None:
        log_action(
            self.logger, "info",
            f"{transaction.transaction_type.value} posted to {transaction.account_number}",
            account=transaction.account_number, action=action,
            resource=f"transaction:{transaction.id}",
            extra={
                "amount": str(transaction.amount),
                "balance_after": str(transaction.balance_after)
            }
        )

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
               metadata: dict) -> None:
        if self.audit_trail is not None:
            self.audit_trail.log_event(event_type, entity_type, entity_id, metadata)
