"""
Ledger Store

Persistence boundary for accounts, transactions and standing orders over a
StorageInterface. Every storage error surfaces as PersistenceFailure.

Writes made inside unit() commit or roll back together. Callers that
mutate balances must hold the account lock before opening a unit.
"""

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator, List, Optional

from .accounts import Account, AccountStatus
from .errors import AccountNotFound, LedgerError, PersistenceFailure, StandingOrderNotFound
from .ledger import Transaction
from .logging_config import get_logger
from .standing_orders import StandingOrder, StandingOrderStatus
from .storage import StorageInterface


class LedgerStore:
    """Typed access to the ledger tables"""

    ACCOUNTS_TABLE = "accounts"
    TRANSACTIONS_TABLE = "transactions"
    STANDING_ORDERS_TABLE = "standing_orders"

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.logger = get_logger("bank_ledger.store")

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except LedgerError:
            raise
        except Exception as e:
            self.logger.error(f"Storage operation {operation} failed: {e}")
            raise PersistenceFailure(f"{operation} failed: {e}") from e

    # Units of work

    def begin_unit(self) -> None:
        with self._guard("begin_unit"):
            self.storage.begin_transaction()

    def commit_unit(self) -> None:
        with self._guard("commit_unit"):
            self.storage.commit()

    def rollback_unit(self) -> None:
        with self._guard("rollback_unit"):
            self.storage.rollback()

    @contextmanager
    def unit(self) -> Iterator[None]:
        """All writes inside commit together or not at all"""
        self.begin_unit()
        try:
            yield
        except BaseException:
            self.rollback_unit()
            raise
        self.commit_unit()

    # Accounts

    def get_account(self, account_number: str) -> Optional[Account]:
        with self._guard("get_account"):
            data = self.storage.load(self.ACCOUNTS_TABLE, account_number)
            return Account.from_dict(data) if data else None

    def require_account(self, account_number: str) -> Account:
        account = self.get_account(account_number)
        if account is None:
            raise AccountNotFound(account_number)
        return account

    def account_exists(self, account_number: str) -> bool:
        with self._guard("account_exists"):
            return self.storage.exists(self.ACCOUNTS_TABLE, account_number)

    def create_account(self, account: Account) -> None:
        if self.account_exists(account.account_number):
            raise PersistenceFailure(f"Account {account.account_number} already exists")
        with self._guard("create_account"):
            self.storage.save(self.ACCOUNTS_TABLE, account.account_number, account.to_dict())

    def update_balance(self, account_number: str, balance: Decimal) -> None:
        account = self.require_account(account_number)
        account.balance = balance
        with self._guard("update_balance"):
            self.storage.save(self.ACCOUNTS_TABLE, account_number, account.to_dict())

    def set_account_status(self, account_number: str, status: AccountStatus) -> None:
        account = self.require_account(account_number)
        account.status = status
        with self._guard("set_account_status"):
            self.storage.save(self.ACCOUNTS_TABLE, account_number, account.to_dict())

    def list_accounts(self) -> List[Account]:
        """All accounts, oldest first"""
        with self._guard("list_accounts"):
            accounts = [Account.from_dict(data) for data in self.storage.load_all(self.ACCOUNTS_TABLE)]
        accounts.sort(key=lambda a: a.created_at)
        return accounts

    def list_active_accounts(self) -> List[Account]:
        return [a for a in self.list_accounts() if a.status == AccountStatus.ACTIVE]

    def search_accounts(self, holder_query: str) -> List[Account]:
        """Accounts whose holder name contains the query (case-insensitive)"""
        needle = holder_query.strip().lower()
        return [a for a in self.list_accounts() if needle in a.holder_name.lower()]

    # Transactions

    def append_transaction(self, transaction: Transaction) -> None:
        with self._guard("append_transaction"):
            self.storage.save(self.TRANSACTIONS_TABLE, transaction.id, transaction.to_dict())

    def get_transactions(self, account_number: str, limit: Optional[int] = None) -> List[Transaction]:
        """Transactions of one account, newest first"""
        with self._guard("get_transactions"):
            rows = self.storage.find(self.TRANSACTIONS_TABLE, {'account_number': account_number})
        return self._newest_first(rows, limit)

    def get_recent_transactions(self, limit: int = 10) -> List[Transaction]:
        """Latest transactions across all accounts, newest first"""
        with self._guard("get_recent_transactions"):
            rows = self.storage.load_all(self.TRANSACTIONS_TABLE)
        return self._newest_first(rows, limit)

    @staticmethod
    def _newest_first(rows, limit: Optional[int]) -> List[Transaction]:
        # Storage order breaks timestamp ties
        indexed = [(i, Transaction.from_dict(row)) for i, row in enumerate(rows)]
        indexed.sort(key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True)
        transactions = [tx for _, tx in indexed]
        if limit is not None:
            transactions = transactions[:limit]
        return transactions

    # Standing orders

    def create_standing_order(self, order: StandingOrder) -> None:
        with self._guard("create_standing_order"):
            self.storage.save(self.STANDING_ORDERS_TABLE, order.id, order.to_dict())

    def get_standing_order(self, order_id: str) -> Optional[StandingOrder]:
        with self._guard("get_standing_order"):
            data = self.storage.load(self.STANDING_ORDERS_TABLE, order_id)
            return StandingOrder.from_dict(data) if data else None

    def require_standing_order(self, order_id: str) -> StandingOrder:
        order = self.get_standing_order(order_id)
        if order is None:
            raise StandingOrderNotFound(order_id)
        return order

    def list_standing_orders(self) -> List[StandingOrder]:
        with self._guard("list_standing_orders"):
            orders = [StandingOrder.from_dict(d) for d in self.storage.load_all(self.STANDING_ORDERS_TABLE)]
        orders.sort(key=lambda o: o.created_at)
        return orders

    def get_due_standing_orders(self, as_of: date) -> List[StandingOrder]:
        """ACTIVE orders with next execution on or before as_of, earliest first"""
        due = [o for o in self.list_standing_orders() if o.is_due(as_of)]
        due.sort(key=lambda o: (o.next_execution_date, o.created_at))
        return due

    def get_standing_orders_for_account(self, account_number: str) -> List[StandingOrder]:
        """Orders where the account is the source or the destination"""
        return [o for o in self.list_standing_orders()
                if account_number in (o.from_account, o.to_account)]

    def update_standing_order(self, order_id: str, next_execution_date: date,
                              last_execution_date: Optional[date]) -> StandingOrder:
        order = self.require_standing_order(order_id)
        order.next_execution_date = next_execution_date
        order.last_execution_date = last_execution_date
        self._save_order(order, "update_standing_order")
        return order

    def terminate_standing_order(self, order_id: str, status: StandingOrderStatus,
                                 last_execution_date: Optional[date] = None) -> StandingOrder:
        """Move an ACTIVE order to CANCELLED or COMPLETED"""
        order = self.require_standing_order(order_id)
        order.transition(status)
        if last_execution_date is not None:
            order.last_execution_date = last_execution_date
        self._save_order(order, "terminate_standing_order")
        return order

    def complete_expired_standing_orders(self, as_of: date) -> List[StandingOrder]:
        """Complete ACTIVE orders whose end date is before as_of"""
        completed = []
        with self.unit():
            for order in self.list_standing_orders():
                if order.is_expired(as_of):
                    order.transition(StandingOrderStatus.COMPLETED)
                    self._save_order(order, "complete_expired_standing_orders")
                    completed.append(order)
        return completed

    def _save_order(self, order: StandingOrder, operation: str) -> None:
        with self._guard(operation):
            self.storage.save(self.STANDING_ORDERS_TABLE, order.id, order.to_dict())
