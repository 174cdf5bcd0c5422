"""
Tests for the ledger store persistence boundary
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timedelta, timezone

from bank_ledger.accounts import Account, AccountStatus, AccountType
from bank_ledger.errors import (
    AccountNotFound, InvalidStateTransition, PersistenceFailure, StandingOrderNotFound
)
from bank_ledger.ledger import Transaction, TransactionType
from bank_ledger.standing_orders import Frequency, StandingOrder, StandingOrderStatus
from bank_ledger.storage import InMemoryStorage
from bank_ledger.store import LedgerStore


NOW = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


class BrokenStorage(InMemoryStorage):
    """Storage whose writes always fail"""

    def save(self, table, record_id, data):
        raise OSError("disk I/O error")


def make_account(number="CHK100", holder="Alice Smith", created_at=NOW):
    return Account(
        account_number=number,
        holder_name=holder,
        account_type=AccountType.CHECKING,
        balance=Decimal("100.00"),
        interest_rate=Decimal("0.01"),
        created_at=created_at,
        overdraft_limit=Decimal("500.00")
    )


def make_order(start, created_at=NOW, end=None):
    return StandingOrder.new(
        from_account="CHK100",
        to_account="CHK200",
        amount=Decimal("25.00"),
        frequency=Frequency.MONTHLY,
        start_date=start,
        end_date=end,
        created_at=created_at
    )


class TestAccountPersistence:

    def setup_method(self):
        self.store = LedgerStore(InMemoryStorage())

    def test_create_and_get(self):
        account = make_account()
        self.store.create_account(account)

        assert self.store.get_account("CHK100") == account
        assert self.store.get_account("MISSING") is None
        with pytest.raises(AccountNotFound):
            self.store.require_account("MISSING")

    def test_duplicate_account_rejected(self):
        self.store.create_account(make_account())

        with pytest.raises(PersistenceFailure, match="already exists"):
            self.store.create_account(make_account())

    def test_update_balance_and_status(self):
        self.store.create_account(make_account())

        self.store.update_balance("CHK100", Decimal("42.50"))
        self.store.set_account_status("CHK100", AccountStatus.CLOSED)

        account = self.store.get_account("CHK100")
        assert account.balance == Decimal("42.50")
        assert account.status == AccountStatus.CLOSED
        assert self.store.list_active_accounts() == []

    def test_search_is_case_insensitive_substring(self):
        self.store.create_account(make_account("CHK100", "Alice Smith"))
        self.store.create_account(make_account("CHK200", "Bob Smithers"))
        self.store.create_account(make_account("CHK300", "Carol Jones"))

        found = self.store.search_accounts("SMITH")

        assert [a.account_number for a in found] == ["CHK100", "CHK200"]

    def test_list_accounts_oldest_first(self):
        self.store.create_account(make_account("CHK200", created_at=NOW + timedelta(hours=1)))
        self.store.create_account(make_account("CHK100", created_at=NOW))

        assert [a.account_number for a in self.store.list_accounts()] == ["CHK100", "CHK200"]


class TestTransactionPersistence:

    def setup_method(self):
        self.store = LedgerStore(InMemoryStorage())

    def _append(self, account_number, amount, minutes):
        transaction = Transaction.record(
            account_number=account_number,
            transaction_type=TransactionType.DEPOSIT,
            amount=Decimal(amount),
            balance_after=Decimal(amount),
            timestamp=NOW + timedelta(minutes=minutes)
        )
        self.store.append_transaction(transaction)
        return transaction

    def test_history_newest_first(self):
        first = self._append("CHK100", "10", 0)
        second = self._append("CHK100", "20", 5)
        self._append("CHK200", "30", 10)

        history = self.store.get_transactions("CHK100")

        assert [t.id for t in history] == [second.id, first.id]

    def test_same_timestamp_keeps_append_order(self):
        first = self._append("CHK100", "10", 0)
        second = self._append("CHK100", "20", 0)

        assert [t.id for t in self.store.get_transactions("CHK100")] == [second.id, first.id]

    def test_recent_transactions_limit(self):
        for i in range(5):
            self._append(f"CHK{i}", "10", i)

        recent = self.store.get_recent_transactions(limit=3)

        assert [t.account_number for t in recent] == ["CHK4", "CHK3", "CHK2"]

    def test_storage_errors_become_persistence_failures(self):
        store = LedgerStore(BrokenStorage())

        with pytest.raises(PersistenceFailure, match="disk I/O error"):
            store.create_account(make_account())


class TestStandingOrderPersistence:

    def setup_method(self):
        self.store = LedgerStore(InMemoryStorage())

    def test_due_orders_sorted_by_next_date_then_creation(self):
        late = make_order(date(2024, 1, 20), created_at=NOW)
        early_second = make_order(date(2024, 1, 10), created_at=NOW + timedelta(minutes=2))
        early_first = make_order(date(2024, 1, 10), created_at=NOW + timedelta(minutes=1))
        future = make_order(date(2024, 2, 1))
        for order in (late, early_second, early_first, future):
            self.store.create_standing_order(order)

        due = self.store.get_due_standing_orders(date(2024, 1, 20))

        assert [o.id for o in due] == [early_first.id, early_second.id, late.id]

    def test_update_and_terminate(self):
        order = make_order(date(2024, 1, 15))
        self.store.create_standing_order(order)

        updated = self.store.update_standing_order(order.id, date(2024, 2, 15), date(2024, 1, 15))
        assert updated.next_execution_date == date(2024, 2, 15)
        assert updated.last_execution_date == date(2024, 1, 15)

        cancelled = self.store.terminate_standing_order(order.id, StandingOrderStatus.CANCELLED)
        assert cancelled.status == StandingOrderStatus.CANCELLED
        assert self.store.get_standing_order(order.id).status == StandingOrderStatus.CANCELLED

        with pytest.raises(InvalidStateTransition):
            self.store.terminate_standing_order(order.id, StandingOrderStatus.COMPLETED)

    def test_missing_order(self):
        with pytest.raises(StandingOrderNotFound):
            self.store.update_standing_order("nope", date(2024, 1, 1), None)

    def test_complete_expired(self):
        expired = make_order(date(2024, 1, 1), end=date(2024, 1, 10))
        ends_today = make_order(date(2024, 1, 1), end=date(2024, 1, 20))
        open_ended = make_order(date(2024, 1, 1))
        for order in (expired, ends_today, open_ended):
            self.store.create_standing_order(order)

        completed = self.store.complete_expired_standing_orders(date(2024, 1, 20))

        assert [o.id for o in completed] == [expired.id]
        assert self.store.get_standing_order(expired.id).status == StandingOrderStatus.COMPLETED
        assert self.store.get_standing_order(ends_today.id).is_active

    def test_orders_for_account_either_side(self):
        order = make_order(date(2024, 1, 15))
        self.store.create_standing_order(order)

        assert [o.id for o in self.store.get_standing_orders_for_account("CHK100")] == [order.id]
        assert [o.id for o in self.store.get_standing_orders_for_account("CHK200")] == [order.id]
        assert self.store.get_standing_orders_for_account("CHK999") == []

    def test_unit_rolls_back_all_writes(self):
        self.store.create_account(make_account())

        with pytest.raises(RuntimeError):
            with self.store.unit():
                self.store.update_balance("CHK100", Decimal("0.00"))
                self.store.create_standing_order(make_order(date(2024, 1, 15)))
                raise RuntimeError("abort")

        assert self.store.get_account("CHK100").balance == Decimal("100.00")
        assert self.store.list_standing_orders() == []
