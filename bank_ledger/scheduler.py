"""
Standing Order Engine

Creates, cancels and executes standing orders. Each tick executes every
due order at most once: the transfer and the order's date advance commit in
one storage unit while both account locks are held, so a tick can be
repeated or resumed after a crash without paying an order twice.
"""

import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Union

from .audit import AuditEventType, AuditTrail
from .errors import AccountClosed, InvalidSchedule, InvalidTransfer
from .logging_config import get_logger, log_action
from .money import AmountLike, positive_amount
from .periodic import PeriodicTask
from .standing_orders import (
    Frequency, StandingOrder, StandingOrderStatus, advance_execution_date, parse_frequency
)
from .transactions import TransactionProcessor

DateInput = Union[date, datetime, str]


def _as_date(value: DateInput) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidSchedule(f"Invalid date {value!r}; expected YYYY-MM-DD")


@dataclass
class StandingOrderRunSummary:
    """Outcome of one standing order tick"""
    as_of: date
    processed: int = 0
    failed: int = 0
    completed: int = 0
    failed_orders: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'as_of': self.as_of.isoformat(),
            'processed': self.processed,
            'failed': self.failed,
            'completed': self.completed,
            'failed_orders': list(self.failed_orders)
        }


class StandingOrderScheduler:
    """
    Executes due standing orders on a periodic tick
    """

    def __init__(
        self,
        processor: TransactionProcessor,
        audit_trail: Optional[AuditTrail] = None,
        interval_seconds: float = 60 * 60
    ):
        self.processor = processor
        self.store = processor.store
        self.audit_trail = audit_trail
        self.logger = get_logger("bank_ledger.scheduler")
        self._tick_lock = threading.Lock()
        self._task = PeriodicTask("standing-order-scheduler", interval_seconds,
                                  self.process_standing_orders)

    # Lifecycle

    def start(self) -> None:
        self._task.start()
        self._audit(AuditEventType.SCHEDULER_STARTED, "scheduler", self._task.name,
                    {'interval_seconds': self._task.interval_seconds})

    def stop(self, wait: bool = True) -> None:
        self._task.stop(wait=wait)
        self._audit(AuditEventType.SCHEDULER_STOPPED, "scheduler", self._task.name, {})

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def today(self) -> date:
        return self.processor.clock().date()

    # Order management

    def create_standing_order(
        self,
        from_account: str,
        to_account: str,
        amount: AmountLike,
        frequency: Union[Frequency, str],
        start_date: DateInput,
        end_date: Optional[DateInput] = None,
        description: Optional[str] = None
    ) -> StandingOrder:
        """
        Register a recurring transfer; the first execution is on start_date

        Raises:
            InvalidAmount, InvalidFrequency, InvalidSchedule, InvalidTransfer,
            AccountNotFound, AccountClosed
        """
        amount = positive_amount(amount)
        frequency = parse_frequency(frequency)
        start = _as_date(start_date)
        end = _as_date(end_date) if end_date is not None else None
        if end is not None and end < start:
            raise InvalidSchedule(f"End date {end} is before start date {start}")
        if from_account == to_account:
            raise InvalidTransfer("Standing order source and destination must differ")

        for account_number in (from_account, to_account):
            if not self.store.require_account(account_number).is_active:
                raise AccountClosed(account_number)

        order = StandingOrder.new(
            from_account=from_account,
            to_account=to_account,
            amount=amount,
            frequency=frequency,
            start_date=start,
            end_date=end,
            description=description,
            created_at=self.processor.clock()
        )
        with self.store.unit():
            self.store.create_standing_order(order)

        self._audit(AuditEventType.STANDING_ORDER_CREATED, "standing_order", order.id, {
            'from_account': from_account,
            'to_account': to_account,
            'amount': amount,
            'frequency': frequency.value,
            'start_date': start,
            'end_date': end
        })
        log_action(
            self.logger, "info", f"Standing order created: {order}",
            account=from_account, action="create_standing_order",
            resource=f"standing_order:{order.id}"
        )
        return order

    def cancel_standing_order(self, order_id: str) -> StandingOrder:
        """Cancel an ACTIVE order; raises InvalidStateTransition otherwise"""
        order = self.store.require_standing_order(order_id)
        with self.processor.account_locks.hold(order.from_account, order.to_account):
            with self.store.unit():
                order = self.store.terminate_standing_order(order_id, StandingOrderStatus.CANCELLED)

        self._audit(AuditEventType.STANDING_ORDER_CANCELLED, "standing_order", order_id, {})
        log_action(
            self.logger, "info", f"Standing order cancelled: {order_id}",
            account=order.from_account, action="cancel_standing_order",
            resource=f"standing_order:{order_id}"
        )
        return order

    def get_standing_order(self, order_id: str) -> StandingOrder:
        return self.store.require_standing_order(order_id)

    def get_standing_orders(self, account_number: str) -> List[StandingOrder]:
        """Orders where the account is source or destination"""
        self.store.require_account(account_number)
        return self.store.get_standing_orders_for_account(account_number)

    # Execution

    def process_standing_orders(self, as_of: Optional[DateInput] = None) -> StandingOrderRunSummary:
        """
        Run one tick

        Executes every ACTIVE order due on or before as_of (default today),
        then completes orders whose end date has passed. A failing order
        stays ACTIVE and unchanged, and is retried on the next tick.
        """
        today = _as_date(as_of) if as_of is not None else self.today()
        summary = StandingOrderRunSummary(as_of=today)

        with self._tick_lock:
            for order in self.store.get_due_standing_orders(today):
                try:
                    updated = self._execute(order, today)
                except Exception as e:
                    summary.failed += 1
                    summary.failed_orders.append(order.id)
                    self.logger.error(f"Standing order {order.id} failed: {e}", exc_info=True)
                    self._audit(AuditEventType.STANDING_ORDER_FAILED, "standing_order", order.id, {
                        'error': str(e),
                        'error_type': type(e).__name__,
                        'as_of': today
                    })
                    continue

                if updated is None:
                    continue
                summary.processed += 1
                if updated.status == StandingOrderStatus.COMPLETED:
                    summary.completed += 1
                    self._audit(AuditEventType.STANDING_ORDER_COMPLETED, "standing_order",
                                updated.id, {'last_execution_date': updated.last_execution_date})

            for expired in self.store.complete_expired_standing_orders(today):
                summary.completed += 1
                self._audit(AuditEventType.STANDING_ORDER_COMPLETED, "standing_order",
                            expired.id, {'end_date': expired.end_date})

        self._audit(AuditEventType.STANDING_ORDER_RUN, "scheduler", "standing-order-scheduler",
                    summary.to_dict())
        log_action(
            self.logger, "info", f"Standing order tick finished for {today}",
            action="process_standing_orders", resource="standing_order_run",
            extra=summary.to_dict()
        )
        return summary

    def _execute(self, order: StandingOrder, today: date) -> Optional[StandingOrder]:
        with self.processor.account_locks.hold(order.from_account, order.to_account):
            with self.store.unit():
                current = self.store.require_standing_order(order.id)
                # Cancelled or advanced since the due list was read
                if not current.is_due(today):
                    return None

                debit, _ = self.processor.transfer(
                    current.from_account,
                    current.to_account,
                    current.amount,
                    current.description or f"Standing order {current.id}"
                )

                next_date = advance_execution_date(current.next_execution_date, current.frequency)
                if current.end_date is not None and next_date > current.end_date:
                    updated = self.store.terminate_standing_order(
                        current.id, StandingOrderStatus.COMPLETED, last_execution_date=today
                    )
                else:
                    updated = self.store.update_standing_order(current.id, next_date, today)

        self._audit(AuditEventType.STANDING_ORDER_EXECUTED, "standing_order", order.id, {
            'amount': order.amount,
            'transaction_id': debit.id,
            'next_execution_date': updated.next_execution_date,
            'as_of': today
        })
        return updated

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
               metadata: dict) -> None:
        if self.audit_trail is not None:
            self.audit_trail.log_event(event_type, entity_type, entity_id, metadata)
