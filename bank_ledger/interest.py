"""
Interest Scheduler

Periodic interest credit across all active accounts plus the pure interest
formulas used for projections. Crediting goes through the
TransactionProcessor like every other balance change.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from .accounts import Account, InterestPeriod
from .audit import AuditEventType, AuditTrail
from .logging_config import get_logger
from .money import AmountLike, format_money, quantize_money, to_decimal
from .periodic import PeriodicTask
from .transactions import InterestRunSummary, TransactionProcessor

DAYS_PER_YEAR = Decimal('365')
WEEKS_PER_YEAR = Decimal('52')


def calculate_simple_interest(principal: AmountLike, rate: AmountLike, days: int) -> Decimal:
    """principal * rate * days / 365, unrounded"""
    return to_decimal(principal) * to_decimal(rate) * Decimal(days) / DAYS_PER_YEAR


def calculate_compound_interest(principal: AmountLike, rate: AmountLike, days: int,
                                compounding_frequency: int = 12) -> Decimal:
    """
    Future value after compounding for the given number of days

    principal * (1 + rate/n) ** (n * days / 365), unrounded.
    """
    if compounding_frequency <= 0:
        raise ValueError("compounding_frequency must be positive")
    n = Decimal(compounding_frequency)
    growth = Decimal(1) + to_decimal(rate) / n
    exponent = n * Decimal(days) / DAYS_PER_YEAR
    return to_decimal(principal) * growth ** exponent


def days_since_creation(created: Union[date, datetime], today: Union[date, datetime]) -> int:
    """Whole calendar days between account creation and today"""
    if isinstance(created, datetime):
        created = created.date()
    if isinstance(today, datetime):
        today = today.date()
    return (today - created).days


@dataclass(frozen=True)
class InterestProjection:
    """Read-only interest outlook for one account"""
    account_number: str
    balance: Decimal
    annual_rate: Decimal
    daily: Decimal
    weekly: Decimal
    monthly: Decimal
    quarterly: Decimal
    yearly: Decimal
    after_1_year: Decimal
    after_5_years: Decimal
    after_10_years: Decimal

    @classmethod
    def for_account(cls, account: Account) -> 'InterestProjection':
        balance = account.balance
        rate = account.interest_rate
        yearly = balance * rate
        return cls(
            account_number=account.account_number,
            balance=balance,
            annual_rate=rate,
            daily=quantize_money(yearly / DAYS_PER_YEAR),
            weekly=quantize_money(yearly / WEEKS_PER_YEAR),
            monthly=quantize_money(yearly / Decimal(12)),
            quarterly=quantize_money(yearly / Decimal(4)),
            yearly=quantize_money(yearly),
            after_1_year=quantize_money(calculate_compound_interest(balance, rate, 365, 12)),
            after_5_years=quantize_money(calculate_compound_interest(balance, rate, 1825, 12)),
            after_10_years=quantize_money(calculate_compound_interest(balance, rate, 3650, 12))
        )

    def to_dict(self) -> dict:
        return {key: str(value) if isinstance(value, Decimal) else value
                for key, value in self.__dict__.items()}

    def format(self) -> str:
        lines = [
            f"=== Interest Projection for {self.account_number} ===",
            f"Current Balance: {format_money(self.balance)}",
            f"Annual Interest Rate: {self.annual_rate * 100:.2f}%",
            "",
            "Simple Interest:",
            f"  Daily:     {format_money(self.daily)}",
            f"  Weekly:    {format_money(self.weekly)}",
            f"  Monthly:   {format_money(self.monthly)}",
            f"  Quarterly: {format_money(self.quarterly)}",
            f"  Yearly:    {format_money(self.yearly)}",
            "",
            "Compound Interest (monthly compounding):",
            f"  After 1 year:   {format_money(self.after_1_year)}",
            f"  After 5 years:  {format_money(self.after_5_years)}",
            f"  After 10 years: {format_money(self.after_10_years)}",
        ]
        return "\n".join(lines)


class InterestScheduler:
    """
    Credits interest to every active account on a periodic tick
    """

    def __init__(
        self,
        processor: TransactionProcessor,
        audit_trail: Optional[AuditTrail] = None,
        interval_seconds: float = 24 * 60 * 60,
        calculation_mode: Union[InterestPeriod, str] = InterestPeriod.MONTHLY
    ):
        self.processor = processor
        self.audit_trail = audit_trail
        self.calculation_mode = calculation_mode
        self.logger = get_logger("bank_ledger.interest")
        self._task = PeriodicTask("interest-scheduler", interval_seconds,
                                  self.calculate_and_apply_interest)

    @property
    def calculation_mode(self) -> InterestPeriod:
        return self._calculation_mode

    @calculation_mode.setter
    def calculation_mode(self, mode: Union[InterestPeriod, str]) -> None:
        if isinstance(mode, str):
            mode = InterestPeriod.from_code(mode)
        self._calculation_mode = mode

    def start(self) -> None:
        self._task.start()
        self._audit(AuditEventType.SCHEDULER_STARTED, {
            'interval_seconds': self._task.interval_seconds,
            'calculation_mode': self.calculation_mode.code
        })

    def stop(self, wait: bool = True) -> None:
        self._task.stop(wait=wait)
        self._audit(AuditEventType.SCHEDULER_STOPPED, {})

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def calculate_and_apply_interest(self) -> InterestRunSummary:
        """Credit one period of interest (current mode) to all active accounts"""
        mode = self.calculation_mode
        self.logger.info(f"Starting {mode.code} interest run")
        summary = self.processor.apply_interest_to_all(mode)
        self._audit(AuditEventType.INTEREST_RUN, summary.to_dict())
        self.logger.info(
            f"Interest run complete: {summary.accounts_processed} accounts credited, "
            f"{format_money(summary.total_interest_paid)} paid"
        )
        return summary

    def get_interest_projection(self, account_number: str) -> InterestProjection:
        """Projection for an account; raises AccountNotFound"""
        return InterestProjection.for_account(self.processor.get_account(account_number))

    def _audit(self, event_type: AuditEventType, metadata: dict) -> None:
        if self.audit_trail is not None:
            self.audit_trail.log_event(event_type, "scheduler", self._task.name, metadata)
