"""
Standing Orders

Recurring transfer instructions and the calendar rules that move them
forward. Execution lives in scheduler.StandingOrderScheduler.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union
import uuid

from .dates import add_months, add_years
from .errors import InvalidFrequency, InvalidStateTransition
from .storage import StorageRecord


class Frequency(Enum):
    """How often a standing order runs"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class StandingOrderStatus(Enum):
    """Standing order lifecycle; ACTIVE is the only non-terminal state"""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    def can_transition_to(self, new_status: 'StandingOrderStatus') -> bool:
        return self == StandingOrderStatus.ACTIVE and new_status != StandingOrderStatus.ACTIVE


def parse_frequency(value: Union[Frequency, str]) -> Frequency:
    """Accept a Frequency or its name in any case"""
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(str(value).strip().lower())
    except ValueError:
        raise InvalidFrequency(
            f"Invalid frequency {value!r}; expected one of "
            f"{', '.join(f.name for f in Frequency)}"
        )


def advance_execution_date(current: date, frequency: Union[Frequency, str]) -> date:
    """
    Next execution date after current

    Month-based steps clamp to the last valid day of the target month, and
    each step starts from current (2024-01-31 -> 2024-02-29 -> 2024-03-29).
    Unrecognized frequencies advance by one month.
    """
    try:
        frequency = parse_frequency(frequency)
    except InvalidFrequency:
        return add_months(current, 1)

    if frequency == Frequency.DAILY:
        return current + timedelta(days=1)
    if frequency == Frequency.WEEKLY:
        return current + timedelta(weeks=1)
    if frequency == Frequency.QUARTERLY:
        return add_months(current, 3)
    if frequency == Frequency.YEARLY:
        return add_years(current, 1)
    return add_months(current, 1)


@dataclass
class StandingOrder(StorageRecord):
    """
    Recurring transfer from one account to another
    """
    from_account: str
    to_account: str
    amount: Decimal
    frequency: Frequency
    start_date: date
    next_execution_date: date
    end_date: Optional[date] = None
    last_execution_date: Optional[date] = None
    status: StandingOrderStatus = StandingOrderStatus.ACTIVE
    description: Optional[str] = None

    @classmethod
    def new(
        cls,
        from_account: str,
        to_account: str,
        amount: Decimal,
        frequency: Frequency,
        start_date: date,
        end_date: Optional[date] = None,
        description: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> 'StandingOrder':
        """Build an ACTIVE order whose first execution is the start date"""
        now = created_at or datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            from_account=from_account,
            to_account=to_account,
            amount=amount,
            frequency=frequency,
            start_date=start_date,
            next_execution_date=start_date,
            end_date=end_date,
            description=description
        )

    @property
    def is_active(self) -> bool:
        return self.status == StandingOrderStatus.ACTIVE

    def is_due(self, today: date) -> bool:
        return self.is_active and self.next_execution_date <= today

    def is_expired(self, today: date) -> bool:
        return self.is_active and self.end_date is not None and self.end_date < today

    def transition(self, new_status: StandingOrderStatus) -> None:
        """Move to a terminal status; raises InvalidStateTransition otherwise"""
        if not self.status.can_transition_to(new_status):
            raise InvalidStateTransition(
                f"Standing order {self.id} cannot move from "
                f"{self.status.value} to {new_status.value}"
            )
        self.status = new_status
        self.updated_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'from_account': self.from_account,
            'to_account': self.to_account,
            'amount': str(self.amount),
            'frequency': self.frequency.value,
            'start_date': self.start_date.isoformat(),
            'next_execution_date': self.next_execution_date.isoformat(),
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'last_execution_date': self.last_execution_date.isoformat() if self.last_execution_date else None,
            'status': self.status.value,
            'description': self.description
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StandingOrder':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            from_account=data['from_account'],
            to_account=data['to_account'],
            amount=Decimal(data['amount']),
            frequency=Frequency(data['frequency']),
            start_date=date.fromisoformat(data['start_date']),
            next_execution_date=date.fromisoformat(data['next_execution_date']),
            end_date=date.fromisoformat(data['end_date']) if data.get('end_date') else None,
            last_execution_date=(date.fromisoformat(data['last_execution_date'])
                                 if data.get('last_execution_date') else None),
            status=StandingOrderStatus(data['status']),
            description=data.get('description')
        )

    def __str__(self) -> str:
        end = f" until {self.end_date}" if self.end_date else ""
        return (f"{self.from_account} -> {self.to_account} ${self.amount:,.2f} "
                f"{self.frequency.name}{end}, next {self.next_execution_date} [{self.status.name}]")
