"""
Ledger Entries

Immutable transaction records. Every balance change appends exactly one
Transaction carrying the resulting balance; entries are never updated or
deleted.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
import uuid


class TransactionType(Enum):
    """Kinds of balance-affecting events"""
    INITIAL_DEPOSIT = "initial_deposit"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    INTEREST = "interest"

    @property
    def is_credit(self) -> bool:
        """True when the entry increases the balance"""
        return self not in (TransactionType.WITHDRAWAL, TransactionType.TRANSFER_OUT)


@dataclass(frozen=True)
class Transaction:
    """
    Ledger entry for one account

    amount is always a positive magnitude; the direction follows from
    transaction_type. balance_after is the account balance once applied.
    """
    id: str
    account_number: str
    transaction_type: TransactionType
    amount: Decimal
    balance_after: Decimal
    timestamp: datetime
    description: Optional[str] = None
    counterparty_account: Optional[str] = None

    def __post_init__(self):
        if self.amount <= Decimal('0'):
            raise ValueError("Transaction amount must be positive")

    @classmethod
    def record(
        cls,
        account_number: str,
        transaction_type: TransactionType,
        amount: Decimal,
        balance_after: Decimal,
        timestamp: datetime,
        description: Optional[str] = None,
        counterparty_account: Optional[str] = None
    ) -> 'Transaction':
        """Create a new entry with a fresh id"""
        return cls(
            id=str(uuid.uuid4()),
            account_number=account_number,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=balance_after,
            timestamp=timestamp,
            description=description,
            counterparty_account=counterparty_account
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            'id': self.id,
            'account_number': self.account_number,
            'transaction_type': self.transaction_type.value,
            'amount': str(self.amount),
            'balance_after': str(self.balance_after),
            'timestamp': self.timestamp.isoformat(),
            'description': self.description,
            'counterparty_account': self.counterparty_account
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        """Create instance from a stored dictionary"""
        return cls(
            id=data['id'],
            account_number=data['account_number'],
            transaction_type=TransactionType(data['transaction_type']),
            amount=Decimal(data['amount']),
            balance_after=Decimal(data['balance_after']),
            timestamp=datetime.fromisoformat(data['timestamp']),
            description=data.get('description'),
            counterparty_account=data.get('counterparty_account')
        )

    def __str__(self) -> str:
        line = (f"{self.timestamp:%Y-%m-%d %H:%M:%S} {self.transaction_type.name:<16} "
                f"${self.amount:,.2f} balance ${self.balance_after:,.2f}")
        if self.counterparty_account:
            line += f" ({self.counterparty_account})"
        return line
