"""
Ledger error taxonomy.

Validation errors are raised before any state is touched. PersistenceFailure
wraps storage errors and always aborts the surrounding unit of work.
"""


class LedgerError(Exception):
    """Base class for all ledger errors"""
    pass


class InvalidAmount(LedgerError, ValueError):
    """Amount is not a positive monetary value"""
    pass


class InvalidFrequency(LedgerError, ValueError):
    """Unrecognized standing order frequency"""
    pass


class InvalidSchedule(LedgerError, ValueError):
    """Standing order dates are inconsistent"""
    pass


class InvalidTransfer(LedgerError, ValueError):
    """Source and destination of a transfer are the same account"""
    pass


class InvalidAccountDetails(LedgerError, ValueError):
    """Account holder, type or interest rate is not acceptable"""
    pass


class AccountNotFound(LedgerError, LookupError):
    """No account with the given account number"""
    
    def __init__(self, account_number: str):
        super().__init__(f"Account {account_number} not found")
        self.account_number = account_number


class StandingOrderNotFound(LedgerError, LookupError):
    """No standing order with the given id"""
    
    def __init__(self, order_id: str):
        super().__init__(f"Standing order {order_id} not found")
        self.order_id = order_id


class AccountClosed(LedgerError):
    """Account is closed and cannot be mutated"""
    
    def __init__(self, account_number: str):
        super().__init__(f"Account {account_number} is closed")
        self.account_number = account_number


class WithdrawalDenied(LedgerError):
    """Withdrawal rejected by the account's withdrawal policy"""
    pass


class InsufficientFunds(WithdrawalDenied):
    """Withdrawal would break the balance floor of the account"""
    pass


class TermLocked(WithdrawalDenied):
    """Fixed-term account has not reached maturity"""
    pass


class InvalidStateTransition(LedgerError):
    """Requested status change is not allowed from the current status"""
    pass


class PersistenceFailure(LedgerError):
    """Storage is unavailable or rejected a write"""
    pass
