"""
Banking System

Wires storage, audit trail, ledger store, the money-movement service and
both schedulers together. Components receive their dependencies explicitly;
there are no module-level connections.
"""

from datetime import datetime
from typing import Callable, Optional

from .audit import AuditTrail
from .config import LedgerConfig, get_config
from .interest import InterestScheduler
from .logging_config import get_logger
from .scheduler import StandingOrderScheduler
from .storage import StorageInterface, create_storage
from .store import LedgerStore
from .transactions import TransactionProcessor


class BankingSystem:
    """Core ledger system with all components initialized"""

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        storage: Optional[StorageInterface] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.config = config or get_config()
        self.logger = get_logger("bank_ledger.system")

        # Initialize storage
        self.storage = storage or create_storage(self.config.database_url)

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.store = LedgerStore(self.storage)
        self.transaction_processor = TransactionProcessor(
            self.store, self.audit_trail, self.config, clock
        )
        self.standing_order_scheduler = StandingOrderScheduler(
            self.transaction_processor, self.audit_trail,
            interval_seconds=self.config.standing_order_interval_seconds
        )
        self.interest_scheduler = InterestScheduler(
            self.transaction_processor, self.audit_trail,
            interval_seconds=self.config.interest_interval_seconds,
            calculation_mode=self.config.interest_calculation_mode
        )

    def start(self) -> None:
        """Start both schedulers"""
        self.standing_order_scheduler.start()
        self.interest_scheduler.start()
        self.logger.info("Schedulers started")

    def stop(self) -> None:
        """Stop both schedulers, letting in-flight ticks finish"""
        self.standing_order_scheduler.stop()
        self.interest_scheduler.stop()
        self.logger.info("Schedulers stopped")

    def close(self) -> None:
        self.stop()
        self.storage.close()
