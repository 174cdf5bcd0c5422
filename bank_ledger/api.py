"""
FastAPI REST API Module

Provides REST endpoints for account management, money movement, interest
and standing orders. Runs on port 8090 by default.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from . import __version__
from .accounts import Account, AccountType, InterestPeriod
from .config import get_config
from .errors import (
    AccountClosed, AccountNotFound, InvalidAccountDetails, InvalidAmount, InvalidFrequency,
    InvalidSchedule, InvalidStateTransition, InvalidTransfer, LedgerError, PersistenceFailure,
    StandingOrderNotFound, WithdrawalDenied
)
from .ledger import Transaction
from .logging_config import get_logger, setup_logging
from .standing_orders import StandingOrder
from .system import BankingSystem


logger = get_logger("bank_ledger.api")


# Pydantic models for API requests
class OpenAccountRequest(BaseModel):
    holder_name: str = Field(..., min_length=1)
    account_type: AccountType = Field(..., description="savings, checking or fixed_term")
    initial_deposit: str = Field("0", description="Decimal amount as string")
    term_months: Optional[int] = Field(None, description="Required for fixed_term accounts")
    interest_rate: Optional[str] = None  # Decimal as string


class AmountRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    description: Optional[str] = None


class TransferRequest(BaseModel):
    from_account: str
    to_account: str
    amount: str = Field(..., description="Decimal amount as string")
    description: Optional[str] = None


class InterestRequest(BaseModel):
    period: str = Field("monthly", description="daily, monthly, quarterly or yearly")


class CreateStandingOrderRequest(BaseModel):
    from_account: str
    to_account: str
    amount: str = Field(..., description="Decimal amount as string")
    frequency: str = Field(..., description="DAILY, WEEKLY, MONTHLY, QUARTERLY or YEARLY")
    start_date: date
    end_date: Optional[date] = None
    description: Optional[str] = None


class ProcessStandingOrdersRequest(BaseModel):
    as_of: Optional[date] = None


# Error mapping; most specific class wins
ERROR_STATUS_CODES = {
    AccountNotFound: status.HTTP_404_NOT_FOUND,
    StandingOrderNotFound: status.HTTP_404_NOT_FOUND,
    InvalidAccountDetails: status.HTTP_400_BAD_REQUEST,
    InvalidAmount: status.HTTP_400_BAD_REQUEST,
    InvalidFrequency: status.HTTP_400_BAD_REQUEST,
    InvalidSchedule: status.HTTP_400_BAD_REQUEST,
    InvalidTransfer: status.HTTP_400_BAD_REQUEST,
    AccountClosed: status.HTTP_409_CONFLICT,
    InvalidStateTransition: status.HTTP_409_CONFLICT,
    WithdrawalDenied: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PersistenceFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(error: LedgerError) -> int:
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return status.HTTP_400_BAD_REQUEST


# Response serialization
def account_to_dict(account: Account) -> Dict[str, Any]:
    return {
        "account_number": account.account_number,
        "holder_name": account.holder_name,
        "account_type": account.account_type.value,
        "account_type_label": account.account_type_label,
        "balance": str(account.balance),
        "interest_rate": str(account.interest_rate),
        "status": account.status.value,
        "created_at": account.created_at.isoformat(),
        "minimum_balance": str(account.minimum_balance) if account.minimum_balance is not None else None,
        "overdraft_limit": str(account.overdraft_limit) if account.overdraft_limit is not None else None,
        "term_months": account.term_months,
        "maturity_date": account.maturity_date.isoformat() if account.maturity_date else None
    }


def transaction_to_dict(transaction: Transaction) -> Dict[str, Any]:
    return transaction.to_dict()


def standing_order_to_dict(order: StandingOrder) -> Dict[str, Any]:
    data = order.to_dict()
    data["frequency"] = order.frequency.name
    return data


def _parse_period(value: str) -> InterestPeriod:
    try:
        return InterestPeriod.from_code(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# Dependency to get banking system
def get_banking_system(request: Request) -> BankingSystem:
    system = getattr(request.app.state, "banking_system", None)
    if system is None:
        raise HTTPException(status_code=503, detail="Banking system not initialized")
    return system


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the schedulers with the app and stop them on shutdown"""
    system: BankingSystem = app.state.banking_system
    if system.config.enable_schedulers:
        system.start()
    yield
    if system.config.enable_schedulers:
        system.stop()


def create_app(system: Optional[BankingSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    if system is None:
        config = get_config()
        setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
        system = BankingSystem(config)

    app = FastAPI(
        title="Bank Ledger API",
        description="Account ledger with standing orders and scheduled interest",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.banking_system = system

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        code = status_code_for(exc)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=code,
            content={"detail": str(exc), "error": type(exc).__name__}
        )

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    # Health check endpoint
    @app.get("/health")
    def health_check(system: BankingSystem = Depends(get_banking_system)):
        """Health check endpoint"""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "standing_order_scheduler": system.standing_order_scheduler.is_running,
            "interest_scheduler": system.interest_scheduler.is_running
        }

    # Account endpoints
    @app.post("/accounts", status_code=status.HTTP_201_CREATED)
    def open_account(
        request: OpenAccountRequest,
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Open a new account"""
        account = system.transaction_processor.open_account(
            holder_name=request.holder_name,
            account_type=request.account_type,
            initial_deposit=request.initial_deposit,
            term_months=request.term_months,
            interest_rate=request.interest_rate
        )
        return account_to_dict(account)

    @app.get("/accounts")
    def list_accounts(
        holder: Optional[str] = None,
        system: BankingSystem = Depends(get_banking_system)
    ):
        """List all accounts, or search by holder name"""
        processor = system.transaction_processor
        accounts = processor.search_accounts(holder) if holder else processor.get_all_accounts()
        return {"accounts": [account_to_dict(a) for a in accounts], "count": len(accounts)}

    @app.get("/accounts/{account_number}")
    def get_account(account_number: str, system: BankingSystem = Depends(get_banking_system)):
        """Get account details"""
        return account_to_dict(system.transaction_processor.get_account(account_number))

    @app.post("/accounts/{account_number}/close")
    def close_account(account_number: str, system: BankingSystem = Depends(get_banking_system)):
        """Close an account"""
        return account_to_dict(system.transaction_processor.close_account(account_number))

    @app.post("/accounts/{account_number}/deposit")
    def deposit(
        account_number: str,
        request: AmountRequest,
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Deposit cash"""
        transaction = system.transaction_processor.deposit(
            account_number, request.amount, request.description
        )
        return transaction_to_dict(transaction)

    @app.post("/accounts/{account_number}/withdraw")
    def withdraw(
        account_number: str,
        request: AmountRequest,
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Withdraw cash"""
        transaction = system.transaction_processor.withdraw(
            account_number, request.amount, request.description
        )
        return transaction_to_dict(transaction)

    @app.post("/transfers")
    def transfer(request: TransferRequest, system: BankingSystem = Depends(get_banking_system)):
        """Transfer between two accounts"""
        debit, credit = system.transaction_processor.transfer(
            request.from_account, request.to_account, request.amount, request.description
        )
        return {"debit": transaction_to_dict(debit), "credit": transaction_to_dict(credit)}

    @app.get("/accounts/{account_number}/transactions")
    def transaction_history(
        account_number: str,
        limit: Optional[int] = Query(None, ge=1),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Transaction history, newest first"""
        transactions = system.transaction_processor.get_transaction_history(account_number, limit)
        return {"transactions": [transaction_to_dict(t) for t in transactions]}

    @app.get("/transactions/recent")
    def recent_transactions(
        limit: int = Query(10, ge=1),
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Latest transactions across all accounts"""
        transactions = system.transaction_processor.get_recent_transactions(limit)
        return {"transactions": [transaction_to_dict(t) for t in transactions]}

    # Interest endpoints
    @app.post("/accounts/{account_number}/interest")
    def apply_interest(
        account_number: str,
        request: InterestRequest,
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Credit one period of interest to an account"""
        transaction = system.transaction_processor.apply_interest(
            account_number, _parse_period(request.period)
        )
        return {"transaction": transaction_to_dict(transaction) if transaction else None}

    @app.post("/interest/apply-all")
    def apply_interest_to_all(
        request: InterestRequest,
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Credit interest to every active account"""
        summary = system.transaction_processor.apply_interest_to_all(_parse_period(request.period))
        return summary.to_dict()

    @app.get("/accounts/{account_number}/interest-projection")
    def interest_projection(account_number: str, system: BankingSystem = Depends(get_banking_system)):
        """Projected interest for an account"""
        projection = system.interest_scheduler.get_interest_projection(account_number)
        result = projection.to_dict()
        result["report"] = projection.format()
        return result

    # Standing order endpoints
    @app.post("/standing-orders", status_code=status.HTTP_201_CREATED)
    def create_standing_order(
        request: CreateStandingOrderRequest,
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Create a standing order"""
        order = system.standing_order_scheduler.create_standing_order(
            from_account=request.from_account,
            to_account=request.to_account,
            amount=request.amount,
            frequency=request.frequency,
            start_date=request.start_date,
            end_date=request.end_date,
            description=request.description
        )
        return standing_order_to_dict(order)

    @app.get("/standing-orders/{order_id}")
    def get_standing_order(order_id: str, system: BankingSystem = Depends(get_banking_system)):
        """Get a standing order"""
        return standing_order_to_dict(system.standing_order_scheduler.get_standing_order(order_id))

    @app.get("/accounts/{account_number}/standing-orders")
    def account_standing_orders(account_number: str, system: BankingSystem = Depends(get_banking_system)):
        """Standing orders where the account is source or destination"""
        orders = system.standing_order_scheduler.get_standing_orders(account_number)
        return {"standing_orders": [standing_order_to_dict(o) for o in orders]}

    @app.post("/standing-orders/{order_id}/cancel")
    def cancel_standing_order(order_id: str, system: BankingSystem = Depends(get_banking_system)):
        """Cancel an active standing order"""
        return standing_order_to_dict(system.standing_order_scheduler.cancel_standing_order(order_id))

    @app.post("/standing-orders/process")
    def process_standing_orders(
        request: ProcessStandingOrdersRequest,
        system: BankingSystem = Depends(get_banking_system)
    ):
        """Run one standing order tick now"""
        summary = system.standing_order_scheduler.process_standing_orders(request.as_of)
        return summary.to_dict()

    # Audit endpoint
    @app.get("/audit/integrity")
    def audit_integrity(system: BankingSystem = Depends(get_banking_system)):
        """Verify the audit hash chain"""
        return system.audit_trail.verify_integrity()

    @app.get("/")
    def root():
        """API root with system information"""
        return {
            "system": "Bank Ledger",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "accounts": "/accounts",
                "transfers": "/transfers",
                "standing_orders": "/standing-orders",
                "interest": "/interest/apply-all"
            }
        }


# Run server function
def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "bank_ledger.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
