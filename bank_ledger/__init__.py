"""
Bank Ledger

Account ledger with transactional money movements, an append-only
transaction history, automated interest credit and standing orders.
All monetary values use Decimal.
"""

__version__ = "1.0.0"
