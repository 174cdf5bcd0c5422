"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Bank ledger configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///bank_ledger.db"  # "memory://" for in-memory storage
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Account product rules
    savings_minimum_balance: str = "100.00"
    checking_overdraft_limit: str = "500.00"
    savings_interest_rate: str = "0.04"
    checking_interest_rate: str = "0.01"
    fixed_term_interest_rate: str = "0.07"
    
    # Scheduler configuration
    enable_schedulers: bool = True
    standing_order_interval_seconds: int = 60 * 60  # hourly
    interest_interval_seconds: int = 24 * 60 * 60  # daily
    interest_calculation_mode: str = "monthly"  # daily, monthly, quarterly, yearly
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
