"""LedgerFlow: multi-currency personal finance ledger."""

from .config import BaseConfig, DevConfig, TestConfig
from .context import AppContext, create_app_context

__all__ = ["AppContext", "BaseConfig", "DevConfig", "TestConfig", "create_app_context"]

__version__ = "0.1.0"
