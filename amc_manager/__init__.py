"""Core utilities for the AMC Manager application."""

from .config import AppConfig, CompanyProfile, load_config
from .errors import AmcError, ContractNotFoundError, InvalidTransitionError, ValidationError
from .repositories import ContractRepository, Database, UserRepository
from .security import AccountLockoutService, PasswordService

__all__ = [
    "AppConfig",
    "CompanyProfile",
    "load_config",
    "AmcError",
    "ContractNotFoundError",
    "InvalidTransitionError",
    "ValidationError",
    "ContractRepository",
    "Database",
    "UserRepository",
    "AccountLockoutService",
    "PasswordService",
]
