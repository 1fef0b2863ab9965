"""Exceptions raised by the AMC domain and record store."""
from __future__ import annotations

from typing import Mapping


class AmcError(Exception):
    """Base class for application errors shown to the user."""


class ValidationError(AmcError):
    """Raised when submitted contract fields fail validation."""

    def __init__(self, errors: Mapping[str, str]):
        self.errors = dict(errors)
        summary = "; ".join(self.errors.values()) or "Invalid contract details"
        super().__init__(summary)


class ContractNotFoundError(AmcError):
    def __init__(self, contract_id: int):
        self.contract_id = contract_id
        super().__init__(f"Contract #{contract_id} was not found")


class InvalidTransitionError(AmcError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change status from {current} to {requested}")
