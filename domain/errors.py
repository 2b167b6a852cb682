"""
Domain: error taxonomy for the allocation and ledger engine.

Propagation policy:
- Pricing and allocation errors are raised before any mutation and abort a sale
  with no side effects.
- ManagementNumbersExhausted and ComplianceViolation are advisory; callers
  collect them as warnings instead of aborting.
- SyncFailure is swallowed (logged) for outbound pushes and raised for
  exhaustive pulls.
"""

from __future__ import annotations

from typing import Optional, Sequence


class EngineError(Exception):
    """Base class for all engine errors."""


class InvalidPricingInput(EngineError, ValueError):
    """Raised for negative quantities, non-finite prices or unusable rates."""


class AllocationMismatch(EngineError):
    """Raised when pending allocations do not add up to the requested quantity."""

    def __init__(self, line_id: str, requested: int, selected: int):
        self.line_id = line_id
        self.requested = requested
        self.selected = selected
        super().__init__(
            f"Allocation mismatch for line {line_id}. "
            f"Requested: {requested}, Selected: {selected}"
        )


class InsufficientStock(EngineError):
    """Raised when an allocation exceeds the lot's available quantity."""

    def __init__(self, lot_id: str, requested: int, available: int):
        self.lot_id = lot_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock in lot {lot_id}. "
            f"Requested: {requested}, Available: {available}"
        )


class ManagementNumbersExhausted(EngineError):
    """Non-fatal: a lot had fewer management numbers than units sold from it."""

    def __init__(self, lot_id: str, requested: int, assigned: int):
        self.lot_id = lot_id
        self.requested = requested
        self.assigned = assigned
        super().__init__(
            f"Lot {lot_id} ran out of management numbers: "
            f"{assigned} assigned for {requested} units"
        )


class SyncFailure(EngineError):
    """Raised when the external inventory service cannot be reached or rejects a call."""

    def __init__(self, action: str, message: str, attempts: int = 1, status_code: Optional[int] = None):
        self.action = action
        self.attempts = attempts
        self.status_code = status_code
        super().__init__(f"{action} failed after {attempts} attempt(s): {message}")


class ComplianceViolation(EngineError):
    """Advisory: a ledger record is missing legally mandated fields."""

    def __init__(self, identity: str, missing: Sequence[str]):
        self.identity = identity
        self.missing = list(missing)
        super().__init__(f"Ledger record {identity} is missing: {', '.join(self.missing)}")


class QuoteExpired(EngineError):
    """Raised when a sale is finalized against a quote past its validity window."""


__all__ = [
    "AllocationMismatch",
    "ComplianceViolation",
    "EngineError",
    "InsufficientStock",
    "InvalidPricingInput",
    "ManagementNumbersExhausted",
    "QuoteExpired",
    "SyncFailure",
]
