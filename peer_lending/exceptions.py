"""Exception hierarchy for the lending core."""


class LendingError(Exception):
    """Base exception for all lending errors."""


class ValidationError(LendingError, ValueError):
    """Raised when caller input is missing or invalid. Nothing has been written."""


class NotFoundError(LendingError):
    """Raised when a referenced borrower, loan or payment does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")


class BusinessRuleError(LendingError):
    """Raised when an operation is not allowed in the entity's current state."""


class ConsistencyError(LendingError):
    """Raised when a stored invariant is found broken in the middle of a write."""
