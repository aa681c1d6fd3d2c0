"""Domain error codes for the ticket terminal."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class ErrorCode(str, Enum):
    """Why an intent was refused or failed."""

    INVALID_STATE_OPERATION = "INVALID_STATE_OPERATION"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INSUFFICIENT_CHANGE = "INSUFFICIENT_CHANGE"
    UNKNOWN_TICKET = "UNKNOWN_TICKET"
    NO_CHANGE_OWED = "NO_CHANGE_OWED"
    INVALID_QUANTITY = "INVALID_QUANTITY"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class TicketNotFoundError(DomainError):
    """Raised when the catalog has no entry for a class and destination."""

    def __init__(self, ticket_class: str, destination: str) -> None:
        super().__init__(
            code=ErrorCode.UNKNOWN_TICKET,
            message=f"no {ticket_class} ticket to {destination}",
        )


class OutOfStockError(DomainError):
    """Raised when a catalog entry has no tickets left."""

    def __init__(self, ticket_class: str, destination: str) -> None:
        super().__init__(
            code=ErrorCode.INSUFFICIENT_INVENTORY,
            message=f"out of stock: {ticket_class} to {destination}",
        )


class InsufficientChangeError(DomainError):
    """Raised when the change pool cannot cover a payout."""

    def __init__(self, requested: Decimal, available: Decimal) -> None:
        super().__init__(
            code=ErrorCode.INSUFFICIENT_CHANGE,
            message=f"insufficient change: owed {requested}, available {available}",
        )


class InvalidAmountError(DomainError):
    """Raised when a money amount is not a positive number."""

    def __init__(self, message: str = "amount must be positive") -> None:
        super().__init__(code=ErrorCode.INVALID_AMOUNT, message=message)


class InvalidQuantityError(DomainError):
    """Raised when a restock quantity is not a positive integer."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_QUANTITY,
            message="quantity must be a positive integer",
        )
