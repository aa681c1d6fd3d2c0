"""
Transaction State
=================
The in-progress sale and the coins the terminal can give back.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, Inexact, InvalidOperation, localcontext
from typing import Optional

from ticket_vending.core.errors import InsufficientChangeError, InvalidAmountError
from ticket_vending.core.tickets import IssuedTicket, SelectedTicket

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """
    Exact decimal for ints, strings and Decimals. Floats go through str().
    Amounts finer than a cent are refused rather than rounded.
    """
    if isinstance(value, bool):
        raise InvalidAmountError("amount must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError("amount must be a number") from None
    if not amount.is_finite():
        raise InvalidAmountError("amount must be a finite number")
    try:
        whole_cents = amount.quantize(CENT)
    except InvalidOperation:
        raise InvalidAmountError("amount is too large") from None
    if whole_cents != amount:
        raise InvalidAmountError("amount must be in whole cents")
    return amount


def add_money(total: Decimal, amount: Decimal) -> Decimal:
    """total + amount, refused when the sum cannot be held exactly."""
    with localcontext() as ctx:
        ctx.traps[Inexact] = True
        try:
            return total + amount
        except Inexact:
            raise InvalidAmountError("amount is too large") from None


@dataclass
class TransactionState:
    inserted_amount: Decimal = ZERO
    selected_ticket: Optional[SelectedTicket] = None
    issued_ticket: Optional[IssuedTicket] = None
    change_returned: Decimal = ZERO
    started_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    @property
    def price(self) -> Decimal:
        return self.selected_ticket.price if self.selected_ticket else ZERO

    @property
    def change_due(self) -> Decimal:
        """What the customer paid over the price and hasn't got back yet."""
        if self.selected_ticket is None:
            return ZERO
        return max(self.inserted_amount - self.price - self.change_returned, ZERO)

    @property
    def refundable_amount(self) -> Decimal:
        """Money still owed to the customer if the sale stops here."""
        kept = self.price if self.issued_ticket else ZERO
        return max(self.inserted_amount - kept - self.change_returned, ZERO)

    def clear(self) -> None:
        self.inserted_amount = ZERO
        self.selected_ticket = None
        self.issued_ticket = None
        self.change_returned = ZERO
        self.started_at = None
        self.last_activity_at = None


class ChangePool:
    """Coins available for change. Never goes negative."""

    def __init__(self, balance=ZERO):
        balance = to_money(balance)
        if balance < 0:
            raise ValueError("Change pool cannot be negative")
        self._balance = balance

    @property
    def balance(self) -> Decimal:
        return self._balance

    def withdraw(self, amount: Decimal) -> Decimal:
        if amount > self._balance:
            raise InsufficientChangeError(amount, self._balance)
        self._balance -= amount
        return amount

    def restore(self, balance: Decimal) -> None:
        self._balance = balance

    def deposit(self, amount) -> Decimal:
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError()
        self._balance = add_money(self._balance, amount)
        return self._balance
