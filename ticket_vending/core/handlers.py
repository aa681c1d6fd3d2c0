"""
Terminal Handlers
=================
One plain function per (state, intent). A handler reads and writes the
transaction, catalog and change pool it is handed, and returns a Step
naming the next state. Handlers never see the terminal itself.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from ticket_vending.config import Settings
from ticket_vending.core.errors import (
    DomainError,
    ErrorCode,
    InsufficientChangeError,
    InvalidAmountError,
    OutOfStockError,
    TicketNotFoundError,
)
from ticket_vending.core.terminal_states import TerminalIntent, TerminalState
from ticket_vending.core.tickets import Catalog, IssuedTicket, TicketClass, issue
from ticket_vending.core.transaction import ZERO, ChangePool, TransactionState, add_money, to_money


@dataclass
class HandlerContext:
    transaction: TransactionState
    catalog: Catalog
    change_pool: ChangePool
    settings: Settings
    now: datetime


@dataclass
class Step:
    """
    What a handler decided.
    next_state None means the intent was refused and nothing changed.
    chain=True re-dispatches the same intent against next_state in the same call.
    """
    next_state: Optional[TerminalState]
    chain: bool = False
    accepted: bool = True
    error: Optional[ErrorCode] = None
    reason: Optional[str] = None
    details: dict = field(default_factory=dict)

    # Outcome values
    ticket: Optional[IssuedTicket] = None
    change: Optional[Decimal] = None
    refund: Optional[Decimal] = None

    @classmethod
    def to(cls, state: TerminalState, total=None, ticket=None, change=None, refund=None, **details) -> "Step":
        for name, value in (("total", total), ("change", change), ("refund", refund)):
            if value is not None:
                details[name] = str(value)
        if ticket is not None:
            details["ticket_number"] = ticket.ticket_number
        return cls(
            next_state=state,
            details=details,
            ticket=ticket,
            change=change,
            refund=refund,
        )

    @classmethod
    def through(cls, state: TerminalState, **details) -> "Step":
        return cls(next_state=state, chain=True, details=details)

    @classmethod
    def reject(cls, error: ErrorCode, reason: str) -> "Step":
        return cls(next_state=None, accepted=False, error=error, reason=reason)

    @classmethod
    def fail(cls, state: TerminalState, exc: DomainError) -> "Step":
        """The intent ran but ended badly, e.g. in ERROR."""
        return cls(next_state=state, accepted=False, error=exc.code, reason=exc.message)


Handler = Callable[..., Step]


def resolve_ticket_class(value) -> TicketClass:
    if isinstance(value, TicketClass):
        return value
    try:
        return TicketClass(str(value).strip().upper())
    except ValueError:
        raise TicketNotFoundError(str(value), "any destination") from None


# ── Selection ─────────────────────────────────────────────────────────────────

def select_ticket(ctx: HandlerContext, ticket_class, destination: str) -> Step:
    try:
        entry = ctx.catalog.lookup(resolve_ticket_class(ticket_class), destination)
    except TicketNotFoundError as e:
        return Step.reject(e.code, e.message)

    tx = ctx.transaction
    tx.selected_ticket = entry.select(ctx.now, ctx.settings.ticket_validity)
    tx.started_at = ctx.now
    return Step.to(TerminalState.WAITING_FOR_MONEY, ticket_number=tx.selected_ticket.ticket_number)


def select_next_ticket(ctx: HandlerContext, ticket_class, destination: str) -> Step:
    """Previous sale is done: wipe it, then select again on a fresh IDLE."""
    try:
        ctx.catalog.lookup(resolve_ticket_class(ticket_class), destination)
    except TicketNotFoundError as e:
        return Step.reject(e.code, e.message)

    if ctx.transaction.change_due > 0:
        return Step.reject(ErrorCode.INVALID_STATE_OPERATION, "take your change first")

    ctx.transaction.clear()
    return Step.through(TerminalState.IDLE)


# ── Payment ───────────────────────────────────────────────────────────────────

def insert_money(ctx: HandlerContext, amount) -> Step:
    tx = ctx.transaction
    try:
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError()
        total = add_money(tx.inserted_amount, amount)
    except InvalidAmountError as e:
        return Step.reject(e.code, e.message)
    tx.inserted_amount = total

    # Exact payment and overpayment both land in MONEY_RECEIVED
    if tx.inserted_amount >= tx.price:
        next_state = TerminalState.MONEY_RECEIVED
    else:
        next_state = TerminalState.PARTIAL_MONEY_RECEIVED
    return Step.to(next_state, total=tx.inserted_amount, amount=str(amount))


def cancel(ctx: HandlerContext) -> Step:
    tx = ctx.transaction
    refund = tx.inserted_amount
    tx.inserted_amount = ZERO
    return Step.to(TerminalState.TRANSACTION_CANCELED, refund=refund)


# ── Ticket ────────────────────────────────────────────────────────────────────

def dispense_physical_ticket(ctx: HandlerContext) -> IssuedTicket:
    """
    Print the selected ticket: one unit of stock for its class and destination.
    Raises OutOfStockError, leaving stock at zero, when nothing is left.
    """
    selected = ctx.transaction.selected_ticket
    ctx.catalog.dispense(selected.ticket_class, selected.destination)
    ticket = issue(selected, ctx.now, ctx.settings.ticket_validity)
    ctx.transaction.issued_ticket = ticket
    return ticket


def start_ticket_dispense(ctx: HandlerContext) -> Step:
    return Step.through(TerminalState.TICKET_DISPENSING)


def dispense_ticket(ctx: HandlerContext) -> Step:
    try:
        ticket = dispense_physical_ticket(ctx)
    except OutOfStockError as e:
        return Step.fail(TerminalState.ERROR, e)
    return Step.to(TerminalState.TICKET_DISPENSED, ticket=ticket)


# ── Change ────────────────────────────────────────────────────────────────────

def start_change_dispense(ctx: HandlerContext) -> Step:
    if ctx.transaction.change_due <= 0:
        return Step.reject(ErrorCode.NO_CHANGE_OWED, "no change owed")
    return Step.through(TerminalState.CHANGE_DISPENSING)


def finish_after_ticket(ctx: HandlerContext) -> Step:
    """Change after the ticket; exact payment just closes the sale."""
    if ctx.transaction.change_due > 0:
        return Step.through(TerminalState.CHANGE_DISPENSING)

    ctx.transaction.clear()
    return Step(
        next_state=TerminalState.IDLE,
        accepted=False,
        error=ErrorCode.NO_CHANGE_OWED,
        reason="no change owed",
    )


def dispense_change(ctx: HandlerContext) -> Step:
    tx = ctx.transaction
    owed = tx.change_due
    if owed <= 0:
        return Step.reject(ErrorCode.NO_CHANGE_OWED, "no change owed")
    try:
        ctx.change_pool.withdraw(owed)
    except InsufficientChangeError as e:
        # Never pay out less than owed
        return Step.fail(TerminalState.ERROR, e)
    tx.change_returned += owed
    return Step.to(TerminalState.CHANGE_DISPENSED, change=owed)


# ── Recovery ──────────────────────────────────────────────────────────────────

def start_refund(ctx: HandlerContext) -> Step:
    return Step.through(TerminalState.REFUND_PROCESSING)


def process_refund(ctx: HandlerContext) -> Step:
    """Hand back whatever the customer is still owed and close the sale."""
    refund = ctx.transaction.refundable_amount
    ctx.transaction.clear()
    return Step.to(TerminalState.IDLE, refund=refund)


# ── Maintenance ───────────────────────────────────────────────────────────────

def enter_maintenance(ctx: HandlerContext) -> Step:
    return Step.to(TerminalState.MAINTENANCE_MODE)


def exit_maintenance(ctx: HandlerContext) -> Step:
    return Step.to(TerminalState.IDLE)


def restock_tickets(ctx: HandlerContext, ticket_class, destination: str, quantity: int) -> Step:
    try:
        entry = ctx.catalog.restock(resolve_ticket_class(ticket_class), destination, quantity)
    except DomainError as e:
        return Step.reject(e.code, e.message)
    return Step.to(
        TerminalState.MAINTENANCE_MODE,
        ticket_class=entry.ticket_class.value,
        destination=entry.destination,
        inventory=entry.inventory,
    )


def refill_change(ctx: HandlerContext, amount) -> Step:
    try:
        balance = ctx.change_pool.deposit(amount)
    except InvalidAmountError as e:
        return Step.reject(e.code, e.message)
    return Step.to(TerminalState.MAINTENANCE_MODE, available_change=str(balance))


S = TerminalState
I = TerminalIntent

# (current_state, intent) → handler. Exactly the guard-legal pairs.
HANDLERS: dict[tuple[TerminalState, TerminalIntent], Handler] = {
    (S.IDLE, I.SELECT_TICKET): select_ticket,
    (S.TICKET_DISPENSED, I.SELECT_TICKET): select_next_ticket,

    (S.WAITING_FOR_MONEY, I.INSERT_MONEY): insert_money,
    (S.PARTIAL_MONEY_RECEIVED, I.INSERT_MONEY): insert_money,

    (S.WAITING_FOR_MONEY, I.CANCEL): cancel,
    (S.PARTIAL_MONEY_RECEIVED, I.CANCEL): cancel,
    (S.MONEY_RECEIVED, I.CANCEL): cancel,

    (S.MONEY_RECEIVED, I.DISPENSE_TICKET): start_ticket_dispense,
    (S.TICKET_DISPENSING, I.DISPENSE_TICKET): dispense_ticket,

    (S.MONEY_RECEIVED, I.DISPENSE_CHANGE): start_change_dispense,
    (S.TICKET_DISPENSED, I.DISPENSE_CHANGE): finish_after_ticket,
    (S.CHANGE_DISPENSING, I.DISPENSE_CHANGE): dispense_change,

    (S.ERROR, I.PROCESS_REFUND): start_refund,
    (S.REFUND_PROCESSING, I.PROCESS_REFUND): process_refund,

    (S.IDLE, I.ENTER_MAINTENANCE): enter_maintenance,
    (S.MAINTENANCE_MODE, I.EXIT_MAINTENANCE): exit_maintenance,
    (S.MAINTENANCE_MODE, I.RESTOCK_TICKETS): restock_tickets,
    (S.MAINTENANCE_MODE, I.REFILL_CHANGE): refill_change,
}
