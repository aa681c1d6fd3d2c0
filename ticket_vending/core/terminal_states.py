"""
Terminal Lifecycle States
The terminal is in exactly ONE of these states at any time
"""

from enum import Enum


class TerminalState(str, Enum):
    # Sale
    IDLE = "IDLE"                                      # Ready, nothing selected
    WAITING_FOR_MONEY = "WAITING_FOR_MONEY"            # Ticket selected, nothing paid
    PARTIAL_MONEY_RECEIVED = "PARTIAL_MONEY_RECEIVED"  # Paid less than the price
    MONEY_RECEIVED = "MONEY_RECEIVED"                  # Paid the price or more

    # Dispensing
    TICKET_DISPENSING = "TICKET_DISPENSING"            # Printer is running
    TICKET_DISPENSED = "TICKET_DISPENSED"              # Ticket handed out
    CHANGE_DISPENSING = "CHANGE_DISPENSING"            # Coins are being paid out
    CHANGE_DISPENSED = "CHANGE_DISPENSED"              # Change handed out (terminal)

    # Exceptional
    TRANSACTION_CANCELED = "TRANSACTION_CANCELED"      # Customer aborted (terminal)
    ERROR = "ERROR"                                    # Out of stock / short of change (terminal)
    MAINTENANCE_MODE = "MAINTENANCE_MODE"              # Operator at work
    REFUND_PROCESSING = "REFUND_PROCESSING"            # Paying money back after an error


class TerminalIntent(str, Enum):
    # Customer
    SELECT_TICKET = "SELECT_TICKET"
    INSERT_MONEY = "INSERT_MONEY"
    CANCEL = "CANCEL"
    DISPENSE_TICKET = "DISPENSE_TICKET"
    DISPENSE_CHANGE = "DISPENSE_CHANGE"
    PROCESS_REFUND = "PROCESS_REFUND"

    # Operator
    ENTER_MAINTENANCE = "ENTER_MAINTENANCE"
    EXIT_MAINTENANCE = "EXIT_MAINTENANCE"
    RESTOCK_TICKETS = "RESTOCK_TICKETS"
    REFILL_CHANGE = "REFILL_CHANGE"


S = TerminalState
I = TerminalIntent


# Terminal states - the caller has to reset the transaction to get back to IDLE
TERMINAL_STATES = frozenset({
    S.TRANSACTION_CANCELED,
    S.CHANGE_DISPENSED,
    S.ERROR,
})

# Guards: which states accept which intent. Depends on the state alone.
GUARDS = {
    I.SELECT_TICKET: frozenset({S.IDLE, S.TICKET_DISPENSED}),
    I.INSERT_MONEY: frozenset({S.WAITING_FOR_MONEY, S.PARTIAL_MONEY_RECEIVED}),
    I.CANCEL: frozenset({S.WAITING_FOR_MONEY, S.PARTIAL_MONEY_RECEIVED, S.MONEY_RECEIVED}),
    I.DISPENSE_TICKET: frozenset({S.MONEY_RECEIVED, S.TICKET_DISPENSING}),
    I.DISPENSE_CHANGE: frozenset({S.MONEY_RECEIVED, S.TICKET_DISPENSED, S.CHANGE_DISPENSING}),
    I.PROCESS_REFUND: frozenset({S.ERROR, S.REFUND_PROCESSING}),
    I.ENTER_MAINTENANCE: frozenset({S.IDLE}),
    I.EXIT_MAINTENANCE: frozenset({S.MAINTENANCE_MODE}),
    I.RESTOCK_TICKETS: frozenset({S.MAINTENANCE_MODE}),
    I.REFILL_CHANGE: frozenset({S.MAINTENANCE_MODE}),
}


def can(state: TerminalState, intent: TerminalIntent) -> bool:
    """Is this intent legal in this state?"""
    return state in GUARDS[intent]


# Every edge a handler may take: (current_state, intent) → possible next states
TRANSITIONS = {
    # Selection
    (S.IDLE, I.SELECT_TICKET): frozenset({S.WAITING_FOR_MONEY}),
    (S.TICKET_DISPENSED, I.SELECT_TICKET): frozenset({S.IDLE}),

    # Payment
    (S.WAITING_FOR_MONEY, I.INSERT_MONEY): frozenset({S.PARTIAL_MONEY_RECEIVED, S.MONEY_RECEIVED}),
    (S.PARTIAL_MONEY_RECEIVED, I.INSERT_MONEY): frozenset({S.PARTIAL_MONEY_RECEIVED, S.MONEY_RECEIVED}),

    # Cancellation
    (S.WAITING_FOR_MONEY, I.CANCEL): frozenset({S.TRANSACTION_CANCELED}),
    (S.PARTIAL_MONEY_RECEIVED, I.CANCEL): frozenset({S.TRANSACTION_CANCELED}),
    (S.MONEY_RECEIVED, I.CANCEL): frozenset({S.TRANSACTION_CANCELED}),

    # Ticket
    (S.MONEY_RECEIVED, I.DISPENSE_TICKET): frozenset({S.TICKET_DISPENSING}),
    (S.TICKET_DISPENSING, I.DISPENSE_TICKET): frozenset({S.TICKET_DISPENSED, S.ERROR}),

    # Change
    (S.MONEY_RECEIVED, I.DISPENSE_CHANGE): frozenset({S.CHANGE_DISPENSING}),
    (S.TICKET_DISPENSED, I.DISPENSE_CHANGE): frozenset({S.CHANGE_DISPENSING, S.IDLE}),
    (S.CHANGE_DISPENSING, I.DISPENSE_CHANGE): frozenset({S.CHANGE_DISPENSED, S.ERROR}),

    # Recovery
    (S.ERROR, I.PROCESS_REFUND): frozenset({S.REFUND_PROCESSING}),
    (S.REFUND_PROCESSING, I.PROCESS_REFUND): frozenset({S.IDLE}),

    # Maintenance
    (S.IDLE, I.ENTER_MAINTENANCE): frozenset({S.MAINTENANCE_MODE}),
    (S.MAINTENANCE_MODE, I.EXIT_MAINTENANCE): frozenset({S.IDLE}),
    (S.MAINTENANCE_MODE, I.RESTOCK_TICKETS): frozenset({S.MAINTENANCE_MODE}),
    (S.MAINTENANCE_MODE, I.REFILL_CHANGE): frozenset({S.MAINTENANCE_MODE}),
}


# What the display shows in each state
STATUS_MESSAGES = {
    S.IDLE: "Ready. Please select a ticket.",
    S.WAITING_FOR_MONEY: "Waiting for payment.",
    S.PARTIAL_MONEY_RECEIVED: "Partial payment received. Please insert more money.",
    S.MONEY_RECEIVED: "Payment received. Take your ticket.",
    S.TICKET_DISPENSING: "Dispensing ticket...",
    S.TICKET_DISPENSED: "Ticket dispensed. Take your change or select a new ticket.",
    S.CHANGE_DISPENSING: "Dispensing change...",
    S.CHANGE_DISPENSED: "Change dispensed. Thank you!",
    S.TRANSACTION_CANCELED: "Transaction canceled. Money returned.",
    S.ERROR: "Out of order. Request a refund or call the operator.",
    S.MAINTENANCE_MODE: "Maintenance in progress.",
    S.REFUND_PROCESSING: "Processing refund...",
}


# Why an intent is refused in a given state. Anything missing → "wrong state"
REJECTION_REASONS = {
    (S.IDLE, I.INSERT_MONEY): "select a ticket first",
    (S.IDLE, I.CANCEL): "no active transaction to cancel",
    (S.IDLE, I.DISPENSE_TICKET): "no ticket selected",
    (S.IDLE, I.DISPENSE_CHANGE): "no transaction",
    (S.IDLE, I.PROCESS_REFUND): "no active transaction",
    (S.IDLE, I.EXIT_MAINTENANCE): "not in maintenance mode",

    (S.WAITING_FOR_MONEY, I.SELECT_TICKET): "ticket already selected, finish the current transaction",
    (S.WAITING_FOR_MONEY, I.DISPENSE_TICKET): "insufficient funds",
    (S.WAITING_FOR_MONEY, I.DISPENSE_CHANGE): "no change owed",
    (S.WAITING_FOR_MONEY, I.ENTER_MAINTENANCE): "finish the current transaction",

    (S.PARTIAL_MONEY_RECEIVED, I.SELECT_TICKET): "ticket already selected",
    (S.PARTIAL_MONEY_RECEIVED, I.DISPENSE_TICKET): "insufficient funds",
    (S.PARTIAL_MONEY_RECEIVED, I.DISPENSE_CHANGE): "no change owed",
    (S.PARTIAL_MONEY_RECEIVED, I.ENTER_MAINTENANCE): "finish the current transaction",

    (S.MONEY_RECEIVED, I.SELECT_TICKET): "finish the current transaction",
    (S.MONEY_RECEIVED, I.INSERT_MONEY): "enough money received, take your ticket",
    (S.MONEY_RECEIVED, I.ENTER_MAINTENANCE): "finish the current transaction",

    (S.TICKET_DISPENSING, I.CANCEL): "cannot cancel while dispensing",

    (S.TICKET_DISPENSED, I.INSERT_MONEY): "transaction complete",
    (S.TICKET_DISPENSED, I.CANCEL): "transaction already complete",
    (S.TICKET_DISPENSED, I.DISPENSE_TICKET): "ticket already dispensed",

    (S.CHANGE_DISPENSED, I.DISPENSE_CHANGE): "no change owed",
    (S.CHANGE_DISPENSED, I.CANCEL): "transaction already complete",

    (S.TRANSACTION_CANCELED, I.CANCEL): "transaction already canceled",
    (S.TRANSACTION_CANCELED, I.DISPENSE_CHANGE): "no change owed",

    (S.ERROR, I.DISPENSE_TICKET): "out of order",
    (S.ERROR, I.DISPENSE_CHANGE): "out of order",

    (S.MAINTENANCE_MODE, I.ENTER_MAINTENANCE): "already in maintenance mode",
    (S.MAINTENANCE_MODE, I.SELECT_TICKET): "terminal is in maintenance",
    (S.MAINTENANCE_MODE, I.INSERT_MONEY): "terminal is in maintenance",
}


def rejection_reason(state: TerminalState, intent: TerminalIntent) -> str:
    return REJECTION_REASONS.get((state, intent), "wrong state")
