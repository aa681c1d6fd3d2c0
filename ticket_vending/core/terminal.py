"""
Ticket Terminal
===============
The public face of the state machine. Every intent goes through apply():
guard → handler (following chained hops) → commit, all under one lock.
Failures come back as Outcome values, never as exceptions.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from ticket_vending.config import Settings, get_settings
from ticket_vending.core.errors import ErrorCode
from ticket_vending.core.handlers import HANDLERS, HandlerContext, Step
from ticket_vending.core.terminal_states import (
    STATUS_MESSAGES,
    TRANSITIONS,
    TerminalIntent,
    TerminalState,
    can,
    rejection_reason,
)
from ticket_vending.core.tickets import Catalog, IssuedTicket, SelectedTicket, TicketClass
from ticket_vending.core.transaction import ChangePool, TransactionState

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Outcome:
    """Result of one intent. accepted=False always carries error and reason."""
    intent: TerminalIntent
    accepted: bool
    state: TerminalState
    inserted_amount: Decimal
    reason: Optional[str] = None
    error: Optional[ErrorCode] = None
    ticket: Optional[IssuedTicket] = None
    change: Optional[Decimal] = None
    refund: Optional[Decimal] = None

    @property
    def rejected(self) -> bool:
        return not self.accepted


@dataclass(frozen=True)
class TerminalStatus:
    state: TerminalState
    message: str
    inserted_amount: Decimal
    selected_ticket: Optional[SelectedTicket]
    available_change: Decimal
    inventory_count: int


class TicketTerminal:
    """
    Owns the current state and the transaction.
    Catalog and change pool are shared with the handlers for the duration
    of a single intent only.
    """

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        change_pool: Optional[ChangePool] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_settings()
        if catalog is None:
            catalog = Catalog.seeded(
                self.settings.ticket_prices,
                self.settings.destinations,
                self.settings.ticket_inventory,
            )
        self.catalog = catalog
        self.change_pool = change_pool if change_pool is not None else ChangePool(self.settings.initial_change)
        self._clock = clock or utcnow
        self._state = TerminalState.IDLE
        self._transaction = TransactionState()
        self._history: list[dict] = []
        self._lock = threading.RLock()

    # ── Inspection ────────────────────────────────────────────────────────────

    @property
    def state(self) -> TerminalState:
        return self._state

    @property
    def transaction(self) -> TransactionState:
        """A copy; the live transaction only changes through intents."""
        with self._lock:
            return replace(self._transaction)

    @property
    def history(self) -> list[dict]:
        with self._lock:
            return list(self._history)

    def can(self, intent: TerminalIntent) -> bool:
        return can(self._state, intent)

    def status(self) -> TerminalStatus:
        with self._lock:
            tx = self._transaction
            return TerminalStatus(
                state=self._state,
                message=self._status_message(),
                inserted_amount=tx.inserted_amount,
                selected_ticket=tx.selected_ticket,
                available_change=self.change_pool.balance,
                inventory_count=self.catalog.inventory_count,
            )

    def _status_message(self) -> str:
        tx = self._transaction
        message = STATUS_MESSAGES[self._state]
        if self._state in (TerminalState.WAITING_FOR_MONEY, TerminalState.PARTIAL_MONEY_RECEIVED):
            return f"{message} Inserted: {tx.inserted_amount}, price: {tx.price}"
        if self._state == TerminalState.MONEY_RECEIVED:
            return f"{message} Change: {tx.change_due}"
        return message

    # ── Dispatch ──────────────────────────────────────────────────────────────

    def apply(self, intent: TerminalIntent, **payload) -> Outcome:
        """
        Apply an intent to the terminal.
        Rejected intents leave state, transaction, catalog and change untouched.
        """
        with self._lock:
            now = self._clock()
            current = self._state

            # 1. Guard: depends on the state alone
            if not can(current, intent):
                reason = rejection_reason(current, intent)
                logger.info("Rejected %s in %s: %s", intent.value, current.value, reason)
                return self._outcome(intent, accepted=False, error=ErrorCode.INVALID_STATE_OPERATION, reason=reason)

            # 2. Run handlers, following chained hops within this one call
            ctx = HandlerContext(
                transaction=self._transaction,
                catalog=self.catalog,
                change_pool=self.change_pool,
                settings=self.settings,
                now=now,
            )
            checkpoint = self._checkpoint()
            state = current
            steps: list[Step] = []
            records: list[dict] = []
            while True:
                step = HANDLERS[(state, intent)](ctx, **payload)
                steps.append(step)
                if step.next_state is None:
                    break

                allowed = TRANSITIONS.get((state, intent), frozenset())
                if step.next_state not in allowed:
                    self._rollback(checkpoint)
                    raise ValueError(f"Illegal transition: {state.value} + {intent.value} → {step.next_state.value}")

                records.append(self._entry(state, intent, step, now))
                state = step.next_state
                if not step.chain:
                    break

            # 3. Commit; only the final state is ever observable
            self._state = state
            self._history.extend(records)
            if state == TerminalState.IDLE:
                self._transaction.clear()
            elif self._transaction.selected_ticket is not None:
                self._transaction.last_activity_at = now

            last = steps[-1]
            if last.accepted:
                logger.info("%s + %s → %s", current.value, intent.value, state.value)
            elif state == TerminalState.ERROR:
                logger.warning("%s + %s → %s: %s", current.value, intent.value, state.value, last.reason)
            else:
                logger.info("Rejected %s in %s: %s", intent.value, current.value, last.reason)

            return self._outcome(
                intent,
                accepted=last.accepted,
                error=last.error,
                reason=last.reason,
                ticket=next((s.ticket for s in steps if s.ticket is not None), None),
                change=next((s.change for s in steps if s.change is not None), None),
                refund=next((s.refund for s in steps if s.refund is not None), None),
            )

    def _outcome(self, intent: TerminalIntent, accepted: bool, **fields) -> Outcome:
        return Outcome(
            intent=intent,
            accepted=accepted,
            state=self._state,
            inserted_amount=self._transaction.inserted_amount,
            **fields,
        )

    def _entry(self, from_state: TerminalState, intent: TerminalIntent, step: Step, now: datetime) -> dict:
        # Audit trail, one entry per hop
        return {
            "from": from_state.value,
            "intent": intent.value,
            "to": step.next_state.value,
            "payload": dict(step.details),
            "timestamp": now.isoformat(),
        }

    def _checkpoint(self) -> tuple:
        return replace(self._transaction), self.catalog.entries(), self.change_pool.balance

    def _rollback(self, checkpoint: tuple) -> None:
        transaction, stock, balance = checkpoint
        self._transaction = transaction
        self.catalog.restore(stock)
        self.change_pool.restore(balance)

    # ── Customer operations ───────────────────────────────────────────────────

    def select_ticket(self, ticket_class: TicketClass, destination: str) -> Outcome:
        return self.apply(TerminalIntent.SELECT_TICKET, ticket_class=ticket_class, destination=destination)

    def insert_money(self, amount) -> Outcome:
        return self.apply(TerminalIntent.INSERT_MONEY, amount=amount)

    def cancel_transaction(self) -> Outcome:
        return self.apply(TerminalIntent.CANCEL)

    def dispense_ticket(self) -> Outcome:
        return self.apply(TerminalIntent.DISPENSE_TICKET)

    def dispense_change(self) -> Outcome:
        return self.apply(TerminalIntent.DISPENSE_CHANGE)

    def process_refund(self) -> Outcome:
        return self.apply(TerminalIntent.PROCESS_REFUND)

    # ── Operator operations ───────────────────────────────────────────────────

    def enter_maintenance(self) -> Outcome:
        return self.apply(TerminalIntent.ENTER_MAINTENANCE)

    def exit_maintenance(self) -> Outcome:
        return self.apply(TerminalIntent.EXIT_MAINTENANCE)

    def restock(self, ticket_class: TicketClass, destination: str, quantity: int) -> Outcome:
        return self.apply(
            TerminalIntent.RESTOCK_TICKETS,
            ticket_class=ticket_class,
            destination=destination,
            quantity=quantity,
        )

    def refill_change(self, amount) -> Outcome:
        return self.apply(TerminalIntent.REFILL_CHANGE, amount=amount)

    def reset_transaction(self) -> None:
        """Administrative reset: back to IDLE from anywhere, no guard."""
        with self._lock:
            owed = self._transaction.refundable_amount
            if owed > 0:
                logger.warning("Reset from %s discards %s owed to the customer", self._state.value, owed)
            self._history.append({
                "from": self._state.value,
                "intent": "RESET",
                "to": TerminalState.IDLE.value,
                "payload": {"discarded": str(owed)} if owed > 0 else {},
                "timestamp": self._clock().isoformat(),
            })
            self._transaction.clear()
            self._state = TerminalState.IDLE

    def expire_stale_transaction(self) -> Optional[Outcome]:
        """Cancel a transaction nobody has touched for the configured timeout."""
        with self._lock:
            last_activity = self._transaction.last_activity_at
            if last_activity is None or not can(self._state, TerminalIntent.CANCEL):
                return None
            if self._clock() - last_activity < self.settings.transaction_timeout:
                return None
            logger.info("Transaction idle since %s, canceling", last_activity.isoformat())
            return self.apply(TerminalIntent.CANCEL)
