"""Tests for the TicketTerminal facade.

Drives the terminal through whole sales and checks money, stock and state.
Run with: pytest tests/test_terminal.py -v
"""

import logging
from datetime import timedelta
from decimal import Decimal

import pytest

from ticket_vending.core.errors import ErrorCode
from ticket_vending.core.handlers import HANDLERS, Step, dispense_physical_ticket
from ticket_vending.core.terminal import TicketTerminal
from ticket_vending.core.terminal_states import TerminalIntent, TerminalState, can
from ticket_vending.core.tickets import TicketClass
from ticket_vending.core.transaction import ChangePool

S = TerminalState

PAYLOADS = {
    TerminalIntent.SELECT_TICKET: {"ticket_class": TicketClass.ADULT, "destination": "Center"},
    TerminalIntent.INSERT_MONEY: {"amount": 10},
    TerminalIntent.RESTOCK_TICKETS: {"ticket_class": TicketClass.ADULT, "destination": "Center", "quantity": 1},
    TerminalIntent.REFILL_CHANGE: {"amount": 10},
}


def drive_to(terminal: TicketTerminal, state: TerminalState) -> None:
    """Walk a fresh terminal into the given state."""
    paying = {S.WAITING_FOR_MONEY, S.PARTIAL_MONEY_RECEIVED, S.MONEY_RECEIVED,
              S.TICKET_DISPENSED, S.CHANGE_DISPENSED, S.TRANSACTION_CANCELED}
    if state in paying:
        terminal.select_ticket(TicketClass.ADULT, "Center")
    if state == S.PARTIAL_MONEY_RECEIVED:
        terminal.insert_money(40)
    if state in {S.MONEY_RECEIVED, S.TICKET_DISPENSED, S.CHANGE_DISPENSED}:
        terminal.insert_money(120)
    if state in {S.TICKET_DISPENSED, S.CHANGE_DISPENSED}:
        terminal.dispense_ticket()
    if state == S.CHANGE_DISPENSED:
        terminal.dispense_change()
    if state == S.TRANSACTION_CANCELED:
        terminal.cancel_transaction()
    if state == S.ERROR:
        terminal.change_pool.withdraw(terminal.change_pool.balance)
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(150)
        terminal.dispense_ticket()
        terminal.dispense_change()
    if state == S.MAINTENANCE_MODE:
        terminal.enter_maintenance()
    assert terminal.state == state


def snapshot(terminal: TicketTerminal):
    return (
        terminal.state,
        terminal.transaction,
        terminal.catalog.entries(),
        terminal.change_pool.balance,
        len(terminal.history),
    )


REACHABLE = [
    S.IDLE, S.WAITING_FOR_MONEY, S.PARTIAL_MONEY_RECEIVED, S.MONEY_RECEIVED,
    S.TICKET_DISPENSED, S.CHANGE_DISPENSED, S.TRANSACTION_CANCELED, S.ERROR,
    S.MAINTENANCE_MODE,
]


class TestGuards:
    """A refused intent never changes anything."""

    @pytest.mark.parametrize("state", REACHABLE)
    def test_guard_refusal_never_mutates(self, terminal, state):
        drive_to(terminal, state)
        for intent in TerminalIntent:
            if can(state, intent):
                continue
            before = snapshot(terminal)
            outcome = terminal.apply(intent, **PAYLOADS.get(intent, {}))
            assert outcome.rejected
            assert outcome.error == ErrorCode.INVALID_STATE_OPERATION
            assert outcome.reason
            assert snapshot(terminal) == before

    def test_insert_money_without_ticket(self, terminal):
        outcome = terminal.insert_money(50)
        assert outcome.rejected
        assert outcome.reason == "select a ticket first"
        assert terminal.status().inserted_amount == 0

    def test_can_reflects_current_state(self, terminal):
        assert terminal.can(TerminalIntent.SELECT_TICKET)
        assert not terminal.can(TerminalIntent.INSERT_MONEY)


class TestScenarios:
    """End-to-end sales."""

    def test_adult_exact_payment(self, terminal):
        assert terminal.select_ticket(TicketClass.ADULT, "Center").accepted

        outcome = terminal.insert_money(50)
        assert outcome.state == S.PARTIAL_MONEY_RECEIVED
        assert outcome.inserted_amount == Decimal("50")

        outcome = terminal.insert_money(50)
        assert outcome.state == S.MONEY_RECEIVED
        assert outcome.inserted_amount == Decimal("100")

        outcome = terminal.dispense_ticket()
        assert outcome.accepted
        assert outcome.state == S.TICKET_DISPENSED
        assert outcome.ticket.ticket_class == TicketClass.ADULT
        assert terminal.catalog.inventory_of(TicketClass.ADULT, "Center") == 2

        outcome = terminal.dispense_change()
        assert outcome.rejected
        assert outcome.error == ErrorCode.NO_CHANGE_OWED
        assert outcome.reason == "no change owed"
        assert outcome.change is None
        assert terminal.state == S.IDLE
        assert terminal.change_pool.balance == Decimal("500")

    def test_vip_overpayment(self, terminal):
        terminal.select_ticket(TicketClass.VIP, "Stadium")

        outcome = terminal.insert_money(250)
        assert outcome.state == S.MONEY_RECEIVED

        assert terminal.dispense_ticket().state == S.TICKET_DISPENSED

        outcome = terminal.dispense_change()
        assert outcome.accepted
        assert outcome.change == Decimal("50")
        assert outcome.state == S.CHANGE_DISPENSED
        assert terminal.change_pool.balance == Decimal("450")

    def test_round_trip_leaves_price_inserted_and_nothing_owed(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(100)
        terminal.dispense_ticket()

        status = terminal.status()
        assert status.state == S.TICKET_DISPENSED
        assert status.inserted_amount == Decimal("100")
        assert status.inventory_count == 5
        assert terminal.transaction.change_due == 0

    def test_lowercase_ticket_class_is_accepted(self, terminal):
        assert terminal.select_ticket("adult", "Center").accepted
        assert terminal.status().selected_ticket.ticket_class == TicketClass.ADULT


class TestPayment:
    """Money insertion."""

    @pytest.mark.parametrize("amount", [0, -5, "abc", "NaN"])
    def test_invalid_amount_is_a_local_rejection(self, terminal, amount):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        outcome = terminal.insert_money(amount)
        assert outcome.rejected
        assert outcome.error == ErrorCode.INVALID_AMOUNT
        assert terminal.state == S.WAITING_FOR_MONEY
        assert terminal.status().inserted_amount == 0

    def test_partial_payment_stays_partial(self, terminal):
        terminal.select_ticket(TicketClass.VIP, "Stadium")
        terminal.insert_money(50)
        outcome = terminal.insert_money("49.99")
        assert outcome.state == S.PARTIAL_MONEY_RECEIVED
        assert outcome.inserted_amount == Decimal("99.99")

    def test_decimal_amounts_are_exact(self, terminal):
        terminal.select_ticket(TicketClass.CHILD, "Airport")
        inserts = 0
        while terminal.state != S.MONEY_RECEIVED and inserts < 1000:
            terminal.insert_money("0.1")
            inserts += 1
        assert inserts == 500
        assert terminal.state == S.MONEY_RECEIVED
        assert terminal.status().inserted_amount == Decimal("50.0")
        assert terminal.transaction.change_due == 0

    def test_sub_cent_underpayment_is_not_rounded_up(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        outcome = terminal.insert_money("99.99999999999999999999999999999")
        assert outcome.rejected
        assert outcome.error == ErrorCode.INVALID_AMOUNT
        assert terminal.state == S.WAITING_FOR_MONEY
        assert terminal.status().inserted_amount == 0

        outcome = terminal.insert_money("99.99")
        assert outcome.state == S.PARTIAL_MONEY_RECEIVED
        assert outcome.inserted_amount == Decimal("99.99")

    def test_total_that_cannot_be_held_exactly_is_refused(self, terminal):
        huge = "9" * 26 + ".99"
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money("0.02")
        outcome = terminal.insert_money(huge)
        assert outcome.rejected
        assert outcome.error == ErrorCode.INVALID_AMOUNT
        assert terminal.state == S.PARTIAL_MONEY_RECEIVED
        assert terminal.status().inserted_amount == Decimal("0.02")

    def test_status_message_shows_price(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(30)
        assert "Inserted: 30, price: 100" in terminal.status().message


class TestSelection:
    """Ticket selection."""

    def test_unknown_destination(self, terminal):
        outcome = terminal.select_ticket(TicketClass.ADULT, "Mars")
        assert outcome.rejected
        assert outcome.error == ErrorCode.UNKNOWN_TICKET
        assert terminal.state == S.IDLE

    def test_unknown_ticket_class(self, terminal):
        outcome = terminal.select_ticket("PIRATE", "Center")
        assert outcome.error == ErrorCode.UNKNOWN_TICKET
        assert terminal.state == S.IDLE

    def test_selection_snapshots_price(self, terminal, clock):
        terminal.select_ticket(TicketClass.VIP, "Stadium")
        selected = terminal.status().selected_ticket
        assert selected.price == Decimal("200")
        assert selected.valid_from == clock.now
        assert selected.valid_to - selected.valid_from == timedelta(hours=2)

    def test_select_after_dispense_starts_new_sale_in_one_step(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(100)
        terminal.dispense_ticket()

        outcome = terminal.select_ticket(TicketClass.VIP, "Stadium")
        assert outcome.accepted
        assert outcome.state == S.WAITING_FOR_MONEY
        assert outcome.inserted_amount == 0
        assert terminal.status().selected_ticket.ticket_class == TicketClass.VIP

        hops = [(h["from"], h["to"]) for h in terminal.history[-2:]]
        assert hops == [("TICKET_DISPENSED", "IDLE"), ("IDLE", "WAITING_FOR_MONEY")]

    def test_select_after_dispense_with_change_owed_is_refused(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(150)
        terminal.dispense_ticket()

        outcome = terminal.select_ticket(TicketClass.VIP, "Stadium")
        assert outcome.rejected
        assert outcome.reason == "take your change first"
        assert terminal.state == S.TICKET_DISPENSED
        assert terminal.transaction.change_due == Decimal("50")

    def test_select_after_dispense_unknown_ticket_keeps_sale(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(100)
        terminal.dispense_ticket()

        outcome = terminal.select_ticket(TicketClass.ADULT, "Mars")
        assert outcome.error == ErrorCode.UNKNOWN_TICKET
        assert terminal.state == S.TICKET_DISPENSED
        assert terminal.status().inserted_amount == Decimal("100")


class TestDispensing:
    """Tickets and change."""

    def test_dispense_passes_through_dispensing(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(100)
        terminal.dispense_ticket()

        hops = [(h["from"], h["to"]) for h in terminal.history[-2:]]
        assert hops == [("MONEY_RECEIVED", "TICKET_DISPENSING"), ("TICKET_DISPENSING", "TICKET_DISPENSED")]

    def test_issued_ticket_keeps_selected_number(self, terminal, clock):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        number = terminal.status().selected_ticket.ticket_number
        terminal.insert_money(100)
        clock.advance(minutes=2)

        ticket = terminal.dispense_ticket().ticket
        assert ticket.ticket_number == number
        assert ticket.valid_from == clock.now
        assert ticket.valid_to == clock.now + timedelta(hours=2)

    def test_exhaustion_moves_to_error(self, terminal):
        terminal.select_ticket(TicketClass.CHILD, "Airport")
        terminal.insert_money(50)
        assert terminal.dispense_ticket().accepted
        terminal.reset_transaction()

        terminal.select_ticket(TicketClass.CHILD, "Airport")
        terminal.insert_money(50)
        outcome = terminal.dispense_ticket()
        assert outcome.rejected
        assert outcome.error == ErrorCode.INSUFFICIENT_INVENTORY
        assert outcome.state == S.ERROR
        assert outcome.ticket is None
        assert terminal.status().state == S.ERROR
        assert terminal.catalog.inventory_of(TicketClass.CHILD, "Airport") == 0

    def test_change_before_ticket(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(130)
        outcome = terminal.dispense_change()
        assert outcome.change == Decimal("30")
        assert outcome.state == S.CHANGE_DISPENSED

    def test_change_with_exact_payment_before_ticket_is_refused(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(100)
        outcome = terminal.dispense_change()
        assert outcome.error == ErrorCode.NO_CHANGE_OWED
        assert terminal.state == S.MONEY_RECEIVED

    def test_repeated_change_is_refused(self, terminal):
        terminal.select_ticket(TicketClass.VIP, "Stadium")
        terminal.insert_money(250)
        terminal.dispense_ticket()
        terminal.dispense_change()

        outcome = terminal.dispense_change()
        assert outcome.rejected
        assert outcome.reason == "no change owed"
        assert terminal.change_pool.balance == Decimal("450")

    def test_insufficient_change_moves_to_error_without_paying(self, catalog, settings, clock):
        terminal = TicketTerminal(catalog, ChangePool(20), settings, clock)
        terminal.select_ticket(TicketClass.VIP, "Stadium")
        terminal.insert_money(250)
        terminal.dispense_ticket()

        outcome = terminal.dispense_change()
        assert outcome.error == ErrorCode.INSUFFICIENT_CHANGE
        assert outcome.change is None
        assert terminal.state == S.ERROR
        assert terminal.change_pool.balance == Decimal("20")


class TestCancellation:
    """Cancel always gives the money back."""

    @pytest.mark.parametrize("amounts", [[], [30], [60, 70]])
    def test_cancel_refunds_everything(self, terminal, amounts):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        for amount in amounts:
            terminal.insert_money(amount)

        outcome = terminal.cancel_transaction()
        assert outcome.accepted
        assert outcome.refund == sum(Decimal(a) for a in amounts)
        assert outcome.inserted_amount == 0
        assert terminal.state == S.TRANSACTION_CANCELED

        terminal.reset_transaction()
        assert terminal.state == S.IDLE
        assert terminal.status().inserted_amount == 0

    def test_cancel_does_not_touch_change_pool(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(150)
        terminal.cancel_transaction()
        assert terminal.change_pool.balance == Decimal("500")


class TestRecovery:
    """Getting out of ERROR."""

    def test_refund_after_out_of_stock(self, terminal):
        terminal.catalog.dispense(TicketClass.CHILD, "Airport")
        terminal.select_ticket(TicketClass.CHILD, "Airport")
        terminal.insert_money(60)
        terminal.dispense_ticket()

        outcome = terminal.process_refund()
        assert outcome.accepted
        assert outcome.refund == Decimal("60")
        assert outcome.state == S.IDLE
        assert terminal.status().inserted_amount == 0

        hops = [(h["from"], h["to"]) for h in terminal.history[-2:]]
        assert hops == [("ERROR", "REFUND_PROCESSING"), ("REFUND_PROCESSING", "IDLE")]

    def test_refund_after_short_change_returns_only_overpayment(self, catalog, settings, clock):
        terminal = TicketTerminal(catalog, ChangePool(0), settings, clock)
        terminal.select_ticket(TicketClass.VIP, "Stadium")
        terminal.insert_money(250)
        terminal.dispense_ticket()
        terminal.dispense_change()

        assert terminal.process_refund().refund == Decimal("50")

    def test_reset_from_error_warns_about_discarded_money(self, terminal, caplog):
        drive_to(terminal, S.ERROR)
        with caplog.at_level(logging.WARNING, logger="ticket_vending.core.terminal"):
            terminal.reset_transaction()
        assert terminal.state == S.IDLE
        assert "discards" in caplog.text
        assert terminal.history[-1]["intent"] == "RESET"


class TestMaintenance:
    """Operator mode."""

    def test_enter_and_exit(self, terminal):
        assert terminal.enter_maintenance().state == S.MAINTENANCE_MODE
        assert terminal.exit_maintenance().state == S.IDLE

    def test_cannot_enter_mid_sale(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        outcome = terminal.enter_maintenance()
        assert outcome.rejected
        assert outcome.reason == "finish the current transaction"

    def test_restock_and_refill(self, terminal):
        terminal.enter_maintenance()
        assert terminal.restock(TicketClass.CHILD, "Airport", 4).accepted
        assert terminal.refill_change(100).accepted
        assert terminal.catalog.inventory_of(TicketClass.CHILD, "Airport") == 5
        assert terminal.change_pool.balance == Decimal("600")
        assert terminal.state == S.MAINTENANCE_MODE

    def test_bad_restock_is_refused(self, terminal):
        terminal.enter_maintenance()
        outcome = terminal.restock(TicketClass.CHILD, "Airport", 0)
        assert outcome.error == ErrorCode.INVALID_QUANTITY
        outcome = terminal.refill_change(-10)
        assert outcome.error == ErrorCode.INVALID_AMOUNT
        assert terminal.change_pool.balance == Decimal("500")


class TestInspection:
    """status() and history."""

    def test_status_is_idempotent(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(30)
        first = terminal.status()
        assert all(terminal.status() == first for _ in range(5))
        assert len(terminal.history) == 2

    def test_transaction_property_is_a_copy(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        tx = terminal.transaction
        tx.inserted_amount = Decimal("1000")
        assert terminal.status().inserted_amount == 0

    def test_history_records_payload(self, terminal):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(40)
        entry = terminal.history[-1]
        assert entry["from"] == "WAITING_FOR_MONEY"
        assert entry["intent"] == "INSERT_MONEY"
        assert entry["to"] == "PARTIAL_MONEY_RECEIVED"
        assert entry["payload"] == {"amount": "40", "total": "40"}

    def test_undeclared_transition_is_a_bug(self, terminal, monkeypatch):
        monkeypatch.setitem(
            HANDLERS,
            (S.IDLE, TerminalIntent.ENTER_MAINTENANCE),
            lambda ctx: Step.to(S.ERROR),
        )
        with pytest.raises(ValueError, match="Illegal transition"):
            terminal.enter_maintenance()
        assert terminal.state == S.IDLE

    def test_undeclared_transition_mid_chain_keeps_nothing(self, terminal, monkeypatch):
        def dispense_then_jump(ctx):
            dispense_physical_ticket(ctx)
            ctx.change_pool.withdraw(Decimal("20"))
            ctx.transaction.inserted_amount = Decimal("0")
            return Step.to(S.IDLE)

        monkeypatch.setitem(HANDLERS, (S.TICKET_DISPENSING, TerminalIntent.DISPENSE_TICKET), dispense_then_jump)
        drive_to(terminal, S.MONEY_RECEIVED)
        before = snapshot(terminal)

        with pytest.raises(ValueError, match="Illegal transition"):
            terminal.dispense_ticket()

        assert snapshot(terminal) == before
        assert terminal.history[-1]["to"] == "MONEY_RECEIVED"


class TestTimeout:
    """Abandoned sales get canceled."""

    def test_stale_transaction_is_canceled(self, terminal, clock):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(30)
        clock.advance(seconds=301)

        outcome = terminal.expire_stale_transaction()
        assert outcome.intent == TerminalIntent.CANCEL
        assert outcome.refund == Decimal("30")
        assert terminal.state == S.TRANSACTION_CANCELED

    def test_recent_activity_keeps_transaction(self, terminal, clock):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        clock.advance(seconds=200)
        terminal.insert_money(30)
        clock.advance(seconds=200)
        assert terminal.expire_stale_transaction() is None
        assert terminal.state == S.PARTIAL_MONEY_RECEIVED

    def test_idle_terminal_has_nothing_to_expire(self, terminal, clock):
        clock.advance(hours=1)
        assert terminal.expire_stale_transaction() is None

    def test_dispensed_sale_is_not_canceled(self, terminal, clock):
        terminal.select_ticket(TicketClass.ADULT, "Center")
        terminal.insert_money(100)
        terminal.dispense_ticket()
        clock.advance(hours=1)
        assert terminal.expire_stale_transaction() is None
        assert terminal.state == S.TICKET_DISPENSED


def test_default_terminal_is_seeded_from_settings(settings):
    terminal = TicketTerminal(settings=settings.model_copy(update={"ticket_inventory": 2}))
    assert len(terminal.catalog) == 25
    assert terminal.status().inventory_count == 50
    assert terminal.status().available_change == Decimal("500")
