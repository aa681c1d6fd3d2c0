"""
Terminal Demo
Four scripted sales against a fresh terminal
"""

from typing import Callable, Iterable, Optional

from ticket_vending.core.terminal import Outcome, TicketTerminal
from ticket_vending.core.tickets import TicketClass


def show(outcome: Outcome) -> None:
    if outcome.accepted:
        print(f"✅ {outcome.intent.value} → {outcome.state.value}")
    else:
        print(f"❌ {outcome.intent.value} refused ({outcome.reason}) → {outcome.state.value}")
    if outcome.ticket:
        print(f"   🎫 {outcome.ticket.ticket_number} valid until {outcome.ticket.valid_to:%H:%M}")
    if outcome.change is not None:
        print(f"   💰 change: {outcome.change}")
    if outcome.refund is not None:
        print(f"   💸 refund: {outcome.refund}")


def show_status(terminal: TicketTerminal) -> None:
    status = terminal.status()
    print(f"   📍 {status.state.value}: {status.message}")
    print(f"      inserted {status.inserted_amount}, change pool {status.available_change}, "
          f"stock {status.inventory_count}")


def play(terminal: TicketTerminal, steps: Iterable[Callable[[], Outcome]]) -> None:
    """Run each step in turn, printing the status it leaves behind."""
    for step in steps:
        show(step())
        show_status(terminal)


def run_demo(terminal: Optional[TicketTerminal] = None) -> TicketTerminal:
    terminal = terminal or TicketTerminal()

    print("\n=== SCENARIO 1: EXACT PAYMENT ===")
    play(terminal, [
        lambda: terminal.select_ticket(TicketClass.ADULT, "Center"),
        lambda: terminal.insert_money(50),
        lambda: terminal.insert_money(50),
        terminal.dispense_ticket,
        terminal.dispense_change,
    ])

    print("\n=== SCENARIO 2: CANCELLATION ===")
    terminal.reset_transaction()
    play(terminal, [
        lambda: terminal.select_ticket(TicketClass.CHILD, "Airport"),
        lambda: terminal.insert_money(30),
        terminal.cancel_transaction,
    ])

    print("\n=== SCENARIO 3: OVERPAYMENT ===")
    terminal.reset_transaction()
    play(terminal, [
        lambda: terminal.select_ticket(TicketClass.VIP, "Stadium"),
        lambda: terminal.insert_money(250),
        terminal.dispense_ticket,
        terminal.dispense_change,
    ])

    print("\n=== SCENARIO 4: MAINTENANCE ===")
    terminal.reset_transaction()
    play(terminal, [
        terminal.enter_maintenance,
        lambda: terminal.select_ticket(TicketClass.ADULT, "Center"),  # refused while in maintenance
        lambda: terminal.restock(TicketClass.ADULT, "Center", 5),
        lambda: terminal.refill_change(100),
        terminal.exit_maintenance,
    ])

    print(f"\n📜 Full journey ({len(terminal.history)} steps):")
    for step in terminal.history:
        print(f"   {step['from']:22} → {step['to']:22} via {step['intent']}")

    return terminal


if __name__ == "__main__":
    run_demo()
