"""
Ticket Vending Terminal - API
=============================
FastAPI application driving one terminal over HTTP
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from ticket_vending.config import get_settings
from ticket_vending.core.terminal import Outcome, TerminalStatus, TicketTerminal
from ticket_vending.core.tickets import IssuedTicket, SelectedTicket, TicketClass

settings = get_settings()

_terminal: Optional[TicketTerminal] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    yield


app = FastAPI(
    title=settings.app_name,
    description="FSM-driven self-service ticket terminal",
    version=settings.app_version,
    lifespan=lifespan,
)


def get_terminal() -> TicketTerminal:
    """The process-wide terminal, built on first use"""
    global _terminal
    if _terminal is None:
        _terminal = TicketTerminal(settings=settings)
    return _terminal


def active_terminal(terminal: Annotated[TicketTerminal, Depends(get_terminal)]) -> TicketTerminal:
    """Cancel an abandoned transaction before serving the next request"""
    terminal.expire_stale_transaction()
    return terminal


Terminal = Annotated[TicketTerminal, Depends(active_terminal)]


# ── Request Models ────────────────────────────────────────────────────────────

class SelectTicketRequest(BaseModel):
    ticket_class: TicketClass
    destination: str


class MoneyRequest(BaseModel):
    amount: Decimal


class RestockRequest(BaseModel):
    ticket_class: TicketClass
    destination: str
    quantity: int


# ── Serialization ─────────────────────────────────────────────────────────────

def ticket_body(ticket: SelectedTicket | IssuedTicket | None) -> dict | None:
    if ticket is None:
        return None
    return {
        "ticket_number": ticket.ticket_number,
        "ticket_class": ticket.ticket_class.value,
        "destination": ticket.destination,
        "price": str(ticket.price),
        "valid_from": ticket.valid_from.isoformat(),
        "valid_to": ticket.valid_to.isoformat(),
    }


def money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def outcome_body(outcome: Outcome) -> dict:
    return {
        "intent": outcome.intent.value,
        "accepted": outcome.accepted,
        "state": outcome.state.value,
        "inserted_amount": str(outcome.inserted_amount),
        "error": outcome.error.value if outcome.error else None,
        "reason": outcome.reason,
        "ticket": ticket_body(outcome.ticket),
        "change": money(outcome.change),
        "refund": money(outcome.refund),
    }


def status_body(status: TerminalStatus) -> dict:
    return {
        "state": status.state.value,
        "message": status.message,
        "inserted_amount": str(status.inserted_amount),
        "selected_ticket": ticket_body(status.selected_ticket),
        "available_change": str(status.available_change),
        "inventory_count": status.inventory_count,
    }


def respond(outcome: Outcome) -> dict:
    """Accepted → 200 with the outcome; rejected → 409 with the outcome as detail"""
    body = outcome_body(outcome)
    if outcome.rejected:
        raise HTTPException(status_code=409, detail=body)
    return body


# ── Endpoints ─────────────────────────────────────────────────────────────────

@app.get("/")
def root():
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "running"
    }


@app.get("/health")
def health():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/status")
def get_status(terminal: Terminal):
    """Current state, money and stock"""
    return status_body(terminal.status())


@app.get("/catalog")
def get_catalog(terminal: Terminal):
    entries = terminal.catalog.entries()
    return {
        "count": len(entries),
        "entries": [
            {
                "ticket_class": entry.ticket_class.value,
                "destination": entry.destination,
                "price": str(entry.price),
                "inventory": entry.inventory,
            }
            for entry in entries
        ]
    }


@app.get("/history")
def get_history(terminal: Terminal, limit: int = 50):
    """Most recent transitions (audit trail)"""
    history = terminal.history
    return {
        "current_state": terminal.state.value,
        "event_count": len(history),
        "events": history[-limit:] if limit > 0 else [],
    }


@app.post("/tickets/select")
def select_ticket(request: SelectTicketRequest, terminal: Terminal):
    return respond(terminal.select_ticket(request.ticket_class, request.destination))


@app.post("/money")
def insert_money(request: MoneyRequest, terminal: Terminal):
    return respond(terminal.insert_money(request.amount))


@app.post("/cancel")
def cancel_transaction(terminal: Terminal):
    return respond(terminal.cancel_transaction())


@app.post("/dispense/ticket")
def dispense_ticket(terminal: Terminal):
    return respond(terminal.dispense_ticket())


@app.post("/dispense/change")
def dispense_change(terminal: Terminal):
    return respond(terminal.dispense_change())


@app.post("/refund")
def process_refund(terminal: Terminal):
    return respond(terminal.process_refund())


@app.post("/maintenance/enter")
def enter_maintenance(terminal: Terminal):
    return respond(terminal.enter_maintenance())


@app.post("/maintenance/exit")
def exit_maintenance(terminal: Terminal):
    return respond(terminal.exit_maintenance())


@app.post("/maintenance/restock")
def restock(request: RestockRequest, terminal: Terminal):
    return respond(terminal.restock(request.ticket_class, request.destination, request.quantity))


@app.post("/maintenance/change")
def refill_change(request: MoneyRequest, terminal: Terminal):
    return respond(terminal.refill_change(request.amount))


@app.post("/reset")
def reset_transaction(terminal: Terminal):
    """Administrative reset back to IDLE"""
    terminal.reset_transaction()
    return status_body(terminal.status())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
