"""
Ticket Catalog
==============
What the terminal sells, at what price, and how many are left.
"""

import itertools
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping

from ticket_vending.core.errors import InvalidQuantityError, OutOfStockError, TicketNotFoundError


class TicketClass(str, Enum):
    ADULT = "ADULT"
    CHILD = "CHILD"
    STUDENT = "STUDENT"
    SENIOR = "SENIOR"
    VIP = "VIP"


# ── Ticket identity ───────────────────────────────────────────────────────────

_ticket_counter = itertools.count(1)


def generate_ticket_number() -> str:
    """Process-unique ticket number: monotonic counter plus a random suffix."""
    return f"TICK-{next(_ticket_counter):06d}-{uuid.uuid4().hex[:8].upper()}"


@dataclass(frozen=True)
class SelectedTicket:
    """Snapshot of a catalog entry chosen for the active transaction."""
    ticket_class: TicketClass
    destination: str
    price: Decimal
    ticket_number: str
    valid_from: datetime
    valid_to: datetime

    def __str__(self) -> str:
        return f"{self.ticket_class.value} ticket to {self.destination} - {self.price} (#{self.ticket_number})"


@dataclass(frozen=True)
class IssuedTicket:
    """The ticket as printed. Validity starts when it leaves the printer."""
    ticket_class: TicketClass
    destination: str
    price: Decimal
    ticket_number: str
    valid_from: datetime
    valid_to: datetime


# ── Catalog ───────────────────────────────────────────────────────────────────

@dataclass
class CatalogEntry:
    ticket_class: TicketClass
    destination: str
    price: Decimal
    inventory: int = 0

    def __post_init__(self):
        if self.price < 0:
            raise ValueError("Ticket price cannot be negative")
        if self.inventory < 0:
            raise ValueError("Ticket inventory cannot be negative")

    @property
    def key(self) -> tuple[TicketClass, str]:
        return (self.ticket_class, self.destination)

    def select(self, issued_at: datetime, validity: timedelta) -> SelectedTicket:
        return SelectedTicket(
            ticket_class=self.ticket_class,
            destination=self.destination,
            price=self.price,
            ticket_number=generate_ticket_number(),
            valid_from=issued_at,
            valid_to=issued_at + validity,
        )


class Catalog:
    """
    (ticket class, destination) → price + inventory.
    Prices never change after seeding; inventory only moves through
    dispense() and restock().
    """

    def __init__(self, entries: Iterable[CatalogEntry] = ()):
        self._entries: dict[tuple[TicketClass, str], CatalogEntry] = {}
        for entry in entries:
            self._entries[entry.key] = entry

    @classmethod
    def seeded(
        cls,
        prices: Mapping[TicketClass, Decimal],
        destinations: Iterable[str],
        inventory: int,
    ) -> "Catalog":
        """Every ticket class to every destination, same starting stock."""
        destinations = list(destinations)
        return cls(
            CatalogEntry(TicketClass(ticket_class), destination, Decimal(price), inventory)
            for ticket_class, price in prices.items()
            for destination in destinations
        )

    def lookup(self, ticket_class: TicketClass, destination: str) -> CatalogEntry:
        entry = self._entries.get((ticket_class, destination))
        if entry is None:
            raise TicketNotFoundError(ticket_class.value, destination)
        return entry

    def dispense(self, ticket_class: TicketClass, destination: str) -> CatalogEntry:
        """Take one ticket out of stock. Fails without touching stock at zero."""
        entry = self.lookup(ticket_class, destination)
        if entry.inventory <= 0:
            raise OutOfStockError(ticket_class.value, destination)
        entry.inventory -= 1
        return entry

    def restock(self, ticket_class: TicketClass, destination: str, quantity: int) -> CatalogEntry:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantityError()
        entry = self.lookup(ticket_class, destination)
        entry.inventory += quantity
        return entry

    def restore(self, entries: Iterable[CatalogEntry]) -> None:
        """Put stock back to what an earlier entries() call returned."""
        for saved in entries:
            self._entries[saved.key].inventory = saved.inventory

    def inventory_of(self, ticket_class: TicketClass, destination: str) -> int:
        return self.lookup(ticket_class, destination).inventory

    @property
    def inventory_count(self) -> int:
        return sum(entry.inventory for entry in self._entries.values())

    def entries(self) -> list[CatalogEntry]:
        """Copies, in seeding order."""
        return [replace(entry) for entry in self._entries.values()]

    def __len__(self) -> int:
        return len(self._entries)


def issue(selected: SelectedTicket, issued_at: datetime, validity: timedelta) -> IssuedTicket:
    """Finalize a selection into a printed ticket, keeping its number."""
    return IssuedTicket(
        ticket_class=selected.ticket_class,
        destination=selected.destination,
        price=selected.price,
        ticket_number=selected.ticket_number,
        valid_from=issued_at,
        valid_to=issued_at + validity,
    )
