"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ticket_vending.config import Settings
from ticket_vending.core.terminal import TicketTerminal
from ticket_vending.core.tickets import Catalog, CatalogEntry, TicketClass
from ticket_vending.core.transaction import ChangePool


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        initial_change=Decimal("500"),
        ticket_validity_hours=2,
        transaction_timeout_seconds=300,
    )


@pytest.fixture
def catalog() -> Catalog:
    return Catalog([
        CatalogEntry(TicketClass.ADULT, "Center", Decimal("100"), inventory=3),
        CatalogEntry(TicketClass.CHILD, "Airport", Decimal("50"), inventory=1),
        CatalogEntry(TicketClass.VIP, "Stadium", Decimal("200"), inventory=2),
    ])


@pytest.fixture
def terminal(catalog, settings, clock) -> TicketTerminal:
    return TicketTerminal(
        catalog=catalog,
        change_pool=ChangePool(settings.initial_change),
        settings=settings,
        clock=clock,
    )
