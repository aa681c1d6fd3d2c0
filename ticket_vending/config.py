"""Terminal configuration via pydantic-settings."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from functools import lru_cache
from typing import Dict, List

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ticket_vending.core.tickets import TicketClass


class Settings(BaseSettings):
    """Terminal settings loaded from environment variables (TVM_*)."""

    model_config = SettingsConfigDict(
        env_prefix="TVM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Ticket Vending Terminal"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # Cash
    initial_change: Decimal = Decimal("500")

    # Catalog seed
    ticket_prices: Dict[TicketClass, Decimal] = Field(
        default_factory=lambda: {
            TicketClass.ADULT: Decimal("100"),
            TicketClass.CHILD: Decimal("50"),
            TicketClass.STUDENT: Decimal("70"),
            TicketClass.SENIOR: Decimal("80"),
            TicketClass.VIP: Decimal("200"),
        }
    )
    destinations: List[str] = ["Center", "Airport", "Station", "Stadium", "Theatre"]
    ticket_inventory: int = Field(default=10, ge=0)  # per class and destination

    # Lifecycle
    ticket_validity_hours: float = Field(default=2, gt=0)
    transaction_timeout_seconds: float = Field(default=300, gt=0)

    @computed_field
    @property
    def ticket_validity(self) -> timedelta:
        return timedelta(hours=self.ticket_validity_hours)

    @computed_field
    @property
    def transaction_timeout(self) -> timedelta:
        return timedelta(seconds=self.transaction_timeout_seconds)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
