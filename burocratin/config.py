"""Central configuration for the burocratin package."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Context, Decimal
from typing import Mapping

LOG_LEVEL_ENV = "BUROCRATIN_LOG_LEVEL"


@dataclass(slots=True, frozen=True)
class BrokerProfile:
    name: str
    country: str


@dataclass(slots=True, frozen=True)
class Settings:
    decimal_context: Context
    tolerance_abs: Decimal
    brokers: Mapping[str, BrokerProfile] = field(default_factory=dict)


SETTINGS = Settings(
    decimal_context=Context(prec=28),
    tolerance_abs=Decimal("0.000001"),
    brokers={
        "degiro": BrokerProfile(name="Degiro", country="NL"),
        "interactive_brokers": BrokerProfile(name="Interactive Brokers", country="IE"),
    },
)
