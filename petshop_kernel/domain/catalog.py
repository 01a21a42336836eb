"""
Service catalog -- prices for bookable services.

Responsibility:
    Maps a service name (as written on the appointment) to its price and
    builds the ledger draft for a completed appointment.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Prices come from Settings.

Failure modes:
    - None.  An unknown service is priced at zero; the coordinator then
      completes the appointment without recording revenue.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal

from petshop_kernel.db.types import ZERO, round_money
from petshop_kernel.domain.dtos import RecordDraft, RecordType

DEFAULT_PET_NAME = "Pet"


class ServiceCatalog:
    """Read-only name -> price lookup.  Names match exactly after trimming."""

    def __init__(self, prices: Mapping[str, Decimal]):
        self._prices = {
            name.strip(): round_money(Decimal(price)) for name, price in prices.items()
        }

    @classmethod
    def from_settings(cls, settings) -> "ServiceCatalog":
        return cls(settings.service_prices)

    def price_for(self, service_name: str | None) -> Decimal:
        if not service_name:
            return ZERO
        return self._prices.get(service_name.strip(), ZERO)

    def __contains__(self, service_name: str) -> bool:
        return service_name.strip() in self._prices

    def __len__(self) -> int:
        return len(self._prices)


def build_completion_draft(
    service_type: str,
    pet_name: str | None,
    catalog: ServiceCatalog,
    day: date,
    category: str = "Services",
) -> RecordDraft:
    """
    Draft the income entry for a completed appointment.

    The description reads "<service> - <pet>", e.g. "Full Bath - Rex".
    """
    return RecordDraft(
        description=f"{service_type} - {pet_name or DEFAULT_PET_NAME}",
        amount=catalog.price_for(service_type),
        record_type=RecordType.INCOME,
        record_date=day,
        category=category,
    )
