"""Per-workbook currency rate table pivoting through a reference currency."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional

from core.enums import RateProvenance
from core.exceptions import ConversionError
from core.interfaces import RateSource
from logging_config import get_logger

logger = get_logger(__name__)

REFERENCE_CURRENCY = "USD"

# Units of each currency per one USD
DEFAULT_CURRENCY_RATES: Dict[str, float] = {
    "USD": 1.0,
    "EUR": 0.92,
    "GBP": 0.79,
    "JPY": 149.50,
    "CAD": 1.36,
    "AUD": 1.53,
}

_PROVENANCE_RANK = {
    RateProvenance.MANUAL: 0,
    RateProvenance.LIVE: 1,
    RateProvenance.HARDCODED: 2,
}


@dataclass(frozen=True)
class CurrencyRate:
    rate: float
    provenance: RateProvenance = RateProvenance.HARDCODED
    updated_at: Optional[datetime] = field(default=None, compare=False)


class HardcodedRateSource(RateSource):
    """The built-in default rates"""

    @property
    def provenance(self) -> RateProvenance:
        return RateProvenance.HARDCODED

    def fetch(self) -> Dict[str, float]:
        return dict(DEFAULT_CURRENCY_RATES)


class StaticRateSource(RateSource):
    """Rates obtained elsewhere (e.g. by a live fetcher) handed to the engine"""

    def __init__(self, rates: Mapping[str, float], provenance: RateProvenance = RateProvenance.LIVE):
        self._rates = dict(rates)
        self._provenance = provenance

    @property
    def provenance(self) -> RateProvenance:
        return self._provenance

    def fetch(self) -> Dict[str, float]:
        return dict(self._rates)


class CurrencyRateTable:
    """Mutable star-shaped rate table centred on USD.

    Conversion composes two lookups: value / from_rate * to_rate.
    """

    def __init__(self, rates: Optional[Mapping[str, CurrencyRate]] = None):
        self._rates: Dict[str, CurrencyRate] = {
            REFERENCE_CURRENCY: CurrencyRate(1.0, RateProvenance.HARDCODED)
        }
        if rates is None:
            for code, rate in DEFAULT_CURRENCY_RATES.items():
                self._rates[code] = CurrencyRate(rate, RateProvenance.HARDCODED)
        else:
            for code, entry in rates.items():
                self._rates[code.upper()] = entry

    @classmethod
    def from_settings(cls, app_settings=None) -> CurrencyRateTable:
        """Defaults plus any CURRENCY_RATE_OVERRIDES from configuration."""
        if app_settings is None:
            from config import settings as app_settings
        table = cls()
        overrides = app_settings.get_currency_rate_overrides()
        if overrides:
            table.update_rates(overrides, RateProvenance.MANUAL)
        return table

    def copy(self) -> CurrencyRateTable:
        return CurrencyRateTable(dict(self._rates))

    def __contains__(self, code: str) -> bool:
        return code.upper() in self._rates

    def currencies(self) -> List[str]:
        return sorted(self._rates)

    def entry(self, code: str) -> CurrencyRate:
        try:
            return self._rates[code.upper()]
        except KeyError:
            raise ConversionError(code, REFERENCE_CURRENCY, f"No exchange rate for {code}")

    def entries(self) -> Dict[str, CurrencyRate]:
        return dict(self._rates)

    def rate(self, code: str) -> float:
        return self.entry(code).rate

    def set_rate(
        self,
        code: str,
        rate: float,
        provenance: RateProvenance = RateProvenance.MANUAL,
    ) -> None:
        code = self._store(code, rate, provenance)
        logger.debug("currency_rate_set", currency=code, rate=rate, provenance=provenance.value)

    def _store(self, code: str, rate: float, provenance: RateProvenance) -> str:
        code = code.upper()
        if rate <= 0:
            raise ValueError(f"Exchange rate for {code} must be positive, got {rate}")
        if code == REFERENCE_CURRENCY and rate != 1.0:
            raise ValueError(f"{REFERENCE_CURRENCY} is the reference currency; its rate is fixed at 1")
        self._rates[code] = CurrencyRate(rate, provenance, datetime.now(timezone.utc))
        return code

    def update_rates(self, rates: Mapping[str, float], provenance: RateProvenance) -> int:
        updated = 0
        for code, rate in rates.items():
            if code.upper() == REFERENCE_CURRENCY:
                continue
            self._store(code, rate, provenance)
            updated += 1
        logger.info("currency_rates_updated", count=updated, provenance=provenance.value)
        return updated

    def refresh(self, source: RateSource) -> int:
        """Load every rate a source provides."""
        count = self.update_rates(source.fetch(), source.provenance)
        if source.provenance == RateProvenance.HARDCODED:
            # Defaults are not user edits; drop the timestamp
            self._rates = {
                code: replace(entry, updated_at=None)
                if entry.provenance == RateProvenance.HARDCODED
                else entry
                for code, entry in self._rates.items()
            }
        return count

    def convert(self, value: float, from_code: str, to_code: str) -> float:
        if from_code.upper() == to_code.upper():
            return value
        return value / self.rate(from_code) * self.rate(to_code)

    def usd_factor(self, code: str) -> float:
        """How many USD one unit of `code` is worth."""
        return 1.0 / self.rate(code)

    def provenance_for(self, *codes: str) -> RateProvenance:
        """Provenance reported for a conversion: manual, then live, then hardcoded."""
        involved = [
            self.entry(code).provenance
            for code in codes
            if code.upper() != REFERENCE_CURRENCY
        ]
        if not involved:
            return RateProvenance.HARDCODED
        return min(involved, key=lambda p: _PROVENANCE_RANK[p])
