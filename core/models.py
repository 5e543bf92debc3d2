"""Core data models: workbook settings and the persisted workbook document"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from .enums import (
    BaseDimension, DisplayPreference, MetricSystem, RateProvenance, ValueKind
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────────────────────
# Workbook settings
# ─────────────────────────────────────────────────────────────

class UnitPreferences(BaseModel):
    """Preferred unit per dimension for Metric/Imperial display"""
    metric_system: MetricSystem = MetricSystem.MKS
    metric_length: str = "m"
    metric_mass: str = "kg"
    metric_temperature: str = "C"
    imperial_length: str = "ft"
    imperial_mass: str = "lb"
    imperial_temperature: str = "F"
    time_unit: Optional[str] = None  # None keeps the entered time unit
    digital_storage_unit: Optional[str] = None
    currency: Optional[str] = None

    def preferred_units(self, preference: DisplayPreference) -> dict[BaseDimension, str]:
        """Map base dimensions to the display symbol for a preference"""
        if preference == DisplayPreference.AS_ENTERED:
            return {}
        if preference == DisplayPreference.METRIC:
            if self.metric_system == MetricSystem.CGS:
                units = {BaseDimension.LENGTH: "cm", BaseDimension.MASS: "g"}
            else:
                units = {
                    BaseDimension.LENGTH: self.metric_length,
                    BaseDimension.MASS: self.metric_mass,
                }
            units[BaseDimension.TEMPERATURE] = self.metric_temperature
        else:
            units = {
                BaseDimension.LENGTH: self.imperial_length,
                BaseDimension.MASS: self.imperial_mass,
                BaseDimension.TEMPERATURE: self.imperial_temperature,
            }
        if self.time_unit:
            units[BaseDimension.TIME] = self.time_unit
        if self.digital_storage_unit:
            units[BaseDimension.DIGITAL_STORAGE] = self.digital_storage_unit
        if self.currency:
            units[BaseDimension.CURRENCY] = self.currency
        return units


class WorkbookSettings(BaseModel):
    """User-facing workbook behaviour"""
    display_preference: DisplayPreference = DisplayPreference.AS_ENTERED
    auto_recalculate: bool = True
    show_warnings: bool = True
    unit_preferences: UnitPreferences = Field(default_factory=UnitPreferences)


# ─────────────────────────────────────────────────────────────
# Persisted document
# ─────────────────────────────────────────────────────────────

class StoredValue(BaseModel):
    """Tagged cell value as written to disk"""
    type: ValueKind
    number: Optional[float] = None
    text: Optional[str] = None
    error: Optional[str] = None


class CellRecord(BaseModel):
    """One populated cell"""
    value: StoredValue
    storage_unit: str = ""
    display_unit: Optional[str] = None
    formula: Optional[str] = None
    warning: Optional[str] = None


class SheetRecord(BaseModel):
    """One sheet with its populated cells keyed by address"""
    name: str
    cells: dict[str, CellRecord] = {}
    column_widths: dict[str, float] = {}
    row_heights: dict[str, float] = {}


class NamedRangeRecord(BaseModel):
    sheet: str
    address: str


class CurrencyRateRecord(BaseModel):
    rate: float
    provenance: RateProvenance = RateProvenance.HARDCODED
    updated_at: Optional[datetime] = None


class WorkbookRecord(BaseModel):
    name: str
    settings: WorkbookSettings = Field(default_factory=WorkbookSettings)
    currency_rates: dict[str, CurrencyRateRecord] = {}
    sheets: list[SheetRecord]
    active_sheet: int = 0
    named_ranges: dict[str, NamedRangeRecord] = {}


class DocumentMetadata(BaseModel):
    created_at: datetime = Field(default_factory=utc_now)
    modified_at: datetime = Field(default_factory=utc_now)
    app_version: str = ""


class WorkbookDocument(BaseModel):
    """Versioned, self-describing workbook file"""
    version: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    workbook: WorkbookRecord
