"""Configuration and environment settings"""

from pydantic_settings import BaseSettings
from typing import Optional, List, Dict

from core.enums import BaseDimension


class Settings(BaseSettings):
    """Application configuration"""

    APP_VERSION: str = "0.1.0"

    # Unit resolution
    # Domain order used when one symbol is registered in several domains
    UNIT_DOMAIN_PRIORITY: str = (
        "length,mass,time,temperature,currency,digital_storage,dimensionless"
    )

    # Currency rates applied over the hardcoded defaults (e.g. "EUR=0.91,GBP=0.78")
    CURRENCY_RATE_OVERRIDES: Optional[str] = None

    # Workbook defaults
    DEFAULT_WORKBOOK_NAME: str = "Untitled"
    DEFAULT_SHEET_NAME: str = "Sheet1"
    DISPLAY_PRECISION: int = 2
    MAX_RANGE_EXPANSION: int = 100_000

    # Export
    UNIT_METADATA_SHEET: str = "_units"
    RATES_SHEET: str = "_rates"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Protocol server
    RPC_HOST: str = "127.0.0.1"
    RPC_PORT: int = 8765

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    def get_unit_domain_priority(self) -> List[BaseDimension]:
        """Get the unit domain priority list"""
        priority = []
        for name in self.UNIT_DOMAIN_PRIORITY.split(","):
            name = name.strip().lower()
            if name:
                priority.append(BaseDimension(name))
        for dimension in BaseDimension:
            if dimension not in priority:
                priority.append(dimension)
        return priority

    def get_currency_rate_overrides(self) -> Dict[str, float]:
        """Parse CURRENCY_RATE_OVERRIDES into a code -> rate mapping"""
        overrides: Dict[str, float] = {}
        if not self.CURRENCY_RATE_OVERRIDES:
            return overrides
        for pair in self.CURRENCY_RATE_OVERRIDES.split(","):
            if "=" not in pair:
                continue
            code, rate = pair.split("=", 1)
            overrides[code.strip().upper()] = float(rate)
        return overrides


# Global settings instance
settings = Settings()
