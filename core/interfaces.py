"""Abstract base classes for pluggable engine collaborators"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict

from core.enums import RateProvenance


class RateSource(ABC):
    """Abstract provider of currency rates (units per USD)"""

    @property
    @abstractmethod
    def provenance(self) -> RateProvenance:
        """Provenance recorded on rates loaded from this source"""
        pass

    @abstractmethod
    def fetch(self) -> Dict[str, float]:
        """Return a mapping of currency code to units-per-USD"""
        pass


class WorkbookExporter(ABC):
    """Abstract base class for one-way workbook exporters"""

    @property
    @abstractmethod
    def supported_extensions(self) -> list[str]:
        """List of supported file extensions"""
        pass

    @abstractmethod
    def export(self, workbook: "Workbook", path: Path) -> Path:
        """Write the workbook to path and return the written path"""
        pass
