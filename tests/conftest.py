import pytest

from engine.workbook import Workbook
from units.currency import CurrencyRateTable
from units.library import UnitLibrary


@pytest.fixture
def library() -> UnitLibrary:
    return UnitLibrary()


@pytest.fixture
def rates() -> CurrencyRateTable:
    return CurrencyRateTable()


@pytest.fixture
def workbook(library, rates) -> Workbook:
    return Workbook(name="Test", library=library, rates=rates)
