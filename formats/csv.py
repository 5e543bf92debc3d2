"""Tabular export through pandas"""

from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from core.enums import DisplayPreference
from core.exceptions import PersistenceError
from core.interfaces import WorkbookExporter
from engine.workbook import Workbook
from formula.references import CellAddress
from logging_config import get_logger

logger = get_logger(__name__)


def _column_letters(count: int) -> List[str]:
    return [CellAddress(row=1, col=index).column_letter for index in range(1, count + 1)]


def sheet_to_dataframe(
    workbook: Workbook,
    sheet_name: Optional[str] = None,
    preference: Optional[DisplayPreference] = None,
) -> pd.DataFrame:
    """Grid of displayed strings, indexed by row number with letter columns."""
    sheet = workbook.sheet(sheet_name)
    rows = sheet.max_row
    cols = sheet.max_col
    grid = [["" for _ in range(cols)] for _ in range(rows)]
    for address, _cell in sheet:
        grid[address.row - 1][address.col - 1] = workbook.display(sheet.name, address, preference)
    return pd.DataFrame(grid, index=range(1, rows + 1), columns=_column_letters(cols))


class CsvExporter(WorkbookExporter):
    """Exporter writing one sheet as CSV"""

    def __init__(self, sheet_name: Optional[str] = None, preference: Optional[DisplayPreference] = None):
        self.sheet_name = sheet_name
        self.preference = preference

    @property
    def supported_extensions(self) -> List[str]:
        return [".csv"]

    def export(self, workbook: Workbook, path: Union[str, Path]) -> Path:
        path = Path(path)
        df = sheet_to_dataframe(workbook, self.sheet_name, self.preference)
        try:
            df.to_csv(path, index=False, header=False)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e
        logger.info("workbook_exported", path=str(path), format="csv", rows=len(df))
        return path
