"""
Workbook access for the portfolio tracker.

The parsing code never touches openpyxl directly. It talks to ``SheetGrid``,
which exposes a worksheet as a grid of typed cells (date, number, text) with
get/set/clear access and "last used" bounds, and to ``PortfolioWorkbook``,
which looks sheets up by name, copies them and saves the file.
"""

from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterator, List, Optional, Union

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import Cell
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

logger = logging.getLogger(__name__)

CellValue = Union[None, str, int, float, Decimal, dt.date, dt.datetime]


@dataclass(frozen=True)
class ColumnSum:
    """Total of ``first_row``..``last_row`` in ``column``."""

    column: int
    first_row: int
    last_row: int


@dataclass(frozen=True)
class DayChange:
    """Difference between the totals of ``column`` and ``previous_column``.

    Evaluates to 0 when the column total is 0 (a day with no entries yet).
    """

    column: int
    previous_column: int
    total_row: int


FormulaInstruction = Union[ColumnSum, DayChange]


def formula_text(instruction: FormulaInstruction) -> str:
    if isinstance(instruction, ColumnSum):
        letter = get_column_letter(instruction.column)
        return f"=SUM({letter}{instruction.first_row}:{letter}{instruction.last_row})"
    if isinstance(instruction, DayChange):
        current = f"{get_column_letter(instruction.column)}{instruction.total_row}"
        previous = f"{get_column_letter(instruction.previous_column)}{instruction.total_row}"
        return f"=IF({current}=0,0,{current}-{previous})"
    raise TypeError(f"Unsupported formula instruction: {instruction!r}")


def parse_number_text(raw: str) -> Optional[Decimal]:
    cleaned = raw.strip().replace(",", "")
    if not cleaned or cleaned.startswith("="):
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


class SheetGrid:
    """
    Typed, 1-based (row, column) access to a single worksheet.

    ``worksheet`` is the formula view that gets written and saved. ``values``
    is the same sheet loaded with ``data_only=True``; a formula cell reads as
    the result cached there by the last application that calculated the file,
    or as empty when there is none.
    """

    def __init__(self, worksheet: Worksheet, values: Optional[Worksheet] = None):
        self.worksheet = worksheet
        self.values = values

    @property
    def name(self) -> str:
        return self.worksheet.title

    def __repr__(self) -> str:
        return f"SheetGrid({self.name!r})"

    def _cell(self, row: int, column: int) -> Optional[Cell]:
        # Touching a cell through openpyxl creates it, so stay inside the
        # current dimensions to keep the used range stable.
        if row > self.worksheet.max_row or column > self.worksheet.max_column:
            return None
        return self.worksheet.cell(row=row, column=column)

    def get_value(self, row: int, column: int) -> CellValue:
        cell = self._cell(row, column)
        if cell is None:
            return None
        if cell.data_type != "f":
            return cell.value
        if self.values is None or row > self.values.max_row or column > self.values.max_column:
            return None
        return self.values.cell(row=row, column=column).value

    def get_formula(self, row: int, column: int) -> Optional[str]:
        cell = self._cell(row, column)
        if cell is None or cell.data_type != "f":
            return None
        return str(cell.value)

    def is_empty(self, row: int, column: int) -> bool:
        value = self.get_value(row, column)
        return value is None or (isinstance(value, str) and value == "")

    def get_string(self, row: int, column: int) -> str:
        value = self.get_value(row, column)
        if value is None:
            return ""
        if isinstance(value, dt.datetime):
            return value.date().isoformat() if value.time() == dt.time() else value.isoformat()
        if isinstance(value, dt.date):
            return value.isoformat()
        return str(value).strip()

    def get_date(self, row: int, column: int) -> Optional[dt.date]:
        value = self.get_value(row, column)
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, dt.date):
            return value
        return None

    def get_number(self, row: int, column: int) -> Optional[Decimal]:
        value = self.get_value(row, column)
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, Decimal):
            return value
        if isinstance(value, (int, float)):
            return Decimal(str(value))
        if isinstance(value, str):
            return parse_number_text(value)
        return None

    def set_value(self, row: int, column: int, value: CellValue) -> None:
        self.worksheet.cell(row=row, column=column, value=value)

    def clear(self, row: int, column: int) -> None:
        if row > self.worksheet.max_row or column > self.worksheet.max_column:
            return
        self.worksheet.cell(row=row, column=column).value = None

    def clear_all(self) -> None:
        for worksheet in (self.worksheet, self.values):
            if worksheet is not None and worksheet.max_row:
                worksheet.delete_rows(1, worksheet.max_row)

    def write_formula(self, row: int, column: int, instruction: FormulaInstruction) -> None:
        self.set_value(row, column, formula_text(instruction))

    def last_row_used(self) -> int:
        last = 0
        for row_index, values in enumerate(self.worksheet.iter_rows(values_only=True), start=1):
            if any(value is not None and value != "" for value in values):
                last = row_index
        return last

    def last_column_used(self) -> int:
        last = 0
        for values in self.worksheet.iter_rows(values_only=True):
            for column_index, value in enumerate(values, start=1):
                if value is not None and value != "" and column_index > last:
                    last = column_index
        return last


class PortfolioWorkbook:
    """
    A workbook held twice: ``workbook`` keeps formulas and is the one saved,
    ``values`` (optional) is the same file loaded with ``data_only=True`` so
    formula cells can be read as their cached results.
    """

    def __init__(self, workbook: Workbook, path: Optional[Path] = None, values: Optional[Workbook] = None):
        self.workbook = workbook
        self.path = path
        self.values = values

    @classmethod
    def create(cls, path: Optional[Path] = None) -> "PortfolioWorkbook":
        workbook = Workbook()
        # Drop the default "Sheet"; callers add their own before saving.
        workbook.remove(workbook.active)
        return cls(workbook, path)

    def _grid(self, worksheet: Worksheet) -> SheetGrid:
        values = None
        if self.values is not None and worksheet.title in self.values.sheetnames:
            values = self.values[worksheet.title]
        return SheetGrid(worksheet, values)

    def sheets(self) -> List[SheetGrid]:
        return [self._grid(ws) for ws in self.workbook.worksheets]

    def find_sheet(self, name: str) -> Optional[SheetGrid]:
        wanted = name.casefold()
        for worksheet in self.workbook.worksheets:
            if worksheet.title.casefold() == wanted:
                return self._grid(worksheet)
        return None

    def add_sheet(self, name: str) -> SheetGrid:
        logger.debug("Adding sheet %s", name)
        return SheetGrid(self.workbook.create_sheet(title=name))

    def copy_sheet(self, source: SheetGrid, name: str) -> SheetGrid:
        # The copy has no cached results of its own; its formulas read as empty.
        logger.debug("Copying sheet %s to %s", source.name, name)
        copied = self.workbook.copy_worksheet(source.worksheet)
        copied.title = name
        return SheetGrid(copied)

    def save(self, path: Optional[Path] = None) -> Path:
        if path is None and self.path is None:
            raise ValueError("No path given for saving the workbook.")
        target = Path(path or self.path)
        self.workbook.save(target)
        self.path = target
        logger.debug("Saved workbook to %s", target)
        return target

    def close(self) -> None:
        self.workbook.close()
        if self.values is not None:
            self.values.close()


@contextmanager
def open_workbook(path: Path) -> Iterator[PortfolioWorkbook]:
    """Load ``path`` for the duration of one operation and always close it."""
    logger.debug("Opening workbook %s", path)
    book = PortfolioWorkbook(load_workbook(path), Path(path), values=load_workbook(path, data_only=True))
    try:
        yield book
    finally:
        book.close()
        logger.debug("Closed workbook %s", path)
