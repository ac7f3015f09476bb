"""
Month sheets of the portfolio workbook.

Each month lives on its own sheet named "Data Over time <Month> <yyyy>". Row 1
holds one date per column starting at column B: the first one is the last day
of the previous month (the carried-forward baseline), followed by every day of
the month. Account names sit in column A from row 4 down to the "Total" row.

This module finds those pieces inside the loosely structured grid, creates new
month sheets by copying the previous month, and bootstraps the very first
sheet when the workbook has none.
"""

from __future__ import annotations

import calendar
import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta
from openpyxl.utils.datetime import from_excel

from portfolio_workbook import ColumnSum, DayChange, PortfolioWorkbook, SheetGrid

logger = logging.getLogger(__name__)

SHEET_PREFIX = "Data Over time "
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
HEADER_ROW = 1
NAME_COLUMN = 1
FIRST_DATE_COLUMN = 2
FIRST_ACCOUNT_ROW = 4
MIN_ACCOUNT_VALUE = Decimal("1")
SERIAL_DATE_MIN = 20000
SERIAL_DATE_MAX = 60000
TOTAL_LABEL = "total"

_MONTH_PART = re.compile(r"^([A-Za-z]+) (\d{4})$")


class WorkbookStructureError(RuntimeError):
    """The workbook is missing a piece the month sheets cannot work without."""


@dataclass(frozen=True)
class DateColumn:
    date: dt.date
    column: int


@dataclass(frozen=True)
class AccountRow:
    name: str
    row: int


@dataclass
class SheetInfo:
    name: str
    date_columns: List[DateColumn]
    account_rows: List[AccountRow]
    total_row: int
    grid: SheetGrid = field(repr=False)

    @property
    def has_recognizable_data(self) -> bool:
        return bool(self.account_rows) and bool(self.date_columns)

    @property
    def baseline_column(self) -> int:
        return min(dc.column for dc in self.date_columns)

    def dates(self) -> List[dt.date]:
        return sorted(dc.date for dc in self.date_columns)

    def column_for(self, date: dt.date) -> Optional[int]:
        for dc in self.date_columns:
            if dc.date == date:
                return dc.column
        return None

    def date_for(self, column: int) -> dt.date:
        for dc in self.date_columns:
            if dc.column == column:
                return dc.date
        raise KeyError(f"Column {column} is not a date column of {self.name}")

    def previous_date_column(self, column: int) -> Optional[int]:
        earlier = [dc.column for dc in self.date_columns if dc.column < column]
        return max(earlier) if earlier else None

    def column_has_data(self, column: int) -> bool:
        return any(not self.grid.is_empty(account.row, column) for account in self.account_rows)

    def latest_data_column(self) -> Optional[int]:
        for dc in reversed(self.date_columns):
            if self.column_has_data(dc.column):
                return dc.column
        return None

    def previous_data_column(self, column: int) -> Optional[int]:
        previous = self.previous_date_column(column)
        while previous is not None:
            if self.column_has_data(previous):
                return previous
            previous = self.previous_date_column(previous)
        return None

    def value(self, row: int, column: int) -> Decimal:
        return self.grid.get_number(row, column) or Decimal("0")


@dataclass(frozen=True)
class AccountSeed:
    name: str
    value: Decimal


@dataclass(frozen=True)
class SheetSelection:
    sheet: Optional[SheetGrid]
    display_date: dt.date
    status_message: Optional[str]
    month_matched: bool


def header_date(grid: SheetGrid, row: int, column: int) -> Optional[dt.date]:
    """
    Read a header cell as a date. Tries, in order: a native date cell, a
    spreadsheet serial number in (20000, 60000), then free text.
    """
    native = grid.get_date(row, column)
    if native is not None:
        return native

    number = grid.get_number(row, column)
    if number is not None:
        if SERIAL_DATE_MIN < number < SERIAL_DATE_MAX:
            return from_excel(float(number)).date()
        return None

    text = grid.get_string(row, column)
    if not text or not any(ch.isdigit() for ch in text):
        return None
    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError):
        return None


def normalize_date_columns(date_columns: Sequence[DateColumn]) -> List[DateColumn]:
    """Keep the leading run of adjacent columns holding consecutive days."""
    ordered = sorted(date_columns, key=lambda dc: dc.column)
    if not ordered:
        return []

    contiguous = [ordered[0]]
    for candidate in ordered[1:]:
        previous = contiguous[-1]
        if candidate.column != previous.column + 1:
            break
        if candidate.date != previous.date + dt.timedelta(days=1):
            break
        contiguous.append(candidate)
    return contiguous


def find_total_row(grid: SheetGrid) -> int:
    last_row = grid.last_row_used() or 1
    for row in range(1, last_row + 1):
        if grid.get_string(row, NAME_COLUMN).casefold() == TOTAL_LABEL:
            return row
    raise WorkbookStructureError(f"Could not locate Total row in sheet {grid.name!r}.")


def parse_sheet(grid: SheetGrid) -> SheetInfo:
    last_column = grid.last_column_used() or 1
    candidates: List[DateColumn] = []
    for column in range(FIRST_DATE_COLUMN, last_column + 1):
        if grid.is_empty(HEADER_ROW, column):
            continue
        date = header_date(grid, HEADER_ROW, column)
        if date is not None:
            candidates.append(DateColumn(date, column))

    date_columns = normalize_date_columns(candidates)
    total_row = find_total_row(grid)
    first_date_column = date_columns[0].column if date_columns else FIRST_DATE_COLUMN

    account_rows: List[AccountRow] = []
    for row in range(FIRST_ACCOUNT_ROW, total_row):
        name = grid.get_string(row, NAME_COLUMN)
        if not name:
            continue
        value = grid.get_number(row, first_date_column)
        if value is not None and value >= MIN_ACCOUNT_VALUE:
            account_rows.append(AccountRow(name, row))

    logger.debug(
        "Parsed %s: %d date columns, %d accounts, total row %d",
        grid.name,
        len(date_columns),
        len(account_rows),
        total_row,
    )
    return SheetInfo(grid.name, date_columns, account_rows, total_row, grid)


def month_start(date: dt.date) -> dt.date:
    return date.replace(day=1)


def month_end(date: dt.date) -> dt.date:
    return date + relativedelta(day=31)


def shift_months(date: dt.date, months: int) -> dt.date:
    return date + relativedelta(months=months)


def month_sheet_name(date: dt.date) -> str:
    return f"{SHEET_PREFIX}{MONTH_NAMES[date.month - 1]} {date.year:04d}"


def month_from_sheet_name(name: str) -> Optional[dt.date]:
    if not name.casefold().startswith(SHEET_PREFIX.casefold()):
        return None
    match = _MONTH_PART.match(name[len(SHEET_PREFIX):].strip())
    if not match:
        return None
    wanted = match.group(1).casefold()
    for index, month_name in enumerate(MONTH_NAMES, start=1):
        if month_name.casefold() == wanted:
            return dt.date(int(match.group(2)), index, 1)
    return None


def month_sheets(workbook: PortfolioWorkbook) -> List[Tuple[dt.date, SheetGrid]]:
    found = []
    for grid in workbook.sheets():
        month = month_from_sheet_name(grid.name)
        if month is not None:
            found.append((month, grid))
    found.sort(key=lambda item: item[0])
    return found


def has_portfolio_sheets(workbook: PortfolioWorkbook) -> bool:
    return bool(month_sheets(workbook))


def find_latest_month_sheet(workbook: PortfolioWorkbook) -> Optional[SheetGrid]:
    candidates = month_sheets(workbook)
    return candidates[-1][1] if candidates else None


def find_previous_month_sheet(workbook: PortfolioWorkbook, date: dt.date) -> Optional[SheetGrid]:
    target = month_start(date)
    earlier = [grid for month, grid in month_sheets(workbook) if month < target]
    return earlier[-1] if earlier else None


def ensure_month_sheet(workbook: PortfolioWorkbook, date: dt.date) -> SheetGrid:
    name = month_sheet_name(date)
    existing = workbook.find_sheet(name)
    if existing is not None:
        return existing

    previous = find_previous_month_sheet(workbook, date)
    if previous is None:
        raise WorkbookStructureError("No previous month sheet found to copy from.")

    logger.info("Creating %s from %s", name, previous.name)
    sheet = workbook.copy_sheet(previous, name)
    initialize_new_month_sheet(sheet, previous, date)
    return sheet


def initialize_new_month_sheet(sheet: SheetGrid, previous: SheetGrid, date: dt.date) -> None:
    """
    Turn a fresh copy of the previous month into ``date``'s month: rewrite the
    header dates, carry the previous month's latest values into the baseline
    column and blank out every day column.
    """
    first_day = month_start(date)
    last_day = month_end(first_day)

    previous_info = parse_sheet(previous)
    if not previous_info.date_columns:
        raise WorkbookStructureError(f"Previous sheet {previous.name!r} does not contain date columns.")

    source_column = previous_info.latest_data_column() or previous_info.date_columns[-1].column
    last_used_column = sheet.last_column_used() or FIRST_DATE_COLUMN

    column = FIRST_DATE_COLUMN
    sheet.set_value(HEADER_ROW, column, first_day - dt.timedelta(days=1))
    current = first_day
    while current <= last_day:
        column += 1
        sheet.set_value(HEADER_ROW, column, current)
        current += dt.timedelta(days=1)

    for leftover in range(column + 1, last_used_column + 1):
        sheet.clear(HEADER_ROW, leftover)

    total_row = find_total_row(sheet)
    for row in range(HEADER_ROW + 1, total_row):
        sheet.set_value(row, FIRST_DATE_COLUMN, previous.get_value(row, source_column))
        for day_column in range(FIRST_DATE_COLUMN + 1, last_used_column + 1):
            sheet.clear(row, day_column)
    logger.debug("Carried %s column %d into %s", previous.name, source_column, sheet.name)


def build_sheet_from_scratch(sheet: SheetGrid, date: dt.date, accounts: Sequence[AccountSeed]) -> None:
    first_day = month_start(date)
    last_day = month_end(first_day)

    sheet.clear_all()
    sheet.set_value(HEADER_ROW, FIRST_DATE_COLUMN, first_day - dt.timedelta(days=1))
    column = FIRST_DATE_COLUMN + 1
    current = first_day
    while current <= last_day:
        sheet.set_value(HEADER_ROW, column, current)
        column += 1
        current += dt.timedelta(days=1)

    total_row = FIRST_ACCOUNT_ROW + len(accounts)
    change_row = total_row + 1
    target_column = FIRST_DATE_COLUMN + date.day

    for offset, account in enumerate(accounts):
        row = FIRST_ACCOUNT_ROW + offset
        sheet.set_value(row, NAME_COLUMN, account.name)
        sheet.set_value(row, FIRST_DATE_COLUMN, account.value)
        sheet.set_value(row, target_column, account.value)

    sheet.set_value(total_row, NAME_COLUMN, "Total")
    for total_column in range(FIRST_DATE_COLUMN, column):
        sheet.write_formula(total_row, total_column, ColumnSum(total_column, FIRST_ACCOUNT_ROW, total_row - 1))
    for day_column in range(FIRST_DATE_COLUMN + 1, column):
        sheet.write_formula(change_row, day_column, DayChange(day_column, day_column - 1, total_row))
    logger.debug("Built %s with %d accounts", sheet.name, len(accounts))


def select_sheet(
    workbook: PortfolioWorkbook,
    month: Optional[dt.date] = None,
    date: Optional[dt.date] = None,
) -> Optional[SheetGrid]:
    if month is not None:
        return workbook.find_sheet(month_sheet_name(month))
    if date is not None:
        return workbook.find_sheet(month_sheet_name(date))
    return find_latest_month_sheet(workbook)


def select_sheet_for_interactive(workbook: PortfolioWorkbook, requested: dt.date) -> SheetSelection:
    sheet = workbook.find_sheet(month_sheet_name(requested))
    if sheet is not None:
        return SheetSelection(sheet, requested, None, True)

    target = month_start(requested)
    candidates = month_sheets(workbook)
    earlier = [item for item in candidates if item[0] < target]
    later = [item for item in candidates if item[0] > target]
    if earlier:
        chosen_month, chosen = earlier[-1]
    elif later:
        chosen_month, chosen = later[0]
    else:
        return SheetSelection(None, requested, None, False)

    days_in_month = calendar.monthrange(chosen_month.year, chosen_month.month)[1]
    adjusted = chosen_month.replace(day=min(requested.day, days_in_month))
    status = (
        f"Month {requested:%Y-%m} not found. Showing {chosen_month:%Y-%m}. "
        "Press A to create it."
    )
    logger.debug("No sheet for %s; falling back to %s", requested, chosen.name)
    return SheetSelection(chosen, adjusted, status, False)


def clamp_to_available_date(dates: Sequence[dt.date], date: dt.date) -> dt.date:
    ordered = sorted(dates)
    if not ordered:
        return date
    if date in ordered:
        return date
    earlier = [d for d in ordered if d < date]
    return earlier[-1] if earlier else ordered[0]


def move_by_day(dates: Sequence[dt.date], current: dt.date, delta: int) -> dt.date:
    ordered = sorted(dates)
    if not ordered:
        return current
    if current in ordered:
        index = ordered.index(current)
    else:
        earlier = [i for i, d in enumerate(ordered) if d < current]
        index = earlier[-1] if earlier else 0
    return ordered[max(0, min(index + delta, len(ordered) - 1))]
