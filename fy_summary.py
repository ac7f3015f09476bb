"""
Financial year figures from the "Dashboard" sheet.

The dashboard is laid out by hand, so nothing is at a fixed address: the month
header is the first row (within the top 25) that names at least six months,
the Return/Cash/PnL rows are found by their labels in the first six columns,
and the title is the first cell in the top five rows starting with "FY".
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from portfolio_workbook import PortfolioWorkbook, SheetGrid

logger = logging.getLogger(__name__)

DASHBOARD_SHEET_NAME = "Dashboard"
DEFAULT_TITLE = "Financial Year"
HEADER_SCAN_ROWS = 25
TITLE_SCAN_ROWS = 5
LABEL_SCAN_COLUMNS = 6
MIN_MONTH_COLUMNS = 6

MONTH_ALIASES = {
    "jan": 1,
    "january": 1,
    "feb": 2,
    "february": 2,
    "mar": 3,
    "march": 3,
    "apr": 4,
    "april": 4,
    "may": 5,
    "jun": 6,
    "june": 6,
    "jul": 7,
    "july": 7,
    "aug": 8,
    "august": 8,
    "sep": 9,
    "sept": 9,
    "september": 9,
    "oct": 10,
    "october": 10,
    "nov": 11,
    "november": 11,
    "dec": 12,
    "december": 12,
}
MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(frozen=True)
class MonthColumn:
    column: int
    month_number: int
    label: str


@dataclass(frozen=True)
class FyMonth:
    label: str
    month_number: int
    monthly_return: Optional[Decimal]
    cash: Optional[Decimal]
    pnl: Optional[Decimal]

    @property
    def has_values(self) -> bool:
        return self.monthly_return is not None or self.cash is not None or self.pnl is not None


@dataclass
class FySummary:
    title: str
    months: List[FyMonth]
    total_return: Optional[Decimal] = None
    total_cash: Optional[Decimal] = None
    total_pnl: Optional[Decimal] = None


@dataclass
class FyTotals:
    return_ytd: Optional[Decimal]
    cash_latest: Optional[Decimal]
    pnl_ytd: Optional[Decimal]
    return_total: Optional[Decimal]
    cash_total: Optional[Decimal]
    pnl_total: Optional[Decimal]


@dataclass(frozen=True)
class ChartMonth:
    label: str
    month_number: int
    pnl: Decimal


def normalize_month(text: str) -> Optional[Tuple[int, str]]:
    number = MONTH_ALIASES.get(text.strip().lower())
    if number is None:
        return None
    return number, MONTH_LABELS[number - 1]


def sum_nullable(values: Iterable[Optional[Decimal]]) -> Optional[Decimal]:
    present = [value for value in values if value is not None]
    if not present:
        return None
    return sum(present, Decimal("0"))


def find_month_header(
    sheet: SheetGrid, last_row: int, last_column: int
) -> Tuple[int, List[MonthColumn], Optional[int]]:
    for row in range(1, min(last_row, HEADER_SCAN_ROWS) + 1):
        month_columns: List[MonthColumn] = []
        total_column: Optional[int] = None
        for column in range(1, last_column + 1):
            text = sheet.get_string(row, column)
            normalized = normalize_month(text)
            if normalized is not None:
                month_columns.append(MonthColumn(column, normalized[0], normalized[1]))
            elif text.lower() == "total":
                total_column = column
        if len(month_columns) >= MIN_MONTH_COLUMNS:
            return row, month_columns, total_column
    return 0, [], None


def find_row_by_label(sheet: SheetGrid, last_row: int, last_column: int, label: str) -> int:
    wanted = label.casefold()
    for row in range(1, last_row + 1):
        for column in range(1, min(last_column, LABEL_SCAN_COLUMNS) + 1):
            if sheet.get_string(row, column).casefold() == wanted:
                return row
    return 0


def find_title(sheet: SheetGrid, last_row: int, last_column: int) -> Optional[str]:
    for row in range(1, min(last_row, TITLE_SCAN_ROWS) + 1):
        for column in range(1, last_column + 1):
            text = sheet.get_string(row, column)
            if text.lower().startswith("fy"):
                return text
    return None


def extract_fy_summary(workbook: PortfolioWorkbook) -> Optional[FySummary]:
    """Read the FY table, or None when the workbook has no usable dashboard."""
    sheet = workbook.find_sheet(DASHBOARD_SHEET_NAME)
    if sheet is None:
        logger.debug("No %s sheet; FY summary unavailable", DASHBOARD_SHEET_NAME)
        return None

    last_row = sheet.last_row_used()
    last_column = sheet.last_column_used()
    if last_row == 0 or last_column == 0:
        return None

    header_row, month_columns, total_column = find_month_header(sheet, last_row, last_column)
    if header_row == 0 or not month_columns:
        logger.debug("No month header found on %s", sheet.name)
        return None

    return_row = find_row_by_label(sheet, last_row, last_column, "Return")
    cash_row = find_row_by_label(sheet, last_row, last_column, "Cash")
    pnl_row = find_row_by_label(sheet, last_row, last_column, "PnL")
    if return_row == 0 and cash_row == 0 and pnl_row == 0:
        logger.debug("No Return/Cash/PnL rows found on %s", sheet.name)
        return None

    def read(row: int, column: int) -> Optional[Decimal]:
        return sheet.get_number(row, column) if row else None

    months = [
        FyMonth(
            label=mc.label,
            month_number=mc.month_number,
            monthly_return=read(return_row, mc.column),
            cash=read(cash_row, mc.column),
            pnl=read(pnl_row, mc.column),
        )
        for mc in sorted(month_columns, key=lambda mc: mc.column)
    ]

    summary = FySummary(
        title=find_title(sheet, last_row, last_column) or DEFAULT_TITLE,
        months=months,
    )
    if total_column is not None:
        summary.total_return = read(return_row, total_column)
        summary.total_cash = read(cash_row, total_column)
        summary.total_pnl = read(pnl_row, total_column)

    logger.debug(
        "FY summary %r: %d months (header row %d, total column %s)",
        summary.title,
        len(months),
        header_row,
        total_column,
    )
    return summary


def compute_total_pnl(summary: FySummary) -> Optional[Decimal]:
    if summary.total_pnl is not None:
        return summary.total_pnl
    return sum_nullable(m.pnl for m in summary.months)


def compute_total_cash(summary: FySummary) -> Optional[Decimal]:
    if summary.total_cash is not None:
        return summary.total_cash
    cash_values = [m.cash for m in summary.months if m.cash is not None]
    return cash_values[-1] if cash_values else None


def compute_total_return(summary: FySummary) -> Optional[Decimal]:
    if summary.total_return is not None:
        return summary.total_return

    cash_values = [m.cash for m in summary.months if m.cash is not None]
    if cash_values and cash_values[0] != 0:
        return (cash_values[-1] - cash_values[0]) / cash_values[0]
    return sum_nullable(m.monthly_return for m in summary.months)


def compute_fy_totals(summary: FySummary, selected_date: dt.date) -> Optional[FyTotals]:
    """
    Year-to-date figures run from the first FY month up to the month of
    ``selected_date`` (or the last month with values when it is not listed).
    """
    months = [m for m in summary.months if m.has_values]
    if not months:
        return None

    end_index = len(months) - 1
    for index, month in enumerate(months):
        if month.month_number == selected_date.month:
            end_index = index

    ytd = months[: end_index + 1]
    cash_values = [m.cash for m in ytd if m.cash is not None]
    cash_start = cash_values[0] if cash_values else None
    cash_latest = cash_values[-1] if cash_values else None

    pnl_ytd = sum_nullable(m.pnl for m in ytd)
    if pnl_ytd is None and cash_start is not None and cash_latest is not None:
        pnl_ytd = cash_latest - cash_start

    if cash_start is not None and cash_latest is not None and cash_start != 0:
        return_ytd = (cash_latest - cash_start) / cash_start
    else:
        return_ytd = sum_nullable(m.monthly_return for m in ytd)

    return FyTotals(
        return_ytd=return_ytd,
        cash_latest=cash_latest,
        pnl_ytd=pnl_ytd,
        return_total=compute_total_return(summary),
        cash_total=compute_total_cash(summary),
        pnl_total=compute_total_pnl(summary),
    )


def fy_start_year(summary: FySummary) -> Optional[int]:
    for token in summary.title.split():
        if token.isdigit() and 2000 <= int(token) <= 2100:
            return int(token)
    return None


def format_fy_month_label(summary: FySummary, month: FyMonth) -> str:
    """``Apr-25`` style label; months before the FY's first month fall in the next year."""
    year = fy_start_year(summary)
    if year is None:
        return month.label
    start_month = summary.months[0].month_number if summary.months else 1
    month_year = year if month.month_number >= start_month else year + 1
    return f"{month.label}-{month_year % 100:02d}"


def chart_months(summary: FySummary, selected_date: dt.date, month_to_date: Decimal) -> List[ChartMonth]:
    """PnL per FY month, with the selected month replaced by the live month-to-date figure."""
    rows: List[ChartMonth] = []
    current_index = next(
        (i for i, m in enumerate(summary.months) if m.month_number == selected_date.month),
        None,
    )
    for index, month in enumerate(summary.months):
        pnl = month_to_date if index == current_index else month.pnl
        if pnl is None:
            continue
        rows.append(ChartMonth(format_fy_month_label(summary, month), month.month_number, pnl))
    return rows
