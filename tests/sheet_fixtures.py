import datetime as dt
import re
import zipfile
from functools import wraps
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from portfolio_sheets import month_sheet_name
from portfolio_workbook import PortfolioWorkbook, SheetGrid


def report_test(fn):
    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        test_name = f"{self.__class__.__name__}.{fn.__name__}"
        try:
            result = fn(self, *args, **kwargs)
        except Exception as exc:
            print(f"[FAIL] {test_name}: {exc}")
            raise
        else:
            print(f"[PASS] {test_name}")
            return result

    return wrapper


AccountValues = Tuple[str, Dict[dt.date, object]]


def add_month_sheet(
    book: PortfolioWorkbook,
    year: int,
    month: int,
    accounts: Sequence[AccountValues],
    name: Optional[str] = None,
) -> SheetGrid:
    """
    Lay out a month sheet the way the tool expects: baseline date in B1, one
    column per day after it, accounts from row 4 and a Total row below them.
    """
    first_day = dt.date(year, month, 1)
    grid = book.add_sheet(name or month_sheet_name(first_day))

    columns: Dict[dt.date, int] = {}
    current = first_day - dt.timedelta(days=1)
    column = 2
    while current.month == month or column == 2:
        grid.set_value(1, column, current)
        columns[current] = column
        column += 1
        current += dt.timedelta(days=1)

    for offset, (account_name, values) in enumerate(accounts):
        row = 4 + offset
        grid.set_value(row, 1, account_name)
        for day, value in values.items():
            grid.set_value(row, columns[day], value)

    grid.set_value(4 + len(accounts), 1, "Total")
    return grid


def january_2026_book() -> PortfolioWorkbook:
    book = PortfolioWorkbook.create()
    add_month_sheet(
        book,
        2026,
        1,
        [("Cash", {dt.date(2025, 12, 31): 1000, dt.date(2026, 1, 16): 1050})],
    )
    return book


def february_2026_book() -> PortfolioWorkbook:
    book = PortfolioWorkbook.create()
    add_month_sheet(
        book,
        2026,
        2,
        [
            ("Cash", {dt.date(2026, 1, 31): 1000, dt.date(2026, 2, 1): 1010, dt.date(2026, 2, 20): 1100}),
            ("Broker", {dt.date(2026, 1, 31): 5000, dt.date(2026, 2, 20): 5200}),
        ],
    )
    return book


def add_dashboard(
    book: PortfolioWorkbook,
    months: Sequence[str],
    rows: Dict[str, List[Optional[object]]],
    title: Optional[str] = "FY 2025",
    totals: Optional[Dict[str, object]] = None,
    sheet_name: str = "Dashboard",
) -> SheetGrid:
    """Title in A1, month header on row 3 from column B, labelled metric rows below."""
    grid = book.add_sheet(sheet_name)
    if title:
        grid.set_value(1, 1, title)
    for offset, label in enumerate(months):
        grid.set_value(3, 2 + offset, label)
    total_column = 2 + len(months)
    if totals is not None:
        grid.set_value(3, total_column, "Total")

    for row_offset, (label, values) in enumerate(rows.items()):
        row = 4 + row_offset
        grid.set_value(row, 1, label)
        for offset, value in enumerate(values):
            if value is not None:
                grid.set_value(row, 2 + offset, value)
        if totals and label in totals:
            grid.set_value(row, total_column, totals[label])
    return grid


def save_with_cached_results(
    book: PortfolioWorkbook, path: Path, results: Dict[str, Dict[str, object]]
) -> None:
    """
    Save ``book`` and store ``results`` (sheet name -> {"B4": value}) as the
    cached results of those formula cells, the way a spreadsheet application
    leaves them after recalculating. openpyxl never writes these itself.
    """
    book.save(path)
    titles = [ws.title for ws in book.workbook.worksheets]

    with zipfile.ZipFile(path) as archive:
        parts = {name: archive.read(name) for name in archive.namelist()}

    for title, cells in results.items():
        part = f"xl/worksheets/sheet{titles.index(title) + 1}.xml"
        xml = parts[part].decode("utf-8")
        for coordinate, value in cells.items():
            pattern = re.compile(rf'(<c r="{coordinate}"[^>]*>)<f>(.*?)</f>(?:<v\s*/>|<v></v>)?')
            xml, count = pattern.subn(lambda m: f"{m.group(1)}<f>{m.group(2)}</f><v>{value}</v>", xml)
            if count != 1:
                raise ValueError(f"No formula cell {coordinate} on {title}")
        parts[part] = xml.encode("utf-8")

    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, data in parts.items():
            archive.writestr(name, data)
