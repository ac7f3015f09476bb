#!/usr/bin/env python3
"""
Terminal dashboard for a portfolio workbook kept as one sheet per month.

Usage:
    python portfolio_cli.py                      # interactive dashboard
    python portfolio_cli.py view [--month 2026-02] [--date 2026-02-15] [--file my_portfolio.xlsx]
    python portfolio_cli.py add  [--date 2026-02-15] [--file my_portfolio.xlsx]
    python portfolio_cli.py interactive [--month 2026-02] [--date 2026-02-15]

``add`` prompts for each account's value on the given day, creating the month
sheet from the previous month when it does not exist yet. When the workbook
is missing (or holds no month sheets) both ``add`` and ``interactive`` walk
through creating the first month.

Set PORTFOLIO_ASCII=1 to force plain ASCII symbols, or PORTFOLIO_UNICODE=1 to
force Unicode ones; ASCII wins when both are set.
"""

from __future__ import annotations

import argparse
import datetime as dt
import logging
import os
import re
import sys
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, TextIO, Tuple

from rich import box
from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from fy_summary import (
    FySummary,
    chart_months,
    compute_fy_totals,
    compute_total_cash,
    compute_total_pnl,
    compute_total_return,
    extract_fy_summary,
    format_fy_month_label,
)
from portfolio_sheets import (
    AccountSeed,
    SheetInfo,
    build_sheet_from_scratch,
    clamp_to_available_date,
    ensure_month_sheet,
    has_portfolio_sheets,
    month_sheet_name,
    move_by_day,
    parse_sheet,
    select_sheet,
    select_sheet_for_interactive,
    shift_months,
)
from portfolio_snapshot import RECENT_DAY_ROWS, Snapshot, build_snapshot, find_latest_snapshot
from portfolio_workbook import PortfolioWorkbook, open_workbook

logger = logging.getLogger(__name__)

DEFAULT_WORKBOOK = "my_portfolio.xlsx"
APP_TITLE = "my-portfolio-cli"
APP_VERSION = "1.0"
COMMANDS = ("view", "add", "interactive")
HELP_TOKENS = ("-h", "--help", "help")
TWO_PLACES = Decimal("0.01")
WHOLE = Decimal("1")
BAR_WIDTH = 18
NO_DATA_MESSAGE = "Sheet does not contain recognizable portfolio data."

QUIT = "quit"
ADD = "add"

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})$")


@dataclass(frozen=True)
class Symbols:
    currency_prefix: str
    bar_char: str


UNICODE_SYMBOLS = Symbols(currency_prefix="£", bar_char="█")
ASCII_SYMBOLS = Symbols(currency_prefix="GBP ", bar_char="#")


def use_unicode_symbols(
    environ: Optional[Mapping[str, str]] = None,
    stream: Optional[TextIO] = None,
    platform: Optional[str] = None,
) -> bool:
    environ = os.environ if environ is None else environ
    stream = sys.stdout if stream is None else stream
    platform = sys.platform if platform is None else platform

    if environ.get("PORTFOLIO_ASCII", "").strip() == "1":
        return False
    if environ.get("PORTFOLIO_UNICODE", "").strip() == "1":
        return True

    isatty = getattr(stream, "isatty", None)
    if not (callable(isatty) and isatty()):
        return False

    if platform.startswith("win"):
        if environ.get("WT_SESSION", "").strip():
            return True
        return "vscode" in environ.get("TERM_PROGRAM", "").lower()

    encoding = (getattr(stream, "encoding", None) or "").lower().replace("_", "-")
    return "utf-8" in encoding or encoding == "utf8"


class DashboardRenderer:
    def __init__(self, console: Console, symbols: Symbols):
        self.console = console
        self.symbols = symbols

    def _amount(self, value: Decimal, places: Decimal = TWO_PLACES) -> str:
        rounded = abs(value).quantize(places, rounding=ROUND_HALF_UP)
        if places == WHOLE:
            return f"{self.symbols.currency_prefix}{rounded:,.0f}"
        return f"{self.symbols.currency_prefix}{rounded:,.2f}"

    def money(self, value: Decimal) -> str:
        sign = "-" if value < 0 else ""
        return f"[white]{sign}{self._amount(value)}[/]"

    def change(self, value: Decimal) -> str:
        color = "green" if value >= 0 else "red"
        sign = "+" if value >= 0 else "-"
        return f"[{color}]{sign}{self._amount(value)}[/]"

    def percent(self, value: Decimal) -> str:
        color = "green" if value >= 0 else "red"
        sign = "+" if value >= 0 else ""
        scaled = (value * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        return f"[{color}]{sign}{scaled:,.2f}%[/]"

    def money_or_dash(self, value: Optional[Decimal]) -> str:
        return self.money(value) if value is not None else "[grey50]-[/]"

    def change_or_dash(self, value: Optional[Decimal]) -> str:
        return self.change(value) if value is not None else "[grey50]-[/]"

    def percent_or_dash(self, value: Optional[Decimal]) -> str:
        return self.percent(value) if value is not None else "[grey50]-[/]"

    def bar(self, value: Decimal, maximum: Decimal, width: int = BAR_WIDTH) -> str:
        ratio = abs(value) / maximum
        length = max(0, min(int(round(float(ratio * width))), width))
        filled = (self.symbols.bar_char * length).ljust(width)
        color = "green" if value >= 0 else "red"
        sign = "+" if value >= 0 else "-"
        return f"[{color}]{filled}[/] {sign}{self._amount(value, WHOLE)}"

    @property
    def expand(self) -> bool:
        return self.console.is_terminal

    def _panel(self, body, title: Optional[str] = None) -> Panel:
        return Panel(
            body,
            title=title,
            title_align="left",
            box=box.ROUNDED,
            padding=(0, 1),
            expand=self.expand,
        )

    def _table(self) -> Table:
        return Table(box=box.ROUNDED, border_style="grey37", expand=self.expand)

    def header_panel(
        self, sheet_name: str, snapshot: Snapshot, selected_date: dt.date, status: Optional[str]
    ) -> Panel:
        grid = Table.grid(expand=True)
        grid.add_column(ratio=1)
        grid.add_column(justify="right", no_wrap=True)
        grid.add_row(
            f"[bold white]Portfolio Status[/]  [grey50]({escape(sheet_name)})[/]",
            f"[bold yellow]{APP_TITLE} v{APP_VERSION}[/]",
        )
        grid.add_row(f"[bright_black]Selected {long_date(selected_date)}[/]", "")
        if snapshot.date != selected_date:
            grid.add_row(f"[yellow]Showing last data from {long_date(snapshot.date)}[/]", "")
        else:
            grid.add_row(f"[bright_black]As of {long_date(snapshot.date)}[/]", "")
        if status and status.strip():
            grid.add_row(f"[grey50]{escape(status)}[/]", "")
        return Panel(grid, box=box.DOUBLE, border_style="cadet_blue", padding=(0, 1), expand=self.expand)

    def accounts_panel(self, snapshot: Snapshot) -> Panel:
        table = self._table()
        table.add_column("[bold]Account[/]")
        table.add_column("[bold]Value[/]", justify="right")
        table.add_column("[bold]Day PnL[/]", justify="right")
        table.add_column("[bold]Day %[/]", justify="right")
        for account in snapshot.accounts:
            table.add_row(
                escape(account.name),
                self.money(account.current),
                self.change(account.change),
                self.percent(account.change_pct),
            )
        return self._panel(table, "Accounts")

    def summary_panel(self, snapshot: Snapshot, fy_summary: Optional[FySummary], selected_date: dt.date) -> Panel:
        grid = Table.grid(padding=(0, 2))
        grid.add_column(no_wrap=True)
        grid.add_column(justify="right")
        grid.add_row("Total", self.money(snapshot.total))
        grid.add_row("Day PnL", f"{self.change(snapshot.total_change)}  {self.percent(snapshot.total_change_pct)}")
        grid.add_row("MTD", f"{self.change(snapshot.month_to_date)}  {self.percent(snapshot.month_to_date_pct)}")

        totals = compute_fy_totals(fy_summary, selected_date) if fy_summary is not None else None
        if totals is not None:
            grid.add_row("FY PnL", self.change_or_dash(totals.pnl_ytd))
            grid.add_row("FY Return", self.percent_or_dash(totals.return_ytd))
            grid.add_row("FY Cash", self.money_or_dash(totals.cash_latest))
            if totals.pnl_total is not None:
                grid.add_row("FY Total PnL", self.change(totals.pnl_total))
            if totals.return_total is not None:
                grid.add_row("FY Total Return", self.percent(totals.return_total))
            if totals.cash_total is not None:
                grid.add_row("FY Total Cash", self.money(totals.cash_total))
        return self._panel(grid, "Summary")

    def recent_panel(self, snapshot: Snapshot) -> Panel:
        table = self._table()
        table.add_column("Date")
        table.add_column("PnL", justify="right")
        table.add_column("%", justify="right")
        for day in snapshot.recent_changes:
            table.add_row(f"{day.date:%d-%m-%Y}", self.change(day.change), self.percent(day.change_pct))
        return self._panel(table, f"Recent {RECENT_DAY_ROWS} Days")

    def fy_panel(self, summary: Optional[FySummary], selected_date: dt.date) -> Panel:
        if summary is None:
            return self._panel("[grey50]FY data not found.[/]", "FY Summary")

        table = self._table()
        table.add_column("Month")
        table.add_column("Return", justify="right")
        table.add_column("Cash", justify="right")
        table.add_column("PnL", justify="right")
        for month in summary.months:
            if not month.has_values:
                continue
            label = escape(format_fy_month_label(summary, month))
            if month.month_number == selected_date.month:
                label = f"[bold]{label}[/]"
            table.add_row(
                label,
                self.percent_or_dash(month.monthly_return),
                self.money_or_dash(month.cash),
                self.change_or_dash(month.pnl),
            )

        total_pnl = compute_total_pnl(summary)
        total_return = compute_total_return(summary)
        total_cash = compute_total_cash(summary)
        if total_pnl is not None or total_return is not None or total_cash is not None:
            table.add_row(
                "[bold]Total[/]",
                self.percent_or_dash(total_return),
                self.money_or_dash(total_cash),
                self.change_or_dash(total_pnl),
            )
        return self._panel(table, escape(summary.title))

    def fy_chart_panel(self, summary: Optional[FySummary], selected_date: dt.date, snapshot: Snapshot) -> Panel:
        if summary is None:
            return self._panel("[grey50]No chart data.[/]", "FY PnL Chart")

        rows = chart_months(summary, selected_date, snapshot.month_to_date)
        if not rows:
            return self._panel("[grey50]No PnL data.[/]", "FY PnL Chart")

        maximum = max(abs(row.pnl) for row in rows) or Decimal("1")
        table = self._table()
        table.add_column("Month")
        table.add_column("PnL", no_wrap=True)
        for row in rows:
            table.add_row(escape(row.label), self.bar(row.pnl, maximum))
        return self._panel(table, "FY PnL Chart")

    def hints_panel(self, interactive: bool) -> Panel:
        if interactive:
            arrows = "←/→" if self.symbols is UNICODE_SYMBOLS else "Left/Right"
            updown = "↑/↓" if self.symbols is UNICODE_SYMBOLS else "Up/Down"
            text = (
                "[grey50]Controls:[/]\n"
                f"[bright_black]{arrows}[/] Change month  [bright_black]{updown}[/] Change day\n"
                "[bright_black]A[/] Add entry (creates month if missing)  [bright_black]Q[/] Quit"
            )
        else:
            text = (
                "[grey50]Commands:[/]\n"
                "[bright_black]view[/]  Show snapshot\n"
                "[bright_black]add[/]   Add daily values"
            )
        return self._panel(text)

    def render(
        self,
        workbook_path: Path,
        sheet_name: str,
        snapshot: Snapshot,
        selected_date: dt.date,
        status: Optional[str],
        interactive: bool,
        fy_summary: Optional[FySummary],
    ) -> None:
        if self.console.is_terminal:
            self.console.clear()

        body = Table.grid(expand=self.expand, padding=(0, 1))
        body.add_column(ratio=2)
        body.add_column(ratio=1)
        body.add_column(ratio=1)
        body.add_row(
            Group(self.accounts_panel(snapshot), self.recent_panel(snapshot)),
            Group(self.fy_panel(fy_summary, selected_date), self.fy_chart_panel(fy_summary, selected_date, snapshot)),
            Group(self.summary_panel(snapshot, fy_summary, selected_date), self.hints_panel(interactive)),
        )
        footer = self._panel(
            f"[grey50]File:[/] {escape(str(workbook_path))}  [grey50]Sheet:[/] {escape(sheet_name)}"
        )

        self.console.print(self.header_panel(sheet_name, snapshot, selected_date, status))
        self.console.print(body)
        self.console.print(footer)


def long_date(value: dt.date) -> str:
    return f"{value:%A, %b} {value.day}, {value.year}"


def print_help(console: Console) -> None:
    text = (
        f"[bold]{APP_TITLE}[/]\n"
        "Usage:\n"
        "  [grey50]portfolio-cli view [--month 2026-02] [--date 2026-02-15] [--file my_portfolio.xlsx][/]\n"
        "  [grey50]portfolio-cli add  [--date 2026-02-15] [--file my_portfolio.xlsx][/]\n"
        "  [grey50]portfolio-cli interactive [--month 2026-02] [--date 2026-02-15] [--file my_portfolio.xlsx][/]\n\n"
        "Commands (optional):\n"
        "  [bold]view[/]  Show the latest snapshot (or a specific month/date)\n"
        "  [bold]add[/]   Add a daily snapshot (prompts for account values)\n"
        "  [bold]interactive[/]  Interactive dashboard (arrows to navigate)\n\n"
        "If no command is provided, interactive mode starts by default.\n"
        "Add --debug to log what the tool is doing."
    )
    console.print(Panel(text, box=box.ROUNDED, padding=(1, 1), expand=False))


def parse_date_option(raw: str) -> dt.date:
    text = raw.strip()
    if not _DATE_PATTERN.match(text):
        raise ValueError("Invalid date. Use yyyy-MM-dd.")
    try:
        return dt.datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValueError("Invalid date. Use yyyy-MM-dd.") from exc


def parse_month_option(raw: str) -> dt.date:
    match = _MONTH_PATTERN.match(raw.strip())
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValueError("Invalid month. Use yyyy-MM.")
    return dt.date(int(match.group(1)), int(match.group(2)), 1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portfolio-cli",
        description="View and update a monthly portfolio workbook.",
        add_help=False,
    )
    parser.add_argument("command", nargs="?", default="interactive")
    parser.add_argument(
        "--file",
        default=DEFAULT_WORKBOOK,
        help="Path to the portfolio workbook (.xlsx).",
    )
    parser.add_argument("--date", help="Day to show or record, yyyy-MM-dd.")
    parser.add_argument("--month", help="Month to show, yyyy-MM.")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose logging.",
    )
    return parser


class _LineStream:
    """Reads answers line by line and raises EOFError once the stream is exhausted, like ``input()``."""

    def __init__(self, stream: TextIO):
        self.stream = stream

    def readline(self) -> str:
        line = self.stream.readline()
        if not line:
            raise EOFError("No more input")
        # Prompt only falls back to its default on an exactly empty answer.
        return line.rstrip("\r\n")


class Prompter:
    def __init__(self, console: Console, stream: Optional[TextIO] = None):
        self.console = console
        self.stream = _LineStream(stream) if stream is not None else None

    def ask_text(self, label: str, default: Optional[str] = None, show_default: bool = True) -> str:
        extra = {} if default is None else {"default": default}
        return Prompt.ask(
            label, console=self.console, stream=self.stream, show_default=show_default, **extra
        )

    def ask_decimal(self, label: str, default: Optional[Decimal] = None) -> Decimal:
        while True:
            raw = self.ask_text(label, None if default is None else str(default))
            try:
                value = Decimal(raw.strip().replace(",", ""))
            except InvalidOperation:
                self.console.print("[red]Please enter a number.[/]")
                continue
            if not value.is_finite() or value < 0:
                self.console.print("[red]Value must be zero or greater.[/]")
                continue
            return value

    def ask_date(self, today: dt.date) -> dt.date:
        while True:
            raw = self.ask_text("Date (yyyy-MM-dd)", today.isoformat())
            try:
                return parse_date_option(raw)
            except ValueError:
                self.console.print("[red]Invalid date. Try again.[/]")

    def confirm(self, question: str) -> bool:
        return Confirm.ask(question, console=self.console, default=False, stream=self.stream)


def prompt_for_accounts(prompter: Prompter, date: dt.date) -> List[AccountSeed]:
    accounts: List[AccountSeed] = []
    while True:
        name = prompter.ask_text("Account name (blank to finish)", "", show_default=False).strip()
        if not name:
            if not accounts:
                prompter.console.print("[red]Please add at least one account.[/]")
                continue
            break
        value = prompter.ask_decimal(f"{escape(name)} value ({date:%Y-%m-%d})")
        accounts.append(AccountSeed(name, value))
    return accounts


def write_day_values(prompter: Prompter, info: SheetInfo, column: int) -> bool:
    """Prompt for every account's value in ``column``; False when the user declines to overwrite."""
    if info.column_has_data(column) and not prompter.confirm("Values already exist for this date. Overwrite?"):
        return False

    previous_column = info.previous_date_column(column)
    for account in info.account_rows:
        default = info.value(account.row, previous_column) if previous_column is not None else Decimal("0")
        value = prompter.ask_decimal(f"{escape(account.name)} value", default)
        info.grid.set_value(account.row, column, value)
    return True


@dataclass
class UiState:
    selected_date: dt.date
    status_message: Optional[str] = None
    is_month_matched: bool = False


def apply_key(state: UiState, key: str, dates: Sequence[dt.date]) -> Tuple[UiState, Optional[str]]:
    """Next state for one key press, plus QUIT/ADD when the loop has work to do."""
    key = key.lower()
    if key in ("q", "escape"):
        return state, QUIT
    if key == "a":
        return state, ADD
    if key == "left":
        return replace(state, selected_date=shift_months(state.selected_date, -1)), None
    if key == "right":
        return replace(state, selected_date=shift_months(state.selected_date, 1)), None
    if key in ("up", "down"):
        delta = 1 if key == "up" else -1
        if state.is_month_matched:
            selected = move_by_day(dates, state.selected_date, delta)
        else:
            selected = state.selected_date + dt.timedelta(days=delta)
        return replace(state, selected_date=selected), None
    return state, None


_ARROWS = {"[A": "up", "[B": "down", "[C": "right", "[D": "left"}
_WINDOWS_ARROWS = {"H": "up", "P": "down", "K": "left", "M": "right"}


def read_key() -> str:
    """Block for one key press and return its name ("up", "escape", "q", ...)."""
    if os.name == "nt":
        import msvcrt

        ch = msvcrt.getwch()
        if ch in ("\x00", "\xe0"):
            return _WINDOWS_ARROWS.get(msvcrt.getwch(), "")
        if ch == "\x1b":
            return "escape"
        if ch == "\x03":
            raise KeyboardInterrupt
        return ch.lower()

    import select
    import termios
    import tty

    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        ch = os.read(fd, 1)
        if ch == b"\x1b":
            if select.select([fd], [], [], 0.05)[0]:
                return _ARROWS.get(os.read(fd, 2).decode(errors="ignore"), "")
            return "escape"
        if ch == b"\x03":
            raise KeyboardInterrupt
        return ch.decode(errors="ignore").lower()
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


class PortfolioCli:
    def __init__(
        self,
        console: Console,
        workbook_path: Path,
        date: Optional[dt.date] = None,
        month: Optional[dt.date] = None,
        symbols: Symbols = ASCII_SYMBOLS,
        prompter: Optional[Prompter] = None,
        key_reader: Callable[[], str] = read_key,
        today: Optional[dt.date] = None,
    ):
        self.console = console
        self.workbook_path = Path(workbook_path)
        self.date = date
        self.month = month
        self.renderer = DashboardRenderer(console, symbols)
        self.prompter = prompter or Prompter(console)
        self.key_reader = key_reader
        self.today = today or dt.date.today()

    def error(self, message: str) -> None:
        self.console.print(f"[red]{message}[/]")

    def run_view(self) -> int:
        if not self.workbook_path.exists():
            self.console.print(f"[red]Workbook not found:[/] {escape(str(self.workbook_path))}")
            return 1

        with open_workbook(self.workbook_path) as workbook:
            sheet = select_sheet(workbook, month=self.month, date=self.date)
            if sheet is None:
                self.error("No matching month sheet found.")
                return 1

            info = parse_sheet(sheet)
            if not info.has_recognizable_data:
                self.error(NO_DATA_MESSAGE)
                return 1

            snapshot = find_latest_snapshot(info, self.date)
            if snapshot is None:
                self.error("No data found for that date/month.")
                return 1

            fy_summary = extract_fy_summary(workbook)
            self.renderer.render(
                self.workbook_path, sheet.name, snapshot, snapshot.date, None, False, fy_summary
            )
        return 0

    def run_add(self) -> int:
        if not self.workbook_path.exists():
            return 0 if self.initialize_from_scratch(None) is not None else 1

        with open_workbook(self.workbook_path) as workbook:
            if not has_portfolio_sheets(workbook):
                return 0 if self.initialize_from_scratch(workbook) is not None else 1

            date = self.date or self.prompter.ask_date(self.today)
            sheet = ensure_month_sheet(workbook, date)
            info = parse_sheet(sheet)
            if not info.has_recognizable_data:
                self.error(NO_DATA_MESSAGE)
                return 1

            column = info.column_for(date)
            if column is None:
                self.console.print(f"[red]Date column not found in sheet:[/] {date:%Y-%m-%d}")
                return 1

            if not write_day_values(self.prompter, info, column):
                return 0

            workbook.save(self.workbook_path)
        self.console.print(f"[green]Saved:[/] {escape(str(self.workbook_path))}")
        return 0

    def add_values_interactive(self, date: dt.date) -> str:
        with open_workbook(self.workbook_path) as workbook:
            sheet = ensure_month_sheet(workbook, date)
            info = parse_sheet(sheet)
            if not info.has_recognizable_data:
                return NO_DATA_MESSAGE

            column = info.column_for(date)
            if column is None:
                return f"Date column not found: {date:%Y-%m-%d}"

            if self.console.is_terminal:
                self.console.clear()
            self.console.print(
                Panel(
                    f"[bold]Add Values[/]\n[grey50]Sheet:[/] {escape(sheet.name)}\n[grey50]Date:[/] {date:%Y-%m-%d}",
                    box=box.ROUNDED,
                    padding=(0, 1),
                    expand=False,
                )
            )
            self.console.print()

            if not write_day_values(self.prompter, info, column):
                return "Add canceled."
            workbook.save(self.workbook_path)
        return f"Saved values for {date:%Y-%m-%d}."

    def initialize_from_scratch(self, workbook: Optional[PortfolioWorkbook]) -> Optional[UiState]:
        if self.console.is_terminal:
            self.console.clear()
        self.console.print("[yellow]No portfolio data found. Let's create your first month.[/]")

        date = self.date or self.prompter.ask_date(self.today)
        accounts = prompt_for_accounts(self.prompter, date)
        if not accounts:
            self.error("At least one account is required.")
            return None

        book = workbook or PortfolioWorkbook.create(self.workbook_path)
        name = month_sheet_name(date)
        sheet = book.find_sheet(name) or book.add_sheet(name)
        build_sheet_from_scratch(sheet, date, accounts)
        book.save(self.workbook_path)
        logger.info("Created %s in %s with %d accounts", name, self.workbook_path, len(accounts))

        return UiState(
            selected_date=date,
            status_message=f"Created {name} with {len(accounts)} accounts.",
            is_month_matched=True,
        )

    def initialize_interactive_state(self) -> Optional[UiState]:
        if not self.workbook_path.exists():
            return self.initialize_from_scratch(None)

        with open_workbook(self.workbook_path) as workbook:
            if not has_portfolio_sheets(workbook):
                return self.initialize_from_scratch(workbook)

            requested = self.date or self.month or self.today
            selection = select_sheet_for_interactive(workbook, requested)
            if selection.sheet is None:
                self.error("No portfolio sheets found.")
                return None

            info = parse_sheet(selection.sheet)
            adjusted = clamp_to_available_date(info.dates(), selection.display_date)
            return UiState(
                selected_date=adjusted if selection.month_matched else requested,
                status_message=selection.status_message,
                is_month_matched=selection.month_matched,
            )

    def run_interactive(self) -> int:
        if not self.console.is_terminal:
            self.error("Interactive mode requires a real console.")
            return 1

        state = self.initialize_interactive_state()
        if state is None:
            return 1

        while True:
            with open_workbook(self.workbook_path) as workbook:
                selection = select_sheet_for_interactive(workbook, state.selected_date)
                if selection.sheet is None:
                    self.error("No portfolio sheets found.")
                    return 1

                state.is_month_matched = selection.month_matched
                info = parse_sheet(selection.sheet)
                if not info.has_recognizable_data:
                    self.error(NO_DATA_MESSAGE)
                    return 1

                display_date = clamp_to_available_date(info.dates(), selection.display_date)
                if selection.month_matched and display_date != selection.display_date:
                    state.selected_date = display_date

                column = info.column_for(display_date) or info.date_columns[-1].column
                snapshot, has_data = build_snapshot(info, column, True)
                fy_summary = extract_fy_summary(workbook)

                status = state.status_message or selection.status_message
                if not has_data:
                    no_data = f"No entries for {state.selected_date:%Y-%m-%d}. Showing previous values."
                    status = f"{status} {no_data}" if status and status.strip() else no_data

                self.renderer.render(
                    self.workbook_path, selection.sheet.name, snapshot, state.selected_date, status, True, fy_summary
                )
                state.status_message = None
                dates = info.dates()

            state, action = apply_key(state, self.key_reader(), dates)
            if action == QUIT:
                return 0
            if action == ADD:
                message = self.add_values_interactive(state.selected_date)
                if message:
                    state.status_message = message


def main(
    argv: Optional[Sequence[str]] = None,
    console: Optional[Console] = None,
    input_stream: Optional[TextIO] = None,
    key_reader: Callable[[], str] = read_key,
    today: Optional[dt.date] = None,
) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    symbols = UNICODE_SYMBOLS if use_unicode_symbols() else ASCII_SYMBOLS
    console = console or Console()

    if argv and argv[0].strip().lower() in HELP_TOKENS:
        print_help(console)
        return 0

    args, extra = build_parser().parse_known_args(argv)
    log_level = logging.DEBUG if args.debug else logging.CRITICAL
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    if extra:
        logger.debug("Ignoring extra arguments: %s", extra)

    command = args.command.strip().lower()
    if command not in COMMANDS:
        console.print(f"[red]Unknown command:[/] {escape(command)}")
        print_help(console)
        return 1

    try:
        date = parse_date_option(args.date) if args.date is not None else None
        month = parse_month_option(args.month) if args.month is not None else None
    except ValueError as exc:
        console.print(f"[red]{exc}[/]")
        return 1

    cli = PortfolioCli(
        console,
        Path(args.file),
        date=date,
        month=month,
        symbols=symbols,
        prompter=Prompter(console, input_stream),
        key_reader=key_reader,
        today=today,
    )
    try:
        if command == "view":
            return cli.run_view()
        if command == "add":
            return cli.run_add()
        return cli.run_interactive()
    except Exception:
        logger.debug("Command %s failed", command, exc_info=True)
        console.print_exception()
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
