"""Day-over-day and month-to-date figures for one date column of a month sheet."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from portfolio_sheets import SheetInfo

logger = logging.getLogger(__name__)

RECENT_DAY_ROWS = 25
ZERO = Decimal("0")


@dataclass
class AccountSnapshot:
    name: str
    current: Decimal
    previous: Decimal
    change: Decimal
    change_pct: Decimal


@dataclass
class DailyChange:
    date: dt.date
    change: Decimal
    change_pct: Decimal


@dataclass
class Snapshot:
    date: dt.date
    accounts: List[AccountSnapshot]
    total: Decimal
    total_change: Decimal
    total_change_pct: Decimal
    month_to_date: Decimal
    month_to_date_pct: Decimal
    recent_changes: List[DailyChange]
    sheet_name: str


def percent_change(change: Decimal, base: Decimal) -> Decimal:
    # A zero base means "no reference value", not "no data".
    return change / base if base != ZERO else ZERO


def column_total(info: SheetInfo, column: int) -> Decimal:
    return sum((info.value(account.row, column) for account in info.account_rows), ZERO)


def effective_total(info: SheetInfo, column: int, carry_forward_if_empty: bool) -> Decimal:
    if not carry_forward_if_empty or info.column_has_data(column):
        return column_total(info, column)
    previous = info.previous_data_column(column)
    if previous is None:
        return ZERO
    return column_total(info, previous)


def recent_changes(info: SheetInfo, column: int, carry_forward_if_empty: bool) -> List[DailyChange]:
    window = sorted(
        (dc for dc in info.date_columns if dc.column <= column),
        key=lambda dc: dc.column,
    )[-(RECENT_DAY_ROWS + 1):]

    changes: List[DailyChange] = []
    for previous, current in zip(window, window[1:]):
        day_total = effective_total(info, current.column, carry_forward_if_empty)
        previous_total = effective_total(info, previous.column, carry_forward_if_empty)
        diff = day_total - previous_total
        changes.append(DailyChange(current.date, diff, percent_change(diff, previous_total)))
    return changes


def build_snapshot(info: SheetInfo, column: int, carry_forward_if_empty: bool) -> Tuple[Snapshot, bool]:
    """
    Build the snapshot for ``column`` and report whether that column holds any
    account value.

    With ``carry_forward_if_empty`` an empty column shows the nearest earlier
    populated column instead, and its day change is forced to zero.
    """
    has_data = info.column_has_data(column)
    previous_column = info.previous_date_column(column)
    effective_column = column
    if not has_data and carry_forward_if_empty:
        effective_column = info.previous_data_column(column) or column

    accounts: List[AccountSnapshot] = []
    for account in info.account_rows:
        current = info.value(account.row, effective_column)
        previous = info.value(account.row, previous_column) if previous_column is not None else ZERO
        if not has_data and carry_forward_if_empty:
            previous = current
        change = current - previous
        accounts.append(
            AccountSnapshot(account.name, current, previous, change, percent_change(change, previous))
        )

    total = sum((a.current for a in accounts), ZERO)
    previous_total = sum((a.previous for a in accounts), ZERO)
    total_change = total - previous_total

    baseline_total = column_total(info, info.baseline_column)
    month_to_date = total - baseline_total

    snapshot = Snapshot(
        date=info.date_for(column),
        accounts=accounts,
        total=total,
        total_change=total_change,
        total_change_pct=percent_change(total_change, previous_total),
        month_to_date=month_to_date,
        month_to_date_pct=percent_change(month_to_date, baseline_total),
        recent_changes=recent_changes(info, column, carry_forward_if_empty),
        sheet_name=info.name,
    )
    logger.debug(
        "Snapshot %s col %d (effective %d): total=%s change=%s mtd=%s has_data=%s",
        info.name,
        column,
        effective_column,
        total,
        total_change,
        month_to_date,
        has_data,
    )
    return snapshot, has_data


def find_latest_snapshot(info: SheetInfo, override_date: Optional[dt.date] = None) -> Optional[Snapshot]:
    """
    Snapshot for ``override_date`` when given (None if the sheet has no such
    day), otherwise for the latest column holding any value.
    """
    if override_date is not None:
        column = info.column_for(override_date)
        if column is None:
            return None
        return build_snapshot(info, column, False)[0]

    column = info.latest_data_column()
    if column is None:
        return None
    return build_snapshot(info, column, False)[0]
