import datetime as dt
import tempfile
import unittest
from decimal import Decimal
from pathlib import Path

import fy_summary as fy
from portfolio_workbook import PortfolioWorkbook, open_workbook
from sheet_fixtures import add_dashboard, report_test, save_with_cached_results

FY_MONTHS = ["Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec", "Jan", "Feb", "Mar"]
CALENDAR_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def dashboard_book(totals=None, **kwargs) -> PortfolioWorkbook:
    book = PortfolioWorkbook.create()
    add_dashboard(
        book,
        FY_MONTHS,
        {
            "Return": [0.01, 0.02, None],
            "Cash": [10000, 10200, 10100],
            "PnL": [100, 200, -100],
        },
        totals=totals or {"PnL": 200},
        **kwargs,
    )
    return book


class ExtractTests(unittest.TestCase):
    @report_test
    def test_reads_months_and_totals(self):
        summary = fy.extract_fy_summary(dashboard_book())

        self.assertIsNotNone(summary)
        self.assertEqual(summary.title, "FY 2025")
        self.assertEqual([m.label for m in summary.months], FY_MONTHS)
        april, may, june = summary.months[:3]
        self.assertEqual(april.monthly_return, Decimal("0.01"))
        self.assertEqual(april.cash, Decimal("10000"))
        self.assertEqual(may.pnl, Decimal("200"))
        self.assertIsNone(june.monthly_return)
        self.assertEqual(june.pnl, Decimal("-100"))
        self.assertTrue(june.has_values)
        self.assertFalse(summary.months[3].has_values)
        self.assertEqual(summary.total_pnl, Decimal("200"))
        self.assertIsNone(summary.total_cash)
        self.assertIsNone(summary.total_return)

    @report_test
    def test_sheet_name_is_case_insensitive(self):
        summary = fy.extract_fy_summary(dashboard_book(sheet_name="dashboard"))
        self.assertIsNotNone(summary)

    @report_test
    def test_missing_title_uses_default(self):
        summary = fy.extract_fy_summary(dashboard_book(title=None))
        self.assertEqual(summary.title, fy.DEFAULT_TITLE)

    @report_test
    def test_month_aliases(self):
        self.assertEqual(fy.normalize_month(" Sept "), (9, "Sep"))
        self.assertEqual(fy.normalize_month("MARCH"), (3, "Mar"))
        self.assertIsNone(fy.normalize_month("Total"))

        book = PortfolioWorkbook.create()
        add_dashboard(book, ["April", "May", "June", "July", "August", "September"], {"PnL": [1, 2]})
        summary = fy.extract_fy_summary(book)
        self.assertEqual([m.label for m in summary.months], ["Apr", "May", "Jun", "Jul", "Aug", "Sep"])

    @report_test
    def test_unusable_dashboards(self):
        self.assertIsNone(fy.extract_fy_summary(PortfolioWorkbook.create()))

        no_labels = PortfolioWorkbook.create()
        add_dashboard(no_labels, FY_MONTHS, {"Balance": [1, 2, 3]})
        self.assertIsNone(fy.extract_fy_summary(no_labels))

        few_months = PortfolioWorkbook.create()
        add_dashboard(few_months, FY_MONTHS[:5], {"PnL": [1, 2, 3]})
        self.assertIsNone(fy.extract_fy_summary(few_months))

        empty = PortfolioWorkbook.create()
        empty.add_sheet("Dashboard")
        self.assertIsNone(fy.extract_fy_summary(empty))


class TotalsTests(unittest.TestCase):
    @report_test
    def test_year_to_date_through_selected_month(self):
        summary = fy.extract_fy_summary(dashboard_book())
        totals = fy.compute_fy_totals(summary, dt.date(2025, 5, 15))

        self.assertEqual(totals.pnl_ytd, Decimal("300"))
        self.assertEqual(totals.cash_latest, Decimal("10200"))
        self.assertEqual(totals.return_ytd, Decimal("0.02"))
        self.assertEqual(totals.return_total, Decimal("0.01"))
        self.assertEqual(totals.cash_total, Decimal("10100"))
        self.assertEqual(totals.pnl_total, Decimal("200"))

    @report_test
    def test_pnl_only_dashboard(self):
        book = PortfolioWorkbook.create()
        add_dashboard(book, CALENDAR_MONTHS, {"PnL": [10, 20, 30, 40, 50, 60]}, title=None)
        summary = fy.extract_fy_summary(book)

        totals = fy.compute_fy_totals(summary, dt.date(2026, 6, 3))
        self.assertEqual(totals.pnl_ytd, Decimal("210"))
        self.assertIsNone(totals.return_ytd)
        self.assertIsNone(totals.cash_latest)

        totals = fy.compute_fy_totals(summary, dt.date(2026, 3, 3))
        self.assertEqual(totals.pnl_ytd, Decimal("60"))

        # A month past the last one with values counts everything.
        totals = fy.compute_fy_totals(summary, dt.date(2026, 10, 3))
        self.assertEqual(totals.pnl_ytd, Decimal("210"))
        self.assertEqual(totals.pnl_total, Decimal("210"))

    @report_test
    def test_pnl_derived_from_cash(self):
        book = PortfolioWorkbook.create()
        add_dashboard(book, FY_MONTHS, {"Cash": [1000, 1100, 1250, 1200]})
        summary = fy.extract_fy_summary(book)

        totals = fy.compute_fy_totals(summary, dt.date(2025, 6, 30))
        self.assertEqual(totals.pnl_ytd, Decimal("250"))
        self.assertEqual(totals.return_ytd, Decimal("0.25"))
        self.assertIsNone(totals.pnl_total)
        self.assertEqual(totals.cash_total, Decimal("1200"))
        self.assertEqual(totals.return_total, Decimal("0.2"))

    @report_test
    def test_no_month_values(self):
        book = PortfolioWorkbook.create()
        add_dashboard(book, FY_MONTHS, {"PnL": []})
        summary = fy.extract_fy_summary(book)
        self.assertIsNotNone(summary)
        self.assertIsNone(fy.compute_fy_totals(summary, dt.date(2025, 4, 1)))

    @report_test
    def test_sum_nullable(self):
        self.assertIsNone(fy.sum_nullable([None, None]))
        self.assertEqual(fy.sum_nullable([Decimal("1"), None, Decimal("2")]), Decimal("3"))

    @report_test
    def test_total_column_wins_over_derived_figures(self):
        summary = fy.extract_fy_summary(dashboard_book(totals={"Return": 0.05, "Cash": 9999, "PnL": 200}))

        self.assertEqual(summary.total_return, Decimal("0.05"))
        self.assertEqual(summary.total_cash, Decimal("9999"))
        self.assertEqual(fy.compute_total_return(summary), Decimal("0.05"))
        self.assertEqual(fy.compute_total_cash(summary), Decimal("9999"))

        totals = fy.compute_fy_totals(summary, dt.date(2025, 6, 1))
        self.assertEqual(totals.return_total, Decimal("0.05"))
        self.assertEqual(totals.cash_total, Decimal("9999"))
        self.assertEqual(totals.return_ytd, Decimal("0.01"), "Year to date still comes from the months")

    @report_test
    def test_derived_figures_without_total_column(self):
        summary = fy.extract_fy_summary(dashboard_book())
        self.assertIsNone(summary.total_return)
        self.assertEqual(fy.compute_total_return(summary), Decimal("0.01"))
        self.assertEqual(fy.compute_total_cash(summary), Decimal("10100"))


class CachedFormulaTests(unittest.TestCase):
    @report_test
    def test_formula_cells_read_as_cached_results(self):
        book = PortfolioWorkbook.create()
        add_dashboard(book, FY_MONTHS, {"PnL": ["=10", "=20", "=30"]}, totals={"PnL": "=SUM(B4:M4)"})

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "portfolio.xlsx"
            save_with_cached_results(book, path, {"Dashboard": {"B4": 10, "C4": 20, "D4": 30, "N4": 60}})

            with open_workbook(path) as reopened:
                summary = fy.extract_fy_summary(reopened)

        self.assertEqual([m.pnl for m in summary.months[:4]], [Decimal("10"), Decimal("20"), Decimal("30"), None])
        self.assertEqual(summary.total_pnl, Decimal("60"))
        totals = fy.compute_fy_totals(summary, dt.date(2025, 5, 1))
        self.assertEqual(totals.pnl_ytd, Decimal("30"))
        self.assertEqual(totals.pnl_total, Decimal("60"))


class LabelTests(unittest.TestCase):
    @report_test
    def test_month_labels_follow_financial_year(self):
        summary = fy.extract_fy_summary(dashboard_book())
        labels = {m.label: fy.format_fy_month_label(summary, m) for m in summary.months}
        self.assertEqual(labels["Apr"], "Apr-25")
        self.assertEqual(labels["Dec"], "Dec-25")
        self.assertEqual(labels["Jan"], "Jan-26")
        self.assertEqual(labels["Mar"], "Mar-26")

    @report_test
    def test_labels_without_year(self):
        summary = fy.extract_fy_summary(dashboard_book(title="FY Summary"))
        self.assertIsNone(fy.fy_start_year(summary))
        self.assertEqual(fy.format_fy_month_label(summary, summary.months[0]), "Apr")

    @report_test
    def test_chart_uses_month_to_date_for_selected_month(self):
        summary = fy.extract_fy_summary(dashboard_book())

        rows = fy.chart_months(summary, dt.date(2025, 5, 20), Decimal("55"))
        self.assertEqual([(r.label, r.pnl) for r in rows], [
            ("Apr-25", Decimal("100")),
            ("May-25", Decimal("55")),
            ("Jun-25", Decimal("-100")),
        ])

        rows = fy.chart_months(summary, dt.date(2025, 8, 20), Decimal("30"))
        self.assertEqual(rows[-1].label, "Aug-25")
        self.assertEqual(rows[-1].pnl, Decimal("30"))


if __name__ == "__main__":
    unittest.main()
