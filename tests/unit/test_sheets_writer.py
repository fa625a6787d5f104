"""
Unit tests for the Google Sheets report writer
"""
from unittest.mock import MagicMock, patch

import gspread
import pytest

from wb_finance_report.core.calculator import calculate_periods_metrics
from wb_finance_report.services.report_service import ReportBundle
from wb_finance_report.services.sheets_writer import (
    SHEET_PERIODS, SHEET_REALIZATION, GoogleSheetsReportWriter, build_tables,
)
from wb_finance_report.utils.exceptions import (
    AuthenticationError, ConfigurationError, ReportWriteError,
)

from conftest import sale


@pytest.fixture
def bundle():
    records = [sale(qty=1, before=100, after=90, payable=80, sa_name="A")]
    return ReportBundle(
        start="2024-06-10",
        end="2024-06-16",
        transactions=records,
        periods=calculate_periods_metrics(records),
    )


@pytest.fixture
def gspread_client():
    client = MagicMock()
    spreadsheet = MagicMock()
    spreadsheet.title = "Finance"
    client.open_by_key.return_value = spreadsheet
    return client


class TestBuildTables:

    def test_all_sections(self, bundle):
        tables = build_tables(bundle)

        assert len(tables) == 8
        assert len(tables[SHEET_REALIZATION][1]) == 1
        assert tables[SHEET_PERIODS][1][0] == ["от", "2024-06-10", "", ""]

    def test_periods_omitted_without_metrics(self):
        assert SHEET_PERIODS not in build_tables(ReportBundle(start="a", end="b"))


class TestGoogleSheetsReportWriter:

    def test_requires_sheet_id(self):
        config = MagicMock()
        config.google_sheets.sheet_id = None
        config.google_sheets.service_account_key_path = None

        with patch("wb_finance_report.services.sheets_writer.get_config", return_value=config):
            with pytest.raises(ConfigurationError):
                GoogleSheetsReportWriter()

    def test_missing_service_account_file(self, tmp_path):
        writer = GoogleSheetsReportWriter(str(tmp_path / "missing.json"), "sheet-id")

        with pytest.raises(AuthenticationError):
            writer._authenticate()

    def test_write_report(self, bundle, gspread_client):
        spreadsheet = gspread_client.open_by_key.return_value
        worksheet = MagicMock(row_count=1000, col_count=26)
        spreadsheet.worksheet.return_value = worksheet

        writer = GoogleSheetsReportWriter("sa.json", "sheet-id", client=gspread_client)
        written = writer.write_report(bundle)

        assert written[SHEET_REALIZATION] == 1
        assert written[SHEET_PERIODS] == 2 + 55
        assert worksheet.clear.call_count == 8
        worksheet.resize.assert_not_called()
        gspread_client.open_by_key.assert_called_once_with("sheet-id")

        _, kwargs = worksheet.update.call_args
        assert kwargs["range_name"] == "A1"
        assert kwargs["value_input_option"] == "USER_ENTERED"

    def test_missing_worksheet_is_created(self, gspread_client):
        spreadsheet = gspread_client.open_by_key.return_value
        spreadsheet.worksheet.side_effect = gspread.exceptions.WorksheetNotFound("Хранение")
        new_sheet = MagicMock()
        spreadsheet.add_worksheet.return_value = new_sheet

        writer = GoogleSheetsReportWriter("sa.json", "sheet-id", client=gspread_client)
        assert writer.write_table("Хранение", ["a", "b"], [[1, 2], [3, 4]]) == 2

        spreadsheet.add_worksheet.assert_called_once_with(title="Хранение", rows=13, cols=2)
        new_sheet.update.assert_called_once_with(
            values=[["a", "b"], [1, 2], [3, 4]], range_name="A1", value_input_option="USER_ENTERED"
        )

    def test_small_worksheet_is_resized(self, gspread_client):
        worksheet = MagicMock(row_count=5, col_count=1)
        gspread_client.open_by_key.return_value.worksheet.return_value = worksheet

        writer = GoogleSheetsReportWriter("sa.json", "sheet-id", client=gspread_client)
        writer.write_table("T", ["a", "b", "c"], [[1, 2, 3]])

        worksheet.resize.assert_called_once_with(rows=12, cols=3)

    def test_spreadsheet_not_found(self, gspread_client):
        gspread_client.open_by_key.side_effect = gspread.exceptions.SpreadsheetNotFound("nope")

        writer = GoogleSheetsReportWriter("sa.json", "sheet-id", client=gspread_client)
        with pytest.raises(ReportWriteError):
            writer.write_table("T", ["a"], [])
