"""
Google Sheets output of the finance report.

Each section of a ReportBundle goes to its own worksheet. A worksheet is
created when missing, otherwise cleared, and then written with a single
update call.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import gspread
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials

from wb_finance_report.core.formatter import ReportFormatter, Table
from wb_finance_report.services.report_service import ReportBundle
from wb_finance_report.utils.config import get_config
from wb_finance_report.utils.exceptions import AuthenticationError, ConfigurationError, ReportWriteError
from wb_finance_report.utils.logger import get_logger


logger = get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

SHEET_REALIZATION = "Отчет детализации"
SHEET_STORAGE = "Хранение"
SHEET_ACCEPTANCE = "Приемка"
SHEET_CAMPAIGNS = "Кампании"
SHEET_FINANCE = "Финансы РК"
SHEET_COST_PRICE = "Себестоимость"
SHEET_PRODUCTS = "По товарам"
SHEET_PERIODS = "По периодам"


def build_tables(bundle: ReportBundle) -> Dict[str, Table]:
    """Format every section of the bundle, keyed by worksheet title."""
    tables = {
        SHEET_REALIZATION: ReportFormatter.format_realization(bundle.transactions),
        SHEET_STORAGE: ReportFormatter.format_storage(bundle.storage),
        SHEET_ACCEPTANCE: ReportFormatter.format_acceptance(bundle.acceptance),
        SHEET_CAMPAIGNS: ReportFormatter.format_campaigns(bundle.campaigns),
        SHEET_FINANCE: ReportFormatter.format_financial_records(bundle.financial_records),
        SHEET_COST_PRICE: ReportFormatter.format_cost_prices(bundle.cost_prices),
        SHEET_PRODUCTS: ReportFormatter.format_product_analytics(bundle.product_analytics),
    }
    if bundle.periods is not None:
        tables[SHEET_PERIODS] = ReportFormatter.format_periods(bundle.periods, bundle.start, bundle.end)
    return tables


class GoogleSheetsReportWriter:
    """
    Writes a ReportBundle into a Google spreadsheet using a service account.
    """

    def __init__(self, service_account_path: Optional[str] = None,
                 sheet_id: Optional[str] = None, client: Optional[gspread.Client] = None):
        """
        Initialize the writer.

        Args:
            service_account_path: Path to service account JSON file
            sheet_id: Target spreadsheet ID
            client: Pre-authorized gspread client (skips authentication)
        """
        if service_account_path is None or sheet_id is None:
            sheets_config = get_config().google_sheets
            service_account_path = service_account_path or sheets_config.service_account_key_path
            sheet_id = sheet_id or sheets_config.sheet_id

        if not sheet_id:
            raise ConfigurationError("Google Sheet ID is not configured (GOOGLE_SHEET_ID)")

        self.service_account_path = service_account_path
        self.sheet_id = sheet_id
        self._client = client
        self._spreadsheet: Optional[gspread.Spreadsheet] = None

    def _authenticate(self) -> gspread.Client:
        """
        Authenticate with Google Sheets API using service account.

        Raises:
            AuthenticationError: If authentication fails.
        """
        if not self.service_account_path or not Path(self.service_account_path).exists():
            raise AuthenticationError(
                f"Service account file not found: {self.service_account_path}"
            )

        try:
            credentials = Credentials.from_service_account_file(self.service_account_path, scopes=SCOPES)
            client = gspread.authorize(credentials)
            logger.info("Successfully authenticated with Google Sheets API")
            return client
        except GoogleAuthError as e:
            raise AuthenticationError(f"Google authentication failed: {e}")
        except (json.JSONDecodeError, ValueError) as e:
            raise AuthenticationError(f"Invalid service account JSON file: {e}")

    def _get_spreadsheet(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            if self._client is None:
                self._client = self._authenticate()
            try:
                self._spreadsheet = self._client.open_by_key(self.sheet_id)
                logger.info(f"Opened spreadsheet: {self._spreadsheet.title}")
            except gspread.exceptions.SpreadsheetNotFound:
                raise ReportWriteError(f"Spreadsheet not found: {self.sheet_id}", sheet_id=self.sheet_id)
            except gspread.exceptions.APIError as e:
                raise ReportWriteError(f"Failed to open spreadsheet: {e}", sheet_id=self.sheet_id)
        return self._spreadsheet

    def _prepare_worksheet(self, title: str, rows: int, cols: int) -> gspread.Worksheet:
        """Open and clear a worksheet, creating it when it does not exist."""
        spreadsheet = self._get_spreadsheet()
        try:
            worksheet = spreadsheet.worksheet(title)
            worksheet.clear()
            if worksheet.row_count < rows or worksheet.col_count < cols:
                worksheet.resize(rows=max(rows, worksheet.row_count), cols=max(cols, worksheet.col_count))
        except gspread.exceptions.WorksheetNotFound:
            logger.info(f"Worksheet '{title}' not found, creating it...")
            worksheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=cols)
        return worksheet

    def write_table(self, title: str, headers: List[str], rows: List[List[Any]]) -> int:
        """
        Replace the content of one worksheet.

        Returns:
            Number of data rows written
        """
        values = [headers] + rows
        width = max(len(row) for row in values) if values else 1
        try:
            worksheet = self._prepare_worksheet(title, max(len(values), 1) + 10, max(width, 1))
            worksheet.update(values=values, range_name="A1", value_input_option="USER_ENTERED")
        except gspread.exceptions.APIError as e:
            raise ReportWriteError(
                f"Failed to write worksheet '{title}': {e}",
                sheet_id=self.sheet_id,
                worksheet=title
            )

        logger.info(f"Wrote {len(rows)} rows to worksheet '{title}'")
        return len(rows)

    def write_report(self, bundle: ReportBundle) -> Dict[str, int]:
        """
        Write every section of the report.

        Returns:
            Rows written per worksheet title
        """
        written = {}
        for title, (headers, rows) in build_tables(bundle).items():
            written[title] = self.write_table(title, headers, rows)
        logger.info(f"Report {bundle.start}..{bundle.end} written to spreadsheet {self.sheet_id}")
        return written
