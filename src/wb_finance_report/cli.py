"""
Command-line interface for WB Finance Report.

Offline commands work on JSON exports of the Wildberries APIs (periods,
products, reconcile); ``report`` fetches everything live and can write the
result to Google Sheets.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from wb_finance_report.core.calculator import calculate_periods_metrics
from wb_finance_report.core.models import parse_financial_records, parse_transaction_records
from wb_finance_report.core.product_analytics import aggregate_by_product
from wb_finance_report.core.reconciler import reconcile, reconcile_stages
from wb_finance_report.core.validator import validate_cost_prices, validate_report_window
from wb_finance_report.utils.config import get_config, validate_configuration
from wb_finance_report.utils.exceptions import DataFormatError, FinanceReportError
from wb_finance_report.utils.logger import get_logger, setup_logging


cli_logger = get_logger(__name__)


def load_json(path: str) -> Any:
    """
    Read a JSON input file.

    Raises:
        DataFormatError: If the file is missing or is not valid JSON
    """
    file_path = Path(path)
    if not file_path.exists():
        raise DataFormatError(f"Input file not found: {path}")
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DataFormatError(
            f"Invalid JSON in {path}: {e}",
            expected_format="JSON",
            actual_format="text"
        )


def load_rows(path: str) -> List[Dict[str, Any]]:
    """Read a JSON array of API rows."""
    data = load_json(path)
    if not isinstance(data, list):
        raise DataFormatError(
            f"Expected a JSON array in {path}",
            expected_format="array",
            actual_format=type(data).__name__
        )
    return data


def emit(data: Any, output: Optional[str] = None) -> None:
    """Print JSON to stdout or write it to ``output``."""
    text = json.dumps(data, ensure_ascii=False, indent=2)
    if output:
        Path(output).write_text(text, encoding="utf-8")
        print(f"✅ Written to {output}")
    else:
        print(text)


class FinanceReportCLI:
    """Command-line interface for WB Finance Report operations."""

    def __init__(self):
        self.config = None

    def _init_config(self):
        if not self.config:
            self.config = get_config()
        return self.config

    def _settings(self):
        return self._init_config().report

    def _window_records(self, rows, args, policy: Optional[str] = None):
        """Reconcile parsed records when a window is given, else use them as is."""
        if args.start and args.end:
            validate_report_window(args.start, args.end, self._settings().max_report_days)
            return reconcile(rows, args.start, args.end, policy or self._settings().prev_buffer_policy)
        return rows

    async def cmd_periods(self, args) -> int:
        """Compute the periods summary from a realization report export."""
        records = parse_transaction_records(load_rows(args.input))
        records = self._window_records(records, args, args.policy)

        report = calculate_periods_metrics(records, self._settings())
        emit({
            "metrics": report.to_dict(),
            "diagnostics": report.diagnostics.to_dict(),
        }, args.output)
        return 0

    async def cmd_products(self, args) -> int:
        """Compute per-product analytics from a realization report export."""
        records = parse_transaction_records(load_rows(args.input))
        records = self._window_records(records, args)

        ledger = parse_financial_records(load_rows(args.ledger)) if args.ledger else None
        if ledger and not any(r.sku for r in ledger):
            cli_logger.warning(
                f"None of {len(ledger)} ledger lines carries a sku, advertising spend will be 0 "
                f"(offline ledgers are not SKU-resolved; add a \"sku\" field per line)"
            )
        cost_prices = validate_cost_prices(load_json(args.cost_prices)) if args.cost_prices else None

        rows = aggregate_by_product(records, advertising_spend=ledger, cost_prices=cost_prices)
        emit([row.to_dict() for row in rows], args.output)
        return 0

    async def cmd_reconcile(self, args) -> int:
        """Reconcile an advertising ledger export on buffer days."""
        records = parse_financial_records(load_rows(args.input))
        stages = reconcile_stages(
            records, args.start, args.end, args.policy or self._settings().prev_buffer_policy
        )
        emit({
            "stages": {
                "main": len(stages.main),
                "prev_buffer": len(stages.prev_buffer),
                "next_buffer": len(stages.next_buffer),
                "excluded_from_main": stages.excluded_from_main,
                "next_added": len(stages.next_added),
                "prev_added": len(stages.prev_added),
                "outside_window": stages.dropped_outside,
            },
            "records": [r.to_dict() for r in stages.result],
        }, args.output)
        return 0

    async def cmd_report(self, args) -> int:
        """Fetch all data for the window and build the report."""
        from wb_finance_report.api.client import create_wildberries_client
        from wb_finance_report.services.report_service import ReportService

        config = self._init_config()
        if not config.wildberries.api_key:
            print("❌ WILDBERRIES_API_KEY is not set")
            return 1

        cost_prices = load_json(args.cost_prices) if args.cost_prices else None

        client = create_wildberries_client(config=config)
        try:
            service = ReportService(client, config.report)
            bundle = await service.build_report(args.start, args.end, cost_prices)
        finally:
            client.close()

        summary = bundle.summary()
        if args.write_sheets:
            from wb_finance_report.services.sheets_writer import GoogleSheetsReportWriter

            writer = GoogleSheetsReportWriter()
            summary["written"] = writer.write_report(bundle)

        emit(summary, args.output)
        if bundle.failed_sources:
            print(f"⚠️  Failed sources: {', '.join(bundle.failed_sources)}")
        return 0

    async def cmd_config(self, args) -> int:
        """Handle configuration commands."""
        if args.config_action == "validate":
            cli_logger.info("Validating configuration...")
            validation_result = validate_configuration()

            if validation_result["valid"]:
                print("✅ Configuration is valid")
                print(f"📊 Summary: {json.dumps(validation_result['summary'], indent=2, ensure_ascii=False)}")
                return 0
            print(f"❌ Configuration validation failed: {validation_result['error']}")
            return 1

        config = self._init_config()
        print("📋 Current configuration:")
        config_summary = {
            "wildberries": {
                "statistics_base_url": config.wildberries.statistics_base_url,
                "advert_base_url": config.wildberries.advert_base_url,
                "timeout": config.wildberries.timeout,
                "has_api_key": bool(config.wildberries.api_key),
            },
            "report": config.report.model_dump(),
            "google_sheets": {
                "sheet_id": config.google_sheets.sheet_id,
                "enabled": config.google_sheets.enabled,
            },
            "application": config.app.model_dump(),
        }
        print(json.dumps(config_summary, indent=2, ensure_ascii=False))
        return 0


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="wb-finance-report",
        description="WB Finance Report - Wildberries realization report reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  wb-finance-report periods --input report.json --start 2024-06-01 --end 2024-06-30
  wb-finance-report products --input report.json --ledger upd.json --cost-prices prices.json
  wb-finance-report reconcile --input upd.json --start 2024-06-01 --end 2024-06-30
  wb-finance-report report --start 2024-06-01 --end 2024-06-30 --write-sheets
  wb-finance-report config validate
        """
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set logging level (default: LOG_LEVEL or INFO)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    policies = ["match_main", "require_repeated"]

    periods_parser = subparsers.add_parser("periods", help="Periods summary from a realization export")
    periods_parser.add_argument("--input", required=True, help="Realization report JSON array")
    periods_parser.add_argument("--start", help="Window start (YYYY-MM-DD), enables reconciliation")
    periods_parser.add_argument("--end", help="Window end (YYYY-MM-DD)")
    periods_parser.add_argument("--policy", choices=policies, help="Previous buffer day rule")
    periods_parser.add_argument("--output", "-o", help="Write JSON to file instead of stdout")

    products_parser = subparsers.add_parser("products", help="Per-product analytics from a realization export")
    products_parser.add_argument("--input", required=True, help="Realization report JSON array")
    products_parser.add_argument("--start", help="Window start (YYYY-MM-DD), enables reconciliation")
    products_parser.add_argument("--end", help="Window end (YYYY-MM-DD)")
    products_parser.add_argument("--ledger", help="Advertising ledger JSON array with resolved sku")
    products_parser.add_argument("--cost-prices", help='JSON object {"nmId-barcode": price}')
    products_parser.add_argument("--output", "-o", help="Write JSON to file instead of stdout")

    reconcile_parser = subparsers.add_parser("reconcile", help="Buffer-day reconciliation of a ledger export")
    reconcile_parser.add_argument("--input", required=True, help="Advertising ledger JSON array")
    reconcile_parser.add_argument("--start", required=True, help="Window start (YYYY-MM-DD)")
    reconcile_parser.add_argument("--end", required=True, help="Window end (YYYY-MM-DD)")
    reconcile_parser.add_argument("--policy", choices=policies, help="Previous buffer day rule")
    reconcile_parser.add_argument("--output", "-o", help="Write JSON to file instead of stdout")

    report_parser = subparsers.add_parser("report", help="Build the full report from the live APIs")
    report_parser.add_argument("--start", required=True, help="Window start (YYYY-MM-DD)")
    report_parser.add_argument("--end", required=True, help="Window end (YYYY-MM-DD)")
    report_parser.add_argument("--cost-prices", help='JSON object {"nmId-barcode": price}')
    report_parser.add_argument("--write-sheets", action="store_true", help="Write result to Google Sheets")
    report_parser.add_argument("--output", "-o", help="Write summary JSON to file instead of stdout")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument(
        "config_action",
        choices=["validate", "show"],
        help="Configuration action to perform"
    )

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 1

    cli = FinanceReportCLI()
    handlers = {
        "periods": cli.cmd_periods,
        "products": cli.cmd_products,
        "reconcile": cli.cmd_reconcile,
        "report": cli.cmd_report,
        "config": cli.cmd_config,
    }

    try:
        return await handlers[args.command](args)
    except KeyboardInterrupt:
        print("\n⏹️  Operation cancelled by user")
        return 130
    except FinanceReportError as e:
        cli_logger.error(f"{args.command} failed: {e}")
        print(f"❌ {e.message}")
        return 1
    except Exception as e:
        cli_logger.error(f"CLI operation failed: {e}", exc_info=True)
        print(f"❌ Operation failed: {e}")
        return 1


def cli_entry_point():
    """Entry point for console script."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\n⏹️  Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    cli_entry_point()
