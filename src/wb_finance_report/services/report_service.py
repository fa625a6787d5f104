"""
Report orchestration.

Fetches every report input concurrently, reconciles realization lines and
ledger entries on buffer days, resolves campaign SKUs and runs the periods
and per-product aggregators. A failing upstream source is logged and
replaced by an empty list so the rest of the report is still produced.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from wb_finance_report.core.calculator import calculate_periods_metrics
from wb_finance_report.core.models import (
    Campaign, CostPriceEntry, FinancialRecord, PeriodsReport, ProductAnalyticsRow,
    ReconciliationResult, ResolutionStats, TransactionRecord,
    parse_campaigns, parse_cost_price_entries, parse_financial_records,
)
from wb_finance_report.core.product_analytics import CostPriceIndex, aggregate_by_product
from wb_finance_report.core.reconciler import padded_window, reconcile_stages
from wb_finance_report.core.validator import split_window, validate_cost_prices, validate_report_window
from wb_finance_report.services.sku_resolver import SKUResolver, enrich_financial_records
from wb_finance_report.utils.config import ReportSettings
from wb_finance_report.utils.logger import get_logger


logger = get_logger(__name__)

DateLike = Union[str, date]


@dataclass
class ReportBundle:
    """Every worksheet input of one report run plus its diagnostics."""

    start: str
    end: str
    transactions: List[TransactionRecord] = field(default_factory=list)
    storage: List[Dict[str, Any]] = field(default_factory=list)
    acceptance: List[Dict[str, Any]] = field(default_factory=list)
    campaigns: List[Campaign] = field(default_factory=list)
    financial_records: List[FinancialRecord] = field(default_factory=list)
    cost_prices: List[CostPriceEntry] = field(default_factory=list)
    product_analytics: List[ProductAnalyticsRow] = field(default_factory=list)
    periods: Optional[PeriodsReport] = None
    transaction_reconciliation: Optional[ReconciliationResult] = None
    ledger_reconciliation: Optional[ReconciliationResult] = None
    sku_stats: ResolutionStats = field(default_factory=ResolutionStats)
    failed_sources: List[str] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        """Counters for logs and the CLI."""
        result = {
            "start": self.start,
            "end": self.end,
            "transactions": len(self.transactions),
            "storage_rows": len(self.storage),
            "acceptance_rows": len(self.acceptance),
            "campaigns": len(self.campaigns),
            "financial_records": len(self.financial_records),
            "cost_price_rows": len(self.cost_prices),
            "products": len(self.product_analytics),
            "sku_completeness": round(self.sku_stats.completeness, 1),
            "failed_sources": list(self.failed_sources),
        }
        if self.periods is not None:
            result["diagnostics"] = self.periods.diagnostics.to_dict()
            result["final_payment"] = round(self.periods.value("ИТОГО к выплате"), 2)
        return result


class ReportService:
    """
    Builds a ReportBundle from the Wildberries APIs or from in-memory data.
    """

    def __init__(self, client=None, settings: Optional[ReportSettings] = None):
        """
        Args:
            client: WildberriesAPIClient (or any object with the same coroutines);
                required only for ``build_report``
            settings: Pipeline settings; defaults to ReportSettings()
        """
        self.client = client
        self.settings = settings or ReportSettings()

    async def _safe_fetch(self, name: str, call: Awaitable, failed: List[str]) -> Any:
        try:
            return await call
        except Exception as e:
            logger.error(f"Failed to fetch {name}: {e}")
            failed.append(name)
            return []

    async def _fetch_in_chunks(self, fetch: Callable[[str, str], Awaitable[List[Any]]],
                               start: DateLike, end: DateLike) -> List[Any]:
        """Fetch a date-ranged source in chunks within the realization span limit."""
        chunks = split_window(start, end, self.settings.max_report_days)
        if len(chunks) > 1:
            logger.info(f"Fetch window {start}..{end} split into {len(chunks)} requests")

        rows: List[Any] = []
        for chunk_start, chunk_end in chunks:
            rows.extend(await fetch(chunk_start.isoformat(), chunk_end.isoformat()) or [])
        return rows

    async def build_report(self, start: DateLike, end: DateLike,
                           cost_prices: Optional[Mapping[str, Any]] = None) -> ReportBundle:
        """
        Fetch all inputs for the window and build the report.

        Args:
            start: First day of the report window
            end: Last day of the report window
            cost_prices: Saved cost prices keyed by "{nmId}-{barcode}"

        Returns:
            ReportBundle

        Raises:
            ValidationError: If the window is invalid or too long
        """
        if self.client is None:
            raise ValueError("ReportService.build_report requires an API client")

        start_date, end_date = validate_report_window(start, end, self.settings.max_report_days)
        fetch_start, fetch_end = padded_window(start_date, end_date)

        logger.info(
            f"Building report {start_date.isoformat()}..{end_date.isoformat()} "
            f"(fetch window {fetch_start}..{fetch_end})"
        )
        started = time.time()
        failed: List[str] = []

        realization, storage, acceptance, campaign_groups, ledger, cards = await asyncio.gather(
            self._safe_fetch(
                "realization",
                self._fetch_in_chunks(self.client.get_realization_report, fetch_start, fetch_end),
                failed,
            ),
            self._safe_fetch("storage", self.client.get_paid_storage(start_date, end_date), failed),
            self._safe_fetch("acceptance", self.client.get_acceptance_report(start_date, end_date), failed),
            self._safe_fetch("campaigns", self.client.get_campaigns(), failed),
            self._safe_fetch(
                "ledger",
                self._fetch_in_chunks(self.client.get_advertising_ledger, fetch_start, fetch_end),
                failed,
            ),
            self._safe_fetch("cards", self.client.get_cards(), failed),
        )
        logger.info(f"Fetched report inputs in {time.time() - started:.1f}s")

        bundle = await self.build_report_from_data(
            start_date,
            end_date,
            realization=realization,
            ledger=ledger,
            storage=storage,
            acceptance=acceptance,
            campaigns=campaign_groups,
            cards=cards,
            cost_prices=cost_prices,
        )
        bundle.failed_sources = failed
        return bundle

    async def build_report_from_data(self, start: DateLike, end: DateLike,
                                     realization: Optional[List[Any]] = None,
                                     ledger: Optional[List[Any]] = None,
                                     storage: Optional[List[Dict[str, Any]]] = None,
                                     acceptance: Optional[List[Dict[str, Any]]] = None,
                                     campaigns: Optional[List[Any]] = None,
                                     cards: Optional[List[Dict[str, Any]]] = None,
                                     cost_prices: Optional[Mapping[str, Any]] = None) -> ReportBundle:
        """
        Reconcile, resolve SKUs and aggregate already fetched data.

        Raw API rows and parsed records are both accepted. SKU resolution
        runs only when an API client is available.
        """
        start_date, end_date = validate_report_window(start, end, self.settings.max_report_days)
        policy = self.settings.prev_buffer_policy

        transactions = [
            r if isinstance(r, TransactionRecord) else TransactionRecord.from_api_data(r)
            for r in realization or []
        ]
        ledger_records = [r for r in ledger or [] if isinstance(r, FinancialRecord)]
        ledger_records += parse_financial_records(r for r in ledger or [] if isinstance(r, dict))

        transaction_stages = reconcile_stages(transactions, start_date, end_date, policy)
        ledger_stages = reconcile_stages(ledger_records, start_date, end_date, policy)
        reconciled_transactions = transaction_stages.result
        reconciled_ledger = ledger_stages.result

        sku_stats = ResolutionStats()
        if self.client is not None and reconciled_ledger:
            resolver = SKUResolver.from_settings(self.client, self.settings)
            sku_map = await resolver.resolve_skus(r.campaign_id for r in reconciled_ledger)
            reconciled_ledger = enrich_financial_records(reconciled_ledger, sku_map)
            sku_stats = resolver.stats

        saved_prices = validate_cost_prices(cost_prices or {})
        cost_price_entries = parse_cost_price_entries(cards or [], saved_prices)
        cost_index = CostPriceIndex.build(saved_prices)
        for entry in cost_price_entries:
            if entry.cost_price:
                cost_index.add(entry.nm_id, entry.barcode, entry.cost_price, entry.vendor_code)

        periods = calculate_periods_metrics(reconciled_transactions, self.settings)
        products = aggregate_by_product(
            reconciled_transactions,
            advertising_spend=reconciled_ledger,
            cost_prices=cost_index,
        )

        campaign_list = [c for c in campaigns or [] if isinstance(c, Campaign)]
        campaign_list += parse_campaigns(c for c in campaigns or [] if isinstance(c, dict))

        bundle = ReportBundle(
            start=start_date.isoformat(),
            end=end_date.isoformat(),
            transactions=reconciled_transactions,
            storage=list(storage or []),
            acceptance=list(acceptance or []),
            campaigns=campaign_list,
            financial_records=reconciled_ledger,
            cost_prices=cost_price_entries,
            product_analytics=products,
            periods=periods,
            transaction_reconciliation=transaction_stages,
            ledger_reconciliation=ledger_stages,
            sku_stats=sku_stats,
        )

        if periods.diagnostics.credit_fallback_used:
            logger.warning("Report uses fallback credit values, check the realization report")
        logger.info(f"Report built: {bundle.summary()}")
        return bundle
