"""
Campaign -> product SKU resolution.

The advertising ledger only knows campaign ids. The product each campaign
promotes is read from campaign details, fetched in batches of 50 ids. A
batch that keeps failing is skipped: the affected ledger lines stay without
SKU and the completeness percentage reports the gap.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional

from wb_finance_report.core.models import FinancialRecord, ResolutionStats, safe_int
from wb_finance_report.utils.config import ReportSettings
from wb_finance_report.utils.exceptions import APIError, FinanceReportError, RateLimitError
from wb_finance_report.utils.logger import get_logger
from wb_finance_report.utils.retry import ExponentialBackoff, LinearBackoff, RetryConfig


logger = get_logger(__name__)

AUCTION_CAMPAIGN_TYPE = 9
AUTO_CAMPAIGN_TYPE = 8


def extract_sku(item: Dict[str, Any]) -> Optional[str]:
    """
    Extract the promoted nm_id from a campaign detail item.

    Type 9 (auction) keeps it in ``auction_multibids``, type 8 (automatic)
    in ``autoParams.nms``, older types in ``unitedParams[0].nms``.

    Returns:
        nm_id as string, or None when the structure is missing or empty
    """
    if not isinstance(item, dict):
        return None

    campaign_type = safe_int(item.get("type"))
    nm: Any = None

    try:
        if campaign_type == AUCTION_CAMPAIGN_TYPE and item.get("auction_multibids"):
            nm = item["auction_multibids"][0].get("nm")
        elif campaign_type == AUTO_CAMPAIGN_TYPE and (item.get("autoParams") or {}).get("nms"):
            nm = item["autoParams"]["nms"][0]
        elif item.get("unitedParams") and (item["unitedParams"][0] or {}).get("nms"):
            nm = item["unitedParams"][0]["nms"][0]
    except (AttributeError, IndexError, KeyError, TypeError):
        logger.debug(f"Malformed campaign detail for advertId={item.get('advertId')}")
        return None

    if nm is None or nm == "" or nm == 0:
        return None
    return str(nm)


def enrich_financial_records(records: Iterable[FinancialRecord],
                             sku_map: Dict[int, str]) -> List[FinancialRecord]:
    """Return copies of ledger records with ``sku`` set from ``sku_map``; unmapped ones keep theirs."""
    return [record.with_sku(sku_map.get(record.campaign_id, record.sku)) for record in records]


class SKUResolver:
    """
    Resolves campaign ids to product SKUs through the campaign details API.

    Batches run sequentially with a pause between them. HTTP 429 is retried
    with exponential backoff, other API and connection failures with linear
    backoff. ``resolve_skus`` never raises.
    """

    def __init__(self, client, batch_size: int = 50, batch_delay: float = 0.2,
                 rate_limit_max_retries: int = 3, rate_limit_base_delay: float = 1.0,
                 rate_limit_max_delay: float = 8.0, transient_max_retries: int = 2,
                 transient_delay: float = 1.0):
        """
        Args:
            client: Object with ``async get_campaign_details(ids) -> list``
        """
        self.client = client
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.rate_limit_config = RetryConfig(
            max_retries=rate_limit_max_retries,
            base_delay=rate_limit_base_delay,
            max_delay=rate_limit_max_delay,
            exponential_base=2.0,
            respect_retry_after=False,
        )
        self.transient_config = RetryConfig(
            max_retries=transient_max_retries,
            base_delay=transient_delay,
            max_delay=transient_delay * max(1, transient_max_retries),
        )
        self.stats = ResolutionStats()

    @classmethod
    def from_settings(cls, client, settings: ReportSettings) -> "SKUResolver":
        return cls(
            client,
            batch_size=settings.sku_batch_size,
            batch_delay=settings.sku_batch_delay,
            rate_limit_max_retries=settings.sku_rate_limit_retries,
            rate_limit_base_delay=settings.sku_rate_limit_base_delay,
            rate_limit_max_delay=settings.sku_rate_limit_max_delay,
            transient_max_retries=settings.sku_transient_retries,
            transient_delay=settings.sku_transient_delay,
        )

    async def _fetch_batch(self, batch: List[int]) -> Optional[List[Dict[str, Any]]]:
        """Fetch one batch with retries; None when the batch is given up."""
        rate_limit_backoff = ExponentialBackoff(self.rate_limit_config)
        transient_backoff = LinearBackoff(self.transient_config)

        while True:
            try:
                return await self.client.get_campaign_details(batch)
            except RateLimitError as e:
                if rate_limit_backoff.exhausted:
                    logger.error(f"SKU batch of {len(batch)} campaigns rate limited, giving up: {e}")
                    return None
                delay = rate_limit_backoff.calculate_delay()
                logger.warning(
                    f"Rate limited on campaign details, retry {rate_limit_backoff.attempt}/"
                    f"{self.rate_limit_config.max_retries} in {delay:.1f}s"
                )
            except (APIError, ConnectionError, TimeoutError) as e:
                if transient_backoff.exhausted:
                    logger.error(f"SKU batch of {len(batch)} campaigns failed, giving up: {e}")
                    return None
                delay = transient_backoff.calculate_delay()
                logger.warning(
                    f"Campaign details request failed ({e}), retry {transient_backoff.attempt}/"
                    f"{self.transient_config.max_retries} in {delay:.1f}s"
                )
            except FinanceReportError as e:
                logger.error(f"SKU batch of {len(batch)} campaigns skipped, not retryable: {e}")
                return None
            await asyncio.sleep(delay)

    async def resolve_skus(self, campaign_ids: Iterable[Any]) -> Dict[int, str]:
        """
        Resolve campaign ids to SKUs.

        Args:
            campaign_ids: Campaign ids; duplicates and falsy ids are ignored

        Returns:
            Mapping campaign id -> SKU for resolved campaigns only
        """
        unique_ids = [i for i in dict.fromkeys(safe_int(c) for c in campaign_ids or []) if i]
        self.stats = ResolutionStats(requested=len(unique_ids))
        sku_map: Dict[int, str] = {}

        if not unique_ids:
            return sku_map

        batches = [
            unique_ids[i:i + self.batch_size]
            for i in range(0, len(unique_ids), self.batch_size)
        ]
        logger.info(f"Resolving SKUs for {len(unique_ids)} campaigns in {len(batches)} batches")

        for index, batch in enumerate(batches):
            items = await self._fetch_batch(batch)

            if items is None:
                self.stats.failed_batches += 1
            else:
                requested = set(batch)
                for item in items:
                    campaign_id = safe_int(item.get("advertId")) if isinstance(item, dict) else 0
                    sku = extract_sku(item)
                    if campaign_id in requested and sku:
                        sku_map[campaign_id] = sku

            if index < len(batches) - 1 and self.batch_delay:
                await asyncio.sleep(self.batch_delay)

        self.stats.resolved = len(sku_map)
        logger.info(
            f"SKU resolution: {self.stats.resolved}/{self.stats.requested} campaigns "
            f"({self.stats.completeness:.1f}%), failed batches: {self.stats.failed_batches}"
        )
        return sku_map
