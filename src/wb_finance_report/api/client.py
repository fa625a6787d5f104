"""
Wildberries API client implementation.

Provides authenticated access to the seller APIs the finance report reads:

- statistics-api: /api/v5/supplier/reportDetailByPeriod (realization report)
- seller-analytics-api: /api/v1/paid_storage, /api/v1/acceptance_report
  (task create -> status poll -> download)
- advert-api: /adv/v1/promotion/count, /adv/v1/promotion/adverts, /adv/v1/upd
- content-api: /content/v2/get/cards/list
"""

import asyncio
from datetime import date
from typing import Dict, List, Any, Iterable, Optional, Union
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from wb_finance_report.core.validator import clamp_window
from wb_finance_report.utils.logger import get_logger
from wb_finance_report.utils.config import FinanceReportConfig, get_config
from wb_finance_report.utils.exceptions import (
    WildberriesAPIError, TaskTimeoutError, handle_api_error
)
from wb_finance_report.utils.retry import retry_with_backoff, RetryConfig


logger = get_logger(__name__)

DateLike = Union[str, date]

REALIZATION_PAGE_LIMIT = 100000
CARDS_PAGE_LIMIT = 100

DEFAULT_RETRY = RetryConfig(
    max_retries=3,
    base_delay=5.0,
    retry_on_status_codes=(429, 500, 502, 503, 504),
    respect_retry_after=True
)

# Отчеты хранения и приемки: 1 запрос в минуту
REPORT_TASK_RETRY = RetryConfig(
    max_retries=3,
    base_delay=60.0,
    max_delay=120.0,
    retry_on_status_codes=(429, 500, 502, 503, 504),
    respect_retry_after=True
)


def _iso(value: DateLike) -> str:
    return value.isoformat() if isinstance(value, date) else str(value)


class WildberriesAPIClient:
    """
    Wildberries seller API client for the finance report.

    All public fetch methods are coroutines so the report service can fan
    them out with ``asyncio.gather``; the HTTP layer itself is a shared
    ``requests.Session`` with a urllib3 retry adapter for 5xx responses,
    called from worker threads so requests do not block the event loop.
    """

    def __init__(self, api_key: Optional[str] = None,
                 config: Optional[FinanceReportConfig] = None):
        """
        Initialize Wildberries API client.

        Args:
            api_key: Wildberries API token; taken from configuration if omitted
            config: Application configuration; global config if omitted
        """
        self.config = config or get_config()
        wb_config = self.config.wildberries

        self.api_key = api_key or wb_config.api_key
        self.statistics_base_url = wb_config.statistics_base_url
        self.analytics_base_url = wb_config.analytics_base_url
        self.advert_base_url = wb_config.advert_base_url
        self.content_base_url = wb_config.content_base_url
        self.timeout = wb_config.timeout
        self.retry_delay = wb_config.retry_delay
        self.report_settings = self.config.report

        self.session = requests.Session()

        retry_strategy = Retry(
            total=2,
            backoff_factor=self.retry_delay,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS", "POST"]
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.session.headers.update({
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "User-Agent": "WBFinanceReport/1.0"
        })

        logger.info("Initialized Wildberries API client")
        logger.debug(f"Statistics Base URL: {self.statistics_base_url}")

    def _make_request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Make HTTP request with error handling.

        Args:
            method: HTTP method
            url: Request URL
            **kwargs: Additional request parameters

        Returns:
            Response object

        Raises:
            AuthenticationError, RateLimitError, WildberriesAPIError
        """
        try:
            kwargs.setdefault('timeout', self.timeout)

            logger.debug(f"Making {method} request to {url}")

            response = self.session.request(method, url, **kwargs)

            if not response.ok:
                handle_api_error(response, url)

            return response

        except requests.exceptions.Timeout:
            raise WildberriesAPIError(f"Request timeout after {self.timeout}s", endpoint=url)
        except requests.exceptions.ConnectionError:
            raise WildberriesAPIError(f"Connection failed to {url}", endpoint=url)
        except requests.exceptions.RequestException as e:
            raise WildberriesAPIError(f"Request failed: {e}", endpoint=url)

    async def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Run the blocking request in a worker thread."""
        return await asyncio.to_thread(self._make_request, method, url, **kwargs)

    def _json(self, response: requests.Response, url: str) -> Any:
        # 204 No Content: no more data
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise WildberriesAPIError(
                "Invalid JSON in API response",
                endpoint=url,
                status_code=response.status_code,
                response_data=response.text[:500]
            )

    @retry_with_backoff(DEFAULT_RETRY)
    async def get_realization_page(self, date_from: DateLike, date_to: DateLike,
                                   rrdid: int = 0,
                                   limit: int = REALIZATION_PAGE_LIMIT) -> List[Dict[str, Any]]:
        """Fetch one page of the realization report starting after ``rrdid``."""
        url = urljoin(self.statistics_base_url, "/api/v5/supplier/reportDetailByPeriod")
        params = {
            "dateFrom": _iso(date_from),
            "dateTo": _iso(date_to),
            "limit": limit,
            "rrdid": rrdid,
        }

        response = await self._request("GET", url, params=params)
        data = self._json(response, url)

        if data is None:
            return []
        if not isinstance(data, list):
            raise WildberriesAPIError(
                "Invalid realization report response: expected array",
                endpoint=url,
                response_data=data
            )
        return data

    async def get_realization_report(self, date_from: DateLike, date_to: DateLike) -> List[Dict[str, Any]]:
        """
        Get all realization report rows for a period.

        Pages are chained through ``rrd_id`` of the last row until an empty
        page (or HTTP 204) is returned.

        Args:
            date_from: First day (the caller passes the padded window)
            date_to: Last day

        Returns:
            Raw report rows
        """
        rows: List[Dict[str, Any]] = []
        rrdid = 0

        logger.info(f"Fetching realization report {_iso(date_from)}..{_iso(date_to)}")

        while True:
            page = await self.get_realization_page(date_from, date_to, rrdid)
            if not page:
                break

            rows.extend(page)
            next_rrdid = page[-1].get("rrd_id") if isinstance(page[-1], dict) else None
            if not next_rrdid or next_rrdid == rrdid or len(page) < REALIZATION_PAGE_LIMIT:
                break
            rrdid = next_rrdid

        logger.info(f"Retrieved {len(rows)} realization report rows")
        return rows

    @retry_with_backoff(DEFAULT_RETRY)
    async def get_advertising_ledger(self, date_from: DateLike, date_to: DateLike) -> List[Dict[str, Any]]:
        """Get advertising charges (/adv/v1/upd) for a period."""
        url = urljoin(self.advert_base_url, "/adv/v1/upd")
        response = await self._request(
            "GET", url, params={"from": _iso(date_from), "to": _iso(date_to)}
        )
        data = self._json(response, url) or []

        if not isinstance(data, list):
            raise WildberriesAPIError(
                "Invalid advertising ledger response: expected array",
                endpoint=url,
                response_data=data
            )

        logger.info(f"Retrieved {len(data)} advertising ledger entries")
        return data

    @retry_with_backoff(DEFAULT_RETRY)
    async def get_campaigns(self) -> List[Dict[str, Any]]:
        """
        Get campaign groups from /adv/v1/promotion/count.

        Returns:
            Groups as returned by the API (``type``, ``status``, ``advert_list``)
        """
        url = urljoin(self.advert_base_url, "/adv/v1/promotion/count")
        response = await self._request("GET", url)
        data = self._json(response, url) or {}

        groups = data.get("adverts") if isinstance(data, dict) else None
        if groups is None:
            logger.warning("Campaign list response has no adverts array")
            return []

        total = sum(len(g.get("advert_list") or []) for g in groups if isinstance(g, dict))
        logger.info(f"Retrieved {len(groups)} campaign groups, {total} campaigns")
        return groups

    async def get_campaign_details(self, campaign_ids: Iterable[int]) -> List[Dict[str, Any]]:
        """
        Get campaign details for up to 50 ids (POST /adv/v1/promotion/adverts).

        No retry decorator: callers own the retry policy.
        """
        url = urljoin(self.advert_base_url, "/adv/v1/promotion/adverts")
        ids = [int(i) for i in campaign_ids]

        response = await self._request("POST", url, json=ids)
        data = self._json(response, url) or []

        if not isinstance(data, list):
            raise WildberriesAPIError(
                "Invalid campaign details response: expected array",
                endpoint=url,
                response_data=data
            )
        return data

    @retry_with_backoff(DEFAULT_RETRY)
    async def get_cards_page(self, cursor: Dict[str, Any]) -> Dict[str, Any]:
        url = urljoin(self.content_base_url, "/content/v2/get/cards/list")
        body = {
            "settings": {
                "cursor": cursor,
                "filter": {"withPhoto": -1},
            }
        }
        response = await self._request("POST", url, json=body)
        data = self._json(response, url) or {}

        if not isinstance(data, dict):
            raise WildberriesAPIError(
                "Invalid cards response: expected object",
                endpoint=url,
                response_data=data
            )
        return data

    async def get_cards(self) -> List[Dict[str, Any]]:
        """
        Get all product cards using cursor pagination.

        Returns:
            Raw cards (``nmID``, ``vendorCode``, ``sizes`` with ``skus``)
        """
        cards: List[Dict[str, Any]] = []
        cursor: Dict[str, Any] = {"limit": CARDS_PAGE_LIMIT}

        while True:
            data = await self.get_cards_page(cursor)
            page = data.get("cards") or []
            cards.extend(page)

            next_cursor = data.get("cursor") or {}
            if len(page) < CARDS_PAGE_LIMIT or not next_cursor.get("nmID"):
                break

            cursor = {
                "limit": CARDS_PAGE_LIMIT,
                "updatedAt": next_cursor.get("updatedAt"),
                "nmID": next_cursor.get("nmID"),
            }

        logger.info(f"Retrieved {len(cards)} product cards")
        return cards

    @retry_with_backoff(REPORT_TASK_RETRY)
    async def create_report_task(self, path: str, date_from: DateLike, date_to: DateLike) -> str:
        """
        Create a seller-analytics report task.

        Args:
            path: Report path, e.g. "/api/v1/paid_storage"

        Returns:
            Task ID
        """
        url = urljoin(self.analytics_base_url, path)
        response = await self._request(
            "GET", url, params={"dateFrom": _iso(date_from), "dateTo": _iso(date_to)}
        )
        data = self._json(response, url) or {}

        task_id = (data.get("data") or {}).get("taskId") if isinstance(data, dict) else None
        if not task_id:
            raise WildberriesAPIError(
                "Invalid report task response: missing taskId",
                endpoint=url,
                response_data=data
            )

        logger.info(f"Created report task {task_id} for {path}")
        return task_id

    async def get_task_status(self, path: str, task_id: str) -> str:
        url = urljoin(self.analytics_base_url, f"{path}/tasks/{task_id}/status")
        response = await self._request("GET", url)
        data = self._json(response, url) or {}
        return str((data.get("data") or {}).get("status", "")) if isinstance(data, dict) else ""

    @retry_with_backoff(REPORT_TASK_RETRY)
    async def download_report_task(self, path: str, task_id: str) -> List[Dict[str, Any]]:
        url = urljoin(self.analytics_base_url, f"{path}/tasks/{task_id}/download")
        response = await self._request("GET", url)
        data = self._json(response, url) or []

        if not isinstance(data, list):
            raise WildberriesAPIError(
                "Invalid report download response: expected array",
                endpoint=url,
                response_data=data
            )

        logger.info(f"Downloaded {len(data)} rows for task {task_id}")
        return data

    async def run_report_task(self, path: str, date_from: DateLike, date_to: DateLike) -> List[Dict[str, Any]]:
        """
        Create a report task, wait for status "done" and download it.

        Raises:
            TaskTimeoutError: If the task is not done after all poll attempts
        """
        task_id = await self.create_report_task(path, date_from, date_to)

        interval = self.report_settings.task_poll_interval
        attempts = self.report_settings.task_poll_attempts

        for attempt in range(1, attempts + 1):
            await asyncio.sleep(interval)
            try:
                status = await self.get_task_status(path, task_id)
            except WildberriesAPIError as e:
                logger.warning(f"Task {task_id} status check failed: {e}")
                continue

            logger.debug(f"Task {task_id} status: {status or 'unknown'} ({attempt}/{attempts})")
            if status == "done":
                return await self.download_report_task(path, task_id)

        raise TaskTimeoutError(
            f"Report task {task_id} for {path} was not ready after {attempts} checks",
            task_id=task_id,
            timeout_seconds=interval * attempts
        )

    async def get_paid_storage(self, date_from: DateLike, date_to: DateLike) -> List[Dict[str, Any]]:
        """Paid storage report; windows longer than the API limit are clamped."""
        start, end = clamp_window(date_from, date_to, self.report_settings.storage_max_days)
        return await self.run_report_task("/api/v1/paid_storage", start, end)

    async def get_acceptance_report(self, date_from: DateLike, date_to: DateLike) -> List[Dict[str, Any]]:
        """Paid acceptance report; windows longer than the API limit are clamped."""
        start, end = clamp_window(date_from, date_to, self.report_settings.acceptance_max_days)
        return await self.run_report_task("/api/v1/acceptance_report", start, end)

    def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            self.session.close()
        logger.debug("Closed Wildberries API client")


def create_wildberries_client(api_key: Optional[str] = None,
                              config: Optional[FinanceReportConfig] = None) -> WildberriesAPIClient:
    """
    Factory function to create a Wildberries API client.

    Args:
        api_key: Wildberries API token
        config: Application configuration

    Returns:
        Configured WildberriesAPIClient instance.
    """
    return WildberriesAPIClient(api_key=api_key, config=config)
