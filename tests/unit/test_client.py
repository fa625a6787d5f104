"""
Unit tests for the Wildberries API client
"""
import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import requests

from wb_finance_report.api.client import WildberriesAPIClient, create_wildberries_client
from wb_finance_report.utils.config import ReportSettings, WildberriesAPIConfig
from wb_finance_report.utils.exceptions import (
    AuthenticationError, TaskTimeoutError, WildberriesAPIError,
)


def api_response(status=200, data=None, headers=None):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.content = b"" if data is None else b"{}"
    response.json.return_value = data
    response.headers = headers or {}
    response.text = ""
    return response


@pytest.fixture
def client():
    config = MagicMock()
    config.wildberries = WildberriesAPIConfig(api_key="test-token")
    config.report = ReportSettings(task_poll_interval=0, task_poll_attempts=3, storage_max_days=8)
    api = create_wildberries_client(config=config)
    api.session.request = MagicMock()
    yield api
    api.close()


@pytest.fixture
def no_sleep():
    with patch("wb_finance_report.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestRequests:

    def test_auth_header(self, client):
        assert isinstance(client, WildberriesAPIClient)
        assert client.session.headers["Authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    async def test_realization_pagination(self, client):
        client.session.request.side_effect = [
            api_response(data=[{"rrd_id": 1}, {"rrd_id": 2}]),
            api_response(data=[{"rrd_id": 3}]),
        ]

        with patch("wb_finance_report.api.client.REALIZATION_PAGE_LIMIT", 2):
            rows = await client.get_realization_report("2024-06-09", "2024-06-17")

        assert [r["rrd_id"] for r in rows] == [1, 2, 3]
        second_params = client.session.request.call_args_list[1].kwargs["params"]
        assert second_params["rrdid"] == 2
        assert second_params["dateFrom"] == "2024-06-09"

    @pytest.mark.asyncio
    async def test_no_content_is_empty(self, client):
        client.session.request.return_value = api_response(status=204)

        assert await client.get_realization_report("2024-06-09", "2024-06-17") == []

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self, client, no_sleep):
        client.session.request.return_value = api_response(status=401, data={"detail": "bad token"})

        with pytest.raises(AuthenticationError):
            await client.get_advertising_ledger("2024-06-09", "2024-06-17")
        assert client.session.request.call_count == 1
        no_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, client, no_sleep):
        client.session.request.side_effect = [
            api_response(status=429, data={}, headers={"Retry-After": "3"}),
            api_response(data=[{"advertId": 1, "updTime": "2024-06-10", "updSum": 5}]),
        ]

        data = await client.get_advertising_ledger("2024-06-09", "2024-06-17")

        assert len(data) == 1
        no_sleep.assert_awaited_once_with(3.0)

    @pytest.mark.asyncio
    async def test_connection_failure(self, client, no_sleep):
        client.session.request.side_effect = requests.exceptions.ConnectionError("down")

        with pytest.raises(WildberriesAPIError):
            await client.get_campaign_details([1, 2])

    @pytest.mark.asyncio
    async def test_requests_overlap(self, client):
        # both requests must be in flight at once to pass the barrier
        barrier = threading.Barrier(2, timeout=5)

        def handler(method, url, **kwargs):
            barrier.wait()
            return api_response(data=[])

        client.session.request.side_effect = handler

        first, second = await asyncio.gather(
            client.get_advertising_ledger("2024-06-09", "2024-06-17"),
            client.get_advertising_ledger("2024-06-18", "2024-06-20"),
        )

        assert first == [] and second == []
        assert client.session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_campaign_groups(self, client):
        groups = [{"type": 8, "status": 9, "advert_list": [{"advertId": 1}, {"advertId": 2}]}]
        client.session.request.return_value = api_response(data={"adverts": groups, "all": 2})

        assert await client.get_campaigns() == groups

    @pytest.mark.asyncio
    async def test_campaign_details_posts_ids(self, client):
        client.session.request.return_value = api_response(data=[{"advertId": 1}])

        await client.get_campaign_details(["1", 2])

        args, kwargs = client.session.request.call_args
        assert args[0] == "POST"
        assert args[1].endswith("/adv/v1/promotion/adverts")
        assert kwargs["json"] == [1, 2]

    @pytest.mark.asyncio
    async def test_cards_cursor(self, client):
        first = [{"nmID": i} for i in range(100)]
        client.session.request.side_effect = [
            api_response(data={"cards": first, "cursor": {"updatedAt": "2024-06-01", "nmID": 99}}),
            api_response(data={"cards": [{"nmID": 500}], "cursor": {"nmID": 500}}),
        ]

        cards = await client.get_cards()

        assert len(cards) == 101
        cursor = client.session.request.call_args_list[1].kwargs["json"]["settings"]["cursor"]
        assert cursor == {"limit": 100, "updatedAt": "2024-06-01", "nmID": 99}


class TestReportTasks:
    """create -> poll -> download"""

    @staticmethod
    def route(statuses, rows):
        statuses = list(statuses)

        def handler(method, url, **kwargs):
            if url.endswith("/status"):
                return api_response(data={"data": {"id": "t1", "status": statuses.pop(0)}})
            if url.endswith("/download"):
                return api_response(data=rows)
            return api_response(data={"data": {"taskId": "t1"}})

        return handler

    @pytest.mark.asyncio
    async def test_paid_storage_clamped_and_downloaded(self, client):
        client.session.request.side_effect = self.route(["new", "processing", "done"], [{"date": "2024-06-01"}])

        rows = await client.get_paid_storage("2024-06-01", "2024-06-30")

        assert rows == [{"date": "2024-06-01"}]
        create_params = client.session.request.call_args_list[0].kwargs["params"]
        assert create_params == {"dateFrom": "2024-06-01", "dateTo": "2024-06-08"}

    @pytest.mark.asyncio
    async def test_task_timeout(self, client):
        client.session.request.side_effect = self.route(["processing"] * 3, [])

        with pytest.raises(TaskTimeoutError) as exc_info:
            await client.get_acceptance_report("2024-06-01", "2024-06-30")
        assert exc_info.value.task_id == "t1"

    @pytest.mark.asyncio
    async def test_missing_task_id(self, client, no_sleep):
        client.session.request.return_value = api_response(data={"data": {}})

        with pytest.raises(WildberriesAPIError):
            await client.create_report_task("/api/v1/paid_storage", "2024-06-01", "2024-06-08")
