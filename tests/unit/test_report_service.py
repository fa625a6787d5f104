"""
Unit tests for report orchestration
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from wb_finance_report.services.report_service import ReportBundle, ReportService
from wb_finance_report.utils.exceptions import ValidationError, WildberriesAPIError

from conftest import make_row


START = "2024-06-10"
END = "2024-06-16"

CARDS = [{
    "nmID": 111, "vendorCode": "ABC-1", "subjectName": "Платья", "brand": "Brand",
    "sizes": [{"techSize": "S", "skus": ["2000001"], "price": 2000}],
}]

LEDGER = [
    {"advertId": 1, "updTime": "2024-06-12T10:00:00", "updSum": 100, "updNum": 5, "paymentType": "Баланс"},
    {"advertId": 1, "updTime": "2024-06-20T10:00:00", "updSum": 70, "updNum": 6},
]


@pytest.fixture
def window_rows(sample_rows):
    """Sample week plus one line on each buffer day."""
    return sample_rows + [
        make_row(rrd_id=6, rr_dt="2024-06-09", supplier_oper_name="Логистика", delivery_rub=10, doc_number="D1"),
        make_row(rrd_id=7, rr_dt="2024-06-17", supplier_oper_name="Логистика", delivery_rub=20, doc_number="D9"),
    ]


@pytest.fixture
def api_client():
    client = MagicMock()
    client.get_realization_report = AsyncMock()
    client.get_paid_storage = AsyncMock(return_value=[{"date": "2024-06-10", "warehousePrice": 3}])
    client.get_acceptance_report = AsyncMock(return_value=[])
    client.get_campaigns = AsyncMock(return_value=[{"type": 8, "status": 9, "advert_list": [{"advertId": 1}]}])
    client.get_advertising_ledger = AsyncMock(return_value=LEDGER)
    client.get_cards = AsyncMock(return_value=CARDS)
    client.get_campaign_details = AsyncMock(
        return_value=[{"advertId": 1, "type": 8, "autoParams": {"nms": [111]}}]
    )
    return client


class TestBuildFromData:
    """Offline pipeline on already fetched rows"""

    @pytest.mark.asyncio
    async def test_pipeline(self, window_rows, settings):
        service = ReportService(settings=settings)

        bundle = await service.build_report_from_data(
            START, END, realization=window_rows, ledger=LEDGER, cards=CARDS,
            cost_prices={"111-2000001": 500, "broken": 1},
        )

        assert isinstance(bundle, ReportBundle)
        assert (bundle.start, bundle.end) == (START, END)
        # prev buffer D1 matches the sale document, next buffer D9 does not
        assert len(bundle.transactions) == 6
        assert bundle.transaction_reconciliation.prev_added[0].date == "2024-06-09"
        assert bundle.transaction_reconciliation.next_added == ()

        assert [r.amount for r in bundle.financial_records] == [100]
        assert bundle.financial_records[0].sku is None

        assert len(bundle.cost_prices) == 1
        assert bundle.cost_prices[0].cost_price == 500
        assert bundle.product_analytics[0].seller_sku == "ABC-1"
        assert bundle.product_analytics[0].unit_cost_price == 500

        assert bundle.periods.value("Стоимость логистики") == 160
        summary = bundle.summary()
        assert summary["transactions"] == 6
        assert summary["sku_completeness"] == 100.0
        assert "final_payment" in summary
        assert summary["diagnostics"]["total_records"] == 6

    @pytest.mark.asyncio
    async def test_last_day_sale_sharing_order_id_is_kept(self, settings):
        rows = [
            make_row(rrd_id=1, rr_dt="2024-06-16", doc_type_name="Продажа", supplier_oper_name="Продажа",
                     quantity=1, retail_amount=900, srid="order-1"),
            make_row(rrd_id=2, rr_dt="2024-06-17", supplier_oper_name="Логистика", delivery_rub=50,
                     srid="order-1"),
        ]

        bundle = await ReportService(settings=settings).build_report_from_data(START, END, realization=rows)

        assert [r.date for r in bundle.transactions] == ["2024-06-16"]
        assert bundle.transaction_reconciliation.excluded_from_main == 0
        assert bundle.periods.value("Продажи") == 1

    @pytest.mark.asyncio
    async def test_empty_inputs(self, settings):
        bundle = await ReportService(settings=settings).build_report_from_data(START, END)

        assert bundle.transactions == []
        assert bundle.product_analytics == []
        assert bundle.periods.diagnostics.credit_fallback_used is False
        assert bundle.periods.value("ИТОГО к выплате") == 0

    @pytest.mark.asyncio
    async def test_invalid_window(self, settings):
        with pytest.raises(ValidationError):
            await ReportService(settings=settings).build_report_from_data(END, START)


class TestBuildReport:
    """Live pipeline with a mocked API client"""

    @pytest.mark.asyncio
    async def test_fetches_padded_window_and_resolves_skus(self, api_client, window_rows, settings):
        api_client.get_realization_report.return_value = window_rows
        service = ReportService(api_client, settings)

        bundle = await service.build_report(START, END)

        api_client.get_realization_report.assert_awaited_once_with("2024-06-09", "2024-06-17")
        api_client.get_advertising_ledger.assert_awaited_once_with("2024-06-09", "2024-06-17")
        api_client.get_campaign_details.assert_awaited_once_with([1])

        assert bundle.failed_sources == []
        assert bundle.financial_records[0].sku == "111"
        assert bundle.sku_stats.completeness == 100.0
        assert bundle.product_analytics[0].advertising_spend == 100
        assert [c.campaign_id for c in bundle.campaigns] == [1]
        assert bundle.storage == [{"date": "2024-06-10", "warehousePrice": 3}]

    @pytest.mark.asyncio
    async def test_longest_window_fetch_is_split(self, api_client, settings):
        api_client.get_realization_report.side_effect = [
            [make_row(rrd_id=1, rr_dt="2024-06-20", doc_number="A")],
            [make_row(rrd_id=2, rr_dt="2024-07-01", doc_number="B")],
        ]

        bundle = await ReportService(api_client, settings).build_report("2024-06-01", "2024-07-01")

        assert [c.args for c in api_client.get_realization_report.await_args_list] == [
            ("2024-05-31", "2024-06-30"),
            ("2024-07-01", "2024-07-02"),
        ]
        assert api_client.get_advertising_ledger.await_count == 2
        assert bundle.failed_sources == []
        assert [r.document_number for r in bundle.transactions] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_failing_source_becomes_empty(self, api_client, window_rows, settings):
        api_client.get_realization_report.return_value = window_rows
        api_client.get_paid_storage.side_effect = WildberriesAPIError("boom", status_code=500)
        api_client.get_cards.side_effect = ConnectionError("reset")

        bundle = await ReportService(api_client, settings).build_report(START, END)

        assert sorted(bundle.failed_sources) == ["cards", "storage"]
        assert bundle.storage == []
        assert bundle.cost_prices == []
        assert len(bundle.transactions) == 6

    @pytest.mark.asyncio
    async def test_requires_client(self, settings):
        with pytest.raises(ValueError):
            await ReportService(settings=settings).build_report(START, END)

    @pytest.mark.asyncio
    async def test_window_too_long(self, api_client, settings):
        with pytest.raises(ValidationError):
            await ReportService(api_client, settings).build_report("2024-06-01", "2024-08-01")
        api_client.get_realization_report.assert_not_called()
