"""
Unit tests for API row parsing
"""
from datetime import date

import pytest

from wb_finance_report.core.models import (
    FinancialRecord, PaymentSource, TransactionRecord, date_part, parse_campaigns,
    parse_cost_price_entries, parse_financial_records, parse_transaction_records, safe_float,
    safe_int,
)

from conftest import make_row


class TestCoercion:

    @pytest.mark.parametrize("value, expected", [
        (None, 0.0), ("", 0.0), ("12.5", 12.5), ("abc", 0.0), (float("inf"), 0.0), (3, 3.0),
    ])
    def test_safe_float(self, value, expected):
        assert safe_float(value) == expected

    def test_safe_int(self):
        assert safe_int("7.9") == 7
        assert safe_int(None) == 0
        assert safe_int(float("nan")) == 0

    def test_date_part(self):
        assert date_part("2024-06-16T10:11:12Z") == "2024-06-16"
        assert date_part(date(2024, 6, 16)) == "2024-06-16"
        assert date_part("16.06.2024") == ""
        assert date_part(None) == ""


class TestTransactionRecord:

    def test_field_mapping(self):
        record = TransactionRecord.from_api_data(make_row(
            rr_dt="2024-06-10T00:00:00", doc_type_name="Продажа", retail_price_withdisc_rub="1000",
            retail_amount=900, ppvz_for_pay=850, delivery_rub=55, acceptance=3, nm_id="111",
            sa_name=" ABC-1 ", doc_number=None, srid="srid-1",
        ))

        assert record.date == "2024-06-10"
        assert record.document_type == "Продажа"
        assert record.retail_price_before_discount == 1000
        assert record.retail_amount_after_discount == 900
        assert record.amount_payable_to_seller == 850
        assert record.logistics_cost == 55
        assert record.acceptance_fee == 3
        assert record.wb_sku == 111
        assert record.seller_sku == "ABC-1"
        assert record.document_number == ""
        assert record.raw["srid"] == "srid-1"

    def test_tolerates_garbage(self):
        record = TransactionRecord.from_api_data({"quantity": "many", "deduction": None})

        assert record.quantity == 0
        assert record.deduction == 0
        assert record.date == ""

    def test_parse_non_dict_rows(self):
        records = parse_transaction_records([make_row(), "junk"])

        assert len(records) == 2
        assert records[1] == TransactionRecord()


class TestFinancialRecord:

    def test_from_api_data(self):
        record = FinancialRecord.from_api_data({
            "advertId": 15, "updTime": "2024-06-10T12:00:00+03:00", "updSum": "120.5",
            "updNum": 777, "paymentType": "Счет", "campName": "Лето", "type": "Списание",
        })

        assert record.campaign_id == 15
        assert record.date == "2024-06-10"
        assert record.amount == 120.5
        assert record.payment_source is PaymentSource.INVOICE
        assert record.document_number == "777"
        assert record.to_dict()["payment_source"] == "Счет"

    def test_zero_document_number_is_empty(self):
        record = FinancialRecord.from_api_data({"advertId": 1, "updTime": "2024-06-10", "updSum": 5, "updNum": 0})

        assert record.document_number == ""
        assert record.payment_source is PaymentSource.BALANCE

    def test_incomplete_entries_skipped(self):
        rows = [
            {"advertId": 1, "updTime": "2024-06-10", "updSum": 0},
            {"updTime": "2024-06-10", "updSum": 5},
            {"advertId": 1, "updSum": 5},
            {"advertId": 1, "updTime": "2024-06-10"},
            None,
        ]
        records = parse_financial_records(rows)

        assert len(records) == 1
        assert records[0].amount == 0

    def test_with_sku_copies(self):
        record = FinancialRecord(campaign_id=1, date="2024-06-10", amount=1.0)
        enriched = record.with_sku("42")

        assert enriched.sku == "42"
        assert record.sku is None


class TestCampaigns:

    def test_flatten_groups(self):
        groups = [
            {"type": 8, "status": 9, "count": 2, "advert_list": [
                {"advertId": 1, "changeTime": "2024-06-01"}, {"advertId": 2},
            ]},
            {"type": 9, "status": 11, "advert_list": [{"advertId": 3}]},
            {"advertId": 4, "type": 6, "status": 7, "name": "Flat"},
            {"type": 8, "advert_list": None},
        ]
        campaigns = parse_campaigns(groups)

        assert [c.campaign_id for c in campaigns] == [1, 2, 3, 4]
        assert (campaigns[0].type, campaigns[0].status) == (8, 9)
        assert campaigns[0].change_time == "2024-06-01"
        assert (campaigns[2].type, campaigns[2].status) == (9, 11)
        assert campaigns[3].name == "Flat"


class TestCostPriceEntries:

    def test_expand_sizes_and_barcodes(self):
        cards = [{
            "nmID": 111, "vendorCode": "ABC-1", "subjectName": "Платья", "brand": "Brand",
            "sizes": [
                {"techSize": "S", "skus": ["2000001", "2000002"], "price": 1500},
                {"wbSize": "48", "skus": []},
            ],
        }]
        entries = parse_cost_price_entries(cards, {"111-2000002": "450"})

        assert [(e.size_name, e.barcode) for e in entries] == [("S", "2000001"), ("S", "2000002"), ("48", "")]
        assert entries[0].price == 1500
        assert entries[0].cost_price == 0
        assert entries[1].cost_price == 450
        assert entries[1].key == "111-2000002"
        assert entries[0].subject == "Платья"

    def test_card_without_sizes(self):
        entries = parse_cost_price_entries([{"nmID": 5, "object": "Юбки"}, "junk"])

        assert len(entries) == 1
        assert entries[0].size_name == "Без размера"
        assert entries[0].barcode == ""
        assert entries[0].subject == "Юбки"
