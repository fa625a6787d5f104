"""
Test configuration and fixtures for WB Finance Report
"""
import os

# Keep test runs quiet; loggers read LOG_LEVEL when modules are imported
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from wb_finance_report.core.models import TransactionRecord, FinancialRecord, PaymentSource
from wb_finance_report.utils.config import ReportSettings


def make_row(**overrides):
    """Raw realization report row as returned by reportDetailByPeriod."""
    row = {
        "rrd_id": 1,
        "rr_dt": "2024-06-10",
        "doc_type_name": "",
        "supplier_oper_name": "",
        "bonus_type_name": "",
        "quantity": 0,
        "retail_price_withdisc_rub": 0,
        "retail_amount": 0,
        "ppvz_for_pay": 0,
        "delivery_amount": 0,
        "return_amount": 0,
        "delivery_rub": 0,
        "storage_fee": 0,
        "penalty": 0,
        "deduction": 0,
        "acceptance": 0,
        "doc_number": "",
        "sa_name": "",
        "nm_id": 0,
        "barcode": "",
    }
    row.update(overrides)
    return row


def make_record(**overrides):
    """TransactionRecord built from a raw row with the given overrides."""
    return TransactionRecord.from_api_data(make_row(**overrides))


def sale(qty=1, before=0.0, after=0.0, payable=0.0, **extra):
    return make_record(
        doc_type_name="Продажа", supplier_oper_name="Продажа", quantity=qty,
        retail_price_withdisc_rub=before, retail_amount=after, ppvz_for_pay=payable, **extra
    )


def return_line(qty=1, before=0.0, after=0.0, payable=0.0, **extra):
    return make_record(
        doc_type_name="Возврат", supplier_oper_name="Возврат", quantity=qty,
        retail_price_withdisc_rub=before, retail_amount=after, ppvz_for_pay=payable, **extra
    )


def deduction(operation, amount, **extra):
    return make_record(supplier_oper_name=operation, deduction=amount, **extra)


def ledger_record(campaign_id, day, amount, doc="", sku=None):
    return FinancialRecord(
        campaign_id=campaign_id,
        date=day,
        amount=amount,
        payment_source=PaymentSource.BALANCE,
        document_number=doc,
        sku=sku,
    )


@pytest.fixture
def settings():
    """Default pipeline settings without sleeps."""
    return ReportSettings(sku_batch_delay=0, task_poll_interval=0)


@pytest.fixture
def no_fallback_settings():
    return ReportSettings(credit_fallback_enabled=False)


@pytest.fixture
def sample_rows():
    """Raw realization rows for one week with a sale, a return and deductions."""
    return [
        make_row(rrd_id=1, rr_dt="2024-06-10", doc_type_name="Продажа", supplier_oper_name="Продажа",
                 quantity=2, retail_price_withdisc_rub=2000, retail_amount=1800, ppvz_for_pay=1600,
                 delivery_amount=2, doc_number="D1", sa_name="ABC-1", nm_id=111, barcode="2000001"),
        make_row(rrd_id=2, rr_dt="2024-06-11", doc_type_name="Возврат", supplier_oper_name="Возврат",
                 quantity=1, retail_price_withdisc_rub=1000, retail_amount=900, ppvz_for_pay=800,
                 doc_number="D2", sa_name="ABC-1", nm_id=111, barcode="2000001"),
        make_row(rrd_id=3, rr_dt="2024-06-12", supplier_oper_name="Логистика", delivery_rub=150,
                 doc_number="D3", sa_name="ABC-1", nm_id=111),
        make_row(rrd_id=4, rr_dt="2024-06-12", supplier_oper_name="Оказание услуг «ВБ.Продвижение»",
                 deduction=300, doc_number="D4"),
        make_row(rrd_id=5, rr_dt="2024-06-13", supplier_oper_name="Хранение", storage_fee=40,
                 doc_number="D5"),
    ]
