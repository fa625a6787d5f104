"""
Data formatting utilities for Google Sheets display.

Converts report objects into ``(headers, rows)`` tables, one per worksheet,
and maps Wildberries numeric codes to the Russian labels sellers see in
their personal account.
"""

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from wb_finance_report.core.models import (
    Campaign, CostPriceEntry, FinancialRecord, PeriodsReport, ProductAnalyticsRow,
    TransactionRecord, date_part, safe_float, safe_str,
)
from wb_finance_report.utils.logger import get_logger


logger = get_logger(__name__)

Table = Tuple[List[str], List[List[Any]]]

CAMPAIGN_TYPES: Dict[int, str] = {
    4: "Кампания в каталоге",
    5: "Кампания в карточке товара",
    6: "Кампания в поиске",
    7: "Кампания в рекомендациях на главной странице",
    8: "Автоматическая кампания",
    9: "Поиск + каталог",
}

CAMPAIGN_STATUSES: Dict[int, str] = {
    4: "Готова к запуску",
    7: "Завершена",
    8: "Отклонена",
    9: "Активна",
    11: "Приостановлена",
}

# Цветные кружки и прочие пиктограммы, которыми продавцы помечают кампании
EMOJI_PATTERN = re.compile(
    "["
    "\U0001F300-\U0001FAFF"
    "\U00002600-\U000027BF"
    "\U00002B00-\U00002BFF"
    "\U0001F000-\U0001F2FF"
    "️‍"
    "]+"
)

REALIZATION_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("Номер поставки", "gi_id"),
    ("Артикул WB", "nm_id"),
    ("Артикул продавца", "sa_name"),
    ("Баркод", "barcode"),
    ("Тип документа", "doc_type_name"),
    ("Обоснование для оплаты", "supplier_oper_name"),
    ("Дата заказа", "order_dt"),
    ("Дата продажи", "sale_dt"),
    ("Количество", "quantity"),
    ("Цена розничная с учетом согласованной скидки", "retail_price_withdisc_rub"),
    ("Вайлдберриз реализовал Товар (Пр)", "retail_amount"),
    ("К перечислению продавцу", "ppvz_for_pay"),
    ("Количество доставок", "delivery_amount"),
    ("Количество возвратов", "return_amount"),
    ("Услуги по доставке товара покупателю", "delivery_rub"),
    ("Общая сумма штрафов", "penalty"),
    ("Доплаты", "additional_payment"),
    ("Виды логистики, штрафов и доплат", "bonus_type_name"),
    ("Склад", "office_name"),
    ("Srid", "srid"),
    ("Хранение", "storage_fee"),
    ("Удержания", "deduction"),
    ("Платная приемка", "acceptance"),
)

STORAGE_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("Дата", "date"),
    ("Склад", "warehouse"),
    ("Артикул Wildberries", "nmId"),
    ("Размер", "size"),
    ("Баркод", "barcode"),
    ("Предмет", "subject"),
    ("Бренд", "brand"),
    ("Артикул продавца", "vendorCode"),
    ("Объем (дм³)", "volume"),
    ("Тип расчета", "calcType"),
    ("Сумма хранения", "warehousePrice"),
    ("Количество баркодов", "barcodesCount"),
    ("Коэффициент склада", "warehouseCoef"),
    ("Скидка лояльности (%)", "loyaltyDiscount"),
    ("Дата фиксации тарифа", "tariffFixDate"),
    ("Дата снижения тарифа", "tariffLowerDate"),
)

ACCEPTANCE_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("Дата создания поставки", "giCreateDate"),
    ("Номер поставки", "incomeId"),
    ("Артикул WB", "nmID"),
    ("Дата приёмки", "shkCreateDate"),
    ("Предмет", "subjectName"),
    ("Количество товаров, шт.", "count"),
    ("Суммарная стоимость приёмки, ₽", "total"),
)

PRODUCT_ANALYTICS_HEADERS: Tuple[Tuple[str, str], ...] = (
    ("Артикул продавца", "seller_sku"),
    ("Артикул WB", "wb_sku"),
    ("Доставки", "deliveries"),
    ("Продажи, шт", "sales"),
    ("Возвраты, шт", "returns"),
    ("% возвратов", "refund_rate"),
    ("Реализовано, шт", "realized_quantity"),
    ("Выручка до СПП", "revenue_before_discount"),
    ("Выручка после СПП", "revenue_after_discount"),
    ("Комиссия", "commission"),
    ("Логистика", "logistics"),
    ("Хранение", "storage"),
    ("Штрафы", "penalty"),
    ("Маржа", "margin"),
    ("% маржи", "margin_percent"),
    ("Реклама", "advertising_spend"),
    ("Себестоимость единицы", "unit_cost_price"),
    ("Себестоимость всего", "total_cost_price"),
    ("Операционная прибыль", "operating_profit"),
    ("Рентабельность, %", "profitability"),
)


def campaign_type_name(campaign_type: Any) -> str:
    code = int(safe_float(campaign_type))
    return CAMPAIGN_TYPES.get(code, f"Неизвестный тип ({code})")


def campaign_status_name(status: Any) -> str:
    code = int(safe_float(status))
    return CAMPAIGN_STATUSES.get(code, f"Неизвестный статус ({code})")


def clean_campaign_name(name: Optional[str]) -> str:
    """Strip emoji markers from a campaign name and collapse whitespace."""
    if not name:
        return ""
    return " ".join(EMOJI_PATTERN.sub(" ", str(name)).split())


def _raw_row(record: Any) -> Mapping[str, Any]:
    if isinstance(record, TransactionRecord):
        return record.raw
    if isinstance(record, Mapping):
        return record
    return {}


def _columns_table(items: Iterable[Any], columns: Tuple[Tuple[str, str], ...]) -> Table:
    headers = [title for title, _ in columns]
    rows = []
    for item in items or []:
        row = _raw_row(item)
        rows.append([_cell(row.get(key)) for _, key in columns])
    return headers, rows


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float, str)):
        return value
    return str(value)


class ReportFormatter:
    """
    Builds worksheet tables for every section of the report.

    Each ``format_*`` method returns ``(headers, rows)`` ready for a single
    ``worksheet.update`` call.
    """

    @staticmethod
    def format_realization(records: Iterable[Any]) -> Table:
        """Realization lines as they came from the API, in report column order."""
        return _columns_table(records, REALIZATION_COLUMNS)

    @staticmethod
    def format_storage(rows: Iterable[Mapping[str, Any]]) -> Table:
        return _columns_table(rows, STORAGE_COLUMNS)

    @staticmethod
    def format_acceptance(rows: Iterable[Mapping[str, Any]]) -> Table:
        return _columns_table(rows, ACCEPTANCE_COLUMNS)

    @staticmethod
    def format_campaigns(campaigns: Iterable[Campaign]) -> Table:
        headers = [
            "ID кампании", "Название", "Тип", "Статус", "Дневной бюджет",
            "Дата создания", "Дата изменения", "Дата запуска", "Дата завершения",
        ]
        rows = [
            [
                c.campaign_id,
                clean_campaign_name(c.name),
                campaign_type_name(c.type),
                campaign_status_name(c.status),
                c.daily_budget,
                c.create_time,
                c.change_time,
                c.start_time,
                c.end_time,
            ]
            for c in campaigns or []
        ]
        return headers, rows

    @staticmethod
    def format_financial_records(records: Iterable[FinancialRecord]) -> Table:
        headers = ["ID кампании", "Название", "Дата", "Сумма", "Источник списания",
                   "Тип", "Номер документа", "SKU"]
        rows = [
            [
                r.campaign_id,
                clean_campaign_name(r.campaign_name),
                r.date,
                r.amount,
                r.payment_source.label,
                r.operation_type,
                r.document_number,
                r.sku or "",
            ]
            for r in records or []
        ]
        return headers, rows

    @staticmethod
    def format_cost_prices(entries: Iterable[CostPriceEntry]) -> Table:
        headers = ["Артикул WB", "Артикул продавца", "Предмет", "Бренд", "Размер",
                   "Баркод", "Цена", "Себестоимость"]
        rows = [
            [e.nm_id, e.vendor_code, e.subject, e.brand, e.size_name, e.barcode, e.price, e.cost_price]
            for e in entries or []
        ]
        return headers, rows

    @staticmethod
    def format_product_analytics(rows: Iterable[ProductAnalyticsRow]) -> Table:
        headers = [title for title, _ in PRODUCT_ANALYTICS_HEADERS]
        table = []
        for row in rows or []:
            data = row.to_dict()
            table.append([data[key] for _, key in PRODUCT_ANALYTICS_HEADERS])
        return headers, table

    @staticmethod
    def format_periods(report: PeriodsReport, start: Any = "", end: Any = "") -> Table:
        """
        Periods summary laid out like the seller spreadsheet.

        The first two rows carry the window bounds ("от" / "до"), then one row
        per metric: label, value, percent, comment.
        """
        headers = ["Показатель", "Значение", "%", "Комментарий"]
        rows: List[List[Any]] = [
            ["от", date_part(start) or safe_str(start), "", ""],
            ["до", date_part(end) or safe_str(end), "", ""],
        ]
        for label, metric in report.metrics.items():
            rows.append([
                label,
                round(metric.value, 2),
                "" if metric.percent is None else round(metric.percent * 100, 2),
                metric.comment or "",
            ])
        return headers, rows
