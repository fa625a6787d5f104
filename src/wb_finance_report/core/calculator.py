"""
Financial aggregator for the "По периодам" sheet.

Recomputes the seller spreadsheet's formula chain from realization lines.
Spreadsheet row numbers are kept in the value names (b20_total_before...)
so each figure can be checked against the sheet it replaces:

    Tier 1  units        B5 B6 B8 B9 B11 B13 B14
    Tier 2  before СПП   B17 B18 B19 B20 B21
    Tier 3  after СПП    B25 B26 B27 B28 B29 B30 B31
    Tier 4  payable      B34 B35 B36 B37 B40 B41 B22
    Tier 5  deductions   B42..B60
    Tier 6  totals       B61 B62 B63 B66 B67

Every ratio goes through ``safe_divide``: a zero denominator gives 0.
Credit rows are a known data-quality gap of the report; when none are
present the fixed values of the source spreadsheet are substituted through
``apply_credit_fallback`` and reported in the diagnostics.
"""

from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from wb_finance_report.core.classifier import (
    classify_all, is_strict_sale, is_sale_document, is_return_document, is_strict_return,
    is_voluntary_compensation, is_refusal, is_advertising_deduction,
    is_credit_body, is_credit_interest,
)
from wb_finance_report.core.models import (
    AggregateMetric, AggregationDiagnostics, PeriodsReport, TransactionRecord, safe_float,
)
from wb_finance_report.utils.config import ReportSettings
from wb_finance_report.utils.logger import get_logger


logger = get_logger(__name__)

# Порядок полей для "Доставки": берется первая ненулевая сумма
DELIVERY_FIELDS = ("delivery_amount", "quantity", "delivery_count")

COMMENT_SALE = "Продажа"
COMMENT_RETURN = "Возврат"
COMMENT_COMPENSATION = "Добровольная компенсация при возврате"
COMMENT_UNCLEAR = "непонятно"

# (label, value key, percent key, comment); percent key "=" means percent == value
PERIOD_METRIC_LAYOUT: Tuple[Tuple[str, str, Optional[str], Optional[str]], ...] = (
    # Движение товара в штуках
    ("Доставки", "b5_deliveries", None, "SUM('Отчет детализации'!M:M)"),
    ("Отказы без возвратов", "b6_refusals", "refusals_share", "От клиента при отмене"),
    ("Итого поставок клиентам", "total_supplied", None, "Доставки + Отказы"),
    ("Продажи", "b8_sales", None, COMMENT_SALE),
    ("Возвраты", "b9_returns", "returns_share", COMMENT_RETURN),
    ("Итого кол-во реализованного товара", "b11_realized", "realized_share", None),
    ("Продажи + корректировки", "b13_sales_with_corrections", None, COMMENT_SALE),
    ("Корректировки", "b14_corrections", None, COMMENT_COMPENSATION),
    ("Заказано товаров", "b5_deliveries", None, "=Доставки"),
    ("Корректировки в перечислении за товар шт", "b14_corrections", None, COMMENT_COMPENSATION),
    # Движение товара в рублях до СПП
    ("Продажи до СПП", "b17_sales_before", None, COMMENT_SALE),
    ("Возвраты до СПП", "b18_returns_before", None, COMMENT_RETURN),
    ("Корректировка в продажах до СПП", "b19_corrections_before", None, ""),
    ("Вся стоимость реализованного товара до СПП", "b20_total_before", None, None),
    ("Вся стоимость до СПП", "b20_total_before", None, "=Вся стоимость реализованного товара до СПП"),
    ("Средний чек продажи до СПП", "b21_avg_check_before", None, None),
    ("% комиссии ВБ до СПП", "b22_commission_share_before", "=", None),
    # Движение товара в рублях после СПП
    ("Продажи после СПП", "b25_sales_after", None, COMMENT_SALE),
    ("Возвраты после СП", "b26_returns_after", None, COMMENT_RETURN),
    ("Корректировка в продажах после СПП", "b27_corrections_after", None, COMMENT_UNCLEAR),
    ("Вся стоимость реализованного товара после СПП", "b28_total_after", None, None),
    ("Вся стоимость после СПП", "b28_total_after", None, "=Вся стоимость реализованного товара после СПП"),
    ("Средний чек продажи после СП", "b29_avg_check_after", None, None),
    ("Сумма СПП", "b30_discount_amount", None, None),
    ("% СПП", "b31_discount_share", "=", None),
    # К перечислению за товар
    ("Корректировки в перечислении за товар", "b34_compensation_payable", None, COMMENT_COMPENSATION),
    ("Продажи фактические (цена продажи - комиссия ВБ)", "b35_sales_payable", None, COMMENT_SALE),
    ("Возвраты полученный по факту за возврат по формуле (Цена продажи - комиссия ВБ)",
     "b36_returns_payable", None, COMMENT_RETURN),
    ("К перечислению за товар", "b37_net_payable", None, None),
    # Статьи удержаний Wildberries
    ("Плановая комиссия", "b40_planned_commission", None, None),
    ("Фактическая комиссия", "b41_actual_commission", None, None),
    ("Стоимость логистики", "b42_logistics", None, None),
    ("Логистика на единицу товар", "b43_logistics_per_unit", None, None),
    ("% логистики от реализациии до СПП", "b44_logistics_share", "=", None),
    ("Штрафы", "b45_penalties", None, None),
    ("Доплаты", "b46_additional_payments", None, COMMENT_UNCLEAR),
    ("Хранение", "b47_storage", None, None),
    ("% хранения от реализациии до СПП", "b48_storage_share", "=", None),
    ("Платная приемка", "b49_acceptance", None, None),
    ('"Реклама баланс + счет"', "b50_advertising", None, "Оказание услуг «ВБ.Продвижение»"),
    ("% ДРР (доля рекламных расходов) от реализациии до СПП (на единицу)",
     "b51_advertising_per_unit", None, None),
    ("% ДРР (доля рекламных расходов) от реализациии до СПП", "b52_advertising_share", "=", None),
    ("ИМИЗР (использование механик искуственного завышения рейтинга)", "b53_imizr", None, COMMENT_UNCLEAR),
    ("Отзывы", "b54_reviews", None, COMMENT_UNCLEAR),
    ("Кредит", "b55_credit", None, None),
    ("Тело кредита", "b56_credit_body", None, None),
    ("Процент кредита", "b57_credit_interest", None, None),
    ("% кредита от реализациии до СПП", "b58_credit_share", "=", None),
    ("Прочие удержания", "b59_other_deductions", None, None),
    ("% прочих удержаний от реализациии до СПП", "b60_other_deductions_share", "=", None),
    ("Итого стоимость всех услуг ВБ от реализации до СПП", "b61_services_before", None, None),
    ("% всех услуг ВБ от реализации до СПП", "b62_services_share_before", "=", None),
    ("% всех услуг ВБ от реализации после СПП", "b63_services_share_after", "=", None),
    # Итоговые расчеты
    ("ИТОГО к выплате", "b66_final_payment", None, None),
    ("Итого к оплате на единицу товара", "b67_final_payment_per_unit", None, None),
)

PERIOD_METRIC_LABELS: Tuple[str, ...] = tuple(row[0] for row in PERIOD_METRIC_LAYOUT)


def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, returning 0.0 instead of inf/NaN when the denominator is 0."""
    if not denominator:
        return 0.0
    return numerator / denominator


def _sum(records: Iterable[Any], attr: str,
         predicate: Optional[Callable[[Any], bool]] = None) -> float:
    return sum(
        safe_float(getattr(record, attr, 0))
        for record in records
        if predicate is None or predicate(record)
    )


def first_nonzero_sum(records: List[Any], fields: Tuple[str, ...] = DELIVERY_FIELDS) -> float:
    """
    Sum candidate fields in order and return the first non-zero total.

    Realization reports fill delivery counters inconsistently; the first
    populated column wins.
    """
    for field_name in fields:
        total = _sum(records, field_name)
        if total:
            return total
    return 0.0


def _refusal_amount(record: Any) -> float:
    return safe_float(getattr(record, "return_amount", 0)) or safe_float(getattr(record, "quantity", 0))


def apply_credit_fallback(body: float, interest: float, credit_records: int, total_records: int,
                          settings: ReportSettings) -> Tuple[float, float, bool]:
    """
    Substitute the spreadsheet's fixed credit values when no credit rows exist.

    Args:
        body: Computed credit body sum
        interest: Computed credit interest sum
        credit_records: Number of lines matched as credit body or interest
        total_records: Number of input lines; an empty report keeps zeros
        settings: Fallback switch and values

    Returns:
        (body, interest, fallback_used)
    """
    if credit_records or not total_records or not settings.credit_fallback_enabled:
        return body, interest, False

    logger.warning(
        "No credit rows in realization report, using fallback credit values "
        f"(body={settings.credit_fallback_body}, interest={settings.credit_fallback_interest})"
    )
    return settings.credit_fallback_body, settings.credit_fallback_interest, True


def _unit_counts(records: List[Any]) -> Dict[str, float]:
    """Tier 1: quantities."""
    v: Dict[str, float] = {}
    v["b5_deliveries"] = first_nonzero_sum(records)
    v["b6_refusals"] = sum(_refusal_amount(r) for r in records if is_refusal(r))
    v["b8_sales"] = _sum(records, "quantity", is_strict_sale)
    v["b9_returns"] = _sum(records, "quantity", is_return_document)
    v["b11_realized"] = v["b8_sales"] - v["b9_returns"]
    v["b13_sales_with_corrections"] = _sum(records, "quantity", is_sale_document)
    v["b14_corrections"] = _sum(records, "quantity", is_voluntary_compensation)

    v["total_supplied"] = v["b5_deliveries"] + v["b6_refusals"]
    v["refusals_share"] = safe_divide(v["b6_refusals"], v["b5_deliveries"])
    v["returns_share"] = safe_divide(v["b9_returns"], v["b8_sales"])
    v["realized_share"] = safe_divide(v["b11_realized"], v["b5_deliveries"])
    return v


def _before_discount(records: List[Any], v: Dict[str, float]) -> None:
    """Tier 2: rouble amounts before the marketplace discount."""
    v["b17_sales_before"] = _sum(records, "retail_price_before_discount", is_strict_sale)
    v["b18_returns_before"] = _sum(records, "retail_price_before_discount", is_strict_return)
    v["b19_corrections_before"] = 0.0
    v["b20_total_before"] = v["b17_sales_before"] - v["b18_returns_before"]
    v["b21_avg_check_before"] = safe_divide(v["b20_total_before"], v["b11_realized"])


def _after_discount(records: List[Any], v: Dict[str, float]) -> None:
    """Tier 3: rouble amounts after the marketplace discount."""
    v["b25_sales_after"] = _sum(records, "retail_amount_after_discount", is_sale_document)
    v["b26_returns_after"] = _sum(records, "retail_amount_after_discount", is_return_document)
    v["b27_corrections_after"] = 0.0
    v["b28_total_after"] = v["b25_sales_after"] - v["b26_returns_after"]
    v["b29_avg_check_after"] = safe_divide(v["b28_total_after"], v["b11_realized"])
    v["b34_compensation_payable"] = _sum(records, "amount_payable_to_seller", is_voluntary_compensation)
    v["b30_discount_amount"] = (
        v["b20_total_before"] - v["b28_total_after"] + v["b27_corrections_after"]
        - v["b34_compensation_payable"]
    )
    if v["b21_avg_check_before"]:
        v["b31_discount_share"] = 1 - safe_divide(v["b29_avg_check_after"], v["b21_avg_check_before"])
    else:
        v["b31_discount_share"] = 0.0


def _payable(records: List[Any], v: Dict[str, float]) -> None:
    """Tier 4: payable to seller and commissions."""
    v["b35_sales_payable"] = _sum(records, "amount_payable_to_seller", is_sale_document)
    v["b36_returns_payable"] = _sum(records, "amount_payable_to_seller", is_return_document)
    v["b37_net_payable"] = v["b35_sales_payable"] - v["b36_returns_payable"]
    v["b40_planned_commission"] = v["b20_total_before"] - v["b37_net_payable"]
    v["b41_actual_commission"] = v["b28_total_after"] - v["b37_net_payable"]
    v["b22_commission_share_before"] = safe_divide(
        v["b40_planned_commission"] + v["b34_compensation_payable"], v["b20_total_before"]
    )


def _deductions(records: List[Any], v: Dict[str, float], settings: ReportSettings,
                diagnostics: AggregationDiagnostics) -> None:
    """Tier 5: marketplace deduction line items."""
    total_before = v["b20_total_before"]
    realized = v["b11_realized"]

    v["b42_logistics"] = _sum(records, "logistics_cost")
    v["b43_logistics_per_unit"] = safe_divide(v["b42_logistics"], realized)
    v["b44_logistics_share"] = safe_divide(v["b43_logistics_per_unit"], v["b21_avg_check_before"])

    v["b45_penalties"] = _sum(records, "penalty")
    v["b46_additional_payments"] = 0.0
    v["b47_storage"] = _sum(records, "storage_fee")
    v["b48_storage_share"] = safe_divide(v["b47_storage"], total_before)
    v["b49_acceptance"] = _sum(records, "acceptance_fee")

    v["b50_advertising"] = _sum(records, "deduction", is_advertising_deduction)
    v["b51_advertising_per_unit"] = safe_divide(v["b50_advertising"], realized)
    v["b52_advertising_share"] = safe_divide(v["b50_advertising"], total_before)
    v["b53_imizr"] = 0.0
    v["b54_reviews"] = 0.0

    credit_records = sum(1 for r in records if is_credit_body(r) or is_credit_interest(r))
    body, interest, fallback_used = apply_credit_fallback(
        _sum(records, "deduction", is_credit_body),
        _sum(records, "deduction", is_credit_interest),
        credit_records,
        len(records),
        settings,
    )
    diagnostics.credit_records_found = credit_records
    diagnostics.credit_fallback_used = fallback_used

    v["b56_credit_body"] = body
    v["b57_credit_interest"] = interest
    v["b55_credit"] = body + interest
    v["b58_credit_share"] = safe_divide(interest, total_before)

    v["b59_other_deductions"] = _sum(records, "deduction") - interest - body - v["b50_advertising"]
    v["b60_other_deductions_share"] = safe_divide(v["b59_other_deductions"], total_before)


def _totals(v: Dict[str, float]) -> None:
    """Tier 6: service totals and final payment."""
    v["b61_services_before"] = (
        v["b59_other_deductions"] + v["b57_credit_interest"] + v["b56_credit_body"]
        + v["b50_advertising"] + v["b49_acceptance"] + v["b47_storage"] + v["b53_imizr"]
        + v["b54_reviews"] + v["b45_penalties"] + v["b42_logistics"] + v["b40_planned_commission"]
    )
    v["b62_services_share_before"] = safe_divide(v["b61_services_before"], v["b20_total_before"])

    services_after = (
        v["b55_credit"] + v["b50_advertising"] + v["b49_acceptance"] + v["b47_storage"]
        + v["b45_penalties"] + v["b42_logistics"] + v["b41_actual_commission"]
        + v["b54_reviews"] + v["b53_imizr"] + v["b46_additional_payments"]
    )
    v["b63_services_share_after"] = safe_divide(services_after, v["b28_total_after"])

    v["b66_final_payment"] = v["b28_total_after"] - sum(final_payment_deductions(v))
    v["b67_final_payment_per_unit"] = safe_divide(v["b66_final_payment"], v["b11_realized"])


def final_payment_deductions(values: Dict[str, float]) -> List[float]:
    """Line items subtracted from the after-discount total to get "ИТОГО к выплате"."""
    return [
        values["b41_actual_commission"],
        values["b42_logistics"],
        values["b45_penalties"],
        values["b46_additional_payments"],
        values["b47_storage"],
        values["b49_acceptance"],
        values["b50_advertising"],
        values["b53_imizr"],
        values["b54_reviews"],
        values["b55_credit"],
    ]


def compute_period_values(records: List[Any], settings: ReportSettings,
                          diagnostics: AggregationDiagnostics) -> Dict[str, float]:
    """Run the six tiers in dependency order and return every named value."""
    values = _unit_counts(records)
    _before_discount(records, values)
    _after_discount(records, values)
    _payable(records, values)
    _deductions(records, values, settings, diagnostics)
    _totals(values)
    return values


def build_metrics(values: Dict[str, float]) -> "OrderedDict[str, AggregateMetric]":
    """Map computed values onto the spreadsheet labels in sheet order."""
    metrics: "OrderedDict[str, AggregateMetric]" = OrderedDict()
    for label, value_key, percent_key, comment in PERIOD_METRIC_LAYOUT:
        value = values[value_key]
        if percent_key == "=":
            percent = value
        elif percent_key:
            percent = values[percent_key]
        else:
            percent = None
        metrics[label] = AggregateMetric(value=value, percent=percent, comment=comment)
    return metrics


def calculate_periods_metrics(records: Iterable[Any],
                              settings: Optional[ReportSettings] = None) -> PeriodsReport:
    """
    Compute the "По периодам" summary from reconciled realization lines.

    Args:
        records: TransactionRecord objects (raw row dicts are parsed on the fly)
        settings: Credit fallback configuration; defaults to ReportSettings()

    Returns:
        PeriodsReport with ordered metrics and diagnostics
    """
    settings = settings or ReportSettings()
    parsed = [
        TransactionRecord.from_api_data(r) if isinstance(r, dict) else r
        for r in records or []
    ]

    diagnostics = AggregationDiagnostics(
        total_records=len(parsed),
        category_counts=classify_all(parsed),
    )

    values = compute_period_values(parsed, settings, diagnostics)
    metrics = build_metrics(values)

    logger.info(
        f"Periods metrics computed from {len(parsed)} records: "
        f"realized={values['b11_realized']:.0f}, before={values['b20_total_before']:.2f}, "
        f"after={values['b28_total_after']:.2f}, final={values['b66_final_payment']:.2f}"
    )
    if diagnostics.unclassified_count:
        logger.debug(f"Unclassified realization lines: {diagnostics.unclassified_count}")

    return PeriodsReport(metrics=metrics, diagnostics=diagnostics)
