"""
Record classifier for realization report lines.

All string matching on ``doc_type_name`` / ``supplier_oper_name`` /
``bonus_type_name`` lives here. Aggregators call the predicates below
instead of comparing operation names themselves.

Category priority (first match wins):
    SALE                    doc == "Продажа" and oper == "Продажа"
    RETURN                  doc == "Возврат"
    VOLUNTARY_COMPENSATION  oper == "Добровольная компенсация при возврате"
    ADVERTISING_DEDUCTION   oper == "Удержание" or oper ~ "реклам" / "продвижен"
    CREDIT_BODY             oper contains a principal-debt phrase
    CREDIT_INTEREST         oper contains an interest phrase
    OTHER_DEDUCTION         non-zero deduction
    UNCLASSIFIED            anything else
"""

from collections import Counter
from typing import Any, Iterable

from wb_finance_report.core.models import Category


DOC_SALE = "Продажа"
DOC_RETURN = "Возврат"
OPER_SALE = "Продажа"
OPER_RETURN = "Возврат"
OPER_VOLUNTARY_COMPENSATION = "Добровольная компенсация при возврате"
OPER_WITHHOLDING = "Удержание"
BONUS_REFUSAL = "От клиента при отмене"

ADVERTISING_SUBSTRINGS = ("реклам", "продвижен")

CREDIT_BODY_PHRASES = (
    "основного долга",
    "тело кредита",
    "основной долг",
    "Перевод на баланс заёмщика для оплаты основного долга",
)

CREDIT_INTEREST_PHRASES = (
    "процентов",
    "процент кредита",
    "проценты по кредиту",
    "Перевод на баланс заёмщика для оплаты процентов",
)


def _text(record: Any, attr: str) -> str:
    value = getattr(record, attr, "")
    return value if isinstance(value, str) else ""


def is_strict_sale(record: Any) -> bool:
    return _text(record, "document_type") == DOC_SALE and _text(record, "operation_name") == OPER_SALE


def is_sale_document(record: Any) -> bool:
    """Loose sale rule: any line of a sale document, corrections included."""
    return _text(record, "document_type") == DOC_SALE


def is_return_document(record: Any) -> bool:
    return _text(record, "document_type") == DOC_RETURN


def is_strict_return(record: Any) -> bool:
    return _text(record, "document_type") == DOC_RETURN and _text(record, "operation_name") == OPER_RETURN


def is_voluntary_compensation(record: Any) -> bool:
    return _text(record, "operation_name") == OPER_VOLUNTARY_COMPENSATION


def is_refusal(record: Any) -> bool:
    return _text(record, "bonus_type_name") == BONUS_REFUSAL


def is_advertising_deduction(record: Any) -> bool:
    operation = _text(record, "operation_name")
    if operation == OPER_WITHHOLDING:
        return True
    lowered = operation.lower()
    return any(part in lowered for part in ADVERTISING_SUBSTRINGS)


def is_credit_body(record: Any) -> bool:
    operation = _text(record, "operation_name")
    return any(phrase in operation for phrase in CREDIT_BODY_PHRASES)


def is_credit_interest(record: Any) -> bool:
    operation = _text(record, "operation_name")
    return any(phrase in operation for phrase in CREDIT_INTEREST_PHRASES)


def classify(record: Any) -> Category:
    """
    Assign exactly one category to a realization line.

    Args:
        record: TransactionRecord or any object exposing the same attributes

    Returns:
        Category of the record; UNCLASSIFIED when no rule matches
    """
    if is_strict_sale(record):
        return Category.SALE
    if is_return_document(record):
        return Category.RETURN
    if is_voluntary_compensation(record):
        return Category.VOLUNTARY_COMPENSATION
    if is_advertising_deduction(record):
        return Category.ADVERTISING_DEDUCTION
    if is_credit_body(record):
        return Category.CREDIT_BODY
    if is_credit_interest(record):
        return Category.CREDIT_INTEREST

    deduction = getattr(record, "deduction", 0) or 0
    if isinstance(deduction, (int, float)) and deduction != 0:
        return Category.OTHER_DEDUCTION

    return Category.UNCLASSIFIED


def classify_all(records: Iterable[Any]) -> Counter:
    """Count records per category; every record lands in exactly one bucket."""
    return Counter(classify(record) for record in records)
