"""
Data models for WB Finance Report.

Typed views over the loosely-typed rows returned by the Wildberries APIs.
Every ``from_api_data`` constructor is tolerant: a missing or malformed
numeric field becomes 0, a missing string becomes "", so a bad upstream row
never aborts report generation.

Field mapping (realization report, /api/v5/supplier/reportDetailByPeriod):
    doc_type_name             -> document_type
    supplier_oper_name        -> operation_name
    retail_price_withdisc_rub -> retail_price_before_discount
    retail_amount             -> retail_amount_after_discount
    ppvz_for_pay              -> amount_payable_to_seller
    delivery_rub              -> logistics_cost
    acceptance                -> acceptance_fee
    sa_name / nm_id           -> seller_sku / wb_sku
"""

import math
from collections import Counter, OrderedDict
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


def safe_float(value: Any) -> float:
    """Coerce an upstream numeric value to float; None, "" and garbage become 0."""
    if value is None or value == "":
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def safe_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def safe_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def date_part(value: Any) -> str:
    """
    Extract the ``YYYY-MM-DD`` part of a date-like value.

    Accepts ``date``/``datetime`` objects and ISO strings with or without a
    time component ("2024-06-16T10:11:12Z"). Returns "" when nothing usable
    is present.
    """
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if len(text) >= 10 and text[4] == "-" and text[7] == "-":
        return text[:10]
    return ""


def _first_present(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


class Category(Enum):
    """Semantic category of a realization report line."""
    SALE = "sale"
    RETURN = "return"
    VOLUNTARY_COMPENSATION = "voluntary_compensation"
    ADVERTISING_DEDUCTION = "advertising_deduction"
    CREDIT_BODY = "credit_body"
    CREDIT_INTEREST = "credit_interest"
    OTHER_DEDUCTION = "other_deduction"
    UNCLASSIFIED = "unclassified"


class PaymentSource(Enum):
    """Where an advertising charge was paid from."""
    INVOICE = 1  # Счет
    BALANCE = 0  # Баланс

    @property
    def label(self) -> str:
        return "Счет" if self is PaymentSource.INVOICE else "Баланс"


@dataclass(frozen=True)
class TransactionRecord:
    """One line of the seller realization report."""

    date: str = ""
    document_type: str = ""
    operation_name: str = ""
    bonus_type_name: str = ""
    quantity: int = 0
    retail_price_before_discount: float = 0.0
    retail_amount_after_discount: float = 0.0
    amount_payable_to_seller: float = 0.0
    delivery_amount: float = 0.0
    delivery_count: float = 0.0
    return_amount: float = 0.0
    logistics_cost: float = 0.0
    storage_fee: float = 0.0
    penalty: float = 0.0
    deduction: float = 0.0
    acceptance_fee: float = 0.0
    additional_payment: float = 0.0
    document_number: str = ""
    seller_sku: str = ""
    wb_sku: int = 0
    barcode: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @classmethod
    def from_api_data(cls, data: Dict[str, Any]) -> "TransactionRecord":
        """
        Create a record from one realization report row.

        Args:
            data: Raw row as returned by reportDetailByPeriod

        Returns:
            TransactionRecord instance
        """
        if not isinstance(data, dict):
            data = {}

        return cls(
            date=date_part(_first_present(data, "rr_dt", "sale_dt", "date")),
            document_type=safe_str(data.get("doc_type_name")),
            operation_name=safe_str(data.get("supplier_oper_name")),
            bonus_type_name=safe_str(data.get("bonus_type_name")),
            quantity=safe_int(data.get("quantity")),
            retail_price_before_discount=safe_float(data.get("retail_price_withdisc_rub")),
            retail_amount_after_discount=safe_float(data.get("retail_amount")),
            amount_payable_to_seller=safe_float(data.get("ppvz_for_pay")),
            delivery_amount=safe_float(data.get("delivery_amount")),
            delivery_count=safe_float(data.get("delivery_count")),
            return_amount=safe_float(data.get("return_amount")),
            logistics_cost=safe_float(data.get("delivery_rub")),
            storage_fee=safe_float(data.get("storage_fee")),
            penalty=safe_float(data.get("penalty")),
            deduction=safe_float(data.get("deduction")),
            acceptance_fee=safe_float(data.get("acceptance")),
            additional_payment=safe_float(data.get("additional_payment")),
            document_number=safe_str(_first_present(data, "doc_number", "docNumber")),
            seller_sku=safe_str(data.get("sa_name")),
            wb_sku=safe_int(data.get("nm_id")),
            barcode=safe_str(data.get("barcode")),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (without the raw row)."""
        return {
            "date": self.date,
            "document_type": self.document_type,
            "operation_name": self.operation_name,
            "bonus_type_name": self.bonus_type_name,
            "quantity": self.quantity,
            "retail_price_before_discount": self.retail_price_before_discount,
            "retail_amount_after_discount": self.retail_amount_after_discount,
            "amount_payable_to_seller": self.amount_payable_to_seller,
            "delivery_amount": self.delivery_amount,
            "logistics_cost": self.logistics_cost,
            "storage_fee": self.storage_fee,
            "penalty": self.penalty,
            "deduction": self.deduction,
            "acceptance_fee": self.acceptance_fee,
            "document_number": self.document_number,
            "seller_sku": self.seller_sku,
            "wb_sku": self.wb_sku,
            "barcode": self.barcode,
        }


@dataclass(frozen=True)
class FinancialRecord:
    """One advertising ledger entry (/adv/v1/upd)."""

    campaign_id: int
    date: str
    amount: float
    payment_source: PaymentSource = PaymentSource.BALANCE
    document_number: str = ""
    operation_type: str = "Списание"
    campaign_name: str = ""
    sku: Optional[str] = None

    @classmethod
    def from_api_data(cls, data: Dict[str, Any]) -> Optional["FinancialRecord"]:
        """
        Create a ledger record from a raw /adv/v1/upd entry.

        Returns:
            FinancialRecord, or None when advertId, updTime or updSum is missing
        """
        if not isinstance(data, dict):
            return None

        campaign_id = safe_int(data.get("advertId"))
        record_date = date_part(data.get("updTime"))
        raw_sum = data.get("updSum")

        if not campaign_id or not record_date or raw_sum is None or raw_sum == "":
            return None

        payment_type = safe_str(data.get("paymentType"))
        upd_num = data.get("updNum")

        return cls(
            campaign_id=campaign_id,
            date=record_date,
            amount=safe_float(raw_sum),
            payment_source=PaymentSource.INVOICE if payment_type in ("Счет", "Счёт") else PaymentSource.BALANCE,
            document_number=safe_str(upd_num) if upd_num not in (None, 0) else "",
            operation_type=safe_str(data.get("type")) or "Списание",
            campaign_name=safe_str(data.get("campName")),
            sku=safe_str(data.get("sku")) or None,
        )

    def with_sku(self, sku: Optional[str]) -> "FinancialRecord":
        """Return a copy carrying the resolved product SKU."""
        return replace(self, sku=sku)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "date": self.date,
            "amount": self.amount,
            "bill": self.payment_source.value,
            "payment_source": self.payment_source.label,
            "document_number": self.document_number,
            "operation_type": self.operation_type,
            "campaign_name": self.campaign_name,
            "sku": self.sku or "",
        }


@dataclass(frozen=True)
class Campaign:
    """Advertising campaign summary."""

    campaign_id: int
    name: str = ""
    type: int = 0
    status: int = 0
    daily_budget: float = 0.0
    create_time: str = ""
    change_time: str = ""
    start_time: str = ""
    end_time: str = ""

    @classmethod
    def from_api_data(cls, data: Dict[str, Any], campaign_type: Optional[int] = None,
                      status: Optional[int] = None) -> Optional["Campaign"]:
        """
        Create a campaign from a promotion list/detail item.

        Args:
            data: Raw item with at least ``advertId``
            campaign_type: Type taken from the enclosing group, if any
            status: Status taken from the enclosing group, if any

        Returns:
            Campaign, or None when advertId is missing
        """
        if not isinstance(data, dict):
            return None
        campaign_id = safe_int(data.get("advertId"))
        if not campaign_id:
            return None

        return cls(
            campaign_id=campaign_id,
            name=safe_str(data.get("name")),
            type=safe_int(data.get("type", campaign_type)),
            status=safe_int(data.get("status", status)),
            daily_budget=safe_float(data.get("dailyBudget")),
            create_time=safe_str(data.get("createTime")),
            change_time=safe_str(data.get("changeTime")),
            start_time=safe_str(data.get("startTime")),
            end_time=safe_str(data.get("endTime")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "daily_budget": self.daily_budget,
            "create_time": self.create_time,
            "change_time": self.change_time,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass
class AggregateMetric:
    """A named value of the periods summary with its optional percent and formula note."""

    value: float = 0.0
    percent: Optional[float] = None
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"value": self.value}
        if self.percent is not None:
            result["percent"] = self.percent
        if self.comment is not None:
            result["comment"] = self.comment
        return result


@dataclass
class CostPriceEntry:
    """One size/barcode line of a product card with the seller's cost price."""

    nm_id: int
    vendor_code: str = ""
    subject: str = ""
    brand: str = ""
    size_name: str = "Без размера"
    barcode: str = ""
    price: float = 0.0
    cost_price: float = 0.0

    @property
    def key(self) -> str:
        return f"{self.nm_id}-{self.barcode}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nm_id": self.nm_id,
            "vendor_code": self.vendor_code,
            "subject": self.subject,
            "brand": self.brand,
            "size_name": self.size_name,
            "barcode": self.barcode,
            "price": self.price,
            "cost_price": self.cost_price,
        }


@dataclass
class ProductAnalyticsRow:
    """Per seller-SKU aggregate of the realization report."""

    seller_sku: str
    wb_sku: int = 0
    deliveries: float = 0.0
    sales: int = 0
    returns: int = 0
    refund_rate: float = 0.0
    realized_quantity: int = 0
    revenue_before_discount: float = 0.0
    revenue_after_discount: float = 0.0
    commission: float = 0.0
    logistics: float = 0.0
    storage: float = 0.0
    penalty: float = 0.0
    margin: float = 0.0
    margin_percent: float = 0.0
    advertising_spend: float = 0.0
    unit_cost_price: float = 0.0
    total_cost_price: float = 0.0
    operating_profit: float = 0.0
    profitability: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seller_sku": self.seller_sku,
            "wb_sku": self.wb_sku,
            "deliveries": self.deliveries,
            "sales": self.sales,
            "returns": self.returns,
            "refund_rate": round(self.refund_rate, 2),
            "realized_quantity": self.realized_quantity,
            "revenue_before_discount": round(self.revenue_before_discount, 2),
            "revenue_after_discount": round(self.revenue_after_discount, 2),
            "commission": round(self.commission, 2),
            "logistics": round(self.logistics, 2),
            "storage": round(self.storage, 2),
            "penalty": round(self.penalty, 2),
            "margin": round(self.margin, 2),
            "margin_percent": round(self.margin_percent, 2),
            "advertising_spend": round(self.advertising_spend, 2),
            "unit_cost_price": round(self.unit_cost_price, 2),
            "total_cost_price": round(self.total_cost_price, 2),
            "operating_profit": round(self.operating_profit, 2),
            "profitability": round(self.profitability, 2),
        }


@dataclass
class AggregationDiagnostics:
    """Data-quality counters produced alongside the periods metrics."""

    total_records: int = 0
    category_counts: Counter = field(default_factory=Counter)
    credit_records_found: int = 0
    credit_fallback_used: bool = False

    @property
    def unclassified_count(self) -> int:
        return self.category_counts.get(Category.UNCLASSIFIED, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_records": self.total_records,
            "category_counts": {c.value: n for c, n in self.category_counts.items()},
            "unclassified_count": self.unclassified_count,
            "credit_records_found": self.credit_records_found,
            "credit_fallback_used": self.credit_fallback_used,
        }


@dataclass
class PeriodsReport:
    """Ordered periods metrics plus the diagnostics of their computation."""

    metrics: "OrderedDict[str, AggregateMetric]"
    diagnostics: AggregationDiagnostics

    def to_dict(self) -> Dict[str, Any]:
        return OrderedDict((name, metric.to_dict()) for name, metric in self.metrics.items())

    def value(self, name: str) -> float:
        return self.metrics[name].value


@dataclass
class ResolutionStats:
    """Outcome counters of one SKU resolution run."""

    requested: int = 0
    resolved: int = 0
    failed_batches: int = 0

    @property
    def completeness(self) -> float:
        if self.requested == 0:
            return 100.0
        return self.resolved / self.requested * 100


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Immutable snapshots of every buffer-day reconciliation stage.

    Each stage is derived from earlier ones only; nothing is mutated in
    place, so a test can assert on any intermediate set.
    """

    main: Tuple[Any, ...]
    prev_buffer: Tuple[Any, ...]
    next_buffer: Tuple[Any, ...]
    main_docs: frozenset
    next_docs: frozenset
    filtered_main: Tuple[Any, ...]
    remaining_main_docs: frozenset
    next_added: Tuple[Any, ...]
    prev_added: Tuple[Any, ...]
    dropped_outside: int = 0

    @property
    def result(self) -> List[Any]:
        return list(self.filtered_main) + list(self.next_added) + list(self.prev_added)

    @property
    def excluded_from_main(self) -> int:
        return len(self.main) - len(self.filtered_main)


def parse_transaction_records(rows: Iterable[Dict[str, Any]]) -> List[TransactionRecord]:
    """Parse raw realization rows; non-dict rows become empty records."""
    return [TransactionRecord.from_api_data(row) for row in rows or []]


def parse_financial_records(rows: Iterable[Dict[str, Any]]) -> List[FinancialRecord]:
    """Parse raw ledger rows, skipping entries without advertId/updTime/updSum."""
    records = []
    for row in rows or []:
        record = FinancialRecord.from_api_data(row)
        if record is not None:
            records.append(record)
    return records


def parse_campaigns(groups: Iterable[Dict[str, Any]]) -> List[Campaign]:
    """
    Flatten /adv/v1/promotion/count groups into campaigns.

    Each group carries ``type``, ``status`` and an ``advert_list``; items that
    are already flat (have ``advertId``) are accepted as well.
    """
    campaigns = []
    for group in groups or []:
        if not isinstance(group, dict):
            continue
        if "advertId" in group:
            items = [group]
        else:
            items = group.get("advert_list") or []
        for item in items:
            campaign = Campaign.from_api_data(item, group.get("type"), group.get("status"))
            if campaign is not None:
                campaigns.append(campaign)
    return campaigns


def parse_cost_price_entries(cards: Iterable[Dict[str, Any]],
                             cost_prices: Optional[Dict[str, Any]] = None) -> List[CostPriceEntry]:
    """
    Expand product cards into one cost-price line per size barcode.

    A card without sizes, or a size without barcodes, still yields one line
    with an empty barcode so the seller can fill in its cost price.

    Args:
        cards: Cards from /content/v2/get/cards/list
        cost_prices: Saved prices keyed by "{nmID}-{barcode}"
    """
    cost_prices = cost_prices or {}
    entries = []

    for card in cards or []:
        if not isinstance(card, dict):
            continue
        nm_id = safe_int(card.get("nmID"))
        base = {
            "nm_id": nm_id,
            "vendor_code": safe_str(card.get("vendorCode")),
            "subject": safe_str(card.get("subjectName") or card.get("object")),
            "brand": safe_str(card.get("brand")),
        }

        sizes = card.get("sizes") or [{}]
        for size in sizes:
            size_name = safe_str(size.get("techSize") or size.get("wbSize")) or "Без размера"
            for barcode in size.get("skus") or [""]:
                barcode = safe_str(barcode)
                entries.append(CostPriceEntry(
                    size_name=size_name,
                    barcode=barcode,
                    price=safe_float(size.get("price")),
                    cost_price=safe_float(cost_prices.get(f"{nm_id}-{barcode}")),
                    **base
                ))

    return entries
