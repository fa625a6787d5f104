"""
Per-product aggregation for the "По товарам" sheet.

Realization lines are grouped by seller SKU (``sa_name``). Sales and returns
are counted per document line, not per unit. Advertising spend from the
SKU-enriched ledger and the seller's cost prices are joined in to get the
operating profit of each product.
"""

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from wb_finance_report.core.calculator import first_nonzero_sum, safe_divide
from wb_finance_report.core.classifier import is_sale_document, is_return_document
from wb_finance_report.core.models import (
    CostPriceEntry, FinancialRecord, ProductAnalyticsRow, TransactionRecord,
    safe_float, safe_int, safe_str,
)
from wb_finance_report.utils.logger import get_logger


logger = get_logger(__name__)

AdvertisingInput = Union[Mapping[str, float], Iterable[FinancialRecord], None]
CostPriceInput = Union[Mapping[str, Any], Iterable[CostPriceEntry], "CostPriceIndex", None]


def advertising_spend_by_sku(records: Iterable[FinancialRecord]) -> Dict[str, float]:
    """Sum ledger amounts per resolved SKU; records without a SKU are ignored."""
    totals: Dict[str, float] = {}
    for record in records or []:
        sku = safe_str(getattr(record, "sku", None))
        if not sku:
            continue
        totals[sku] = totals.get(sku, 0.0) + safe_float(getattr(record, "amount", 0))
    return totals


class CostPriceIndex:
    """
    Cost price lookup by "{nmId}-{barcode}" with a vendor-code fallback.

    The seller maintains cost prices per size line of a product card; the
    realization report knows the barcode and nm_id of each line, and the
    seller SKU which equals the card vendor code.
    """

    def __init__(self):
        self._by_key: Dict[str, float] = {}
        self._by_vendor_code: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._by_key) + len(self._by_vendor_code)

    def add(self, nm_id: Any, barcode: Any, cost_price: Any, vendor_code: Any = None) -> None:
        price = safe_float(cost_price)
        key = f"{safe_int(nm_id)}-{safe_str(barcode)}"
        self._by_key[key] = price
        code = safe_str(vendor_code)
        if code and price:
            self._by_vendor_code.setdefault(code, price)

    @classmethod
    def build(cls, source: CostPriceInput) -> "CostPriceIndex":
        """
        Build an index from a key mapping, a list of CostPriceEntry, or an index.

        Mapping keys must look like "{nmId}-{barcode}"; other keys are ignored.
        """
        if isinstance(source, CostPriceIndex):
            return source

        index = cls()
        if not source:
            return index

        if isinstance(source, Mapping):
            for key, price in source.items():
                nm_id, sep, barcode = str(key).partition("-")
                if not sep or not nm_id.strip().isdigit():
                    logger.debug(f"Skipping cost price with malformed key: {key!r}")
                    continue
                index.add(nm_id, barcode, price)
            return index

        for entry in source:
            index.add(entry.nm_id, entry.barcode, entry.cost_price, entry.vendor_code)
        return index

    def lookup(self, wb_sku: int, barcodes: Sequence[str], vendor_code: str = "") -> Optional[float]:
        for barcode in barcodes:
            price = self._by_key.get(f"{wb_sku}-{barcode}")
            if price:
                return price
        if vendor_code:
            return self._by_vendor_code.get(vendor_code)
        return None


def _group_by_sku(records: Iterable[Any]) -> "OrderedDict[str, List[Any]]":
    groups: "OrderedDict[str, List[Any]]" = OrderedDict()
    for record in records:
        sku = safe_str(getattr(record, "seller_sku", ""))
        if not sku:
            continue
        groups.setdefault(sku, []).append(record)
    return groups


def _sum(records: Iterable[Any], attr: str) -> float:
    return sum(safe_float(getattr(r, attr, 0)) for r in records)


def build_product_row(seller_sku: str, group: List[Any]) -> ProductAnalyticsRow:
    """Aggregate one SKU group; advertising and cost price are filled in later."""
    sales = sum(1 for r in group if is_sale_document(r))
    returns = sum(1 for r in group if is_return_document(r))

    before = _sum(group, "retail_price_before_discount")
    after = _sum(group, "retail_amount_after_discount")
    logistics = _sum(group, "logistics_cost")
    storage = _sum(group, "storage_fee")
    penalty = _sum(group, "penalty")
    margin = after - logistics - storage - penalty

    return ProductAnalyticsRow(
        seller_sku=seller_sku,
        wb_sku=safe_int(getattr(group[0], "wb_sku", 0)),
        deliveries=first_nonzero_sum(group),
        sales=sales,
        returns=returns,
        refund_rate=safe_divide(returns, sales) * 100,
        realized_quantity=sales - returns,
        revenue_before_discount=before,
        revenue_after_discount=after,
        commission=before - after,
        logistics=logistics,
        storage=storage,
        penalty=penalty,
        margin=margin,
        margin_percent=safe_divide(margin, after) * 100,
    )


def aggregate_by_product(records: Iterable[Any],
                         advertising_spend: AdvertisingInput = None,
                         cost_prices: CostPriceInput = None) -> List[ProductAnalyticsRow]:
    """
    Aggregate realization lines per seller SKU.

    Args:
        records: Reconciled TransactionRecord objects or raw report rows
        advertising_spend: SKU-enriched FinancialRecord list or a mapping
            SKU -> spend; matched on str(wb_sku) or the seller SKU
        cost_prices: "{nmId}-{barcode}" -> price mapping, CostPriceEntry
            list or a prepared CostPriceIndex

    Returns:
        One row per seller SKU in first-seen order
    """
    parsed = [
        TransactionRecord.from_api_data(r) if isinstance(r, dict) else r
        for r in records or []
    ]

    if advertising_spend is None:
        spend: Mapping[str, float] = {}
    elif isinstance(advertising_spend, Mapping):
        spend = advertising_spend
    else:
        spend = advertising_spend_by_sku(advertising_spend)

    index = CostPriceIndex.build(cost_prices)

    rows = []
    missing_cost = 0
    for seller_sku, group in _group_by_sku(parsed).items():
        row = build_product_row(seller_sku, group)

        if row.wb_sku and str(row.wb_sku) in spend:
            row.advertising_spend = safe_float(spend[str(row.wb_sku)])
        else:
            row.advertising_spend = safe_float(spend.get(seller_sku, 0))

        barcodes = [b for b in dict.fromkeys(safe_str(getattr(r, "barcode", "")) for r in group) if b]
        unit_cost = index.lookup(row.wb_sku, barcodes, seller_sku)
        if unit_cost is None:
            missing_cost += 1
            unit_cost = 0.0

        row.unit_cost_price = unit_cost
        row.total_cost_price = unit_cost * abs(row.realized_quantity)
        row.operating_profit = row.margin - row.advertising_spend - row.total_cost_price
        row.profitability = safe_divide(row.operating_profit, row.total_cost_price) * 100
        rows.append(row)

    if rows:
        completeness = (len(rows) - missing_cost) / len(rows) * 100
        log = logger.warning if missing_cost and len(index) else logger.info
        log(f"Product analytics: {len(rows)} SKUs, cost price found for {completeness:.1f}%")

    return rows
