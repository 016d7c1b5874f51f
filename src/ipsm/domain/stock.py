from __future__ import annotations

from dataclasses import replace

from ipsm.domain.models import AdjustmentType, Product, StockSnapshot, StockType


def reverse_adjustment_type(adjustment_type: AdjustmentType | str) -> AdjustmentType:
    if AdjustmentType(adjustment_type) is AdjustmentType.ADD:
        return AdjustmentType.REDUCE
    return AdjustmentType.ADD


def apply_stock_adjustment(
    product: Product,
    adjustment_type: AdjustmentType | str,
    stock_type: StockType | str,
    quantity: int,
) -> Product:
    """
    Return a copy of product with the adjustment applied.

    vat/nonvat changes move purchased (add) or sold (reduce), remaining and
    actual_stock together. Nothing is clamped: remaining and actual_stock
    going negative is how an over-sold product shows up.
    """
    adjustment_type = AdjustmentType(adjustment_type)
    stock_type = StockType(stock_type)
    qty = int(quantity)
    delta = qty if adjustment_type is AdjustmentType.ADD else -qty
    stock = product.stock

    if stock_type is StockType.ACTUAL:
        return replace(product, stock=replace(stock, actual_stock=stock.actual_stock + delta))

    attr = "vat" if stock_type is StockType.VAT else "non_vat"
    info = getattr(stock, attr)
    if adjustment_type is AdjustmentType.ADD:
        info = replace(info, purchased=info.purchased + qty, remaining=info.remaining + qty)
    else:
        info = replace(info, sold=info.sold + qty, remaining=info.remaining - qty)

    new_stock = replace(stock, **{attr: info, "actual_stock": stock.actual_stock + delta})
    return replace(product, stock=new_stock)


def capture_snapshot(product: Product) -> StockSnapshot:
    s = product.stock
    return StockSnapshot(
        vat_purchased=s.vat.purchased,
        vat_sold=s.vat.sold,
        vat_remaining=s.vat.remaining,
        non_vat_purchased=s.non_vat.purchased,
        non_vat_sold=s.non_vat.sold,
        non_vat_remaining=s.non_vat.remaining,
        actual_stock=s.actual_stock,
    )
