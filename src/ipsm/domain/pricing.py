from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime
from typing import Optional

from ipsm.domain.models import PriceInfo, Product

BUCKETS = {
    (True, True): "purchase_vat",
    (True, False): "purchase_non_vat",
    (False, True): "sale_vat",
    (False, False): "sale_non_vat",
}


def round2(value: float) -> float:
    """Round half-up on cents: floor(x*100 + 0.5) / 100."""
    return math.floor(value * 100 + 0.5) / 100


def price_bucket(is_vat: bool, is_purchase: bool) -> str:
    return BUCKETS[(bool(is_purchase), bool(is_vat))]


def record_price(info: PriceInfo, new_price: float, now: datetime) -> PriceInfo:
    """
    Fold one observed price into a bucket's running statistics.

    min and average treat 0 as "no data yet". The average is the two-point
    (previous + new) / 2, not a mean over every observation.
    """
    new_price = float(new_price)
    year, month = now.year, now.month

    low = new_price if info.min == 0 or new_price < info.min else info.min
    high = new_price if new_price > info.max else info.max
    average = new_price if info.average == 0 else (info.average + new_price) / 2

    if info.ytd_year != year:
        ytd_count, ytd_total, average_ytd = 1, new_price, new_price
    else:
        ytd_count = info.ytd_count + 1
        ytd_total = info.ytd_total + new_price
        average_ytd = round2(ytd_total / ytd_count)

    if info.mtd_year != year or info.mtd_month != month:
        mtd_count, mtd_total, average_mtd = 1, new_price, new_price
    else:
        mtd_count = info.mtd_count + 1
        mtd_total = info.mtd_total + new_price
        average_mtd = round2(mtd_total / mtd_count)

    return replace(
        info,
        latest=new_price,
        min=low,
        max=high,
        average=round2(average),
        ytd_year=year,
        ytd_count=ytd_count,
        ytd_total=ytd_total,
        average_ytd=average_ytd,
        mtd_year=year,
        mtd_month=month,
        mtd_count=mtd_count,
        mtd_total=mtd_total,
        average_mtd=average_mtd,
    )


def update_price(
    product: Product,
    new_price: float,
    is_vat: bool,
    is_purchase: bool,
    now: Optional[datetime] = None,
) -> Product:
    """Return a copy of product with one price bucket updated; the others are untouched."""
    bucket = price_bucket(is_vat, is_purchase)
    updated = record_price(getattr(product.price, bucket), new_price, now or datetime.now())
    return replace(product, price=replace(product.price, **{bucket: updated}))
