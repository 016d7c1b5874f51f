from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ipsm.domain.clock import iso_timestamp
from ipsm.domain.errors import AppError
from ipsm.domain.models import (
    AdjustmentType,
    Product,
    SourceType,
    StockAdjustment,
    StockSnapshot,
    StockType,
)
from ipsm.domain.stock import capture_snapshot
from ipsm.repositories.contracts import StockAdjustmentRepository

log = logging.getLogger("ipsm.stock")


class StockAuditService:
    """Writes the before/after record for every stock change. Never fails the caller."""

    def __init__(self, repo: StockAdjustmentRepository):
        self.repo = repo

    @staticmethod
    def capture_before(product: Product) -> StockSnapshot:
        return capture_snapshot(product)

    @staticmethod
    def capture_after(product: Product) -> StockSnapshot:
        return capture_snapshot(product)

    def record(
        self,
        product: Product,
        adjustment_type: AdjustmentType,
        stock_type: StockType,
        quantity: int,
        before: StockSnapshot,
        after: StockSnapshot,
        source_type: SourceType,
        source_id: Optional[str] = None,
        source_code: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[StockAdjustment]:
        adjustment = StockAdjustment(
            id="",
            product_id=product.id,
            product_name=product.name,
            sku_id=product.sku_id,
            adjustment_type=AdjustmentType(adjustment_type),
            stock_type=StockType(stock_type),
            quantity=int(quantity),
            before=before,
            after=after,
            source_type=SourceType(source_type),
            source_id=source_id,
            source_code=source_code,
            notes=notes,
            created_at=iso_timestamp(now),
        )
        try:
            return self.repo.create_stock_adjustment(adjustment)
        except AppError as e:
            log.warning(
                "stock_audit_failed product_id=%s source=%s/%s error=%s",
                product.id,
                adjustment.source_type.value,
                source_id,
                e,
            )
            return None
