from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from ipsm.domain.clock import TIMESTAMP_FORMAT, iso_timestamp
from ipsm.domain.errors import ConflictError, NotFoundError, ValidationError
from ipsm.domain.models import AdjustmentType, Product, SourceType, StockAdjustment, StockType
from ipsm.domain.pricing import update_price
from ipsm.domain.stock import apply_stock_adjustment, reverse_adjustment_type
from ipsm.repositories.contracts import ProductRepository, StockAdjustmentRepository
from ipsm.services.stock_audit_service import StockAuditService

log = logging.getLogger("ipsm.stock")

DEFAULT_HISTORY_LIMIT = 50
HISTORY_START = "2000-01-01 00:00:00"
MAX_WRITE_ATTEMPTS = 3


@dataclass(frozen=True)
class StockMovement:
    """One quantity change on one product, optionally with the price it moved at."""

    product_id: str
    adjustment_type: AdjustmentType
    stock_type: StockType
    quantity: int
    source_type: SourceType
    source_id: Optional[str] = None
    source_code: Optional[str] = None
    notes: Optional[str] = None
    unit_price: Optional[float] = None
    is_vat: bool = False
    is_purchase: bool = False


def stock_type_for(is_vat: bool) -> StockType:
    return StockType.VAT if is_vat else StockType.NONVAT


class StockService:
    def __init__(
        self,
        repo: ProductRepository,
        adjustments: StockAdjustmentRepository,
        audit: StockAuditService,
        max_attempts: int = MAX_WRITE_ATTEMPTS,
    ):
        self.repo = repo
        self.adjustments = adjustments
        self.audit = audit
        self.max_attempts = max_attempts

    def _write_with_retry(self, product_id: str, mutate) -> tuple[Product, Product]:
        """
        Read, mutate and compare-and-swap a product, re-reading on version
        conflicts. Returns (before, after).
        """
        for attempt in range(1, self.max_attempts + 1):
            product = self.repo.get_product(product_id)
            if not product:
                raise NotFoundError("Product not found")
            try:
                return product, self.repo.update_product(mutate(product))
            except ConflictError as e:
                log.warning("product_write_conflict product_id=%s attempt=%s error=%s", product_id, attempt, e)
        raise ConflictError(f"Product {product_id} kept changing; gave up after {self.max_attempts} attempts.")

    def apply_movement(self, movement: StockMovement, now: Optional[datetime] = None) -> Product:
        """Price ledger (when unit_price is set), stock ledger, product write, then audit record."""

        def mutate(product: Product) -> Product:
            if movement.unit_price is not None:
                product = update_price(product, movement.unit_price, movement.is_vat, movement.is_purchase, now)
            product = apply_stock_adjustment(product, movement.adjustment_type, movement.stock_type, movement.quantity)
            return replace(product, updated_at=iso_timestamp(now))

        before, saved = self._write_with_retry(movement.product_id, mutate)
        self.audit.record(
            saved,
            movement.adjustment_type,
            movement.stock_type,
            movement.quantity,
            self.audit.capture_before(before),
            self.audit.capture_after(saved),
            movement.source_type,
            source_id=movement.source_id,
            source_code=movement.source_code,
            notes=movement.notes,
            now=now,
        )
        log.info(
            "stock_moved product_id=%s type=%s stock=%s qty=%s source=%s/%s actual=%s",
            saved.id,
            AdjustmentType(movement.adjustment_type).value,
            StockType(movement.stock_type).value,
            movement.quantity,
            SourceType(movement.source_type).value,
            movement.source_code or movement.source_id,
            saved.stock.actual_stock,
        )
        return saved

    def _find_product(self, product_ref: str) -> Product:
        product = self.repo.get_product(product_ref) or self.repo.get_product_by_sku(product_ref)
        if not product:
            raise NotFoundError("Product not found")
        return product

    def adjust_stock(
        self,
        product_ref: str,
        adjustment_type: str,
        stock_type: str,
        quantity: int,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Product:
        """Manual adjustment. product_ref is a product id or a SKU id."""
        product = self._find_product(product_ref)

        if int(quantity) <= 0:
            raise ValidationError("Quantity must be greater than 0")
        try:
            adj_type = AdjustmentType(adjustment_type)
        except ValueError:
            raise ValidationError("Invalid adjustment type. Must be 'add' or 'reduce'") from None
        try:
            st_type = StockType(stock_type)
        except ValueError:
            raise ValidationError("Invalid stock type. Must be 'vat', 'nonvat', or 'actualstock'") from None

        return self.apply_movement(
            StockMovement(
                product_id=product.id,
                adjustment_type=adj_type,
                stock_type=st_type,
                quantity=int(quantity),
                source_type=SourceType.ADJUSTMENT,
                notes=notes,
            ),
            now=now,
        )

    def reverse_adjustment(self, adjustment_id: str, now: Optional[datetime] = None) -> Product:
        """
        Undo an audit record by applying its flipped type to the product's
        current stock, then delete the record. purchased/sold counters are
        moved by the flip as well.
        """
        adjustment = self.adjustments.get_stock_adjustment(adjustment_id)
        if not adjustment:
            raise NotFoundError("Stock adjustment not found")

        flipped = reverse_adjustment_type(adjustment.adjustment_type)

        def mutate(product: Product) -> Product:
            product = apply_stock_adjustment(product, flipped, adjustment.stock_type, adjustment.quantity)
            return replace(product, updated_at=iso_timestamp(now))

        _, saved = self._write_with_retry(adjustment.product_id, mutate)
        self.adjustments.delete_stock_adjustment(adjustment.id)
        log.info(
            "stock_adjustment_reversed adjustment_id=%s product_id=%s type=%s qty=%s",
            adjustment.id,
            saved.id,
            flipped.value,
            adjustment.quantity,
        )
        return saved

    # ---------- History ----------
    @staticmethod
    def _parse_day(value: str, label: str) -> datetime:
        try:
            return datetime.strptime(value.strip(), "%Y-%m-%d")
        except ValueError:
            raise ValidationError(f"Invalid {label} date format. Use YYYY-MM-DD") from None

    def product_history(
        self,
        product_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[StockAdjustment]:
        limit = int(limit) if limit and int(limit) > 0 else DEFAULT_HISTORY_LIMIT
        if not start_date and not end_date:
            return self.adjustments.list_adjustments_by_product(product_id, limit)

        start = HISTORY_START
        if start_date:
            start = self._parse_day(start_date, "start").strftime(TIMESTAMP_FORMAT)
        if end_date:
            end = self._parse_day(end_date, "end").replace(hour=23, minute=59, second=59).strftime(TIMESTAMP_FORMAT)
        else:
            end = iso_timestamp(now)
        return self.adjustments.list_adjustments_by_product(product_id, limit, start=start, end=end)

    def all_history(self, limit: int = DEFAULT_HISTORY_LIMIT, skip: int = 0) -> list[StockAdjustment]:
        limit = int(limit) if limit and int(limit) > 0 else DEFAULT_HISTORY_LIMIT
        return self.adjustments.list_adjustments(limit, max(int(skip), 0))

    def history_by_source(self, source_type: Optional[str], source_id: Optional[str]) -> list[StockAdjustment]:
        if not source_type or not source_id:
            raise ValidationError("sourceType and sourceId are required")
        try:
            st = SourceType(source_type)
        except ValueError:
            raise ValidationError("Invalid source type") from None
        return self.adjustments.list_adjustments_by_source(st, source_id)
