from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from ipsm.domain.clock import iso_timestamp
from ipsm.domain.codes import format_sequence_code, purchase_code_prefix
from ipsm.domain.errors import ConflictError, DuplicateKeyError, NotFoundError
from ipsm.domain.models import AdjustmentType, Purchase, PurchaseRequest, SourceType
from ipsm.services.stock_service import StockMovement, StockService, stock_type_for
from ipsm.services.transaction_support import compute_totals, customer_fields, resolve_customer, resolve_items

log = logging.getLogger("ipsm.purchases")

MAX_CODE_ATTEMPTS = 3


class PurchaseService:
    def __init__(self, repo, stock: StockService):
        self.repo = repo
        self.stock = stock

    def next_purchase_code(self, is_vat: bool, now: Optional[datetime] = None) -> str:
        prefix = purchase_code_prefix(is_vat, (now or datetime.now()).date())
        return format_sequence_code(prefix, self.repo.get_next_sequence_number("purchase", prefix))

    def _insert_with_code(self, purchase: Purchase, fixed_code: Optional[str], now: Optional[datetime]) -> Purchase:
        if fixed_code:
            try:
                return self.repo.create_purchase(replace(purchase, purchase_code=fixed_code))
            except DuplicateKeyError:
                raise ConflictError(f"Purchase code '{fixed_code}' already exists") from None

        for _ in range(MAX_CODE_ATTEMPTS):
            code = self.next_purchase_code(purchase.is_vat, now)
            try:
                return self.repo.create_purchase(replace(purchase, purchase_code=code))
            except DuplicateKeyError:
                log.warning("purchase_code_collision code=%s", code)
        raise ConflictError("Could not allocate a unique purchase code.")

    def _post_items(
        self,
        purchase: Purchase,
        source_type: SourceType,
        now: Optional[datetime],
    ) -> None:
        for it in purchase.items:
            self.stock.apply_movement(
                StockMovement(
                    product_id=it.product_id,
                    adjustment_type=AdjustmentType.ADD,
                    stock_type=stock_type_for(purchase.is_vat),
                    quantity=it.quantity,
                    source_type=source_type,
                    source_id=purchase.id,
                    source_code=purchase.purchase_code,
                    notes=f"Purchase {purchase.purchase_code}",
                    unit_price=it.unit_price,
                    is_vat=purchase.is_vat,
                    is_purchase=True,
                ),
                now=now,
            )

    def _reverse_items(self, purchase: Purchase, reason: str, now: Optional[datetime]) -> None:
        for it in purchase.items:
            try:
                self.stock.apply_movement(
                    StockMovement(
                        product_id=it.product_id,
                        adjustment_type=AdjustmentType.REDUCE,
                        stock_type=stock_type_for(purchase.is_vat),
                        quantity=it.quantity,
                        source_type=SourceType.PURCHASE,
                        source_id=purchase.id,
                        source_code=purchase.purchase_code,
                        notes=f"Reverse purchase {purchase.purchase_code} ({reason})",
                    ),
                    now=now,
                )
            except NotFoundError:
                log.warning(
                    "purchase_reversal_skipped purchase_id=%s product_id=%s reason=product_missing",
                    purchase.id,
                    it.product_id,
                )

    def create_purchase(
        self,
        request: PurchaseRequest,
        now: Optional[datetime] = None,
        purchase_code: Optional[str] = None,
        source_type: SourceType = SourceType.PURCHASE,
    ) -> Purchase:
        """
        Customer and every item are validated before anything is written.
        Each item then updates the purchase price bucket, adds stock and is
        audited against the new purchase.
        """
        customer = resolve_customer(self.repo, request.customer_id)
        items = resolve_items(self.repo, request.items)
        total_amount, total_vat, grand_total = compute_totals(items, request.is_vat)
        ts = iso_timestamp(now)

        draft = Purchase(
            id="",
            purchase_code="",
            purchase_date=request.purchase_date or ts[:10],
            items=items,
            is_vat=request.is_vat,
            shipping_cost=float(request.shipping_cost),
            notes=request.notes,
            payment=request.payment,
            warehouse=request.warehouse,
            total_amount=total_amount,
            total_vat=total_vat,
            grand_total=grand_total,
            created_at=ts,
            updated_at=ts,
            **customer_fields(customer),
        )
        purchase = self._insert_with_code(draft, purchase_code, now)
        self._post_items(purchase, source_type, now)

        log.info(
            "purchase_created purchase_id=%s code=%s items=%s grand_total=%.2f",
            purchase.id,
            purchase.purchase_code,
            len(purchase.items),
            purchase.grand_total,
        )
        return purchase

    def get_purchase(self, purchase_id: str) -> Purchase:
        p = self.repo.get_purchase(purchase_id)
        if not p:
            raise NotFoundError("Purchase not found")
        return p

    def get_by_code(self, purchase_code: str) -> Purchase:
        p = self.repo.get_purchase_by_code(purchase_code)
        if not p:
            raise NotFoundError("Purchase not found")
        return p

    def list_purchases(self) -> list[Purchase]:
        return self.repo.list_purchases()

    def update_purchase(self, purchase_id: str, request: PurchaseRequest, now: Optional[datetime] = None) -> Purchase:
        """Reverse the stored items, then post the new ones. The code is kept."""
        existing = self.get_purchase(purchase_id)
        customer = resolve_customer(self.repo, request.customer_id)
        items = resolve_items(self.repo, request.items)
        total_amount, total_vat, grand_total = compute_totals(items, request.is_vat)

        self._reverse_items(existing, "update", now)

        updated = replace(
            existing,
            purchase_date=request.purchase_date or existing.purchase_date,
            items=items,
            is_vat=request.is_vat,
            shipping_cost=float(request.shipping_cost),
            notes=request.notes,
            payment=request.payment,
            warehouse=request.warehouse,
            total_amount=total_amount,
            total_vat=total_vat,
            grand_total=grand_total,
            updated_at=iso_timestamp(now),
            **customer_fields(customer),
        )
        updated = self.repo.update_purchase(updated)
        self._post_items(updated, SourceType.PURCHASE, now)

        log.info("purchase_updated purchase_id=%s code=%s items=%s", updated.id, updated.purchase_code, len(items))
        return updated

    def delete_purchase(self, purchase_id: str, now: Optional[datetime] = None) -> None:
        existing = self.get_purchase(purchase_id)
        self._reverse_items(existing, "delete", now)
        self.repo.delete_purchase(existing.id)
        log.info("purchase_deleted purchase_id=%s code=%s", existing.id, existing.purchase_code)
