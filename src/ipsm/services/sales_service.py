from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from ipsm.domain.clock import iso_timestamp
from ipsm.domain.codes import format_sequence_code, sale_code_prefix
from ipsm.domain.errors import AppError, ConflictError, DuplicateKeyError, NotFoundError
from ipsm.domain.models import AdjustmentType, Sale, SaleRequest, SourceType
from ipsm.services.stock_service import StockMovement, StockService, stock_type_for
from ipsm.services.transaction_support import compute_totals, customer_fields, resolve_customer, resolve_items

log = logging.getLogger("ipsm.sales")

MAX_CODE_ATTEMPTS = 3


class SalesService:
    def __init__(self, repo, stock: StockService, catalog=None):
        self.repo = repo
        self.stock = stock
        self.catalog = catalog

    def next_sale_code(self, is_vat: bool, now: Optional[datetime] = None) -> str:
        prefix = sale_code_prefix(is_vat, (now or datetime.now()).date())
        return format_sequence_code(prefix, self.repo.get_next_sequence_number("sale", prefix))

    def _with_bank_account(self, sale: Sale) -> Sale:
        """Attach the configured account details for payment.our_account, when known."""
        account_id = sale.payment.our_account
        if not account_id or self.catalog is None:
            return sale
        account = self.catalog.account_by_id(account_id)
        if account is None:
            return sale
        return replace(sale, payment=replace(sale.payment, our_account_info=account))

    def _bank_fields(self, request: SaleRequest) -> dict:
        """Request bank fields, with blanks filled from the configured account."""
        fields = {
            "bank_account_id": request.bank_account_id,
            "bank_name": request.bank_name,
            "bank_account_name": request.bank_account_name,
            "bank_account_number": request.bank_account_number,
        }
        if not request.bank_account_id or self.catalog is None:
            return fields
        account = self.catalog.account_by_id(request.bank_account_id)
        if account is None:
            log.warning("bank_account_unknown bank_account_id=%s", request.bank_account_id)
            return fields
        fields["bank_name"] = request.bank_name or account.bank_name
        fields["bank_account_name"] = request.bank_account_name or account.name
        fields["bank_account_number"] = request.bank_account_number or account.account_number
        return fields

    def _with_customer(self, sale: Sale) -> Sale:
        customer = self.repo.get_customer(sale.customer_id) if sale.customer_id else None
        if customer is None:
            return sale
        return replace(sale, **customer_fields(customer))

    def _enrich(self, sale: Sale) -> Sale:
        return self._with_bank_account(self._with_customer(sale))

    def _insert_with_code(self, sale: Sale, fixed_code: Optional[str], now: Optional[datetime]) -> Sale:
        if fixed_code:
            try:
                return self.repo.create_sale(replace(sale, sale_code=fixed_code))
            except DuplicateKeyError:
                raise ConflictError(f"Sale code '{fixed_code}' already exists") from None

        for _ in range(MAX_CODE_ATTEMPTS):
            code = self.next_sale_code(sale.is_vat, now)
            try:
                return self.repo.create_sale(replace(sale, sale_code=code))
            except DuplicateKeyError:
                log.warning("sale_code_collision code=%s", code)
        raise ConflictError("Could not allocate a unique sale code.")

    def _post_items(self, sale: Sale, source_type: SourceType, now: Optional[datetime]) -> None:
        for it in sale.items:
            self.stock.apply_movement(
                StockMovement(
                    product_id=it.product_id,
                    adjustment_type=AdjustmentType.REDUCE,
                    stock_type=stock_type_for(sale.is_vat),
                    quantity=it.quantity,
                    source_type=source_type,
                    source_id=sale.id,
                    source_code=sale.sale_code,
                    notes=f"Sale {sale.sale_code}",
                    unit_price=it.unit_price,
                    is_vat=sale.is_vat,
                    is_purchase=False,
                ),
                now=now,
            )

    def _reverse_items(self, sale: Sale, reason: str, now: Optional[datetime]) -> None:
        for it in sale.items:
            try:
                self.stock.apply_movement(
                    StockMovement(
                        product_id=it.product_id,
                        adjustment_type=AdjustmentType.ADD,
                        stock_type=stock_type_for(sale.is_vat),
                        quantity=it.quantity,
                        source_type=SourceType.SALE,
                        source_id=sale.id,
                        source_code=sale.sale_code,
                        notes=f"Reverse sale {sale.sale_code} ({reason})",
                    ),
                    now=now,
                )
            except NotFoundError:
                log.warning(
                    "sale_reversal_skipped sale_id=%s product_id=%s reason=product_missing",
                    sale.id,
                    it.product_id,
                )

    def _link_quotation(self, sale: Sale) -> None:
        try:
            quotation = self.repo.get_quotation_by_code(sale.quotation_code)
            if quotation is None:
                raise NotFoundError(f"Quotation {sale.quotation_code} not found")
            self.repo.update_quotation(replace(quotation, sale_code=sale.sale_code, updated_at=sale.created_at))
        except AppError as e:
            log.warning(
                "quotation_link_failed quotation_code=%s sale_code=%s error=%s",
                sale.quotation_code,
                sale.sale_code,
                e,
            )

    def create_sale(
        self,
        request: SaleRequest,
        now: Optional[datetime] = None,
        sale_code: Optional[str] = None,
        source_type: SourceType = SourceType.SALE,
    ) -> Sale:
        """
        Stock is reduced per item with no availability check: a sale larger
        than the remaining stock drives it negative.
        """
        customer = resolve_customer(self.repo, request.customer_id)
        items = resolve_items(self.repo, request.items)
        total_amount, total_vat, grand_total = compute_totals(items, request.is_vat)
        ts = iso_timestamp(now)

        draft = Sale(
            id="",
            sale_code="",
            sale_date=request.sale_date or ts[:10],
            items=items,
            is_vat=request.is_vat,
            shipping_cost=float(request.shipping_cost),
            notes=request.notes,
            payment=request.payment,
            warehouse=request.warehouse,
            quotation_code=request.quotation_code,
            **self._bank_fields(request),
            total_amount=total_amount,
            total_vat=total_vat,
            grand_total=grand_total,
            created_at=ts,
            updated_at=ts,
            **customer_fields(customer),
        )
        sale = self._insert_with_code(draft, sale_code, now)
        self._post_items(sale, source_type, now)

        if sale.quotation_code:
            self._link_quotation(sale)

        log.info(
            "sale_created sale_id=%s code=%s items=%s grand_total=%.2f quotation=%s",
            sale.id,
            sale.sale_code,
            len(sale.items),
            sale.grand_total,
            sale.quotation_code,
        )
        return self._with_bank_account(sale)

    def get_sale(self, sale_id: str) -> Sale:
        s = self.repo.get_sale(sale_id)
        if not s:
            raise NotFoundError("Sale not found")
        return self._enrich(s)

    def get_by_code(self, sale_code: str) -> Sale:
        s = self.repo.get_sale_by_code(sale_code)
        if not s:
            raise NotFoundError("Sale not found")
        return self._enrich(s)

    def list_sales(self) -> list[Sale]:
        return [self._enrich(s) for s in self.repo.list_sales()]

    def update_sale(self, sale_id: str, request: SaleRequest, now: Optional[datetime] = None) -> Sale:
        """Put the stored items back into stock, then sell the new ones. The code is kept."""
        existing = self.repo.get_sale(sale_id)
        if not existing:
            raise NotFoundError("Sale not found")
        customer = resolve_customer(self.repo, request.customer_id)
        items = resolve_items(self.repo, request.items)
        total_amount, total_vat, grand_total = compute_totals(items, request.is_vat)

        self._reverse_items(existing, "update", now)

        updated = replace(
            existing,
            sale_date=request.sale_date or existing.sale_date,
            items=items,
            is_vat=request.is_vat,
            shipping_cost=float(request.shipping_cost),
            notes=request.notes,
            payment=request.payment,
            warehouse=request.warehouse,
            quotation_code=request.quotation_code,
            **self._bank_fields(request),
            total_amount=total_amount,
            total_vat=total_vat,
            grand_total=grand_total,
            updated_at=iso_timestamp(now),
            **customer_fields(customer),
        )
        updated = self.repo.update_sale(updated)
        self._post_items(updated, SourceType.SALE, now)

        log.info("sale_updated sale_id=%s code=%s items=%s", updated.id, updated.sale_code, len(items))
        return self._with_bank_account(updated)

    def delete_sale(self, sale_id: str, now: Optional[datetime] = None) -> None:
        existing = self.repo.get_sale(sale_id)
        if not existing:
            raise NotFoundError("Sale not found")
        self._reverse_items(existing, "delete", now)
        self.repo.delete_sale(existing.id)
        log.info("sale_deleted sale_id=%s code=%s", existing.id, existing.sale_code)
