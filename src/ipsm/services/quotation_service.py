from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Optional

from ipsm.domain.clock import iso_timestamp
from ipsm.domain.codes import generate_quotation_code
from ipsm.domain.errors import ConflictError, DuplicateKeyError, NotFoundError, ValidationError
from ipsm.domain.models import (
    QUOTATION_STATUSES,
    PaymentInfo,
    Quotation,
    QuotationRequest,
    SaleRequest,
    WarehouseInfo,
)
from ipsm.services.transaction_support import customer_fields, resolve_customer, resolve_items

log = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 3


def _check_status(status: str) -> str:
    status = (status or "draft").strip().lower()
    if status not in QUOTATION_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(QUOTATION_STATUSES)}")
    return status


class QuotationService:
    """Quotations never touch stock or prices; they only reference products."""

    def __init__(self, repo):
        self.repo = repo

    def next_quotation_code(self, today: Optional[date] = None) -> str:
        return generate_quotation_code(self.repo.last_code("quotation"), today)

    def create_quotation(self, request: QuotationRequest, now: Optional[datetime] = None) -> Quotation:
        status = _check_status(request.status)
        customer = resolve_customer(self.repo, request.customer_id)
        items = resolve_items(self.repo, request.items)
        ts = iso_timestamp(now)
        today = (now or datetime.now()).date()

        draft = Quotation(
            id="",
            quotation_code="",
            quotation_date=request.quotation_date or ts[:10],
            items=items,
            is_vat=request.is_vat,
            shipping_cost=float(request.shipping_cost),
            notes=request.notes,
            valid_until=request.valid_until,
            status=status,
            bank_account_id=request.bank_account_id,
            bank_name=request.bank_name,
            bank_account_name=request.bank_account_name,
            bank_account_number=request.bank_account_number,
            created_at=ts,
            updated_at=ts,
            **customer_fields(customer),
        )
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self.next_quotation_code(today)
            try:
                created = self.repo.create_quotation(replace(draft, quotation_code=code))
            except DuplicateKeyError:
                log.warning("quotation_code_collision code=%s", code)
                continue
            log.info(
                "quotation_created quotation_id=%s code=%s items=%s grand_total=%.2f",
                created.id,
                created.quotation_code,
                len(created.items),
                created.grand_total,
            )
            return created
        raise ConflictError("Could not allocate a unique quotation code.")

    def get_quotation(self, quotation_id: str) -> Quotation:
        q = self.repo.get_quotation(quotation_id)
        if not q:
            raise NotFoundError("Quotation not found")
        return q

    def get_by_code(self, quotation_code: str) -> Quotation:
        q = self.repo.get_quotation_by_code(quotation_code)
        if not q:
            raise NotFoundError("Quotation not found")
        return q

    def list_quotations(self) -> list[Quotation]:
        return self.repo.list_quotations()

    def list_by_customer(self, customer_id: str) -> list[Quotation]:
        return self.repo.list_quotations_by_customer(customer_id)

    def list_by_status(self, status: str) -> list[Quotation]:
        return self.repo.list_quotations_by_status(_check_status(status))

    def update_quotation(
        self,
        quotation_id: str,
        request: QuotationRequest,
        now: Optional[datetime] = None,
    ) -> Quotation:
        """Full replace; the code and any linked sale code are kept."""
        existing = self.get_quotation(quotation_id)
        status = _check_status(request.status)
        customer = resolve_customer(self.repo, request.customer_id)
        items = resolve_items(self.repo, request.items)

        updated = replace(
            existing,
            quotation_date=request.quotation_date or existing.quotation_date,
            items=items,
            is_vat=request.is_vat,
            shipping_cost=float(request.shipping_cost),
            notes=request.notes,
            valid_until=request.valid_until,
            status=status,
            bank_account_id=request.bank_account_id,
            bank_name=request.bank_name,
            bank_account_name=request.bank_account_name,
            bank_account_number=request.bank_account_number,
            updated_at=iso_timestamp(now),
            **customer_fields(customer),
        )
        saved = self.repo.update_quotation(updated)
        log.info("quotation_updated quotation_id=%s code=%s status=%s", saved.id, saved.quotation_code, saved.status)
        return saved

    def set_sale_code(self, quotation_code: str, sale_code: str, now: Optional[datetime] = None) -> Quotation:
        q = self.get_by_code(quotation_code)
        return self.repo.update_quotation(replace(q, sale_code=sale_code, updated_at=iso_timestamp(now)))

    def delete_quotation(self, quotation_id: str) -> None:
        if not self.repo.delete_quotation(quotation_id):
            raise NotFoundError("Quotation not found")
        log.info("quotation_deleted quotation_id=%s", quotation_id)

    def copy_to_sale_request(self, quotation_id: str, today: Optional[date] = None) -> SaleRequest:
        """Draft sale for the quotation: same items, unpaid, dated today."""
        q = self.get_quotation(quotation_id)
        return SaleRequest(
            sale_date=(today or date.today()).isoformat(),
            customer_id=q.customer_id,
            items=q.items,
            is_vat=q.is_vat,
            shipping_cost=q.shipping_cost,
            notes=q.notes,
            payment=PaymentInfo(is_paid=False),
            warehouse=WarehouseInfo(is_updated=False, actual_shipping=q.shipping_cost),
            quotation_code=q.quotation_code,
            bank_account_id=q.bank_account_id,
            bank_name=q.bank_name,
            bank_account_name=q.bank_account_name,
            bank_account_number=q.bank_account_number,
        )
