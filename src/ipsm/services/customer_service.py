from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from ipsm.domain.clock import iso_timestamp
from ipsm.domain.codes import next_customer_code
from ipsm.domain.errors import ConflictError, DuplicateKeyError, NotFoundError, ValidationError
from ipsm.domain.models import Customer, CustomerRequest

log = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


class CustomerService:
    def __init__(self, repo):
        self.repo = repo

    def next_code(self) -> str:
        return next_customer_code(self.repo.last_code("customer"))

    def create_customer(
        self,
        request: CustomerRequest,
        customer_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Customer:
        if not (request.company_name or "").strip() and not (request.contact_name or "").strip():
            raise ValidationError("Company name or contact name is required.")

        ts = iso_timestamp(now)
        for _ in range(MAX_WRITE_ATTEMPTS):
            code = customer_code or self.next_code()
            customer = Customer(
                id="",
                customer_code=code,
                company_name=(request.company_name or "").strip(),
                contact_name=(request.contact_name or "").strip(),
                tax_id=request.tax_id,
                phone=request.phone,
                address=request.address,
                contact_method=request.contact_method,
                created_at=ts,
                updated_at=ts,
            )
            try:
                created = self.repo.create_customer(customer)
            except DuplicateKeyError:
                if customer_code:
                    raise ConflictError(f"Customer code '{customer_code}' already exists") from None
                log.warning("customer_code_collision code=%s", code)
                continue
            log.info("customer_created customer_id=%s code=%s", created.id, created.customer_code)
            return created
        raise ConflictError("Could not allocate a unique customer code.")

    def get_customer(self, customer_id: str) -> Customer:
        c = self.repo.get_customer(customer_id)
        if not c:
            raise NotFoundError("Customer not found")
        return c

    def get_by_code(self, customer_code: str) -> Customer:
        c = self.repo.get_customer_by_code(customer_code)
        if not c:
            raise NotFoundError("Customer not found")
        return c

    def list_customers(self) -> list[Customer]:
        return self.repo.list_customers()

    def update_customer(self, customer_id: str, request: CustomerRequest, now: Optional[datetime] = None) -> Customer:
        existing = self.get_customer(customer_id)
        updated = replace(
            existing,
            company_name=(request.company_name or "").strip(),
            contact_name=(request.contact_name or "").strip(),
            tax_id=request.tax_id,
            phone=request.phone,
            address=request.address,
            contact_method=request.contact_method,
            updated_at=iso_timestamp(now),
        )
        return self.repo.update_customer(updated)

    def delete_customer(self, customer_id: str) -> None:
        if not self.repo.delete_customer(customer_id):
            raise NotFoundError("Customer not found")
        log.info("customer_deleted customer_id=%s", customer_id)
