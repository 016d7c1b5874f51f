from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from ipsm.domain.errors import ValidationError
from ipsm.domain.models import VAT_RATE, Customer, LineItem


def resolve_customer(repo, customer_id: str) -> Customer:
    customer = repo.get_customer(customer_id) if customer_id else None
    if not customer:
        raise ValidationError("Customer not found")
    return customer


def customer_fields(customer: Customer) -> dict:
    """Customer details copied onto a purchase, sale or quotation."""
    return {
        "customer_id": customer.id,
        "customer_name": customer.display_name,
        "contact_name": customer.contact_name or None,
        "customer_code": customer.customer_code or None,
        "tax_id": customer.tax_id or None,
        "address": customer.address or None,
        "phone": customer.phone or None,
    }


def resolve_items(repo, items: Iterable[LineItem]) -> tuple[LineItem, ...]:
    """
    Validate every line before anything is written and fill product name,
    code and line total from the stored product.
    """
    items = tuple(items)
    if not items:
        raise ValidationError("At least one item is required.")

    resolved = []
    for it in items:
        qty = int(it.quantity)
        unit_price = float(it.unit_price)
        if qty <= 0:
            raise ValidationError("Quantity must be greater than 0")
        if unit_price < 0:
            raise ValidationError("Unit price must be >= 0.")
        product = repo.get_product(it.product_id) if it.product_id else None
        if not product:
            raise ValidationError(f"Product not found: {it.product_id}")
        resolved.append(
            replace(
                it,
                quantity=qty,
                unit_price=unit_price,
                product_name=it.product_name or product.name,
                product_code=it.product_code or product.code,
                total_price=float(it.total_price) if it.total_price else qty * unit_price,
            )
        )
    return tuple(resolved)


def compute_totals(items: Iterable[LineItem], is_vat: bool) -> tuple[float, float, float]:
    """(total_amount, total_vat, grand_total); VAT is 7% of the item totals when is_vat."""
    total_amount = sum(float(it.total_price) for it in items)
    total_vat = total_amount * VAT_RATE if is_vat else 0.0
    return total_amount, total_vat, total_amount + total_vat
