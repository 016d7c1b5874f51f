from __future__ import annotations

from typing import Optional, Protocol

from ipsm.domain.models import Customer, Product, Purchase, Quotation, Sale, SourceType, StockAdjustment


class ProductRepository(Protocol):
    def create_product(self, product: Product) -> Product: ...
    def get_product(self, product_id: str) -> Optional[Product]: ...
    def get_product_by_sku(self, sku_id: str) -> Optional[Product]: ...
    def get_product_by_code(self, code: str) -> Optional[Product]: ...
    def list_products(self) -> list[Product]: ...
    def all_sku_ids(self) -> list[str]: ...
    def update_product(self, product: Product) -> Product: ...
    def delete_product(self, product_id: str) -> bool: ...


class CustomerRepository(Protocol):
    def create_customer(self, customer: Customer) -> Customer: ...
    def get_customer(self, customer_id: str) -> Optional[Customer]: ...
    def get_customer_by_code(self, customer_code: str) -> Optional[Customer]: ...
    def update_customer(self, customer: Customer) -> Customer: ...
    def delete_customer(self, customer_id: str) -> bool: ...


class SequenceSource(Protocol):
    def last_code(self, kind: str, prefix: str = "") -> Optional[str]: ...
    def get_next_sequence_number(self, kind: str, prefix: str) -> int: ...


class StockAdjustmentRepository(Protocol):
    def create_stock_adjustment(self, adjustment: StockAdjustment) -> StockAdjustment: ...
    def get_stock_adjustment(self, adjustment_id: str) -> Optional[StockAdjustment]: ...
    def list_adjustments_by_product(
        self, product_id: str, limit: int, start: Optional[str] = None, end: Optional[str] = None
    ) -> list[StockAdjustment]: ...
    def list_adjustments(self, limit: int, skip: int = 0) -> list[StockAdjustment]: ...
    def list_adjustments_by_source(self, source_type: SourceType | str, source_id: str) -> list[StockAdjustment]: ...
    def delete_stock_adjustment(self, adjustment_id: str) -> bool: ...


class LedgerRepository(ProductRepository, CustomerRepository, SequenceSource, StockAdjustmentRepository, Protocol):
    def create_purchase(self, purchase: Purchase) -> Purchase: ...
    def get_purchase(self, purchase_id: str) -> Optional[Purchase]: ...
    def update_purchase(self, purchase: Purchase) -> Purchase: ...
    def delete_purchase(self, purchase_id: str) -> bool: ...
    def create_sale(self, sale: Sale) -> Sale: ...
    def get_sale(self, sale_id: str) -> Optional[Sale]: ...
    def update_sale(self, sale: Sale) -> Sale: ...
    def delete_sale(self, sale_id: str) -> bool: ...
    def get_quotation_by_code(self, quotation_code: str) -> Optional[Quotation]: ...
    def update_quotation(self, quotation: Quotation) -> Quotation: ...
