from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class AdjustmentType(str, Enum):
    ADD = "add"
    REDUCE = "reduce"


class StockType(str, Enum):
    VAT = "vat"
    NONVAT = "nonvat"
    ACTUAL = "actualstock"


class SourceType(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    MIGRATION = "migration"


QUOTATION_STATUSES = ("draft", "sent", "accepted", "rejected", "expired")

VAT_RATE = 0.07


# ---------- Products ----------
@dataclass(frozen=True)
class PriceInfo:
    latest: float = 0.0
    min: float = 0.0
    max: float = 0.0
    average: float = 0.0
    average_ytd: float = 0.0
    average_mtd: float = 0.0
    ytd_count: int = 0
    ytd_total: float = 0.0
    ytd_year: int = 0
    mtd_count: int = 0
    mtd_total: float = 0.0
    mtd_month: int = 0
    mtd_year: int = 0


@dataclass(frozen=True)
class TierPrice:
    min_quantity: int
    max_quantity: Optional[int] = None
    price: PriceInfo = field(default_factory=PriceInfo)
    wholesale_price: float = 0.0


@dataclass(frozen=True)
class Price:
    purchase_vat: PriceInfo = field(default_factory=PriceInfo)
    purchase_non_vat: PriceInfo = field(default_factory=PriceInfo)
    sale_vat: PriceInfo = field(default_factory=PriceInfo)
    sale_non_vat: PriceInfo = field(default_factory=PriceInfo)
    sales_tiers: tuple[TierPrice, ...] = ()


@dataclass(frozen=True)
class StockInfo:
    purchased: int = 0
    sold: int = 0
    remaining: int = 0


@dataclass(frozen=True)
class Stock:
    vat: StockInfo = field(default_factory=StockInfo)
    non_vat: StockInfo = field(default_factory=StockInfo)
    actual_stock: int = 0


@dataclass(frozen=True)
class Product:
    id: str
    sku_id: str
    code: str
    name: str
    description: str = ""
    color: str = ""
    size: str = ""
    category: str = ""
    qr_data: str = ""
    image_url: Optional[str] = None
    price: Price = field(default_factory=Price)
    stock: Stock = field(default_factory=Stock)
    created_at: str = ""
    updated_at: str = ""
    version: int = 0

    @property
    def total_stock(self) -> int:
        return self.stock.actual_stock

    def is_low_stock(self, threshold: int = 10) -> bool:
        return self.total_stock <= threshold


@dataclass(frozen=True)
class ProductRequest:
    name: str
    category: str
    description: str = ""
    color: str = ""
    size: str = ""
    image_url: Optional[str] = None
    price: Price = field(default_factory=Price)
    stock: Stock = field(default_factory=Stock)


# ---------- Customers ----------
@dataclass(frozen=True)
class Customer:
    id: str
    customer_code: str
    company_name: str
    contact_name: str = ""
    tax_id: str = ""
    phone: str = ""
    address: str = ""
    contact_method: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def display_name(self) -> str:
        return self.company_name or self.contact_name


@dataclass(frozen=True)
class CustomerRequest:
    company_name: str
    contact_name: str = ""
    tax_id: str = ""
    phone: str = ""
    address: str = ""
    contact_method: str = ""


# ---------- Transactions ----------
@dataclass(frozen=True)
class LineItem:
    product_id: str
    quantity: int
    unit_price: float
    product_name: str = ""
    product_code: str = ""
    total_price: float = 0.0


@dataclass(frozen=True)
class BankAccount:
    id: str
    name: str
    account_number: str
    bank_name: str = ""
    account_type: str = ""
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.name} {self.account_number}"


@dataclass(frozen=True)
class PaymentInfo:
    is_paid: bool = False
    payment_method: Optional[str] = None
    our_account: Optional[str] = None
    our_account_info: Optional[BankAccount] = None
    customer_account: Optional[str] = None
    payment_date: Optional[str] = None


@dataclass(frozen=True)
class WarehouseItem:
    product_id: str
    product_name: str = ""
    quantity: int = 0
    boxes: int = 0
    notes: Optional[str] = None


@dataclass(frozen=True)
class WarehouseInfo:
    is_updated: bool = False
    notes: Optional[str] = None
    actual_shipping: float = 0.0
    items: tuple[WarehouseItem, ...] = ()


@dataclass(frozen=True)
class PurchaseRequest:
    purchase_date: str
    customer_id: str
    items: tuple[LineItem, ...]
    is_vat: bool = False
    shipping_cost: float = 0.0
    notes: Optional[str] = None
    payment: PaymentInfo = field(default_factory=PaymentInfo)
    warehouse: WarehouseInfo = field(default_factory=WarehouseInfo)


@dataclass(frozen=True)
class Purchase:
    id: str
    purchase_code: str
    purchase_date: str
    customer_id: str
    customer_name: str
    items: tuple[LineItem, ...]
    is_vat: bool = False
    shipping_cost: float = 0.0
    contact_name: Optional[str] = None
    customer_code: Optional[str] = None
    tax_id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    payment: PaymentInfo = field(default_factory=PaymentInfo)
    warehouse: WarehouseInfo = field(default_factory=WarehouseInfo)
    total_amount: float = 0.0
    total_vat: float = 0.0
    grand_total: float = 0.0
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class SaleRequest:
    sale_date: str
    customer_id: str
    items: tuple[LineItem, ...]
    is_vat: bool = False
    shipping_cost: float = 0.0
    notes: Optional[str] = None
    payment: PaymentInfo = field(default_factory=PaymentInfo)
    warehouse: WarehouseInfo = field(default_factory=WarehouseInfo)
    quotation_code: Optional[str] = None
    bank_account_id: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account_name: Optional[str] = None
    bank_account_number: Optional[str] = None


@dataclass(frozen=True)
class Sale:
    id: str
    sale_code: str
    sale_date: str
    customer_id: str
    customer_name: str
    items: tuple[LineItem, ...]
    is_vat: bool = False
    shipping_cost: float = 0.0
    contact_name: Optional[str] = None
    customer_code: Optional[str] = None
    tax_id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    payment: PaymentInfo = field(default_factory=PaymentInfo)
    warehouse: WarehouseInfo = field(default_factory=WarehouseInfo)
    quotation_code: Optional[str] = None
    bank_account_id: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    total_amount: float = 0.0
    total_vat: float = 0.0
    grand_total: float = 0.0
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class QuotationRequest:
    quotation_date: str
    customer_id: str
    items: tuple[LineItem, ...]
    is_vat: bool = False
    shipping_cost: float = 0.0
    notes: Optional[str] = None
    valid_until: Optional[str] = None
    status: str = "draft"
    bank_account_id: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account_name: Optional[str] = None
    bank_account_number: Optional[str] = None


@dataclass(frozen=True)
class Quotation:
    id: str
    quotation_code: str
    quotation_date: str
    customer_id: str
    customer_name: str
    items: tuple[LineItem, ...]
    is_vat: bool = False
    shipping_cost: float = 0.0
    contact_name: Optional[str] = None
    customer_code: Optional[str] = None
    tax_id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    valid_until: Optional[str] = None
    status: str = "draft"
    sale_code: Optional[str] = None
    bank_account_id: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def grand_total(self) -> float:
        before_vat = sum(float(it.total_price) for it in self.items)
        vat = before_vat * VAT_RATE if self.is_vat else 0.0
        return before_vat + vat + float(self.shipping_cost)


# ---------- Stock audit ----------
@dataclass(frozen=True)
class StockSnapshot:
    vat_purchased: int = 0
    vat_sold: int = 0
    vat_remaining: int = 0
    non_vat_purchased: int = 0
    non_vat_sold: int = 0
    non_vat_remaining: int = 0
    actual_stock: int = 0


@dataclass(frozen=True)
class StockAdjustment:
    id: str
    product_id: str
    product_name: str
    sku_id: str
    adjustment_type: AdjustmentType
    stock_type: StockType
    quantity: int
    before: StockSnapshot
    after: StockSnapshot
    source_type: SourceType
    source_id: Optional[str] = None
    source_code: Optional[str] = None
    notes: Optional[str] = None
    created_at: str = ""


# ---------- Reporting ----------
@dataclass(frozen=True)
class InventorySummary:
    total_products: int
    total_stock: int
    low_stock_count: int
    out_of_stock_count: int


@dataclass(frozen=True)
class MigrationResult:
    total_rows: int
    success_rows: int
    failed_rows: int
    errors: tuple[str, ...]
    processed_at: str
