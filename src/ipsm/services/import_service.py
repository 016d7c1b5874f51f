from __future__ import annotations

import csv
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from openpyxl import load_workbook

from ipsm.domain.clock import iso_timestamp
from ipsm.domain.codes import MigrationCodeGenerator
from ipsm.domain.errors import AppError, ValidationError
from ipsm.domain.models import (
    CustomerRequest,
    LineItem,
    MigrationResult,
    PaymentInfo,
    Price,
    PriceInfo,
    Product,
    PurchaseRequest,
    SaleRequest,
    SourceType,
    Stock,
    StockInfo,
    WarehouseInfo,
)

log = logging.getLogger(__name__)

TEMPLATES = {
    "customers": (
        "customerCode,companyName,contactName,taxId,phone,address,contactMethod\n"
        "C-0001,Example Trading Co.,Somchai Jaidee,1234567890123,02-123-4567,123 Sukhumvit Rd Bangkok 10110,email\n"
        ",Test Supplies Ltd.,Somying Rakdee,9876543210987,02-987-6543,456 Ratchadaphisek Rd Bangkok 10400,phone\n"
        "C-0003,Good Goods Co.,Wichai Kengmak,1111111111111,02-111-2222,789 Phahonyothin Rd Bangkok 10900,line\n"
    ),
    "products": (
        "skuId,name,description,color,size,category,purchasePriceVAT,purchasePriceNonVAT,"
        "salePriceVAT,salePriceNonVAT,stockVAT,stockNonVAT,actualStock\n"
        "SHI-0001,Shirt,Cotton shirt,White,L,Shirts,299.00,250.00,399.00,350.00,50,30,80\n"
        ",Jeans,Street style jeans,Blue,32,Pants,599.00,500.00,799.00,650.00,25,15,40\n"
        "BAG-0001,Bag,Leather bag,Black,One Size,Bags,1299.00,1100.00,1799.00,1500.00,10,5,15\n"
    ),
    "purchases": (
        "purchaseCode,purchaseDate,customerCode,productCode,quantity,unitPrice,isVAT,shippingCost,notes\n"
        "PUR-VAT-6701-0001,2024-01-15,C-0001,SH-LX/WH,10,299.00,true,50.00,Shirt restock\n"
        ",2024-01-15,C-0001,PA-32/BL,5,599.00,true,,Jeans restock\n"
        "PUR-NV-6701-0001,2024-01-16,C-0002,BA-ON/BL,2,1299.00,false,100.00,Bags\n"
    ),
    "sales": (
        "saleCode,saleDate,customerCode,productCode,quantity,unitPrice,isVAT,shippingCost,notes\n"
        "INV-6701-0001,2024-01-20,C-0001,SH-LX/WH,5,399.00,true,30.00,Shirt sale\n"
        ",2024-01-20,C-0001,PA-32/BL,2,799.00,true,,Jeans sale\n"
        "NV-6701-0001,2024-01-21,C-0002,BA-ON/BL,1,1799.00,false,50.00,Bag sale\n"
    ),
}

REQUIRED_HEADERS = {
    "customers": ("companyname", "contactname"),
    "products": ("name", "category"),
    "purchases": ("purchasedate", "customercode", "productcode", "quantity", "unitprice"),
    "sales": ("saledate", "customercode", "productcode", "quantity", "unitprice"),
}


# ---------- Reading ----------
def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def read_rows(path: str | Path) -> list[list[str]]:
    """All non-blank rows of a .csv or .xlsx file as trimmed strings, header first."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        with path.open("r", encoding="utf-8-sig", newline="") as f:
            rows = [[c.strip() for c in row] for row in csv.reader(f)]
    elif suffix in (".xlsx", ".xlsm"):
        wb = load_workbook(path, read_only=True, data_only=True)
        try:
            rows = [[_cell_text(v) for v in row] for row in wb.active.iter_rows(values_only=True)]
        finally:
            wb.close()
    else:
        raise ValidationError(f"Unsupported file type: {path.suffix or path.name}")
    return [r for r in rows if any(r)]


class _Table:
    def __init__(self, rows: list[list[str]], required: tuple[str, ...]):
        if len(rows) < 2:
            raise ValidationError("File must have at least a header row and one data row")
        self.headers = {h.strip().lower(): i for i, h in enumerate(rows[0])}
        for name in required:
            if name not in self.headers:
                raise ValidationError(f"Missing required header: {name}")
        self.rows = rows[1:]

    def get(self, row: list[str], name: str) -> str:
        i = self.headers.get(name)
        if i is None or i >= len(row):
            return ""
        return row[i].strip()

    def numbered(self):
        # Row 1 is the header.
        return enumerate(self.rows, start=2)


def _parse_float(value: str, field: str) -> float:
    if not value:
        return 0.0
    try:
        return float(value.replace(",", ""))
    except ValueError:
        raise ValidationError(f"invalid {field}: {value}") from None


def _parse_int(value: str, field: str) -> int:
    if not value:
        return 0
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"invalid {field}: {value}") from None


def _parse_date(value: str, today: date) -> str:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date().isoformat()
    except ValueError:
        return today.isoformat()


class ImportService:
    def __init__(self, repo, customers, products, purchases, sales, migration_codes=None):
        self.repo = repo
        self.customers = customers
        self.products = products
        self.purchases = purchases
        self.sales = sales
        self.migration_codes = migration_codes or MigrationCodeGenerator()

    def template(self, entity: str) -> str:
        try:
            return TEMPLATES[entity]
        except KeyError:
            raise ValidationError(f"Unknown entity: {entity}") from None

    def status(self, now: Optional[datetime] = None) -> dict:
        return {"counts": self.repo.entity_counts(), "last_checked": iso_timestamp(now)}

    def import_file(self, entity: str, path: str | Path, now: Optional[datetime] = None) -> MigrationResult:
        handlers = {
            "customers": self.import_customers,
            "products": self.import_products,
            "purchases": self.import_purchases,
            "sales": self.import_sales,
        }
        if entity not in handlers:
            raise ValidationError(f"Unknown entity: {entity}")
        return handlers[entity](path, now=now)

    @staticmethod
    def _result(entity: str, total: int, ok: int, errors: list[str], now: Optional[datetime]) -> MigrationResult:
        result = MigrationResult(
            total_rows=total,
            success_rows=ok,
            failed_rows=len(errors),
            errors=tuple(errors),
            processed_at=iso_timestamp(now),
        )
        log.info(
            "import_finished entity=%s total=%s ok=%s failed=%s",
            entity,
            result.total_rows,
            result.success_rows,
            result.failed_rows,
        )
        return result

    # ---------- Customers ----------
    def import_customers(self, path: str | Path, now: Optional[datetime] = None) -> MigrationResult:
        table = _Table(read_rows(path), REQUIRED_HEADERS["customers"])
        ok = 0
        errors: list[str] = []

        for row_num, row in table.numbered():
            request = CustomerRequest(
                company_name=table.get(row, "companyname"),
                contact_name=table.get(row, "contactname"),
                tax_id=table.get(row, "taxid"),
                phone=table.get(row, "phone"),
                address=table.get(row, "address"),
                contact_method=table.get(row, "contactmethod"),
            )
            try:
                if not request.company_name:
                    raise ValidationError("Company name is required")
                if not request.contact_name:
                    raise ValidationError("Contact name is required")
                self.customers.create_customer(request, customer_code=table.get(row, "customercode") or None, now=now)
            except AppError as e:
                log.warning("import_row_failed entity=customers row=%s error=%s", row_num, e)
                errors.append(f"Row {row_num}: {e}")
                continue
            ok += 1

        return self._result("customers", len(table.rows), ok, errors, now)

    # ---------- Products ----------
    def _product_from_row(self, table: _Table, row: list[str], ts: str) -> Product:
        name = table.get(row, "name")
        category = table.get(row, "category")
        if not name:
            raise ValidationError("Product name is required")
        if not category:
            raise ValidationError("Category is required")

        sku_id = table.get(row, "skuid")
        if sku_id and self.repo.get_product_by_sku(sku_id):
            raise ValidationError(f"SKU ID '{sku_id}' already exists")
        sku_id = sku_id or self.products.next_sku_id(category)

        price = Price(
            purchase_vat=PriceInfo(latest=_parse_float(table.get(row, "purchasepricevat"), "purchasePriceVAT")),
            purchase_non_vat=PriceInfo(latest=_parse_float(table.get(row, "purchasepricenonvat"), "purchasePriceNonVAT")),
            sale_vat=PriceInfo(latest=_parse_float(table.get(row, "salepricevat"), "salePriceVAT")),
            sale_non_vat=PriceInfo(latest=_parse_float(table.get(row, "salepricenonvat"), "salePriceNonVAT")),
        )
        vat = _parse_int(table.get(row, "stockvat"), "stockVAT")
        non_vat = _parse_int(table.get(row, "stocknonvat"), "stockNonVAT")
        actual_text = table.get(row, "actualstock")
        actual = _parse_int(actual_text, "actualStock") if actual_text else vat + non_vat

        color = table.get(row, "color")
        size = table.get(row, "size")
        return Product(
            id="",
            sku_id=sku_id,
            code=self.migration_codes.generate_product_code(category, size, color),
            name=name,
            description=table.get(row, "description"),
            color=color,
            size=size,
            category=category,
            qr_data=sku_id,
            price=price,
            stock=Stock(
                vat=StockInfo(remaining=vat),
                non_vat=StockInfo(remaining=non_vat),
                actual_stock=actual,
            ),
            created_at=ts,
            updated_at=ts,
        )

    def import_products(self, path: str | Path, now: Optional[datetime] = None) -> MigrationResult:
        """Opening balances: prices set only `latest`, stock sets only `remaining`."""
        table = _Table(read_rows(path), REQUIRED_HEADERS["products"])
        ts = iso_timestamp(now)
        ok = 0
        errors: list[str] = []

        for row_num, row in table.numbered():
            try:
                created = self.repo.create_product(self._product_from_row(table, row, ts))
            except AppError as e:
                log.warning("import_row_failed entity=products row=%s error=%s", row_num, e)
                errors.append(f"Row {row_num}: {e}")
                continue
            log.info("product_imported product_id=%s sku_id=%s code=%s", created.id, created.sku_id, created.code)
            ok += 1

        return self._result("products", len(table.rows), ok, errors, now)

    # ---------- Purchases / Sales ----------
    @staticmethod
    def _group(table: _Table, code_field: str, date_field: str) -> dict[str, list[tuple[int, list[str]]]]:
        """Rows sharing a code, or else the same date and customer code, form one document."""
        groups: dict[str, list[tuple[int, list[str]]]] = {}
        for row_num, row in table.numbered():
            key = table.get(row, code_field) or f"{table.get(row, date_field)}-{table.get(row, 'customercode')}"
            groups.setdefault(key, []).append((row_num, row))
        return groups

    def _group_header(self, table: _Table, first: list[str], date_field: str, today: date) -> dict:
        customer_code = table.get(first, "customercode")
        customer = self.repo.get_customer_by_code(customer_code) if customer_code else None
        if not customer:
            raise ValidationError(f"customer not found: {customer_code}")
        notes = table.get(first, "notes")
        shipping = _parse_float(table.get(first, "shippingcost"), "shippingCost")
        return {
            "date": _parse_date(table.get(first, date_field), today),
            "customer_id": customer.id,
            "is_vat": table.get(first, "isvat").lower() == "true",
            "shipping_cost": shipping,
            "notes": notes or None,
            "payment": PaymentInfo(is_paid=False),
            "warehouse": WarehouseInfo(is_updated=False, actual_shipping=shipping),
        }

    def _group_items(self, table: _Table, rows: list[tuple[int, list[str]]]) -> tuple[LineItem, ...]:
        items = []
        for _, row in rows:
            product_code = table.get(row, "productcode")
            product = self.repo.get_product_by_code(product_code) if product_code else None
            if not product:
                raise ValidationError(f"product not found: {product_code}")
            quantity = _parse_int(table.get(row, "quantity"), "quantity")
            unit_price = _parse_float(table.get(row, "unitprice"), "unitPrice")
            items.append(
                LineItem(
                    product_id=product.id,
                    quantity=quantity,
                    unit_price=unit_price,
                    product_name=product.name,
                    product_code=product.code,
                    total_price=quantity * unit_price,
                )
            )
        return tuple(items)

    def import_purchases(self, path: str | Path, now: Optional[datetime] = None) -> MigrationResult:
        table = _Table(read_rows(path), REQUIRED_HEADERS["purchases"])
        today = (now or datetime.now()).date()
        ok = 0
        errors: list[str] = []

        for key, rows in self._group(table, "purchasecode", "purchasedate").items():
            first = rows[0][1]
            try:
                header = self._group_header(table, first, "purchasedate", today)
                request = PurchaseRequest(
                    purchase_date=header.pop("date"),
                    items=self._group_items(table, rows),
                    **header,
                )
                self.purchases.create_purchase(
                    request,
                    now=now,
                    purchase_code=table.get(first, "purchasecode") or None,
                    source_type=SourceType.MIGRATION,
                )
            except AppError as e:
                log.warning("import_row_failed entity=purchases group=%s row=%s error=%s", key, rows[0][0], e)
                errors.append(f"Group {key}: {e}")
                continue
            ok += 1

        return self._result("purchases", len(table.rows), ok, errors, now)

    def import_sales(self, path: str | Path, now: Optional[datetime] = None) -> MigrationResult:
        """Imported sales reduce stock like regular sales; remaining stock may go negative."""
        table = _Table(read_rows(path), REQUIRED_HEADERS["sales"])
        today = (now or datetime.now()).date()
        ok = 0
        errors: list[str] = []

        for key, rows in self._group(table, "salecode", "saledate").items():
            first = rows[0][1]
            try:
                header = self._group_header(table, first, "saledate", today)
                request = SaleRequest(
                    sale_date=header.pop("date"),
                    items=self._group_items(table, rows),
                    **header,
                )
                self.sales.create_sale(
                    request,
                    now=now,
                    sale_code=table.get(first, "salecode") or None,
                    source_type=SourceType.MIGRATION,
                )
            except AppError as e:
                log.warning("import_row_failed entity=sales group=%s row=%s error=%s", key, rows[0][0], e)
                errors.append(f"Group {key}: {e}")
                continue
            ok += 1

        return self._result("sales", len(table.rows), ok, errors, now)
