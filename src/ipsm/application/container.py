from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ipsm.config import CatalogConfig
from ipsm.domain.codes import MigrationCodeGenerator, StandardCodeGenerator
from ipsm.repositories.sqlite_repo import SqliteRepository
from ipsm.services.customer_service import CustomerService
from ipsm.services.import_service import ImportService
from ipsm.services.product_service import ProductService
from ipsm.services.purchase_service import PurchaseService
from ipsm.services.quotation_service import QuotationService
from ipsm.services.reporting_service import ReportingService
from ipsm.services.sales_service import SalesService
from ipsm.services.stock_audit_service import StockAuditService
from ipsm.services.stock_service import StockService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    catalog: CatalogConfig
    products: ProductService
    customers: CustomerService
    stock: StockService
    purchases: PurchaseService
    sales: SalesService
    quotations: QuotationService
    imports: ImportService
    reporting: ReportingService


def build_container(
    db_path: Path | str,
    catalog: Optional[CatalogConfig] = None,
    low_stock_threshold: int = 10,
    images_dir: Path | str | None = None,
) -> AppContainer:
    catalog = catalog or CatalogConfig()

    repo = SqliteRepository(db_path)
    repo.init_db()

    products = ProductService(repo, StandardCodeGenerator(catalog), low_stock_threshold, images_dir)
    customers = CustomerService(repo)
    stock = StockService(repo, repo, StockAuditService(repo))
    purchases = PurchaseService(repo, stock)
    sales = SalesService(repo, stock, catalog)
    quotations = QuotationService(repo)
    imports = ImportService(repo, customers, products, purchases, sales, MigrationCodeGenerator())
    reporting = ReportingService(repo, low_stock_threshold)

    return AppContainer(
        repo=repo,
        catalog=catalog,
        products=products,
        customers=customers,
        stock=stock,
        purchases=purchases,
        sales=sales,
        quotations=quotations,
        imports=imports,
        reporting=reporting,
    )
