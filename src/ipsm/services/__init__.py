from .customer_service import CustomerService
from .import_service import ImportService
from .product_service import ProductService
from .purchase_service import PurchaseService
from .quotation_service import QuotationService
from .reporting_service import ReportingService
from .sales_service import SalesService
from .stock_audit_service import StockAuditService
from .stock_service import StockMovement, StockService

__all__ = [
    "CustomerService",
    "ImportService",
    "ProductService",
    "PurchaseService",
    "QuotationService",
    "ReportingService",
    "SalesService",
    "StockAuditService",
    "StockMovement",
    "StockService",
]
