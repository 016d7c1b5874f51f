from .models import (
    AdjustmentType,
    Customer,
    Product,
    Purchase,
    Quotation,
    Sale,
    SourceType,
    StockAdjustment,
    StockType,
)
from .errors import (
    AppError,
    ConflictError,
    DuplicateKeyError,
    InvalidCodeError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

__all__ = [
    "AdjustmentType",
    "Customer",
    "Product",
    "Purchase",
    "Quotation",
    "Sale",
    "SourceType",
    "StockAdjustment",
    "StockType",
    "AppError",
    "ConflictError",
    "DuplicateKeyError",
    "InvalidCodeError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
]
