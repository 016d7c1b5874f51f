from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ipsm.domain.clock import iso_timestamp
from ipsm.domain.codes import StandardCodeGenerator
from ipsm.domain.errors import ConflictError, DuplicateKeyError, NotFoundError, ValidationError
from ipsm.domain.models import InventorySummary, Price, Product, ProductRequest, Stock
from ipsm.repositories.contracts import ProductRepository

log = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


class ProductService:
    def __init__(
        self,
        repo: ProductRepository,
        codes: StandardCodeGenerator,
        low_stock_threshold: int = 10,
        images_dir: Path | str | None = None,
    ):
        self.repo = repo
        self.codes = codes
        self.low_stock_threshold = int(low_stock_threshold)
        self.images_dir = Path(images_dir) if images_dir else None

    def next_sku_id(self, category: str) -> str:
        last = self.codes.next_sku_number(category, self.repo.all_sku_ids())
        return self.codes.generate_sku_id(category, last)

    def create_product(self, request: ProductRequest, now: Optional[datetime] = None) -> Product:
        name = (request.name or "").strip()
        category = (request.category or "").strip()
        if not name or not category:
            raise ValidationError("Name and category are required.")

        ts = iso_timestamp(now)
        code = self.codes.generate_product_code(category, request.size, request.color)
        last_error: DuplicateKeyError | None = None
        for _ in range(MAX_WRITE_ATTEMPTS):
            sku_id = self.next_sku_id(category)
            product = Product(
                id="",
                sku_id=sku_id,
                code=code,
                name=name,
                description=request.description,
                color=request.color,
                size=request.size,
                category=category,
                qr_data=sku_id,
                image_url=request.image_url,
                price=request.price,
                stock=request.stock,
                created_at=ts,
                updated_at=ts,
            )
            try:
                created = self.repo.create_product(product)
            except DuplicateKeyError as e:
                last_error = e
                log.warning("sku_collision sku_id=%s error=%s", sku_id, e)
                continue
            log.info("product_created product_id=%s sku_id=%s code=%s", created.id, created.sku_id, created.code)
            return created
        raise ConflictError(f"Could not allocate a unique SKU for category {category}: {last_error}")

    def get_product(self, product_id: str) -> Product:
        p = self.repo.get_product(product_id)
        if not p:
            raise NotFoundError("Product not found")
        return p

    def get_product_by_sku(self, sku_id: str) -> Product:
        p = self.repo.get_product_by_sku(sku_id)
        if not p:
            raise NotFoundError("Product not found")
        return p

    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def products_by_category(self, category: str) -> list[Product]:
        return self.repo.list_products_by_category(category)

    def low_stock_products(self, threshold: Optional[int] = None) -> list[Product]:
        limit = self.low_stock_threshold if threshold is None else int(threshold)
        return self.repo.list_low_stock_products(limit)

    def categories(self) -> list[str]:
        return self.repo.list_categories()

    def inventory_summary(self) -> InventorySummary:
        products = self.repo.list_products()
        return InventorySummary(
            total_products=len(products),
            total_stock=sum(p.stock.actual_stock for p in products),
            low_stock_count=sum(1 for p in products if p.is_low_stock(self.low_stock_threshold)),
            out_of_stock_count=sum(1 for p in products if p.stock.actual_stock <= 0),
        )

    def _rewrite(self, product_id: str, change: Callable[[Product], Product]) -> tuple[Product, Product]:
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            current = self.get_product(product_id)
            try:
                return current, self.repo.update_product(change(current))
            except ConflictError as e:
                log.warning("product_write_conflict product_id=%s attempt=%s error=%s", product_id, attempt, e)
        raise ConflictError(f"Product {product_id} kept changing; gave up after {MAX_WRITE_ATTEMPTS} attempts.")

    def update_product(self, product_id: str, request: ProductRequest, now: Optional[datetime] = None) -> Product:
        """Full replace of the editable fields; SKU id, code and QR data are kept."""
        name = (request.name or "").strip()
        if not name:
            raise ValidationError("Name is required.")

        def change(p: Product) -> Product:
            return replace(
                p,
                name=name,
                description=request.description,
                color=request.color,
                size=request.size,
                category=(request.category or "").strip(),
                image_url=request.image_url,
                price=request.price,
                stock=request.stock,
                updated_at=iso_timestamp(now),
            )

        before, saved = self._rewrite(product_id, change)
        if before.image_url and before.image_url != saved.image_url:
            self._remove_image(before.image_url)
        log.info("product_updated product_id=%s", saved.id)
        return saved

    def update_stock(self, product_id: str, stock: Stock, now: Optional[datetime] = None) -> Product:
        _, saved = self._rewrite(product_id, lambda p: replace(p, stock=stock, updated_at=iso_timestamp(now)))
        log.info("product_stock_set product_id=%s actual=%s", saved.id, saved.stock.actual_stock)
        return saved

    def update_price(self, product_id: str, price: Price, now: Optional[datetime] = None) -> Product:
        _, saved = self._rewrite(product_id, lambda p: replace(p, price=price, updated_at=iso_timestamp(now)))
        log.info("product_price_set product_id=%s", saved.id)
        return saved

    def delete_product(self, product_id: str) -> None:
        product = self.get_product(product_id)
        if not self.repo.delete_product(product_id):
            raise NotFoundError("Product not found")
        if product.image_url:
            self._remove_image(product.image_url)
        log.info("product_deleted product_id=%s sku_id=%s", product.id, product.sku_id)

    def _remove_image(self, image_url: str) -> None:
        if self.images_dir is None:
            return
        path = self.images_dir / Path(image_url).name
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            log.warning("image_cleanup_failed path=%s error=%s", path, e)
