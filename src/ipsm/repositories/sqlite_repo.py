from __future__ import annotations

import json
import shutil
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, TypeVar

from ipsm.domain.codec import from_document, to_document
from ipsm.domain.codes import sequence_after
from ipsm.domain.errors import ConflictError, DuplicateKeyError, NotFoundError, PersistenceError
from ipsm.domain.models import Customer, Product, Purchase, Quotation, Sale, SourceType, StockAdjustment

T = TypeVar("T")

SEQUENCE_COLUMNS = {
    "purchase": ("purchases", "purchase_code"),
    "sale": ("sales", "sale_code"),
    "quotation": ("quotations", "quotation_code"),
    "customer": ("customers", "customer_code"),
}


def new_id() -> str:
    return uuid.uuid4().hex


def _like_prefix(prefix: str) -> str:
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped + "%"


class SqliteRepository:
    """
    Document store on sqlite3: each entity is a JSON body plus the columns
    it is looked up, sorted or made unique by.

    Product rows carry a version counter and update_product is a
    compare-and-swap on it.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Cursor]:
        conn = self._conn()
        try:
            yield conn.cursor()
            conn.commit()
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            if "UNIQUE" in str(exc):
                raise DuplicateKeyError(str(exc)) from exc
            raise PersistenceError(str(exc)) from exc
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_lookup_indexes),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise PersistenceError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def schema_version(self) -> int:
        with self._session() as cur:
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            return int(cur.fetchone()[0])

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS products (
                id TEXT PRIMARY KEY,
                sku_id TEXT NOT NULL UNIQUE,
                code TEXT NOT NULL,
                category TEXT NOT NULL DEFAULT '',
                actual_stock INTEGER NOT NULL DEFAULT 0,
                version INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                body TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS customers (
                id TEXT PRIMARY KEY,
                customer_code TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL,
                body TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchases (
                id TEXT PRIMARY KEY,
                purchase_code TEXT NOT NULL UNIQUE,
                customer_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                body TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sales (
                id TEXT PRIMARY KEY,
                sale_code TEXT NOT NULL UNIQUE,
                customer_id TEXT NOT NULL,
                quotation_code TEXT,
                created_at TEXT NOT NULL,
                body TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS quotations (
                id TEXT PRIMARY KEY,
                quotation_code TEXT NOT NULL UNIQUE,
                customer_id TEXT NOT NULL,
                status TEXT NOT NULL CHECK(status IN ('draft','sent','accepted','rejected','expired')),
                created_at TEXT NOT NULL,
                body TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS stock_adjustments (
                id TEXT PRIMARY KEY,
                product_id TEXT NOT NULL,
                source_type TEXT NOT NULL CHECK(source_type IN ('purchase','sale','adjustment','migration')),
                source_id TEXT,
                created_at TEXT NOT NULL,
                body TEXT NOT NULL
            )
            """
        )

    def _migration_v2_lookup_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS ix_products_code ON products(code)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_products_category ON products(category)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_quotations_customer ON quotations(customer_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_quotations_status ON quotations(status)")
        cur.execute(
            "CREATE INDEX IF NOT EXISTS ix_adjustments_product_created ON stock_adjustments(product_id, created_at)"
        )
        cur.execute("CREATE INDEX IF NOT EXISTS ix_adjustments_source ON stock_adjustments(source_type, source_id)")

    # ---------- Helpers ----------
    @staticmethod
    def _dump(entity) -> str:
        return json.dumps(to_document(entity), ensure_ascii=False)

    @staticmethod
    def _load(cls: type[T], body: str) -> T:
        try:
            return from_document(cls, json.loads(body))
        except ValueError as exc:
            raise PersistenceError(f"Corrupt {cls.__name__} document: {exc}") from exc

    def _one(self, cls: type[T], sql: str, params: tuple) -> Optional[T]:
        with self._session() as cur:
            cur.execute(sql, params)
            r = cur.fetchone()
        if not r:
            return None
        return self._load(cls, r[0])

    def _many(self, cls: type[T], sql: str, params: tuple = ()) -> list[T]:
        with self._session() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [self._load(cls, r[0]) for r in rows]

    def _delete(self, table: str, entity_id: str) -> bool:
        with self._session() as cur:
            cur.execute(f"DELETE FROM {table} WHERE id=?", (entity_id,))
            return cur.rowcount > 0

    def _count(self, table: str) -> int:
        with self._session() as cur:
            cur.execute(f"SELECT COUNT(*) FROM {table}")
            return int(cur.fetchone()[0])

    def last_code(self, kind: str, prefix: str = "") -> Optional[str]:
        """Lexicographically greatest code of this kind starting with prefix (case-insensitive)."""
        table, column = SEQUENCE_COLUMNS[kind]
        with self._session() as cur:
            cur.execute(
                f"SELECT {column} FROM {table} WHERE {column} LIKE ? ESCAPE '\\' ORDER BY {column} DESC LIMIT 1",
                (_like_prefix(prefix),),
            )
            r = cur.fetchone()
        return str(r[0]) if r else None

    def get_next_sequence_number(self, kind: str, prefix: str) -> int:
        return sequence_after(self.last_code(kind, prefix))

    def entity_counts(self) -> dict[str, int]:
        return {
            "customers": self._count("customers"),
            "products": self._count("products"),
            "purchases": self._count("purchases"),
            "sales": self._count("sales"),
            "quotations": self._count("quotations"),
            "stock_adjustments": self._count("stock_adjustments"),
        }

    # ---------- Products ----------
    def _product_from_row(self, r) -> Product:
        return replace(self._load(Product, r[0]), version=int(r[1]))

    def _product_one(self, where: str, params: tuple) -> Optional[Product]:
        with self._session() as cur:
            cur.execute(f"SELECT body, version FROM products WHERE {where}", params)
            r = cur.fetchone()
        return self._product_from_row(r) if r else None

    def _product_many(self, where: str = "1=1", params: tuple = ()) -> list[Product]:
        with self._session() as cur:
            cur.execute(f"SELECT body, version FROM products WHERE {where} ORDER BY created_at, sku_id", params)
            rows = cur.fetchall()
        return [self._product_from_row(r) for r in rows]

    def create_product(self, product: Product) -> Product:
        product = replace(product, id=product.id or new_id(), version=0)
        with self._session() as cur:
            cur.execute(
                """
                INSERT INTO products (id, sku_id, code, category, actual_stock, version, created_at, body)
                VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    product.id,
                    product.sku_id,
                    product.code,
                    product.category,
                    int(product.stock.actual_stock),
                    product.created_at,
                    self._dump(product),
                ),
            )
        return product

    def get_product(self, product_id: str) -> Optional[Product]:
        return self._product_one("id=?", (product_id,))

    def get_product_by_sku(self, sku_id: str) -> Optional[Product]:
        return self._product_one("sku_id=?", (sku_id,))

    def get_product_by_code(self, code: str) -> Optional[Product]:
        return self._product_one("code=?", (code,))

    def list_products(self) -> list[Product]:
        return self._product_many()

    def list_products_by_category(self, category: str) -> list[Product]:
        return self._product_many("category=?", (category,))

    def list_low_stock_products(self, threshold: int) -> list[Product]:
        return self._product_many("actual_stock <= ?", (int(threshold),))

    def list_categories(self) -> list[str]:
        with self._session() as cur:
            cur.execute("SELECT DISTINCT category FROM products WHERE category <> '' ORDER BY category")
            return [str(r[0]) for r in cur.fetchall()]

    def all_sku_ids(self) -> list[str]:
        with self._session() as cur:
            cur.execute("SELECT sku_id FROM products")
            return [str(r[0]) for r in cur.fetchall()]

    def update_product(self, product: Product) -> Product:
        """Write product if the stored version still equals product.version; returns it with the new version."""
        stored = replace(product, version=product.version + 1)
        with self._session() as cur:
            cur.execute(
                """
                UPDATE products
                SET sku_id=?, code=?, category=?, actual_stock=?, version=version+1, body=?
                WHERE id=? AND version=?
                """,
                (
                    stored.sku_id,
                    stored.code,
                    stored.category,
                    int(stored.stock.actual_stock),
                    self._dump(stored),
                    product.id,
                    int(product.version),
                ),
            )
            if cur.rowcount == 0:
                cur.execute("SELECT version FROM products WHERE id=?", (product.id,))
                r = cur.fetchone()
                if not r:
                    raise NotFoundError("Product not found.")
                raise ConflictError(
                    f"Product {product.sku_id} was modified concurrently "
                    f"(expected version {product.version}, found {int(r[0])})."
                )
        return stored

    def delete_product(self, product_id: str) -> bool:
        return self._delete("products", product_id)

    # ---------- Customers ----------
    def create_customer(self, customer: Customer) -> Customer:
        customer = replace(customer, id=customer.id or new_id())
        with self._session() as cur:
            cur.execute(
                "INSERT INTO customers (id, customer_code, created_at, body) VALUES (?, ?, ?, ?)",
                (customer.id, customer.customer_code, customer.created_at, self._dump(customer)),
            )
        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self._one(Customer, "SELECT body FROM customers WHERE id=?", (customer_id,))

    def get_customer_by_code(self, customer_code: str) -> Optional[Customer]:
        return self._one(Customer, "SELECT body FROM customers WHERE customer_code=?", (customer_code,))

    def list_customers(self) -> list[Customer]:
        return self._many(Customer, "SELECT body FROM customers ORDER BY customer_code")

    def update_customer(self, customer: Customer) -> Customer:
        with self._session() as cur:
            cur.execute(
                "UPDATE customers SET customer_code=?, body=? WHERE id=?",
                (customer.customer_code, self._dump(customer), customer.id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Customer not found")
        return customer

    def delete_customer(self, customer_id: str) -> bool:
        return self._delete("customers", customer_id)

    # ---------- Purchases ----------
    def create_purchase(self, purchase: Purchase) -> Purchase:
        purchase = replace(purchase, id=purchase.id or new_id())
        with self._session() as cur:
            cur.execute(
                "INSERT INTO purchases (id, purchase_code, customer_id, created_at, body) VALUES (?, ?, ?, ?, ?)",
                (purchase.id, purchase.purchase_code, purchase.customer_id, purchase.created_at, self._dump(purchase)),
            )
        return purchase

    def get_purchase(self, purchase_id: str) -> Optional[Purchase]:
        return self._one(Purchase, "SELECT body FROM purchases WHERE id=?", (purchase_id,))

    def get_purchase_by_code(self, purchase_code: str) -> Optional[Purchase]:
        return self._one(Purchase, "SELECT body FROM purchases WHERE purchase_code=?", (purchase_code,))

    def list_purchases(self) -> list[Purchase]:
        return self._many(Purchase, "SELECT body FROM purchases ORDER BY created_at DESC, purchase_code DESC")

    def update_purchase(self, purchase: Purchase) -> Purchase:
        with self._session() as cur:
            cur.execute(
                "UPDATE purchases SET purchase_code=?, customer_id=?, body=? WHERE id=?",
                (purchase.purchase_code, purchase.customer_id, self._dump(purchase), purchase.id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Purchase not found")
        return purchase

    def delete_purchase(self, purchase_id: str) -> bool:
        return self._delete("purchases", purchase_id)

    # ---------- Sales ----------
    def create_sale(self, sale: Sale) -> Sale:
        sale = replace(sale, id=sale.id or new_id())
        with self._session() as cur:
            cur.execute(
                """
                INSERT INTO sales (id, sale_code, customer_id, quotation_code, created_at, body)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (sale.id, sale.sale_code, sale.customer_id, sale.quotation_code, sale.created_at, self._dump(sale)),
            )
        return sale

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        return self._one(Sale, "SELECT body FROM sales WHERE id=?", (sale_id,))

    def get_sale_by_code(self, sale_code: str) -> Optional[Sale]:
        return self._one(Sale, "SELECT body FROM sales WHERE sale_code=?", (sale_code,))

    def list_sales(self) -> list[Sale]:
        return self._many(Sale, "SELECT body FROM sales ORDER BY created_at DESC, sale_code DESC")

    def update_sale(self, sale: Sale) -> Sale:
        with self._session() as cur:
            cur.execute(
                "UPDATE sales SET sale_code=?, customer_id=?, quotation_code=?, body=? WHERE id=?",
                (sale.sale_code, sale.customer_id, sale.quotation_code, self._dump(sale), sale.id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Sale not found")
        return sale

    def delete_sale(self, sale_id: str) -> bool:
        return self._delete("sales", sale_id)

    # ---------- Quotations ----------
    def create_quotation(self, quotation: Quotation) -> Quotation:
        quotation = replace(quotation, id=quotation.id or new_id())
        with self._session() as cur:
            cur.execute(
                """
                INSERT INTO quotations (id, quotation_code, customer_id, status, created_at, body)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    quotation.id,
                    quotation.quotation_code,
                    quotation.customer_id,
                    quotation.status,
                    quotation.created_at,
                    self._dump(quotation),
                ),
            )
        return quotation

    def get_quotation(self, quotation_id: str) -> Optional[Quotation]:
        return self._one(Quotation, "SELECT body FROM quotations WHERE id=?", (quotation_id,))

    def get_quotation_by_code(self, quotation_code: str) -> Optional[Quotation]:
        return self._one(Quotation, "SELECT body FROM quotations WHERE quotation_code=?", (quotation_code,))

    def list_quotations(self) -> list[Quotation]:
        return self._many(Quotation, "SELECT body FROM quotations ORDER BY created_at DESC, quotation_code DESC")

    def list_quotations_by_customer(self, customer_id: str) -> list[Quotation]:
        return self._many(
            Quotation,
            "SELECT body FROM quotations WHERE customer_id=? ORDER BY created_at DESC, quotation_code DESC",
            (customer_id,),
        )

    def list_quotations_by_status(self, status: str) -> list[Quotation]:
        return self._many(
            Quotation,
            "SELECT body FROM quotations WHERE status=? ORDER BY created_at DESC, quotation_code DESC",
            (status,),
        )

    def update_quotation(self, quotation: Quotation) -> Quotation:
        with self._session() as cur:
            cur.execute(
                "UPDATE quotations SET quotation_code=?, customer_id=?, status=?, body=? WHERE id=?",
                (
                    quotation.quotation_code,
                    quotation.customer_id,
                    quotation.status,
                    self._dump(quotation),
                    quotation.id,
                ),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Quotation not found")
        return quotation

    def delete_quotation(self, quotation_id: str) -> bool:
        return self._delete("quotations", quotation_id)

    # ---------- Stock adjustments ----------
    def create_stock_adjustment(self, adjustment: StockAdjustment) -> StockAdjustment:
        adjustment = replace(adjustment, id=adjustment.id or new_id())
        with self._session() as cur:
            cur.execute(
                """
                INSERT INTO stock_adjustments (id, product_id, source_type, source_id, created_at, body)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    adjustment.id,
                    adjustment.product_id,
                    SourceType(adjustment.source_type).value,
                    adjustment.source_id,
                    adjustment.created_at,
                    self._dump(adjustment),
                ),
            )
        return adjustment

    def get_stock_adjustment(self, adjustment_id: str) -> Optional[StockAdjustment]:
        return self._one(StockAdjustment, "SELECT body FROM stock_adjustments WHERE id=?", (adjustment_id,))

    def list_adjustments_by_product(
        self,
        product_id: str,
        limit: int,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> list[StockAdjustment]:
        if start is None and end is None:
            return self._many(
                StockAdjustment,
                """
                SELECT body FROM stock_adjustments
                WHERE product_id=?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (product_id, int(limit)),
            )
        return self._many(
            StockAdjustment,
            """
            SELECT body FROM stock_adjustments
            WHERE product_id=? AND created_at >= ? AND created_at <= ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (product_id, start or "", end or "9999-12-31 23:59:59", int(limit)),
        )

    def list_adjustments(self, limit: int, skip: int = 0) -> list[StockAdjustment]:
        return self._many(
            StockAdjustment,
            "SELECT body FROM stock_adjustments ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            (int(limit), int(skip)),
        )

    def list_adjustments_by_source(self, source_type: SourceType | str, source_id: str) -> list[StockAdjustment]:
        return self._many(
            StockAdjustment,
            """
            SELECT body FROM stock_adjustments
            WHERE source_type=? AND source_id=?
            ORDER BY created_at DESC, rowid DESC
            """,
            (SourceType(source_type).value, source_id),
        )

    def count_adjustments_by_product(self, product_id: str) -> int:
        with self._session() as cur:
            cur.execute("SELECT COUNT(*) FROM stock_adjustments WHERE product_id=?", (product_id,))
            return int(cur.fetchone()[0])

    def delete_stock_adjustment(self, adjustment_id: str) -> bool:
        return self._delete("stock_adjustments", adjustment_id)
