from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from ipsm.application.container import build_container
from ipsm.application.http_errors import to_http_error
from ipsm.config import load_catalog_config, load_settings
from ipsm.domain.codec import to_document
from ipsm.logging_config import setup_logging

ENTITIES = ("customers", "products", "purchases", "sales")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ipsm", description="Inventory, purchase and sales ledger")
    parser.add_argument("--db", help="SQLite database path (default: IPSM_DB_PATH or the app data dir)")
    parser.add_argument("--config", help="Catalog directory or http(s) base URL (default: IPSM_CONFIG_SOURCE)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create or migrate the database")

    p = sub.add_parser("import", help="Import customers, products, purchases or sales from .csv/.xlsx")
    p.add_argument("entity", choices=ENTITIES)
    p.add_argument("file")

    p = sub.add_parser("template", help="Print the CSV import template for an entity")
    p.add_argument("entity", choices=ENTITIES)
    p.add_argument("--out", help="Write the template to this file instead of stdout")

    sub.add_parser("status", help="Entity counts")
    sub.add_parser("summary", help="Inventory summary")

    p = sub.add_parser("adjust", help="Manual stock adjustment")
    p.add_argument("product", help="Product id or SKU id")
    p.add_argument("adjustment_type", help="add | reduce")
    p.add_argument("stock_type", help="vat | nonvat | actualstock")
    p.add_argument("quantity", type=int)
    p.add_argument("--notes")

    p = sub.add_parser("history", help="Stock audit history")
    p.add_argument("--product", help="Product id")
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--skip", type=int, default=0)
    p.add_argument("--start", help="YYYY-MM-DD")
    p.add_argument("--end", help="YYYY-MM-DD")
    p.add_argument("--source-type", help="purchase | sale | adjustment | migration")
    p.add_argument("--source-id")

    p = sub.add_parser("export-inventory", help="Write the inventory workbook")
    p.add_argument("path")

    p = sub.add_parser("export-history", help="Write the stock history workbook")
    p.add_argument("path")
    p.add_argument("--product", help="Limit to one product id")

    return parser


def _print(data) -> None:
    print(json.dumps(to_document(data), ensure_ascii=False, indent=2))


def run(args: argparse.Namespace) -> int:
    settings = load_settings()
    setup_logging(settings.logs_dir, level=settings.log_level)

    db_path = Path(args.db) if args.db else settings.db_path
    catalog = load_catalog_config(args.config or settings.config_source)
    c = build_container(db_path, catalog, low_stock_threshold=settings.low_stock_threshold)

    if args.command == "init":
        print(f"Database ready: {db_path} (schema v{c.repo.schema_version()})")
    elif args.command == "import":
        _print(c.imports.import_file(args.entity, args.file))
    elif args.command == "template":
        text = c.imports.template(args.entity)
        if args.out:
            Path(args.out).write_text(text, encoding="utf-8")
        else:
            sys.stdout.write(text)
    elif args.command == "status":
        _print(c.imports.status())
    elif args.command == "summary":
        _print(c.products.inventory_summary())
    elif args.command == "adjust":
        _print(c.stock.adjust_stock(args.product, args.adjustment_type, args.stock_type, args.quantity, args.notes))
    elif args.command == "history":
        if args.source_type or args.source_id:
            _print(c.stock.history_by_source(args.source_type, args.source_id))
        elif args.product:
            _print(c.stock.product_history(args.product, args.limit, args.start, args.end))
        else:
            _print(c.stock.all_history(args.limit, args.skip))
    elif args.command == "export-inventory":
        count = c.reporting.export_inventory_excel(args.path)
        print(f"Exported {count} products to {args.path}")
    elif args.command == "export-history":
        count = c.reporting.export_stock_history_excel(args.path, product_id=args.product)
        print(f"Exported {count} records to {args.path}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return run(args)
    except Exception as e:
        err = to_http_error(e)
        print(f"{err.status} {err.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
