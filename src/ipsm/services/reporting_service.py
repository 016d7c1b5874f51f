from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from ipsm.domain.clock import iso_timestamp
from ipsm.domain.errors import NotFoundError

log = logging.getLogger(__name__)

HISTORY_EXPORT_LIMIT = 10000


def money(cell):
    cell.number_format = "#,##0.00"


def bold_row(ws, r):
    for c in ws[r]:
        c.font = Font(bold=True)


def set_widths(ws, widths: dict[str, int]):
    for col, w in widths.items():
        ws.column_dimensions[col].width = w


def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
    ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
    tab = Table(displayName=name, ref=ref)
    tab.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9",
        showRowStripes=True,
        showColumnStripes=False,
    )
    ws.add_table(tab)


class ReportingService:
    def __init__(self, repo, low_stock_threshold: int = 10):
        self.repo = repo
        self.low_stock_threshold = int(low_stock_threshold)

    def export_inventory_excel(self, path: str, now: Optional[datetime] = None) -> int:
        """One row per product with its stock counters and latest prices. Returns the product count."""
        products = self.repo.list_products()
        wb = Workbook()

        ws = wb.active
        ws.title = "Inventory"
        ws["A1"] = "Inventory"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A2"] = f"Generated {iso_timestamp(now)}"

        ws.append([])
        ws.append([
            "SKU", "Code", "Name", "Category", "Color", "Size",
            "VAT Purchased", "VAT Sold", "VAT Remaining",
            "Non-VAT Purchased", "Non-VAT Sold", "Non-VAT Remaining",
            "Actual Stock", "Low Stock",
            "Purchase VAT", "Purchase Non-VAT", "Sale VAT", "Sale Non-VAT",
        ])
        header_row = ws.max_row
        bold_row(ws, header_row)

        for p in products:
            s = p.stock
            ws.append([
                p.sku_id, p.code, p.name, p.category, p.color, p.size,
                s.vat.purchased, s.vat.sold, s.vat.remaining,
                s.non_vat.purchased, s.non_vat.sold, s.non_vat.remaining,
                s.actual_stock, "yes" if p.is_low_stock(self.low_stock_threshold) else "",
                p.price.purchase_vat.latest, p.price.purchase_non_vat.latest,
                p.price.sale_vat.latest, p.price.sale_non_vat.latest,
            ])
            r = ws.max_row
            for col in "OPQR":
                money(ws[f"{col}{r}"])

        ws.freeze_panes = f"A{header_row + 1}"
        set_widths(ws, {
            "A": 12, "B": 16, "C": 30, "D": 18, "E": 12, "F": 10,
            "G": 14, "H": 10, "I": 14, "J": 18, "K": 14, "L": 18,
            "M": 13, "N": 10, "O": 14, "P": 16, "Q": 12, "R": 14,
        })
        if products:
            add_table(ws, "Inventory", header_row, 1, ws.max_row, 18)

        wb.save(path)
        log.info("inventory_exported path=%s products=%s", path, len(products))
        return len(products)

    def export_stock_history_excel(
        self,
        path: str,
        product_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Summary sheet plus a History table of audit records, newest first. Returns the record count."""
        if product_id:
            product = self.repo.get_product(product_id)
            if not product:
                raise NotFoundError("Product not found")
            records = self.repo.list_adjustments_by_product(product_id, HISTORY_EXPORT_LIMIT)
            scope = f"{product.sku_id} {product.name}"
        else:
            records = self.repo.list_adjustments(HISTORY_EXPORT_LIMIT)
            scope = "All products"

        wb = Workbook()

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Stock History"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Scope"
        ws["B3"] = scope
        ws["A4"] = "Generated"
        ws["B4"] = iso_timestamp(now)

        added = sum(r.quantity for r in records if r.adjustment_type.value == "add")
        reduced = sum(r.quantity for r in records if r.adjustment_type.value == "reduce")
        rows = [
            ("Records", len(records)),
            ("Units added", added),
            ("Units reduced", reduced),
        ]
        for i, (label, val) in enumerate(rows):
            ws[f"A{6 + i}"] = label
            ws[f"B{6 + i}"] = val
        set_widths(ws, {"A": 20, "B": 40})

        # -------- 2) History --------
        ws2 = wb.create_sheet("History")
        ws2.append([
            "Datetime", "SKU", "Product Name",
            "Type", "Stock Type", "Qty",
            "Actual Before", "Actual After",
            "VAT Remaining After", "Non-VAT Remaining After",
            "Source", "Source Code", "Notes",
        ])
        bold_row(ws2, 1)

        for r in records:
            ws2.append([
                r.created_at, r.sku_id, r.product_name,
                r.adjustment_type.value, r.stock_type.value, int(r.quantity),
                r.before.actual_stock, r.after.actual_stock,
                r.after.vat_remaining, r.after.non_vat_remaining,
                r.source_type.value, r.source_code or "", r.notes or "",
            ])

        ws2.freeze_panes = "A2"
        set_widths(ws2, {
            "A": 20, "B": 12, "C": 30,
            "D": 8, "E": 12, "F": 6,
            "G": 14, "H": 13, "I": 20, "J": 24,
            "K": 12, "L": 20, "M": 36,
        })
        if ws2.max_row >= 2:
            add_table(ws2, "StockHistory", 1, 1, ws2.max_row, 13)

        wb.save(path)
        log.info("stock_history_exported path=%s product_id=%s records=%s", path, product_id, len(records))
        return len(records)
