from datetime import datetime
from pathlib import Path

import pytest
from openpyxl import load_workbook

from conftest import add_product, make_container
from ipsm.domain.errors import NotFoundError

NOW = datetime(2024, 3, 1, 9, 30)


def test_inventory_export(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)
    add_product(c, name="Jeans", category="Pants", color="Blue", size="32")
    c.stock.adjust_stock(p.id, "add", "vat", 12)

    out = tmp_path / "inventory.xlsx"
    assert c.reporting.export_inventory_excel(str(out), now=NOW) == 2

    wb = load_workbook(out)
    ws = wb["Inventory"]
    assert ws["A2"].value == "Generated 2024-03-01 09:30:00"
    assert ws["A4"].value == "SKU"
    assert ws["M4"].value == "Actual Stock"
    rows = {ws.cell(row=r, column=1).value: r for r in range(5, ws.max_row + 1)}
    shirt = rows[p.sku_id]
    assert ws.cell(row=shirt, column=9).value == 12
    assert ws.cell(row=shirt, column=13).value == 12
    assert ws.cell(row=shirt, column=14).value in ("", None)
    assert "Inventory" in ws.tables


def test_stock_history_export(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)
    c.stock.adjust_stock(p.id, "add", "vat", 10, notes="count")
    c.stock.adjust_stock(p.id, "reduce", "nonvat", 3)

    out = tmp_path / "history.xlsx"
    assert c.reporting.export_stock_history_excel(str(out), product_id=p.id, now=NOW) == 2

    wb = load_workbook(out)
    assert wb.sheetnames == ["Summary", "History"]
    summary = wb["Summary"]
    assert summary["B3"].value == f"{p.sku_id} Shirt"
    assert summary["B6"].value == 2
    assert summary["B7"].value == 10
    assert summary["B8"].value == 3

    history = wb["History"]
    assert history.max_row == 3
    assert history["D3"].value == "add"
    assert history["M3"].value == "count"
    assert "StockHistory" in history.tables


def test_stock_history_export_unknown_product(tmp_path: Path):
    c = make_container(tmp_path)
    with pytest.raises(NotFoundError):
        c.reporting.export_stock_history_excel(str(tmp_path / "h.xlsx"), product_id="nope")
