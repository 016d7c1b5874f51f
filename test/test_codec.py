import sqlite3
from pathlib import Path

import pytest

from conftest import add_product, make_container
from ipsm.domain.codec import from_document, to_document
from ipsm.domain.errors import PersistenceError
from ipsm.domain.models import (
    AdjustmentType,
    BankAccount,
    LineItem,
    PaymentInfo,
    Sale,
    SourceType,
    StockAdjustment,
    StockSnapshot,
    StockType,
)


def test_documents_store_enums_by_value_and_tuples_as_lists():
    record = StockAdjustment(
        id="a1",
        product_id="p1",
        product_name="Shirt",
        sku_id="SHI-0001",
        adjustment_type=AdjustmentType.REDUCE,
        stock_type=StockType.NONVAT,
        quantity=2,
        before=StockSnapshot(non_vat_remaining=5, actual_stock=5),
        after=StockSnapshot(non_vat_sold=2, non_vat_remaining=3, actual_stock=3),
        source_type=SourceType.SALE,
    )
    doc = to_document(record)
    assert doc["adjustment_type"] == "reduce"
    assert doc["source_type"] == "sale"
    assert doc["after"]["non_vat_remaining"] == 3

    assert from_document(StockAdjustment, doc) == record


def test_nested_optionals_and_old_documents_load():
    sale = Sale(
        id="s1",
        sale_code="INV-6701-0001",
        sale_date="2024-01-20",
        customer_id="c1",
        customer_name="Acme Co.",
        items=(LineItem(product_id="p1", quantity=2, unit_price=10.0, total_price=20.0),),
        payment=PaymentInfo(is_paid=True, our_account_info=BankAccount(id="acc-001", name="Main", account_number="1")),
    )
    doc = to_document(sale)
    assert isinstance(doc["items"], list)

    loaded = from_document(Sale, doc)
    assert loaded.items == sale.items
    assert loaded.payment.our_account_info.name == "Main"

    # Written before the bank fields existed, plus a key no longer known.
    old = {k: v for k, v in doc.items() if not k.startswith("bank_")}
    old["legacy_flag"] = True
    assert from_document(Sale, old).bank_name is None


def test_corrupt_body_is_a_persistence_error(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)

    conn = sqlite3.connect(tmp_path / "t.db")
    try:
        conn.execute("UPDATE products SET body=? WHERE id=?", ('{"id": "x", "price": "cheap"}', p.id))
        conn.commit()
    finally:
        conn.close()

    with pytest.raises(PersistenceError, match="Corrupt Product document"):
        c.repo.get_product(p.id)
