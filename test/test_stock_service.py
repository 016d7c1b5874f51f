from datetime import datetime
from pathlib import Path

import pytest

from conftest import add_product, make_container
from ipsm.domain.errors import NotFoundError, ValidationError
from ipsm.domain.models import AdjustmentType, SourceType, StockSnapshot, StockType


def test_adjust_by_id_and_by_sku_records_audit(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)

    c.stock.adjust_stock(p.id, "add", "vat", 10, notes="opening count")
    updated = c.stock.adjust_stock(p.sku_id, "reduce", "nonvat", 3)

    assert updated.stock.vat.remaining == 10
    assert updated.stock.non_vat.remaining == -3
    assert updated.stock.actual_stock == 7

    history = c.stock.product_history(p.id)
    assert [h.adjustment_type for h in history] == [AdjustmentType.REDUCE, AdjustmentType.ADD]
    latest = history[0]
    assert latest.source_type is SourceType.ADJUSTMENT
    assert latest.sku_id == p.sku_id
    assert latest.before == StockSnapshot(vat_purchased=10, vat_remaining=10, actual_stock=10)
    assert latest.after == StockSnapshot(
        vat_purchased=10, vat_remaining=10, non_vat_sold=3, non_vat_remaining=-3, actual_stock=7
    )
    assert history[1].notes == "opening count"


@pytest.mark.parametrize(
    "adj_type,stock_type,qty,message",
    [
        ("add", "vat", 0, "Quantity must be greater than 0"),
        ("grow", "vat", 1, "Invalid adjustment type. Must be 'add' or 'reduce'"),
        ("add", "box", 1, "Invalid stock type. Must be 'vat', 'nonvat', or 'actualstock'"),
    ],
)
def test_adjust_validation_messages(tmp_path: Path, adj_type, stock_type, qty, message):
    c = make_container(tmp_path)
    p = add_product(c)
    with pytest.raises(ValidationError) as exc:
        c.stock.adjust_stock(p.id, adj_type, stock_type, qty)
    assert str(exc.value) == message
    assert c.repo.count_adjustments_by_product(p.id) == 0


def test_adjust_unknown_product(tmp_path: Path):
    c = make_container(tmp_path)
    with pytest.raises(NotFoundError):
        c.stock.adjust_stock("nope", "add", "vat", 1)


def test_history_date_filter_includes_whole_end_day(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)
    c.stock.adjust_stock(p.id, "add", "actualstock", 1, now=datetime(2024, 3, 1, 8, 0))
    c.stock.adjust_stock(p.id, "add", "actualstock", 2, now=datetime(2024, 3, 5, 23, 30))
    c.stock.adjust_stock(p.id, "add", "actualstock", 3, now=datetime(2024, 3, 6, 0, 0, 1))

    rows = c.stock.product_history(p.id, start_date="2024-03-02", end_date="2024-03-05")
    assert [r.quantity for r in rows] == [2]

    rows = c.stock.product_history(p.id, start_date="2024-03-01", now=datetime(2024, 3, 6, 12, 0))
    assert [r.quantity for r in rows] == [3, 2, 1]

    rows = c.stock.product_history(p.id, limit=2)
    assert [r.quantity for r in rows] == [3, 2]


def test_history_rejects_bad_dates(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)
    with pytest.raises(ValidationError, match="Invalid start date format"):
        c.stock.product_history(p.id, start_date="03/01/2024")
    with pytest.raises(ValidationError, match="Invalid end date format"):
        c.stock.product_history(p.id, end_date="2024-13-01")


def test_all_history_paging(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)
    for i in range(1, 6):
        c.stock.adjust_stock(p.id, "add", "vat", i, now=datetime(2024, 1, i))
    assert [r.quantity for r in c.stock.all_history(limit=2, skip=1)] == [4, 3]


def test_history_by_source_validation(tmp_path: Path):
    c = make_container(tmp_path)
    with pytest.raises(ValidationError, match="sourceType and sourceId are required"):
        c.stock.history_by_source("purchase", "")
    with pytest.raises(ValidationError, match="Invalid source type"):
        c.stock.history_by_source("refund", "x")
    assert c.stock.history_by_source("purchase", "missing") == []


def test_reverse_adjustment_restores_remaining_and_drops_record(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)
    c.stock.adjust_stock(p.id, "add", "vat", 5)
    record = c.stock.product_history(p.id)[0]

    reversed_product = c.stock.reverse_adjustment(record.id)

    assert reversed_product.stock.vat.remaining == 0
    assert reversed_product.stock.actual_stock == 0
    # The flip is a reduce, so both counters moved.
    assert reversed_product.stock.vat.purchased == 5
    assert reversed_product.stock.vat.sold == 5
    assert c.repo.get_stock_adjustment(record.id) is None


def test_reverse_unknown_adjustment(tmp_path: Path):
    c = make_container(tmp_path)
    with pytest.raises(NotFoundError):
        c.stock.reverse_adjustment("missing")


def test_stock_type_enum_values_are_wire_values():
    assert StockType.ACTUAL.value == "actualstock"
    assert StockType.NONVAT.value == "nonvat"
