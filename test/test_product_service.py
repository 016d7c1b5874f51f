from pathlib import Path

import pytest

from conftest import add_product, make_container
from ipsm.config import CatalogConfig, CategoryItem, ColorItem
from ipsm.domain.errors import NotFoundError, ValidationError
from ipsm.domain.models import Price, PriceInfo, ProductRequest, Stock, StockInfo


def test_create_generates_sequential_skus(tmp_path: Path):
    c = make_container(tmp_path)
    first = add_product(c, name="Shirt A")
    second = add_product(c, name="Shirt B")
    other = add_product(c, name="Mug", category="Kitchen Ware", color="Red", size="M")

    assert first.sku_id == "SHI-0001"
    assert second.sku_id == "SHI-0002"
    assert other.sku_id == "KW-0001"
    assert first.code == "SHI-l/WH"
    assert first.qr_data == first.sku_id
    assert first.created_at


@pytest.mark.parametrize("category", ["T-shirt", "เสื้อ", "X", "3D Print"])
def test_second_product_in_unconfigured_category_gets_next_sku(tmp_path: Path, category: str):
    c = make_container(tmp_path)
    first = add_product(c, name="One", category=category)
    second = add_product(c, name="Two", category=category)

    assert first.sku_id.endswith("-0001")
    assert second.sku_id == first.sku_id[:-4] + "0002"
    assert c.products.get_product_by_sku(second.sku_id).name == "Two"


def test_create_uses_catalog_abbreviations(tmp_path: Path):
    catalog = CatalogConfig(
        categories=(CategoryItem(name="Shirts", abbreviation="SH"),),
        colors=(ColorItem(name="White", abbreviation="WT"),),
    )
    c = make_container(tmp_path, catalog)
    p = add_product(c)
    assert p.sku_id == "SH-0001"
    assert p.code == "SH-l/WT"


def test_create_requires_name_and_category(tmp_path: Path):
    c = make_container(tmp_path)
    with pytest.raises(ValidationError, match="Name and category are required"):
        c.products.create_product(ProductRequest(name=" ", category="Shirts"))


def test_lookup_and_listing(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)
    add_product(c, name="Mug", category="Kitchen", color="Red")

    assert c.products.get_product_by_sku(p.sku_id).id == p.id
    assert [x.name for x in c.products.products_by_category("Shirts")] == ["Shirt"]
    assert c.products.categories() == ["Kitchen", "Shirts"]
    with pytest.raises(NotFoundError):
        c.products.get_product("missing")


def test_low_stock_and_summary(tmp_path: Path):
    c = make_container(tmp_path)
    a = add_product(c, name="A")
    b = add_product(c, name="B")
    add_product(c, name="C")
    c.stock.adjust_stock(a.id, "add", "vat", 50)
    c.stock.adjust_stock(b.id, "add", "nonvat", 5)

    low = c.products.low_stock_products()
    assert sorted(x.name for x in low) == ["B", "C"]
    assert [x.name for x in c.products.low_stock_products(threshold=0)] == ["C"]

    summary = c.products.inventory_summary()
    assert summary.total_products == 3
    assert summary.total_stock == 55
    assert summary.low_stock_count == 2
    assert summary.out_of_stock_count == 1


def test_update_keeps_identity_and_removes_old_image(tmp_path: Path):
    images = tmp_path / "images"
    images.mkdir()
    (images / "old.png").write_bytes(b"png")

    from ipsm.application.container import build_container

    c = build_container(tmp_path / "img.db", images_dir=images)
    p = c.products.create_product(ProductRequest(name="Shirt", category="Shirts", image_url="/images/old.png"))

    updated = c.products.update_product(
        p.id,
        ProductRequest(
            name="Shirt v2",
            category="Shirts",
            image_url="/images/new.png",
            price=Price(sale_vat=PriceInfo(latest=99.0)),
            stock=Stock(vat=StockInfo(remaining=3), actual_stock=3),
        ),
    )

    assert updated.sku_id == p.sku_id
    assert updated.code == p.code
    assert updated.name == "Shirt v2"
    assert updated.price.sale_vat.latest == 99.0
    assert updated.stock.actual_stock == 3
    assert updated.version == p.version + 1
    assert not (images / "old.png").exists()


def test_patch_stock_and_price(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)
    c.products.update_stock(p.id, Stock(actual_stock=12))
    c.products.update_price(p.id, Price(purchase_vat=PriceInfo(latest=4.5)))

    stored = c.products.get_product(p.id)
    assert stored.stock.actual_stock == 12
    assert stored.price.purchase_vat.latest == 4.5


def test_delete(tmp_path: Path):
    c = make_container(tmp_path)
    p = add_product(c)
    c.products.delete_product(p.id)
    with pytest.raises(NotFoundError):
        c.products.delete_product(p.id)
