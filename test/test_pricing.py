import math
from datetime import datetime

from ipsm.domain.models import PriceInfo, Product
from ipsm.domain.pricing import price_bucket, record_price, round2, update_price

NOW = datetime(2024, 5, 10, 9, 30)


def _product() -> Product:
    return Product(id="p1", sku_id="SHI-0001", code="SHI-l/WH", name="Shirt")


def test_first_and_second_purchase_price_statistics():
    p = update_price(_product(), 100.0, is_vat=True, is_purchase=True, now=NOW)
    info = p.price.purchase_vat
    assert (info.latest, info.min, info.max, info.average) == (100.0, 100.0, 100.0, 100.0)
    assert info.ytd_count == 1
    assert info.mtd_count == 1
    assert info.ytd_year == 2024
    assert info.mtd_month == 5

    p = update_price(p, 200.0, is_vat=True, is_purchase=True, now=NOW)
    info = p.price.purchase_vat
    assert info.latest == 200.0
    assert info.average == 150.0
    assert info.max == 200.0
    assert info.min == 100.0
    assert info.ytd_count == 2
    assert info.average_ytd == 150.0
    assert info.average_mtd == 150.0


def test_round2_is_half_up_on_cents():
    assert round2(0.125) == 0.13
    assert round2(2.5) == 2.5
    assert round2(1.234) == 1.23
    for value in (2.005, 2.675, 1.005, 0.045):
        assert round2(value) == math.floor(value * 100 + 0.5) / 100


def test_average_is_two_point_not_running_mean():
    p = _product()
    for price in (100.0, 200.0, 300.0):
        p = update_price(p, price, is_vat=False, is_purchase=False, now=NOW)
    info = p.price.sale_non_vat
    # ((100 + 200) / 2 + 300) / 2
    assert info.average == 225.0
    assert info.average_ytd == 200.0


def test_update_touches_only_its_bucket():
    p = update_price(_product(), 55.5, is_vat=False, is_purchase=True, now=NOW)
    assert p.price.purchase_non_vat.latest == 55.5
    assert p.price.purchase_vat == PriceInfo()
    assert p.price.sale_vat == PriceInfo()
    assert p.price.sale_non_vat == PriceInfo()


def test_price_bucket_mapping():
    assert price_bucket(True, True) == "purchase_vat"
    assert price_bucket(False, True) == "purchase_non_vat"
    assert price_bucket(True, False) == "sale_vat"
    assert price_bucket(False, False) == "sale_non_vat"


def test_new_year_resets_ytd_to_new_price():
    info = PriceInfo(
        latest=10.0, min=10.0, max=10.0, average=10.0,
        ytd_year=2023, ytd_count=7, ytd_total=70.0, average_ytd=10.0,
        mtd_year=2023, mtd_month=12, mtd_count=3, mtd_total=30.0, average_mtd=10.0,
    )
    out = record_price(info, 12.345, datetime(2024, 1, 2))
    assert out.ytd_count == 1
    assert out.ytd_total == 12.345
    assert out.average_ytd == 12.345
    assert out.mtd_count == 1
    assert out.average_mtd == 12.345
    assert out.average == round2((10.0 + 12.345) / 2)


def test_new_month_resets_only_mtd():
    info = record_price(PriceInfo(), 10.0, datetime(2024, 1, 31))
    out = record_price(info, 20.0, datetime(2024, 2, 1))
    assert out.ytd_count == 2
    assert out.average_ytd == 15.0
    assert out.mtd_count == 1
    assert out.mtd_month == 2
    assert out.average_mtd == 20.0


def test_zero_min_means_unset():
    info = record_price(PriceInfo(max=50.0), 40.0, NOW)
    assert info.min == 40.0
    assert info.max == 50.0
