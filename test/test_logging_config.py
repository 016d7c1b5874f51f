import json
import logging

from ipsm.logging_config import JsonFormatter, split_event


def test_split_event():
    assert split_event("sale_created sale_id=s1 code=INV-6701-0001 items=2") == (
        "sale_created",
        {"sale_id": "s1", "code": "INV-6701-0001", "items": "2"},
    )
    assert split_event("plain") == ("plain", {})


def test_json_lines_carry_event_and_context():
    record = logging.LogRecord(
        "ipsm.stock", logging.INFO, __file__, 1, "stock_moved product_id=%s qty=%s", ("p1", 3), None
    )
    payload = json.loads(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S").format(record))
    assert payload["logger"] == "ipsm.stock"
    assert payload["event"] == "stock_moved"
    assert payload["context"] == {"product_id": "p1", "qty": "3"}
    assert payload["message"] == "stock_moved product_id=p1 qty=3"
