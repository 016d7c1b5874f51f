import json
import logging
from pathlib import Path

import requests

from ipsm import config
from ipsm.config import AppPaths, load_catalog_config, load_settings


def _paths(tmp_path: Path) -> AppPaths:
    return AppPaths(
        base_dir=tmp_path,
        db_path=tmp_path / "ledger.db",
        logs_dir=tmp_path / "logs",
        config_dir=tmp_path / "config",
    )


def test_settings_from_environment(tmp_path: Path):
    env = {
        "IPSM_DB_PATH": str(tmp_path / "other.db"),
        "IPSM_CONFIG_SOURCE": "https://config.example.com/catalog",
        "IPSM_LOG_LEVEL": "debug",
        "IPSM_LOW_STOCK_THRESHOLD": "3",
    }
    s = load_settings(env, _paths(tmp_path))
    assert s.db_path == tmp_path / "other.db"
    assert s.config_source == "https://config.example.com/catalog"
    assert s.log_level == logging.DEBUG
    assert s.low_stock_threshold == 3


def test_settings_defaults(tmp_path: Path):
    s = load_settings({"IPSM_LOW_STOCK_THRESHOLD": "many"}, _paths(tmp_path))
    assert s.db_path == tmp_path / "ledger.db"
    assert s.config_source == str(tmp_path / "config")
    assert s.log_level == logging.INFO
    assert s.low_stock_threshold == 10


def test_local_catalog(tmp_path: Path):
    (tmp_path / "categories.json").write_text(
        json.dumps({"categories": [{"name": "Packaging Box", "abbreviation": "BOX", "english": "Box"}]}),
        encoding="utf-8",
    )
    (tmp_path / "accounts.json").write_text(
        json.dumps(
            [
                {"id": "a1", "name": "Main", "accountNumber": "111", "bankName": "KBank", "isActive": True},
                {"id": "a2", "name": "Old", "accountNumber": "222", "isActive": False},
            ]
        ),
        encoding="utf-8",
    )

    catalog = load_catalog_config(tmp_path)

    assert catalog.category_abbreviation("box") == "BOX"
    assert catalog.color_abbreviation("White") is None
    assert catalog.colors == ()
    assert [a.id for a in catalog.active_accounts()] == ["a1"]
    assert catalog.account_by_id("a2").account_number == "222"
    assert catalog.account_by_id("zz") is None


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


def test_remote_catalog(monkeypatch):
    calls = []
    payloads = {
        "categories.json": FakeResponse({"categories": [{"name": "Shirts", "abbreviation": "SH"}]}),
        "colors.json": FakeResponse({}, status=404),
        "accounts.json": FakeResponse([{"id": "a1", "name": "Main", "accountNumber": "1", "isActive": True}]),
    }

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return payloads[url.rsplit("/", 1)[1]]

    monkeypatch.setattr(config.requests, "get", fake_get)

    catalog = load_catalog_config("https://config.example.com/catalog/")

    assert calls[0] == ("https://config.example.com/catalog/categories.json", 10)
    assert catalog.category_abbreviation("shirts") == "SH"
    assert catalog.colors == ()
    assert catalog.account_by_id("a1").name == "Main"


def test_no_source_gives_empty_catalog():
    catalog = load_catalog_config(None)
    assert catalog.categories == ()
    assert catalog.accounts == ()
