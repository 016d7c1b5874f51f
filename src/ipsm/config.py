from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import json
import logging
import os
import sys

import requests

from ipsm.domain.models import BankAccount

log = logging.getLogger("ipsm.config")

CATALOG_FILES = ("categories.json", "colors.json", "accounts.json")


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    config_dir: Path


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "InventoryLedger") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    config_dir = base / "config"
    db = base / "ledger.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, config_dir=config_dir)


@dataclass(frozen=True)
class Settings:
    db_path: Path
    logs_dir: Path
    config_source: str
    log_level: int = logging.INFO
    low_stock_threshold: int = 10


def load_settings(environ: Optional[Mapping[str, str]] = None, paths: Optional[AppPaths] = None) -> Settings:
    env = os.environ if environ is None else environ
    paths = paths or get_app_paths()

    level_name = env.get("IPSM_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    threshold_raw = env.get("IPSM_LOW_STOCK_THRESHOLD", "").strip()
    try:
        threshold = int(threshold_raw) if threshold_raw else 10
    except ValueError:
        log.warning("invalid_setting name=IPSM_LOW_STOCK_THRESHOLD value=%s", threshold_raw)
        threshold = 10

    return Settings(
        db_path=Path(env.get("IPSM_DB_PATH", "").strip() or paths.db_path),
        logs_dir=paths.logs_dir,
        config_source=env.get("IPSM_CONFIG_SOURCE", "").strip() or str(paths.config_dir),
        log_level=level,
        low_stock_threshold=threshold,
    )


# ---------- Catalog ----------
@dataclass(frozen=True)
class CategoryItem:
    name: str
    abbreviation: str
    english: str = ""


@dataclass(frozen=True)
class ColorItem:
    name: str
    abbreviation: str
    english: str = ""


def _lookup(items, name: str) -> Optional[str]:
    wanted = (name or "").lower()
    for item in items:
        if item.name.lower() == wanted or item.english.lower() == wanted:
            return item.abbreviation
    return None


@dataclass(frozen=True)
class CatalogConfig:
    """Category, color and bank-account tables, loaded once and shared read-only."""

    categories: tuple[CategoryItem, ...] = ()
    colors: tuple[ColorItem, ...] = ()
    accounts: tuple[BankAccount, ...] = ()

    def category_abbreviation(self, name: str) -> Optional[str]:
        return _lookup(self.categories, name)

    def color_abbreviation(self, name: str) -> Optional[str]:
        return _lookup(self.colors, name)

    def active_accounts(self) -> list[BankAccount]:
        return [a for a in self.accounts if a.is_active]

    def account_by_id(self, account_id: str) -> Optional[BankAccount]:
        for a in self.accounts:
            if a.id == account_id:
                return a
        return None


def _read_local(path: Path) -> object:
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def _read_remote(url: str) -> object:
    r = requests.get(url, timeout=10)
    r.raise_for_status()
    return r.json()


def _read_source(source: str, filename: str) -> object:
    src = source.strip()
    try:
        if src.startswith("http://") or src.startswith("https://"):
            return _read_remote(src.rstrip("/") + "/" + filename)
        return _read_local(Path(src) / filename)
    except (requests.RequestException, ValueError, OSError) as e:
        log.warning("catalog_source_failed source=%s file=%s error=%s", src, filename, e)
        return None


def _parse_categories(data: object) -> tuple[CategoryItem, ...]:
    rows = data.get("categories", []) if isinstance(data, dict) else []
    return tuple(
        CategoryItem(
            name=str(r.get("name", "")),
            abbreviation=str(r.get("abbreviation", "")),
            english=str(r.get("english", "")),
        )
        for r in rows
    )


def _parse_colors(data: object) -> tuple[ColorItem, ...]:
    rows = data.get("colors", []) if isinstance(data, dict) else []
    return tuple(
        ColorItem(
            name=str(r.get("name", "")),
            abbreviation=str(r.get("abbreviation", "")),
            english=str(r.get("english", "")),
        )
        for r in rows
    )


def _parse_accounts(data: object) -> tuple[BankAccount, ...]:
    rows = data if isinstance(data, list) else []
    return tuple(
        BankAccount(
            id=str(r.get("id", "")),
            name=str(r.get("name", "")),
            account_number=str(r.get("accountNumber", "")),
            bank_name=str(r.get("bankName", "")),
            account_type=str(r.get("accountType", "")),
            is_active=bool(r.get("isActive", False)),
        )
        for r in rows
    )


def load_catalog_config(source: str | Path | None) -> CatalogConfig:
    """
    Load the catalog from a directory or an http(s) base URL holding
    categories.json, colors.json and accounts.json.

    A missing or unreadable file leaves its table empty; abbreviations then
    fall back to the derived form.
    """
    if source is None:
        return CatalogConfig()

    src = str(source)
    categories, colors, accounts = (_read_source(src, f) for f in CATALOG_FILES)
    catalog = CatalogConfig(
        categories=_parse_categories(categories),
        colors=_parse_colors(colors),
        accounts=_parse_accounts(accounts),
    )
    log.info(
        "catalog_loaded source=%s categories=%s colors=%s accounts=%s",
        src,
        len(catalog.categories),
        len(catalog.colors),
        len(catalog.accounts),
    )
    return catalog
