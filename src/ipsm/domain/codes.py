"""
Human-readable identifiers.

Two product-code strategies coexist and produce different codes for the same
input: StandardCodeGenerator (product creation) and MigrationCodeGenerator
(CSV migration). Keep them separate; products created through one path are
looked up by the code that path produced.

Transaction codes are PREFIX-NNNN where the prefix carries the kind, VAT
status and a Buddhist-era YYMM. The next sequence is read from the
lexicographically last stored code, which only sorts correctly while the
sequence stays at four digits.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Iterable, Optional, Protocol

from ipsm.domain.errors import InvalidCodeError

SKU_PATTERN = re.compile(r"^([A-Z]{2,3})-(\d{4})$")
QUOTATION_PATTERN = re.compile(r"^QU-(\d{2})(\d{2})-(\d{4})")

BUDDHIST_ERA_OFFSET = 543


class AbbreviationSource(Protocol):
    def category_abbreviation(self, name: str) -> Optional[str]: ...
    def color_abbreviation(self, name: str) -> Optional[str]: ...


def derive_category_abbreviation(category: str) -> str:
    words = category.split()
    if len(words) == 1:
        return words[0][:3].upper()
    return "".join(w[0].upper() for w in words)[:3]


def derive_color_abbreviation(color: str) -> str:
    return color[:2].upper()


def parse_sku_id(sku_id: str) -> Optional[tuple[str, int]]:
    m = SKU_PATTERN.match(sku_id or "")
    if not m:
        return None
    return m.group(1), int(m.group(2))


class StandardCodeGenerator:
    def __init__(self, catalog: Optional[AbbreviationSource] = None):
        self.catalog = catalog

    def category_abbreviation(self, category: str) -> str:
        if self.catalog is not None:
            configured = self.catalog.category_abbreviation(category)
            if configured is not None:
                return configured
        return derive_category_abbreviation(category)

    def color_abbreviation(self, color: str) -> str:
        if self.catalog is not None:
            configured = self.catalog.color_abbreviation(color)
            if configured is not None:
                return configured
        return derive_color_abbreviation(color)

    def generate_sku_id(self, category: str, last_number: int) -> str:
        return f"{self.category_abbreviation(category)}-{int(last_number) + 1:04d}"

    def next_sku_number(self, category: str, existing_skus: Iterable[str]) -> int:
        """Highest sequence among SKUs with this category's prefix (0 if none); callers add 1."""
        abbrev = self.category_abbreviation(category)
        # Derived abbreviations may fall outside [A-Z]{2,3} ("T-S", "X", Thai letters).
        own = re.compile(re.escape(abbrev) + r"-([0-9]{4})$")
        highest = 0
        for sku in existing_skus:
            parsed = parse_sku_id(sku)
            if parsed is not None:
                if parsed[0] != abbrev:
                    continue
                number = parsed[1]
            else:
                m = own.match(sku or "")
                if not m:
                    continue
                number = int(m.group(1))
            highest = max(highest, number)
        return highest

    def generate_product_code(self, category: str, size: str, color: str) -> str:
        formatted_size = (size or "").lower().replace(" ", "")
        return f"{self.category_abbreviation(category)}-{formatted_size}/{self.color_abbreviation(color)}"


class MigrationCodeGenerator:
    @staticmethod
    def two_char(value: str) -> str:
        value = (value or "").upper()
        if len(value) == 0:
            return "XX"
        if len(value) == 1:
            return value + "X"
        return value[:2]

    def generate_product_code(self, category: str, size: str, color: str) -> str:
        return f"{self.two_char(category)}-{self.two_char(size)}/{self.two_char(color)}"


# ---------- Transaction codes ----------
def buddhist_year_month(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{(today.year + BUDDHIST_ERA_OFFSET) % 100:02d}{today.month:02d}"


def purchase_code_prefix(is_vat: bool, today: Optional[date] = None) -> str:
    kind = "PUR-VAT" if is_vat else "PUR-NV"
    return f"{kind}-{buddhist_year_month(today)}"


def sale_code_prefix(is_vat: bool, today: Optional[date] = None) -> str:
    kind = "INV" if is_vat else "NV"
    return f"{kind}-{buddhist_year_month(today)}"


def sequence_after(last_code: Optional[str]) -> int:
    """Trailing four digits of last_code plus one; 1 when absent or unparsable."""
    if not last_code or len(last_code) < 4:
        return 1
    tail = last_code[-4:]
    if not tail.isdigit():
        return 1
    return int(tail) + 1


def next_sequence_number(prefix: str, existing_codes: Iterable[str]) -> int:
    """
    Read-then-compute with no reservation: two callers that see the same
    codes get the same number.
    """
    wanted = prefix.lower()
    matching = sorted((c for c in existing_codes if c.lower().startswith(wanted)), reverse=True)
    return sequence_after(matching[0] if matching else None)


def format_sequence_code(prefix: str, sequence: int) -> str:
    return f"{prefix}-{int(sequence):04d}"


def generate_quotation_code(last_code: Optional[str], today: Optional[date] = None) -> str:
    prefix = f"QU-{buddhist_year_month(today)}-"
    if not last_code:
        return prefix + "0001"
    m = QUOTATION_PATTERN.match(last_code)
    if not m:
        raise InvalidCodeError(f"Invalid last quotation code format: {last_code}")
    return f"{prefix}{int(m.group(3)) + 1:04d}"


def next_customer_code(last_code: Optional[str]) -> str:
    number = 1
    if last_code:
        parts = last_code.split("-")
        if len(parts) == 2 and parts[1].isdigit():
            number = int(parts[1]) + 1
    return f"C-{number:04d}"
