"""Conversion between frozen domain dataclasses and JSON-ready documents.

Documents are plain dicts keyed by field name; enums are stored by value and
tuples as lists. Validation goes through pydantic adapters built from the
dataclass annotations. Unknown keys are ignored and missing ones fall back to
field defaults, so documents written before a field was added keep loading.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter

T = TypeVar("T")


@lru_cache(maxsize=None)
def _adapter(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def to_document(obj: Any) -> Any:
    return _adapter(type(obj)).dump_python(obj, mode="json")


def from_document(cls: type[T], data: dict) -> T:
    return _adapter(cls).validate_python(data)
