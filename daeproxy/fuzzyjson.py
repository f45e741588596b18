"""Lenient boolean interpretation of decoded JSON values."""

from __future__ import annotations

from typing import Any


def fuzzy_bool(value: Any) -> bool:
    """Read a JSON number, string, bool or null as a boolean.

    Numbers are true when non-zero; strings are false only when empty or "0";
    null is false. Arrays and objects raise ValueError.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value not in ("", "0")
    raise ValueError("FuzzyBoolDecoder: not number, string or bool")