"""
Typed values for sheet cells.
Each raw value cell is decided once into a ConfigValue; precedence order of coerce() is fixed:
bool, null, int, float, string.
"""
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

_INT_RE = re.compile(r"-?[0-9]+")
_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class ValueKind(str, Enum):
    BOOL = "bool"
    NULL = "null"
    INT = "int"
    FLOAT = "float"
    STRING = "string"


@dataclass(frozen=True)
class ConfigValue:
    kind: ValueKind
    value: bool | int | float | str | None

    @classmethod
    def string(cls, raw: str) -> "ConfigValue":
        return cls(ValueKind.STRING, raw)

    def to_python(self) -> bool | int | float | str | None:
        """Plain Python value, ready for JSON encoding."""
        return self.value


NULL = ConfigValue(ValueKind.NULL, None)
TRUE = ConfigValue(ValueKind.BOOL, True)
FALSE = ConfigValue(ValueKind.BOOL, False)


def coerce(raw: str | None) -> ConfigValue:
    """Map a raw value cell (None when the row has no second column) to a ConfigValue."""
    if raw is None:
        return ConfigValue.string("")
    lowered = raw.lower()
    if lowered == "true":
        return TRUE
    if lowered == "false":
        return FALSE
    # Case-sensitive: "Null" stays a string
    if raw == "null":
        return NULL
    if _INT_RE.fullmatch(raw):
        digits = raw.lstrip("-").lstrip("0") or "0"
    else:
        digits = None
    # int64 has at most 19 digits; longer literals go straight to the float rule
    if digits is not None and len(digits) <= 19:
        number = -int(digits) if raw.startswith("-") else int(digits)
        if _INT64_MIN <= number <= _INT64_MAX:
            return ConfigValue(ValueKind.INT, number)
    if _FLOAT_RE.fullmatch(raw):
        number = float(raw)
        # Out of range (1e999, 400 digits) overflows to inf; keep the text
        if math.isfinite(number):
            return ConfigValue(ValueKind.FLOAT, number)
    return ConfigValue.string(raw)


def coerce_rows(rows: Iterable[tuple[str, str | None]]) -> dict[str, ConfigValue]:
    """
    Build the typed mapping for one fetch.
    Rows with an empty key are dropped; for duplicate keys the last row wins.
    """
    values: dict[str, ConfigValue] = {}
    for key, raw in rows:
        if not key:
            continue
        values[key] = coerce(raw)
    return values
