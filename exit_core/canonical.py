"""
exit_core/canonical.py — Canonical JSON encoding (RFC 8785 JCS profile)

Every hash, commitment, Merkle leaf and signature in Exit Markers is
computed over the bytes produced here.  Two implementations given the
same logical record MUST produce byte-identical output, regardless of
the order in which fields were inserted.

Rules:
- Object keys sorted by UTF-16 code units (a fixed total order).
- NaN / Infinity rejected; -0.0 serialized as 0.
- Integers beyond 2^53 rejected (not portable to IEEE 754 consumers).
- Strings emitted as UTF-8, no ASCII escaping of non-ASCII characters.
- Floats formatted as ECMAScript Number.prototype.toString() would.

Reference: https://www.rfc-editor.org/rfc/rfc8785
"""

from __future__ import annotations

import functools
import hashlib
import json
import math
from decimal import Decimal
from typing import Any, List


MAX_SAFE_INTEGER = 2**53

_LITERALS = {None: "null", True: "true", False: "false"}

_string = functools.partial(json.dumps, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def canonicalize(obj: Any) -> bytes:
    """Serialize a JSON-compatible Python object to canonical JSON bytes.

    Raises:
        ValueError: If input contains NaN, Infinity, or an unsafe integer.
        TypeError: If input contains non-JSON types or non-string keys.
    """
    out: List[str] = []
    _write(obj, out)
    return "".join(out).encode("utf-8")


def canonicalize_record(record) -> bytes:
    """Canonicalize a model's signable fields (everything except proof/id)."""
    return canonicalize(record.signable_dict())


def content_hash(obj: Any) -> str:
    """Lower-case hex SHA-256 over the canonical bytes of ``obj``."""
    return hashlib.sha256(canonicalize(obj)).hexdigest()


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------

def _write(value: Any, out: List[str]) -> None:
    # bool before int: bool is an int subclass
    if value is None or isinstance(value, bool):
        out.append(_LITERALS[value])
    elif isinstance(value, int):
        out.append(_integer(value))
    elif isinstance(value, float):
        out.append(_number(value))
    elif isinstance(value, str):
        out.append(_string(value))
    elif isinstance(value, (list, tuple)):
        out.append("[")
        for i, item in enumerate(value):
            if i:
                out.append(",")
            _write(item, out)
        out.append("]")
    elif isinstance(value, dict):
        _write_object(value, out)
    else:
        raise TypeError(
            f"Cannot canonicalize type {type(value).__name__}; "
            f"only JSON-compatible types are allowed"
        )


def _write_object(obj: dict, out: List[str]) -> None:
    for key in obj:
        if not isinstance(key, str):
            raise TypeError(f"Object key must be a string, got {type(key).__name__}: {key!r}")

    out.append("{")
    for i, key in enumerate(sorted(obj, key=_utf16_units)):
        if i:
            out.append(",")
        out.append(_string(key))
        out.append(":")
        _write(obj[key], out)
    out.append("}")


def _utf16_units(key: str) -> bytes:
    # big-endian UTF-16 bytes compare in code-unit order
    return key.encode("utf-16-be")


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

def _integer(n: int) -> str:
    if abs(n) > MAX_SAFE_INTEGER:
        raise ValueError(f"Integer {n} is outside the IEEE 754 safe range (2^53)")
    return str(n)


def _number(f: float) -> str:
    """ECMAScript Number::toString for a finite double.

    repr() already yields the shortest round-tripping digits; only the
    placement of the decimal point and exponent differs from Python.
    """
    if math.isnan(f) or math.isinf(f):
        raise ValueError(f"Cannot canonicalize {f}: NaN and Infinity are not valid JSON")
    if f == 0.0:
        return "0"

    sign = "-" if f < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(f))).as_tuple()
    raw = "".join(str(d) for d in digit_tuple)
    # value = 0.DIGITS × 10^point
    point = len(raw) + exponent
    digits = raw.rstrip("0")
    k = len(digits)

    if k <= point <= 21:
        return sign + digits + "0" * (point - k)
    if 0 < point <= 21:
        return sign + digits[:point] + "." + digits[point:]
    if -6 < point <= 0:
        return sign + "0." + "0" * -point + digits

    e = point - 1
    mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
    return f"{sign}{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
