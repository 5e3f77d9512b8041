"""Reading batches of orders from JSON files."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from fractions import Fraction
from typing import Any

from pvz.models import PackageType, WrapperType

TIME_LAYOUT = "%Y-%m-%dT%H:%M:%S"

_INT64_MAX = 2**63 - 1
_INT64_MIN = -(2**63)


class OrderFileError(Exception):
    """The order file could not be opened, read or parsed."""


class InvalidDateFormatError(ValueError):
    """A deadline is neither a duration nor a date in the expected layout."""


@dataclass
class OrderFileEntry:
    """One order as described in an import file."""

    id: int = 0
    customer_id: int = 0
    deadline_at: str = ""
    weight: float = 0.0
    cost: float = 0.0
    package_type: str = ""
    wrapper: str = ""


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer, got {value!r}")
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"field {key!r} is out of range: {value}")
    return value


def _as_float(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be a number, got {value!r}")
    return float(value)


def _as_str(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {value!r}")
    return value


_FIELDS = {
    "id": _as_int,
    "customer_id": _as_int,
    "deadline_at": _as_str,
    "weight": _as_float,
    "cost": _as_float,
    "package_type": _as_str,
    "wrapper": _as_str,
}


def _entry_from_json(item: Any) -> OrderFileEntry:
    entry = OrderFileEntry()
    if item is None:
        return entry
    if not isinstance(item, dict):
        raise ValueError(f"order must be an object, got {item!r}")
    for key, value in item.items():
        name = key.lower()
        convert = _FIELDS.get(name)
        if convert is None or value is None:
            continue
        setattr(entry, name, convert(name, value))
    return entry


def read_orders_from_file(filename: str) -> list[OrderFileEntry]:
    """Read and parse a JSON array of orders."""
    try:
        handle = open(filename, "rb")
    except OSError as exc:
        raise OrderFileError(f"ошибка при открытии файла принятия заказов: {exc}") from exc
    with handle:
        try:
            data = handle.read()
        except OSError as exc:
            raise OrderFileError(f"ошибка при чтении файла принятия заказов: {exc}") from exc
    try:
        parsed = json.loads(data)
        if parsed is None:
            return []
        if not isinstance(parsed, list):
            raise ValueError("expected a JSON array of orders")
        return [_entry_from_json(item) for item in parsed]
    except (ValueError, UnicodeDecodeError) as exc:
        raise OrderFileError(f"ошибка при разборе файла принятия заказов: {exc}") from exc


_UNITS_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_NUMBER = r"(?:\d+(?:\.\d*)?|\.\d+)"
_UNIT = r"(?:ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"([+-]?)((?:{_NUMBER}{_UNIT})+)")
_PART_RE = re.compile(rf"({_NUMBER})({_UNIT})")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "1h30m", "-2.5s" or "300ms"."""
    if text in ("0", "+0", "-0"):
        return timedelta(0)
    match = _DURATION_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid duration {text!r}")
    sign, body = match.groups()
    total = sum(
        (Fraction(Decimal(number)) * _UNITS_NS[unit] for number, unit in _PART_RE.findall(body)),
        Fraction(0),
    )
    nanoseconds = int(total)
    limit = -_INT64_MIN if sign == "-" else _INT64_MAX
    if nanoseconds > limit:
        raise ValueError(f"invalid duration {text!r}: out of range")
    result = timedelta(microseconds=nanoseconds // 1000)
    return -result if sign == "-" else result


def parse_deadline(text: str, now: datetime | None = None) -> datetime:
    """Turn a duration from now or a date-time (UTC) into a deadline."""
    try:
        duration = parse_duration(text)
    except ValueError:
        pass
    else:
        return (now or datetime.now(timezone.utc)) + duration
    try:
        return datetime.strptime(text, TIME_LAYOUT).replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise InvalidDateFormatError(f"неверный формат даты или длительности: {exc}") from exc


def process_packaging(
    package_str: str, wrapper_str: str
) -> tuple[PackageType | str | None, WrapperType | str | None]:
    """Map packaging names to types; empty names give None.

    Names that match no known type are passed through unchanged so that
    creating a packager reports them.
    """
    package_type: PackageType | str | None = None
    wrapper: WrapperType | str | None = None
    if package_str:
        try:
            package_type = PackageType(package_str)
        except ValueError:
            package_type = package_str
    if wrapper_str:
        try:
            wrapper = WrapperType(wrapper_str)
        except ValueError:
            wrapper = wrapper_str
    return package_type, wrapper