import json
from datetime import datetime, timedelta, timezone

import pytest

from pvz.models import PackageType, WrapperType
from pvz.orderfile import (
    InvalidDateFormatError,
    OrderFileEntry,
    OrderFileError,
    parse_deadline,
    parse_duration,
    process_packaging,
    read_orders_from_file,
)


def _write(tmp_path, content):
    path = tmp_path / "orders.json"
    path.write_text(content, encoding="utf-8")
    return str(path)


def test_read_orders(tmp_path):
    payload = [
        {
            "id": 123,
            "customer_id": 456,
            "deadline_at": "24h",
            "weight": 1.5,
            "cost": 1000,
            "package_type": "box",
            "wrapper": "film",
        },
        {"id": 124, "customer_id": 456, "deadline_at": "2030-01-02T03:04:05", "weight": 2, "cost": 5.5},
    ]
    entries = read_orders_from_file(_write(tmp_path, json.dumps(payload)))
    assert entries == [
        OrderFileEntry(
            id=123,
            customer_id=456,
            deadline_at="24h",
            weight=1.5,
            cost=1000.0,
            package_type="box",
            wrapper="film",
        ),
        OrderFileEntry(id=124, customer_id=456, deadline_at="2030-01-02T03:04:05", weight=2.0, cost=5.5),
    ]


def test_keys_match_case_insensitively(tmp_path):
    entries = read_orders_from_file(_write(tmp_path, '[{"ID": 7, "Customer_Id": 8}]'))
    assert (entries[0].id, entries[0].customer_id) == (7, 8)


def test_null_document_gives_no_orders(tmp_path):
    assert read_orders_from_file(_write(tmp_path, "null")) == []


def test_missing_file(tmp_path):
    with pytest.raises(OrderFileError):
        read_orders_from_file(str(tmp_path / "absent.json"))


@pytest.mark.parametrize(
    "content",
    ["not json", '{"id": 1}', '[{"id": "x"}]', '[{"weight": "heavy"}]', "[1]", '[{"id": 1.5}]'],
)
def test_malformed_file(tmp_path, content):
    with pytest.raises(OrderFileError):
        read_orders_from_file(_write(tmp_path, content))


def test_duration_forms_agree():
    assert parse_duration("90m") == parse_duration("1h30m") == parse_duration("1.5h")


def test_duration_sign_and_zero():
    assert parse_duration("-2s") == -parse_duration("2s")
    assert parse_duration("0") == timedelta(0)
    assert parse_duration("1000ms") == parse_duration("1s")


@pytest.mark.parametrize("text", ["", "abc", "5", "1x", "h", "1h 2m", "-"])
def test_invalid_duration(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_deadline_from_duration():
    now = datetime(2030, 1, 1, tzinfo=timezone.utc)
    assert parse_deadline("24h", now) == now + parse_duration("24h")


def test_deadline_from_date():
    assert parse_deadline("2030-01-02T03:04:05") == datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize("text", ["tomorrow", "2030-01-02", "2030-01-02 03:04:05"])
def test_invalid_deadline(text):
    with pytest.raises(InvalidDateFormatError):
        parse_deadline(text)


def test_process_packaging_empty():
    assert process_packaging("", "") == (None, None)


def test_process_packaging_known_types():
    assert process_packaging("box", "film") == (PackageType.BOX, WrapperType.FILM)


def test_process_packaging_keeps_unknown_names():
    assert process_packaging("crate", "paper") == ("crate", "paper")