"""Storage representation of audit entries and password hashing."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pvz.models import AuditLog, AuditLogType

SALT_SIZE = 16

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


@dataclass
class AuditLogRecord:
    """An audit entry as stored: empty values are None (NULL)."""

    timestamp: datetime
    type: str
    path: str | None = None
    method: str | None = None
    request_id: str | None = None
    ip: str | None = None
    body: str | None = None
    status_code: int | None = None
    order_id: int | None = None
    old_status: str | None = None
    new_status: str | None = None


def _nullable(value: Any) -> Any:
    return value if value else None


def _encode_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"object of type {type(value).__name__} is not JSON serialisable")


def _marshal(value: Any) -> str:
    text = json.dumps(
        value,
        ensure_ascii=False,
        separators=(",", ":"),
        sort_keys=True,
        allow_nan=False,
        default=_encode_default,
    )
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return text


def from_audit_log(log: AuditLog) -> AuditLogRecord:
    """Convert an audit entry into its stored form; the body becomes JSON."""
    body = None
    if log.body is not None:
        try:
            body = _nullable(_marshal(log.body))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"cannot encode audit log body: {exc}") from exc
    return AuditLogRecord(
        timestamp=log.timestamp,
        type=log.type.value,
        path=_nullable(log.path),
        method=_nullable(log.method),
        request_id=_nullable(log.request_id),
        ip=_nullable(log.ip),
        body=body,
        status_code=_nullable(log.status_code),
        order_id=_nullable(log.order_id),
        old_status=_nullable(log.old_status),
        new_status=_nullable(log.new_status),
    )


def to_audit_log(record: AuditLogRecord) -> AuditLog:
    """Convert a stored record back; a body that is not JSON is kept as text."""
    body: Any = None
    if record.body:
        try:
            body = json.loads(record.body)
        except ValueError:
            body = record.body
    return AuditLog(
        type=AuditLogType(record.type),
        timestamp=record.timestamp,
        path=record.path or "",
        method=record.method or "",
        request_id=record.request_id or "",
        ip=record.ip or "",
        body=body,
        status_code=record.status_code or 0,
        order_id=record.order_id or 0,
        old_status=record.old_status or "",
        new_status=record.new_status or "",
    )


def from_audit_logs(logs: list[AuditLog]) -> list[AuditLogRecord]:
    return [from_audit_log(log) for log in logs]


def to_audit_logs(records: list[AuditLogRecord]) -> list[AuditLog]:
    return [to_audit_log(record) for record in records]


def _digest(salt: bytes, password: str) -> bytes:
    return hashlib.sha256(salt + password.encode("utf-8")).digest()


def hash_password(password: str) -> str:
    """Hash a password with a random salt as "salt:digest" in base64."""
    salt = secrets.token_bytes(SALT_SIZE)
    digest = _digest(salt, password)
    return f"{base64.b64encode(salt).decode()}:{base64.b64encode(digest).decode()}"


def check_password(stored_hash: str, password: str) -> bool:
    """Tell whether a password matches a hash made by hash_password."""
    parts = stored_hash.split(":")
    if len(parts) != 2:
        return False
    try:
        salt = base64.b64decode(parts[0], validate=True)
        expected = base64.b64decode(parts[1], validate=True)
    except (binascii.Error, ValueError):
        return False
    return hmac.compare_digest(_digest(salt, password), expected)