"""Domain types for orders, users and audit entries."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderState(str, enum.Enum):
    """Lifecycle state of an order held at the pickup point."""

    ACCEPTED = "accepted"
    DELIVERED = "delivered"
    RETURNED = "returned"

    def __str__(self) -> str:
        return self.value


class PackageType(str, enum.Enum):
    """Base packaging an order can be shipped in."""

    BAG = "bag"
    BOX = "box"
    FILM = "film"

    def __str__(self) -> str:
        return self.value


class WrapperType(str, enum.Enum):
    """Extra wrapping applied on top of the base packaging."""

    FILM = "film"

    def __str__(self) -> str:
        return self.value


class AuditLogType(str, enum.Enum):
    """Kind of event recorded in the audit log."""

    REQUEST = "request"
    RESPONSE = "response"
    ORDER_STATUS = "order_status"

    def __str__(self) -> str:
        return self.value


@dataclass
class Order:
    """An order stored at the pickup point."""

    id: int
    customer_id: int
    state: OrderState = OrderState.ACCEPTED
    weight: float = 0.0
    cost: float = 0.0
    package_type: PackageType | str | None = None
    wrapper: WrapperType | str | None = None
    deadline_at: datetime | None = None
    updated_at: datetime | None = None
    delivered_at: datetime | None = None
    returned_at: datetime | None = None

    def __post_init__(self) -> None:
        self.state = OrderState(self.state)


@dataclass
class AuditLog:
    """A single audit event: an HTTP request, a response or a status change."""

    type: AuditLogType
    timestamp: datetime = field(default_factory=_utcnow)
    path: str = ""
    method: str = ""
    request_id: str = ""
    ip: str = ""
    body: Any = None
    status_code: int = 0
    order_id: int = 0
    old_status: str = ""
    new_status: str = ""

    def __post_init__(self) -> None:
        self.type = AuditLogType(self.type)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable view of the entry."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "type": self.type.value,
            "path": self.path,
            "method": self.method,
            "request_id": self.request_id,
            "ip": self.ip,
            "body": self.body,
            "status_code": self.status_code,
            "order_id": self.order_id,
            "old_status": self.old_status,
            "new_status": self.new_status,
        }


@dataclass
class User:
    """An operator account."""

    username: str
    role: str = ""
    id: int = 0
    password_hash: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None