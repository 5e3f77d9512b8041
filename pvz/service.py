"""Business rules for accepting, handing out and returning orders."""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from pvz.models import Order, OrderState, PackageType, WrapperType
from pvz.orderfile import parse_deadline, process_packaging, read_orders_from_file
from pvz.packaging import create_packager

log = logging.getLogger(__name__)

RETURN_WINDOW = timedelta(hours=48)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class OrderServiceError(Exception):
    """Base class for rule violations reported by the order service."""

    default_message = "ошибка обработки заказа"

    def __init__(self, detail: Any = None) -> None:
        message = self.default_message
        if detail is not None:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidOrderIdError(OrderServiceError, ValueError):
    default_message = "недопустимый ID заказа"


class StorageDeadlinePassedError(OrderServiceError):
    default_message = "срок хранения в прошлом"


class OrderExistsError(OrderServiceError):
    default_message = "заказ уже существует"


class NegativeWeightError(OrderServiceError, ValueError):
    default_message = "вес должен быть положительным числом"


class NegativeCostError(OrderServiceError, ValueError):
    default_message = "стоимость должна быть положительным числом"


class OrderAlreadyDeliveredError(OrderServiceError):
    default_message = "заказ уже доставлен клиенту, возврат невозможен"


class DeadlineNotExpiredError(OrderServiceError):
    default_message = "срок хранения заказа еще не истек"


class WrongCustomerError(OrderServiceError):
    default_message = "заказ принадлежит другому клиенту"


class WrongStateError(OrderServiceError):
    default_message = "заказ нельзя выдать – неверное состояние"


class StorageExpiredError(OrderServiceError):
    default_message = "срок хранения заказа истек"


class NotDeliveredError(OrderServiceError):
    default_message = "заказ еще не был выдан клиенту, возврат невозможен"


class ReturnExpiredError(OrderServiceError):
    default_message = "срок возврата заказа истек"


class OrderRepository(Protocol):
    def create(self, order: Order) -> None: ...
    def update(self, order: Order) -> None: ...
    def delete(self, order_id: int) -> None: ...
    def get_by_id(self, order_id: int) -> Order: ...
    def list(self, search_term: str) -> list[Order]: ...
    def list_with_cursor(
        self, cursor_id: int, limit: int, customer_id: int, filter_pvz: bool, search_term: str
    ) -> list[Order]: ...
    def list_returns_with_cursor(self, cursor_id: int, limit: int, search_term: str) -> list[Order]: ...


class StatusLogger(Protocol):
    def log_order_status_change(self, order_id: int, old_status: str, new_status: str) -> None: ...


class OrderCache(Protocol):
    def set_order(self, order: Order) -> None: ...
    def delete_order(self, order_id: int) -> None: ...
    def clear_order_cache(self) -> None: ...
    def get_order(self, order_id: int) -> Order: ...
    def get_order_history(self) -> list[Order]: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Order operations backed by a repository, a cache and an audit logger."""

    def __init__(self, repo: OrderRepository, audit_logger: StatusLogger, cache: OrderCache) -> None:
        self.repo = repo
        self.audit_logger = audit_logger
        self.cache = cache

    def _load(self, order_id: int) -> Order:
        try:
            return self.cache.get_order(order_id)
        except Exception as exc:
            log.debug("order %d not in cache (%s), reading storage", order_id, exc)
        return self.repo.get_by_id(order_id)

    def accept_order(
        self,
        order_id: int,
        customer_id: int,
        deadline: datetime,
        weight: float,
        cost: float,
        package_type: PackageType | str | None = None,
        wrapper: WrapperType | str | None = None,
    ) -> Order:
        """Accept an order for storage and return it as stored."""
        now = _now()
        if order_id <= 0:
            raise InvalidOrderIdError(order_id)
        if now > deadline:
            raise StorageDeadlinePassedError(f"{deadline} \n Текущая дата: {now}")
        try:
            existing = self.repo.get_by_id(order_id)
        except Exception:
            existing = None
        if existing is not None and existing.id == order_id:
            raise OrderExistsError(f"Id {order_id}")
        if weight <= 0:
            raise NegativeWeightError(weight)
        if cost <= 0:
            raise NegativeCostError(cost)

        final_cost = cost
        if package_type is not None:
            packager = create_packager(package_type, wrapper)
            packager.validate_weight(weight)
            final_cost += packager.additional_cost()
            log.debug("order %d cost with packaging: %s", order_id, final_cost)

        order = Order(
            id=order_id,
            customer_id=customer_id,
            state=OrderState.ACCEPTED,
            weight=weight,
            cost=final_cost,
            package_type=package_type,
            wrapper=wrapper,
            deadline_at=deadline,
            updated_at=now,
        )
        self.repo.create(order)
        self.cache.set_order(order)
        self.audit_logger.log_order_status_change(order_id, "none", order.state.value)
        log.info("order %d accepted", order_id)
        return order

    def return_order_to_courier(self, order_id: int) -> None:
        """Hand an order back to the courier once its storage time is over."""
        now = _now()
        order = self._load(order_id)
        if order.state is OrderState.DELIVERED:
            raise OrderAlreadyDeliveredError(f"ID {order_id}")
        if order.deadline_at is not None and now < order.deadline_at and order.state is not OrderState.RETURNED:
            raise DeadlineNotExpiredError(f"{order.deadline_at}\n текущая дата: {now}")
        state = order.state
        self.cache.delete_order(order_id)
        self.repo.delete(order_id)
        self.audit_logger.log_order_status_change(order_id, state.value, "deleted")
        log.info("order %d returned to courier", order_id)

    def deliver_order(self, order_id: int, customer_id: int, now: datetime) -> Order:
        """Hand an accepted order to its customer."""
        order = self._load(order_id)
        if order.customer_id != customer_id:
            raise WrongCustomerError(f"ID {order_id}")
        if order.state is not OrderState.ACCEPTED:
            raise WrongStateError(f"ID {order_id}")
        if order.deadline_at is not None and now > order.deadline_at:
            raise StorageExpiredError(f"{order.deadline_at} \n Текущая дата: {now}")

        old_state = order.state
        delivered = dataclasses.replace(
            order, state=OrderState.DELIVERED, updated_at=now, delivered_at=now
        )
        self.repo.update(delivered)
        self.cache.set_order(delivered)
        self.audit_logger.log_order_status_change(order_id, old_state.value, delivered.state.value)
        log.info("order %d handed to customer %d", order_id, customer_id)
        return delivered

    def process_return_order(self, order_id: int, customer_id: int, now: datetime) -> Order:
        """Take a delivered order back from its customer within the return window."""
        order = self._load(order_id)
        if order.customer_id != customer_id:
            raise WrongCustomerError(f"ID {order_id}")
        if order.state is not OrderState.DELIVERED or order.delivered_at is None:
            raise NotDeliveredError(f"ID {order_id}")
        if now - order.delivered_at > RETURN_WINDOW:
            raise ReturnExpiredError(f"{order.delivered_at} \n Текущая дата: {now}")

        old_state = order.state
        returned = dataclasses.replace(
            order, state=OrderState.RETURNED, updated_at=now, returned_at=now
        )
        self.repo.update(returned)
        self.cache.delete_order(order_id)
        self.audit_logger.log_order_status_change(order_id, old_state.value, returned.state.value)
        log.info("order %d returned by customer %d", order_id, customer_id)
        return returned

    def order_history(self, search_term: str = "") -> list[Order]:
        """Orders newest first; without a search term the cache is tried first."""
        if not search_term:
            try:
                orders = self.cache.get_order_history()
            except Exception as exc:
                log.debug("history not in cache (%s), reading storage", exc)
                orders = self.repo.list(search_term)
        else:
            orders = self.repo.list(search_term)
        result = sorted(
            orders,
            key=lambda o: (o.updated_at is not None, o.updated_at or _EPOCH),
            reverse=True,
        )
        log.info("order history: %d entries", len(result))
        return result

    def accept_orders_from_file(self, filename: str) -> None:
        """Accept every order listed in a JSON file, stopping at the first failure."""
        entries = read_orders_from_file(filename)
        log.info("read %d orders from %s", len(entries), filename)
        for entry in entries:
            deadline = parse_deadline(entry.deadline_at)
            package_type, wrapper = process_packaging(entry.package_type, entry.wrapper)
            self.accept_order(
                entry.id,
                entry.customer_id,
                deadline,
                entry.weight,
                entry.cost,
                package_type,
                wrapper,
            )
            self.audit_logger.log_order_status_change(entry.id, "none", OrderState.ACCEPTED.value)
        log.info("imported %d orders from %s", len(entries), filename)

    def get_order_by_id(self, order_id: int) -> Order:
        """Look an order up in the cache, then in storage, caching active orders."""
        try:
            return self.cache.get_order(order_id)
        except Exception:
            log.debug("order %d not in cache", order_id)
        order = self.repo.get_by_id(order_id)
        if (
            order.state is not OrderState.RETURNED
            and order.deadline_at is not None
            and order.deadline_at > _now()
        ):
            try:
                self.cache.set_order(order)
            except Exception as exc:
                log.warning("could not cache order %d: %s", order.id, exc)
        return order

    def clear_database(self) -> int:
        """Delete every stored order and empty the cache; return how many were deleted."""
        orders = self.repo.list("")
        for order in orders:
            self.repo.delete(order.id)
        self.cache.clear_order_cache()
        log.info("database cleared, %d orders deleted", len(orders))
        return len(orders)

    def list_orders_with_cursor(
        self,
        cursor_id: int,
        limit: int,
        customer_id: int,
        filter_pvz: bool,
        search_term: str,
    ) -> list[Order]:
        return self.repo.list_with_cursor(cursor_id, limit, customer_id, filter_pvz, search_term)

    def list_returns_with_cursor(self, cursor_id: int, limit: int, search_term: str) -> list[Order]:
        return self.repo.list_returns_with_cursor(cursor_id, limit, search_term)