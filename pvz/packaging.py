"""Packaging options for orders and the extra cost they add."""

from __future__ import annotations

import abc
from dataclasses import dataclass

from pvz.models import PackageType, WrapperType

BAG_COST = 5.0
BOX_COST = 20.0
FILM_COST = 1.0

BAG_MAX_WEIGHT = 10.0
BOX_MAX_WEIGHT = 30.0


class PackagingError(ValueError):
    """Base class for packaging problems."""

    default_message = "ошибка упаковки"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class UnknownPackageTypeError(PackagingError):
    default_message = "неизвестный тип упаковки"


class UnknownWrapperTypeError(PackagingError):
    default_message = "неизвестный тип обертки"


class PackageWeightExceededError(PackagingError):
    default_message = "превышен максимальный вес для данного типа упаковки"


class Packager(abc.ABC):
    """Something that packs an order: checks weight and adds cost."""

    @abc.abstractmethod
    def validate_weight(self, weight: float) -> None:
        """Raise PackageWeightExceededError if the weight does not fit."""

    @abc.abstractmethod
    def additional_cost(self) -> float:
        """Cost added to the order by this packaging."""

    @abc.abstractmethod
    def description(self) -> str:
        """Human-readable name of the packaging."""


@dataclass(frozen=True)
class BasicPackager(Packager):
    """A base packaging with an optional weight limit (0 means none)."""

    label: str
    cost: float
    max_weight: float = 0.0

    def validate_weight(self, weight: float) -> None:
        if self.max_weight > 0 and weight > self.max_weight:
            raise PackageWeightExceededError()

    def additional_cost(self) -> float:
        return self.cost

    def description(self) -> str:
        return self.label


_WRAPPERS: dict[WrapperType, tuple[str, float]] = {
    WrapperType.FILM: ("film", FILM_COST),
}


class WrapperDecorator(Packager):
    """Adds a wrapper on top of another packager."""

    def __init__(self, inner: Packager, wrapper_type: WrapperType | str) -> None:
        try:
            self.wrapper_type = WrapperType(wrapper_type)
        except ValueError:
            raise UnknownWrapperTypeError() from None
        self.inner = inner
        self.label, self.cost = _WRAPPERS[self.wrapper_type]

    def validate_weight(self, weight: float) -> None:
        self.inner.validate_weight(weight)

    def additional_cost(self) -> float:
        return self.inner.additional_cost() + self.cost

    def description(self) -> str:
        return f"{self.inner.description()} + {self.label}"


def bag_packager() -> BasicPackager:
    return BasicPackager(label="bag", cost=BAG_COST, max_weight=BAG_MAX_WEIGHT)


def box_packager() -> BasicPackager:
    return BasicPackager(label="box", cost=BOX_COST, max_weight=BOX_MAX_WEIGHT)


def film_packager() -> BasicPackager:
    return BasicPackager(label="film", cost=FILM_COST)


_BASES = {
    PackageType.BAG: bag_packager,
    PackageType.BOX: box_packager,
    PackageType.FILM: film_packager,
}


def create_packager(
    package_type: PackageType | str | None,
    wrapper: WrapperType | str | None,
) -> Packager:
    """Build a packager for a base type, optionally wrapped."""
    if package_type is None:
        raise UnknownPackageTypeError()
    try:
        base = _BASES[PackageType(package_type)]()
    except ValueError:
        raise UnknownPackageTypeError() from None
    if wrapper is not None:
        return WrapperDecorator(base, wrapper)
    return base