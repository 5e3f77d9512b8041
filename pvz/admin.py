"""Creation of the default administrator account."""

from __future__ import annotations

import logging
from typing import Protocol

from pvz.models import User

log = logging.getLogger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_ROLE = "admin"
DEFAULT_ADMIN_PASSWORD = "password"


class UserAdminIniter(Protocol):
    def create(self, user: User, plain_password: str) -> None: ...
    def list(self, search_term: str) -> list[User]: ...


def init_default_user(repo: UserAdminIniter) -> User | None:
    """Create the administrator account when there are no users yet.

    Returns the created user, or None when nothing was created. Failures are
    logged, not raised.
    """
    try:
        users = repo.list("")
    except Exception as exc:
        log.error("Ошибка при получении списка пользователей: %s", exc)
        return None
    if users:
        return None

    log.info("Создаем пользователя админа по умолчанию")
    user = User(username=DEFAULT_ADMIN_USERNAME, role=DEFAULT_ADMIN_ROLE)
    try:
        repo.create(user, DEFAULT_ADMIN_PASSWORD)
    except Exception as exc:
        log.error("Ошибка при создании пользователя админа: %s", exc)
        return None
    log.info("Пользователь админ успешно создан. Логин: %s", DEFAULT_ADMIN_USERNAME)
    return user