"""Asynchronous audit logging to the log output and to storage."""

from __future__ import annotations

import collections
import json
import logging
import os
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Protocol, Sequence

from pvz.models import AuditLog, AuditLogType

log = logging.getLogger(__name__)

MAX_QUEUE_SIZE = 100
OVERFLOW_FLUSH_INTERVAL = 0.1
DEFAULT_FILTER_CONFIG_PATH = "audit_filters.json"

_STOP = object()


@dataclass
class AuditFilterConfig:
    """Substrings that select which audit entries go to the log output."""

    stdout_filters: list[str] = field(default_factory=list)


def load_filter_config(path: str | os.PathLike[str]) -> AuditFilterConfig:
    """Load filter settings from a JSON file; a missing file means no filters."""
    if not os.path.exists(path):
        log.warning(
            "Конфигурационный файл фильтров не найден: %s. Используются фильтры по умолчанию.",
            path,
        )
        return AuditFilterConfig()
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError as exc:
        raise OSError(f"не удалось прочитать файл конфигурации: {exc}") from exc

    try:
        parsed = json.loads(data)
    except ValueError as exc:
        raise ValueError(f"не удалось разобрать JSON конфигурацию: {exc}") from exc
    if parsed is None:
        return AuditFilterConfig()
    if not isinstance(parsed, dict):
        raise ValueError("не удалось разобрать JSON конфигурацию: ожидается объект")

    filters: Any = None
    for key, value in parsed.items():
        if key.lower() == "stdout_filters":
            filters = value
    if filters is None:
        return AuditFilterConfig()
    if not isinstance(filters, list):
        raise ValueError("не удалось разобрать JSON конфигурацию: stdout_filters должен быть массивом")
    result = []
    for item in filters:
        if item is None:
            item = ""
        if not isinstance(item, str):
            raise ValueError(
                f"не удалось разобрать JSON конфигурацию: фильтр должен быть строкой, получено {item!r}"
            )
        result.append(item)
    return AuditFilterConfig(stdout_filters=result)


class AuditRepository(Protocol):
    def create_logs_with_tasks(self, logs: list[AuditLog]) -> None: ...


class StdoutLogProcessor:
    """Writes audit entries to the log output, optionally filtered by substring."""

    name = "stdout"

    def __init__(
        self,
        filters: Sequence[str] = (),
        emit: Callable[[str], None] | None = None,
    ) -> None:
        self.filters = list(filters)
        self._emit = emit or log.info

    def process_logs(self, worker_name: str, batch: Sequence[AuditLog]) -> None:
        for entry in batch:
            if not self.filters:
                self._print(worker_name, entry)
                continue
            try:
                text = json.dumps(entry.to_dict(), ensure_ascii=False, default=str).lower()
            except (TypeError, ValueError) as exc:
                log.error("[%s] Ошибка маршалинга лога для фильтрации: %s", worker_name, exc)
                continue
            if any(f.lower() in text for f in self.filters):
                self._print(worker_name, entry)

    def _print(self, worker_name: str, entry: AuditLog) -> None:
        try:
            data = json.dumps(entry.to_dict(), indent=2, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as exc:
            log.error("[%s] Ошибка маршалинга лога: %s", worker_name, exc)
            return
        self._emit(f"[AUDIT] {data}")


class DbLogProcessor:
    """Stores batches of audit entries through a repository."""

    name = "db"

    def __init__(self, repo: AuditRepository) -> None:
        self.repo = repo

    def process_logs(self, worker_name: str, batch: Sequence[AuditLog]) -> None:
        try:
            self.repo.create_logs_with_tasks(list(batch))
        except Exception as exc:
            log.error("[%s] Ошибка записи логов в БД: %s", worker_name, exc)
            raise


def _stdout_processor_from_config(path: str | os.PathLike[str]) -> StdoutLogProcessor:
    try:
        config = load_filter_config(path)
    except (OSError, ValueError) as exc:
        log.warning("Ошибка загрузки конфигурации фильтров: %s. Фильтры не будут применены.", exc)
        return StdoutLogProcessor()
    if config.stdout_filters:
        log.info("Загружены фильтры для stdout: %s", config.stdout_filters)
    else:
        log.info("Фильтры для stdout не заданы. Будут выводиться все логи.")
    return StdoutLogProcessor(config.stdout_filters)


@dataclass
class _Pool:
    processor: Any
    workers_num: int
    batch_size: int
    batch_timeout: float
    inbox: queue.Queue = field(default_factory=lambda: queue.Queue(MAX_QUEUE_SIZE))
    threads: list[threading.Thread] = field(default_factory=list)


class AuditLogger:
    """Fans audit entries out to an output pool and a storage pool of batching workers.

    Entries that do not fit in the main queue wait in an overflow queue and are
    moved over periodically; whatever is left there at shutdown is written to
    the log output directly.
    """

    def __init__(
        self,
        audit_repo: AuditRepository,
        workers_num: int = 2,
        batch_size: int = 5,
        batch_timeout: float | timedelta = 0.5,
        filter_config_path: str | os.PathLike[str] = DEFAULT_FILTER_CONFIG_PATH,
    ) -> None:
        if isinstance(batch_timeout, timedelta):
            batch_timeout = batch_timeout.total_seconds()
        if workers_num < 1:
            raise ValueError(f"workers_num must be at least 1, got {workers_num}")
        if batch_timeout <= 0:
            raise ValueError(f"batch_timeout must be positive, got {batch_timeout}")

        self._main: queue.Queue = queue.Queue(MAX_QUEUE_SIZE)
        self._overflow: collections.deque[AuditLog] = collections.deque()
        self._overflow_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._closed = False
        self._stopping = threading.Event()

        processors = [_stdout_processor_from_config(filter_config_path), DbLogProcessor(audit_repo)]
        self._pools = [
            _Pool(processor, workers_num, batch_size, float(batch_timeout)) for processor in processors
        ]
        for pool in self._pools:
            for i in range(pool.workers_num):
                name = f"{pool.processor.name}-worker-{i + 1}"
                thread = threading.Thread(target=self._worker, args=(pool, name), name=name, daemon=True)
                pool.threads.append(thread)
                thread.start()

        self._fan_out_thread = threading.Thread(target=self._fan_out, name="audit-fan-out", daemon=True)
        self._fan_out_thread.start()
        self._overflow_thread = threading.Thread(
            target=self._process_overflow, name="audit-overflow", daemon=True
        )
        self._overflow_thread.start()

    def __enter__(self) -> AuditLogger:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def log(self, entry: AuditLog) -> None:
        """Queue an entry without blocking; a full queue spills into the overflow."""
        with self._state_lock:
            if self._closed:
                raise RuntimeError("audit logger is shut down")
            try:
                self._main.put_nowait(entry)
            except queue.Full:
                with self._overflow_lock:
                    self._overflow.append(entry)

    def log_order_status_change(self, order_id: int, old_status: str, new_status: str) -> None:
        self.log(
            AuditLog(
                type=AuditLogType.ORDER_STATUS,
                order_id=order_id,
                old_status=old_status,
                new_status=new_status,
            )
        )

    def shutdown(self) -> None:
        """Stop accepting entries, flush what is queued and wait for all workers."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        self._stopping.set()
        self._overflow_thread.join()
        self._main.put(_STOP)
        self._fan_out_thread.join()
        for pool in self._pools:
            for thread in pool.threads:
                thread.join()

    def _fan_out(self) -> None:
        while True:
            entry = self._main.get()
            if entry is _STOP:
                for pool in self._pools:
                    for _ in pool.threads:
                        pool.inbox.put(_STOP)
                return
            for pool in self._pools:
                pool.inbox.put(entry)

    def _worker(self, pool: _Pool, name: str) -> None:
        log.info("[%s] Воркер аудит-логов запущен", name)
        batch: list[AuditLog] = []
        deadline = time.monotonic() + pool.batch_timeout
        while True:
            try:
                entry = pool.inbox.get(timeout=max(0.0, deadline - time.monotonic()))
            except queue.Empty:
                if batch:
                    self._process(pool, name, batch)
                    batch = []
                deadline = time.monotonic() + pool.batch_timeout
                continue
            if entry is _STOP:
                if batch:
                    self._process(pool, name, batch)
                log.info("[%s] Воркер завершен из-за закрытия канала", name)
                return
            batch.append(entry)
            if len(batch) >= pool.batch_size:
                self._process(pool, name, batch)
                batch = []
                deadline = time.monotonic() + pool.batch_timeout

    @staticmethod
    def _process(pool: _Pool, name: str, batch: list[AuditLog]) -> None:
        try:
            pool.processor.process_logs(name, batch)
        except Exception as exc:
            log.error("[%s] Ошибка обработки пакета логов: %s", name, exc)

    def _process_overflow(self) -> None:
        while not self._stopping.wait(OVERFLOW_FLUSH_INTERVAL):
            self._flush_overflow()
        self._flush_overflow_on_shutdown()

    def _flush_overflow(self) -> None:
        while True:
            with self._overflow_lock:
                if not self._overflow:
                    return
                entry = self._overflow.popleft()
            try:
                self._main.put_nowait(entry)
            except queue.Full:
                with self._overflow_lock:
                    self._overflow.appendleft(entry)
                return

    def _flush_overflow_on_shutdown(self) -> None:
        with self._overflow_lock:
            remaining = list(self._overflow)
            self._overflow.clear()
        if not remaining:
            return
        log.info("[AUDIT-OVERFLOW] Вывод %d оставшихся логов при завершении работы", len(remaining))
        for entry in remaining:
            try:
                data = json.dumps(entry.to_dict(), indent=2, ensure_ascii=False, default=str)
            except (TypeError, ValueError) as exc:
                log.error("[AUDIT-OVERFLOW-ERROR] Ошибка маршалинга лога: %s", exc)
                continue
            log.info("[AUDIT-OVERFLOW] %s", data)