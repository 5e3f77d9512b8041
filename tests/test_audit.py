import json
import logging
import threading
import time

import pytest

from pvz.audit import (
    AuditFilterConfig,
    AuditLogger,
    DbLogProcessor,
    StdoutLogProcessor,
    load_filter_config,
)
from pvz.models import AuditLog, AuditLogType


class RecordingRepo:
    def __init__(self, gate=None):
        self.batches = []
        self.lock = threading.Lock()
        self.gate = gate

    def create_logs_with_tasks(self, logs):
        if self.gate is not None:
            self.gate.wait(10)
        with self.lock:
            self.batches.append(list(logs))

    @property
    def entries(self):
        with self.lock:
            return [entry for batch in self.batches for entry in batch]


class StorageDown(Exception):
    pass


class FailingRepo:
    def create_logs_with_tasks(self, logs):
        raise StorageDown("down")


def wait_for(condition, timeout=10.0):
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def request_entry():
    return AuditLog(type=AuditLogType.REQUEST, path="/api/v1/orders", method="POST")


def status_entry(order_id=1):
    return AuditLog(
        type=AuditLogType.ORDER_STATUS, order_id=order_id, old_status="accepted", new_status="delivered"
    )


def test_load_filter_config_missing_file(tmp_path):
    assert load_filter_config(tmp_path / "absent.json") == AuditFilterConfig(stdout_filters=[])


def test_load_filter_config_reads_filters(tmp_path):
    path = tmp_path / "filters.json"
    path.write_text(json.dumps({"stdout_filters": ["order_status", "POST"]}), encoding="utf-8")
    assert load_filter_config(path).stdout_filters == ["order_status", "POST"]


def test_load_filter_config_null_filters(tmp_path):
    path = tmp_path / "filters.json"
    path.write_text('{"stdout_filters": null}', encoding="utf-8")
    assert load_filter_config(path).stdout_filters == []


def test_load_filter_config_invalid_json(tmp_path):
    path = tmp_path / "filters.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_filter_config(path)


def test_load_filter_config_wrong_type(tmp_path):
    path = tmp_path / "filters.json"
    path.write_text('{"stdout_filters": "order_status"}', encoding="utf-8")
    with pytest.raises(ValueError):
        load_filter_config(path)


def test_stdout_without_filters_emits_everything():
    emitted = []
    processor = StdoutLogProcessor(emit=emitted.append)
    entries = [request_entry(), status_entry()]
    processor.process_logs("stdout-worker-1", entries)
    assert len(emitted) == 2
    for text, entry in zip(emitted, entries):
        assert text.startswith("[AUDIT] ")
        assert json.loads(text[len("[AUDIT] "):]) == entry.to_dict()


def test_stdout_filters_are_case_insensitive():
    emitted = []
    processor = StdoutLogProcessor(["ORDER_STATUS"], emit=emitted.append)
    processor.process_logs("stdout-worker-1", [request_entry(), status_entry(7)])
    assert len(emitted) == 1
    assert json.loads(emitted[0][len("[AUDIT] "):])["order_id"] == 7


def test_stdout_filter_without_match_emits_nothing():
    emitted = []
    processor = StdoutLogProcessor(["nothing-matches-this"], emit=emitted.append)
    processor.process_logs("stdout-worker-1", [request_entry(), status_entry()])
    assert emitted == []


def test_db_processor_passes_batch():
    repo = RecordingRepo()
    entries = [request_entry(), status_entry()]
    DbLogProcessor(repo).process_logs("db-worker-1", entries)
    assert repo.batches == [entries]


def test_db_processor_reraises_storage_error():
    with pytest.raises(StorageDown):
        DbLogProcessor(FailingRepo()).process_logs("db-worker-1", [request_entry()])


def test_logger_delivers_all_entries_in_batches(tmp_path):
    repo = RecordingRepo()
    audit = AuditLogger(repo, 2, 3, 0.05, tmp_path / "absent.json")
    for order_id in range(1, 11):
        audit.log_order_status_change(order_id, "none", "accepted")
    audit.shutdown()
    entries = repo.entries
    assert sorted(e.order_id for e in entries) == list(range(1, 11))
    assert all(len(batch) <= 3 for batch in repo.batches)
    assert {e.type for e in entries} == {AuditLogType.ORDER_STATUS}
    assert {(e.old_status, e.new_status) for e in entries} == {("none", "accepted")}


def test_logger_flushes_on_timeout(tmp_path):
    repo = RecordingRepo()
    audit = AuditLogger(repo, 1, 100, 0.05, tmp_path / "absent.json")
    try:
        audit.log(request_entry())
        audit.log(status_entry(5))
        assert wait_for(lambda: len(repo.entries) == 2)
        entries = repo.entries
        assert {e.type for e in entries} == {AuditLogType.REQUEST, AuditLogType.ORDER_STATUS}
        assert [e.order_id for e in entries if e.type is AuditLogType.ORDER_STATUS] == [5]
        assert [e.path for e in entries if e.type is AuditLogType.REQUEST] == ["/api/v1/orders"]
    finally:
        audit.shutdown()


def test_log_after_shutdown_raises(tmp_path):
    audit = AuditLogger(RecordingRepo(), 1, 5, 0.05, tmp_path / "absent.json")
    audit.shutdown()
    audit.shutdown()
    with pytest.raises(RuntimeError):
        audit.log(request_entry())


def test_context_manager_flushes(tmp_path):
    repo = RecordingRepo()
    with AuditLogger(repo, 1, 10, 5.0, tmp_path / "absent.json") as audit:
        audit.log(status_entry(42))
    assert [e.order_id for e in repo.entries] == [42]


def test_invalid_arguments(tmp_path):
    with pytest.raises(ValueError):
        AuditLogger(RecordingRepo(), 0, 5, 0.5, tmp_path / "absent.json")
    with pytest.raises(ValueError):
        AuditLogger(RecordingRepo(), 1, 5, 0, tmp_path / "absent.json")


def test_overflow_entries_reach_storage(tmp_path):
    gate = threading.Event()
    repo = RecordingRepo(gate)
    audit = AuditLogger(repo, 1, 1, 0.05, tmp_path / "absent.json")
    total = 250
    try:
        for order_id in range(1, total + 1):
            audit.log(status_entry(order_id))
        gate.set()
        assert wait_for(lambda: len(repo.entries) == total)
    finally:
        gate.set()
        audit.shutdown()
    assert sorted(e.order_id for e in repo.entries) == list(range(1, total + 1))


def test_logger_applies_stdout_filters(tmp_path, caplog):
    path = tmp_path / "filters.json"
    path.write_text(json.dumps({"stdout_filters": ["/api/v1/orders"]}), encoding="utf-8")
    caplog.set_level(logging.INFO, logger="pvz.audit")
    repo = RecordingRepo()
    audit = AuditLogger(repo, 1, 5, 0.05, path)
    audit.log(request_entry())
    audit.log(status_entry())
    audit.shutdown()
    printed = [r.getMessage() for r in caplog.records if r.getMessage().startswith("[AUDIT] ")]
    assert len(printed) == 1
    assert json.loads(printed[0][len("[AUDIT] "):])["path"] == "/api/v1/orders"
    assert len(repo.entries) == 2