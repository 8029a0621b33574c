import json
import os
import queue
import stat
import sys
import threading
from dataclasses import dataclass

import pytest

from config_watcher import ConfigIOError, ConfigSerializationError, ErrorSink, JsonSerializer
from config_watcher.loader import Loader
from config_watcher.value import ValueStore


@dataclass
class Settings:
    name: str = "default"
    count: int = 1


class Harness:
    def __init__(self, path):
        self.errors = queue.Queue()
        self.changes = []
        self.store = ValueStore(Settings())
        self.loader = Loader(
            str(path),
            self.store,
            JsonSerializer(Settings),
            ErrorSink(self.errors),
            lambda: self.changes.append(self.store.get()),
        )

    def reported(self):
        out = []
        while not self.errors.empty():
            out.append(self.errors.get_nowait())
        return out


@pytest.fixture
def harness(config_path):
    return Harness(config_path)


def read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


def test_load_missing_file_reports_and_recreates(harness, config_path):
    assert harness.loader.load() is False
    errs = harness.reported()
    assert len(errs) == 1 and isinstance(errs[0], ConfigIOError)
    assert isinstance(errs[0].__cause__, FileNotFoundError)
    assert read_json(config_path) == {"name": "default", "count": 1}
    assert harness.changes == []


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_created_file_is_owner_only(harness, config_path):
    harness.loader.load()
    assert stat.S_IMODE(os.stat(config_path).st_mode) == 0o600


def test_load_empty_file_populates_without_error(harness, config_path):
    config_path.write_bytes(b"")
    assert harness.loader.load() is False
    assert harness.reported() == []
    assert read_json(config_path) == {"name": "default", "count": 1}


def test_load_malformed_keeps_value_and_reports_once(harness, config_path):
    config_path.write_bytes(b'{"name": "test", "count": invalid}')
    assert harness.loader.load() is False
    assert harness.loader.load() is False
    errs = harness.reported()
    assert len(errs) == 1 and isinstance(errs[0], ConfigSerializationError)
    assert harness.store.get() == Settings()
    # The malformed file is left alone
    assert config_path.read_bytes() == b'{"name": "test", "count": invalid}'


def test_load_new_malformed_content_is_reported_again(harness, config_path):
    config_path.write_bytes(b"{")
    harness.loader.load()
    config_path.write_bytes(b"[")
    harness.loader.load()
    assert len(harness.reported()) == 2


def test_load_changed_value_stores_and_notifies(harness, config_path):
    config_path.write_text('{"name": "x", "count": 2}', encoding="utf-8")
    assert harness.loader.load() is True
    assert harness.store.get() == Settings("x", 2)
    assert harness.changes == [Settings("x", 2)]
    assert harness.loader.last_changed_at is not None


def test_load_identical_value_does_not_notify(harness, config_path):
    # Key order and whitespace differ, canonical form does not
    config_path.write_text('{"count": 1,   "name": "default"}', encoding="utf-8")
    assert harness.loader.load() is False
    assert harness.changes == []
    assert harness.loader.last_changed_at is None


def test_save_reconciles_from_disk(harness, config_path):
    harness.loader.save(Settings("saved", 5))
    assert harness.store.get() == Settings("saved", 5)
    assert read_json(config_path) == {"name": "saved", "count": 5}
    assert len(harness.changes) == 1


def test_save_serialization_error_raises_and_reports(harness, config_path):
    with pytest.raises(ConfigSerializationError):
        harness.loader.save(Settings(name=object(), count=1))  # type: ignore[arg-type]
    errs = harness.reported()
    assert len(errs) == 1 and isinstance(errs[0], ConfigSerializationError)
    assert harness.store.get() == Settings()
    assert not config_path.exists()


def test_save_write_error_raises_and_reports(tmp_path):
    h = Harness(tmp_path / "missing-dir" / "config.json")
    with pytest.raises(ConfigIOError):
        h.loader.save(Settings("x", 2))
    errs = h.reported()
    assert len(errs) == 1 and isinstance(errs[0], ConfigIOError)
    assert h.store.get() == Settings()


def test_write_default_does_not_reload(harness, config_path):
    assert harness.loader.write_default(Settings("other", 9)) is True
    assert read_json(config_path) == {"name": "other", "count": 9}
    assert harness.store.get() == Settings()
    assert harness.changes == []


def test_write_default_failure_returns_false(tmp_path):
    h = Harness(tmp_path / "missing-dir" / "config.json")
    assert h.loader.write_default(Settings()) is False
    assert len(h.reported()) == 1


def test_settled_load_waits_out_a_truncated_write(harness, config_path):
    config_path.write_bytes(b"")
    writer = threading.Timer(
        0.05, config_path.write_text, (json.dumps({"name": "late", "count": 4}),)
    )
    writer.start()
    try:
        assert harness.loader.load(settle=0.5) is True
    finally:
        writer.join()
    assert harness.store.get() == Settings("late", 4)
    assert read_json(config_path) == {"name": "late", "count": 4}


def test_settled_load_recreates_file_that_stays_empty(harness, config_path):
    config_path.write_bytes(b"")
    assert harness.loader.load(settle=0.01) is False
    assert read_json(config_path) == {"name": "default", "count": 1}
