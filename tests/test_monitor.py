import json
import queue
from dataclasses import dataclass

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from config_watcher import CancelToken, ConfigWatchError, ErrorSink, JsonSerializer
from config_watcher.loader import Loader
from config_watcher.monitor import FSMonitor, TargetFileEventHandler
from config_watcher.value import ValueStore


@dataclass
class Settings:
    name: str = "default"
    count: int = 1


@pytest.fixture
def handler(config_path):
    return TargetFileEventHandler(str(config_path), queue.Queue())


def test_handler_accepts_writes_and_creates_of_target(handler, config_path):
    target = str(config_path)
    assert handler.is_target_write(FileModifiedEvent(target))
    assert handler.is_target_write(FileCreatedEvent(target))
    assert handler.is_target_write(FileClosedEvent(target))


def test_handler_accepts_rename_onto_target(handler, config_path):
    tmp = str(config_path.with_name("config.json.tmp"))
    assert handler.is_target_write(FileMovedEvent(tmp, str(config_path)))
    assert not handler.is_target_write(FileMovedEvent(str(config_path), tmp))


def test_handler_ignores_other_files_and_kinds(handler, config_path):
    assert not handler.is_target_write(FileModifiedEvent(str(config_path.with_name("other.json"))))
    assert not handler.is_target_write(FileDeletedEvent(str(config_path)))
    assert not handler.is_target_write(DirModifiedEvent(str(config_path.parent)))


def test_handler_queues_matches_only(config_path):
    events = queue.Queue()
    h = TargetFileEventHandler(str(config_path), events)
    h.on_any_event(FileModifiedEvent(str(config_path.with_name("other.json"))))
    h.on_any_event(FileModifiedEvent(str(config_path)))
    assert events.qsize() == 1


def _monitor_for(path, errors, token, **kwargs):
    store = ValueStore(Settings())
    changes = []
    sink = ErrorSink(errors)
    loader = Loader(str(path), store, JsonSerializer(Settings), sink, lambda: changes.append(1))
    loader.load()
    return FSMonitor(str(path), loader, sink, token, **kwargs), store, changes


def test_monitor_start_on_missing_directory_reports_watch_error(tmp_path, errors, drain):
    token = CancelToken()
    path = tmp_path / "nope" / "config.json"
    monitor, store, _ = _monitor_for(path, errors, token)
    assert monitor.start() is False
    assert monitor.running is False
    assert any(isinstance(e, ConfigWatchError) for e in drain(errors))
    monitor.stop()


@pytest.mark.parametrize("use_polling", [False, True])
def test_monitor_reloads_on_external_write(config_path, errors, wait_for, use_polling):
    token = CancelToken()
    monitor, store, changes = _monitor_for(config_path, errors, token, use_polling=use_polling)
    assert monitor.start() is True
    try:
        config_path.write_text(json.dumps({"name": "external", "count": 999}), encoding="utf-8")
        assert wait_for(lambda: store.get() == Settings("external", 999))
        assert changes
    finally:
        monitor.stop()
    assert monitor.running is False
    assert token.cancelled is True


def test_monitor_stops_when_token_cancelled(config_path, errors, wait_for):
    token = CancelToken()
    monitor, _, _ = _monitor_for(config_path, errors, token)
    monitor.start()
    token.cancel()
    assert wait_for(lambda: not monitor.running)
    monitor.stop()


def test_monitor_forwards_handler_errors_and_keeps_running(
    config_path, errors, drain, wait_for, monkeypatch
):
    token = CancelToken()
    monitor, store, _ = _monitor_for(config_path, errors, token)
    drain(errors)

    def broken(event):
        raise RuntimeError("handler broke")

    monkeypatch.setattr(monitor._handler, "is_target_write", broken)
    assert monitor.start() is True
    try:
        config_path.write_text(json.dumps({"name": "ignored", "count": 1}), encoding="utf-8")
        reported = []
        assert wait_for(lambda: reported.extend(drain(errors)) or bool(reported))
        assert isinstance(reported[0], ConfigWatchError)
        assert isinstance(reported[0].__cause__, RuntimeError)
        assert monitor.running is True

        monkeypatch.undo()
        config_path.write_text(json.dumps({"name": "after", "count": 2}), encoding="utf-8")
        assert wait_for(lambda: store.get() == Settings("after", 2))
    finally:
        monitor.stop()


def test_monitor_exits_quietly_when_watch_ends(config_path, errors, drain, wait_for):
    token = CancelToken()
    monitor, _, _ = _monitor_for(config_path, errors, token)
    drain(errors)
    assert monitor.start() is True
    try:
        monitor._observer.stop()
        assert wait_for(lambda: not monitor.running)
        assert token.cancelled is False
        assert drain(errors) == []
    finally:
        monitor.stop()
