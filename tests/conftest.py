# python
import queue
import time

import pytest

from config_watcher import ConfigWatcher, WatcherOptions


def _wait_for(predicate, timeout=5.0, interval=0.02):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def _drain(q):
    items = []
    while True:
        try:
            items.append(q.get_nowait())
        except queue.Empty:
            return items


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def drain():
    return _drain


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.json"


@pytest.fixture
def errors():
    return queue.Queue(maxsize=100)


@pytest.fixture
def make_watcher(errors):
    created = []

    def factory(default, path, **option_overrides):
        option_overrides.setdefault("error_sink", errors)
        w = ConfigWatcher(default, path, WatcherOptions(**option_overrides))
        created.append(w)
        return w

    yield factory
    for w in created:
        w.teardown()
