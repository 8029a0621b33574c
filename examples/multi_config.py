# python
import logging
import queue
import threading
import time
from dataclasses import dataclass

from config_watcher import CancelToken, ConfigWatcher, WatcherOptions


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    max_clients: int = 50


@dataclass
class DatabaseConfig:
    dsn: str = "postgres://localhost/standalone"
    max_conns: int = 5
    max_lifetime: str = "30m"


def watch(name: str, watcher: ConfigWatcher, scope: CancelToken) -> None:
    for _ in watcher.subscribe(scope):
        print(f"{name} config updated:", watcher.get())


def drain_errors(name: str, errors: "queue.Queue[Exception]", scope: CancelToken) -> None:
    while not scope.cancelled:
        try:
            logging.error("%s config error: %s", name, errors.get(timeout=0.5))
        except queue.Empty:
            continue


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    scope = CancelToken()

    server_errors: "queue.Queue[Exception]" = queue.Queue(maxsize=10)
    db_errors: "queue.Queue[Exception]" = queue.Queue(maxsize=10)
    server = ConfigWatcher(ServerConfig(), "server.json", WatcherOptions(error_sink=server_errors))
    database = ConfigWatcher(
        DatabaseConfig(), "database.json", WatcherOptions(error_sink=db_errors)
    )

    threads = [
        threading.Thread(target=watch, args=("Server", server, scope)),
        threading.Thread(target=watch, args=("Database", database, scope)),
        threading.Thread(target=drain_errors, args=("Server", server_errors, scope)),
        threading.Thread(target=drain_errors, args=("Database", db_errors, scope)),
    ]
    for t in threads:
        t.start()

    time.sleep(1)
    cfg = server.get()
    cfg.port = 8443
    cfg.max_clients = 200
    server.save(cfg)

    time.sleep(1)
    db = database.get()
    db.max_conns = 20
    db.max_lifetime = "2h"
    database.save(db)

    print("Edit server.json or database.json to see live updates (10s demo).")
    time.sleep(10)

    scope.cancel()
    server.teardown()
    database.teardown()
    for t in threads:
        t.join()
