# python
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Dict

from config_watcher import ConfigWatcher, WatcherOptions


@dataclass
class DatabaseConfig:
    host: str = "localhost"
    port: int = 5432
    username: str = "admin"
    database: str = "myapp"


@dataclass
class AppConfig:
    app_name: str = "example-app"
    port: int = 8080
    debug: bool = False
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    features: Dict[str, str] = field(
        default_factory=lambda: {"feature1": "enabled", "feature2": "disabled"}
    )


def report_errors(errors: "queue.Queue[Exception]") -> None:
    while True:
        logging.error("Config error: %s", errors.get())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    errors: "queue.Queue[Exception]" = queue.Queue(maxsize=10)
    threading.Thread(target=report_errors, args=(errors,), daemon=True).start()

    options = WatcherOptions(error_sink=errors)
    with ConfigWatcher(AppConfig(), "app-config.json", options) as watcher:
        print("Initial:", watcher.get())

        def print_updates() -> None:
            with watcher.subscribe() as updates:
                for _ in updates:
                    print("Updated:", watcher.get())

        threading.Thread(target=print_updates, daemon=True).start()

        time.sleep(1)
        config = watcher.get()
        config.port = 9090
        config.debug = True
        config.features["feature2"] = "enabled"
        watcher.save(config)

        print("Edit app-config.json to see live updates; Ctrl+C to stop.")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            print("Shutting down.")
