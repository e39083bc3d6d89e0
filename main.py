"""
Homeroom — family homework focus tracker.
Entry point for the background watcher.

Opens the family's store and runs the inactivity / start-window checks on a
headless Qt event loop until interrupted.
"""

import faulthandler
import logging
import signal
import sys
from pathlib import Path

faulthandler.enable()

# Ensure homeroom is importable when run from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent))

from PySide6.QtCore import QCoreApplication, QTimer

from homeroom.app import build
from homeroom.config import load_config
from homeroom.services.watch_service import WatchService


def setup_logging(log_file: str) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def main() -> None:
    config = load_config()
    setup_logging(config.log_file)
    logger = logging.getLogger(__name__)
    logger.info("Starting Homeroom watcher...")

    app = QCoreApplication(sys.argv)
    app.setApplicationName("Homeroom")
    app.setOrganizationName("Homeroom")

    homeroom = build(config)
    watcher = WatchService(
        homeroom.sessions,
        tz=config.tz(),
        interval_min=config.watch_interval_min,
    )
    watcher.start()

    # Ctrl+C quits the event loop; the idle timer hands control back to
    # Python often enough for the handler to run
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    idle = QTimer()
    idle.timeout.connect(lambda: None)
    idle.start(500)

    logger.info("Watcher running for namespace %s.", config.namespace)
    code = app.exec()
    watcher.stop()
    sys.exit(code)


if __name__ == "__main__":
    main()
