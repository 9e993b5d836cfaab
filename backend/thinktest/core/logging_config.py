"""
Logging configuration module.

Design principles:
- Standard library only
- Dual output: console (readable text) + file (CSV for analysis)
- Daily rotation, keep 30 days history
- Security audit events go to the "thinktest.security" logger
"""

import csv
import io
import logging
import os
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

# Log directory (relative to backend/), overridable for containers
LOG_DIR = Path(os.environ.get("THINKTEST_LOG_DIR", Path(__file__).parent.parent.parent / "logs"))

# Console format: human-readable
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CSV_FIELDS = ['timestamp', 'level', 'module', 'message', 'user_id', 'error']

SECURITY_LOGGER = "thinktest.security"


class CsvFormatter(logging.Formatter):
    """
    CSV formatter - quotes and commas are handled by the csv module.

    Usage:
        logger.info("message", extra={'user_id': 'xxx', 'error': 'yyy'})
    """

    def format(self, record):
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL)

        message = record.getMessage()
        if record.exc_info and not getattr(record, 'error', ''):
            record.error = self.formatException(record.exc_info).splitlines()[-1]

        writer.writerow([
            self.formatTime(record, self.datefmt),
            record.levelname,
            record.name,
            message,
            getattr(record, 'user_id', ''),
            getattr(record, 'error', ''),
        ])
        return output.getvalue().strip()


class CsvRotatingFileHandler(TimedRotatingFileHandler):
    """Timed rotating file handler that writes the CSV header into new files."""

    def _open(self):
        is_new = not os.path.exists(self.baseFilename) or \
                 os.path.getsize(self.baseFilename) == 0

        stream = super()._open()

        if is_new:
            stream.write(','.join(CSV_FIELDS) + '\n')
            stream.flush()

        return stream


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure logging system.

    Called by both FastAPI and the Celery worker.
    Idempotent: repeated calls won't create duplicate handlers.
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()

    if any(isinstance(h, CsvRotatingFileHandler) for h in root_logger.handlers):
        return

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console_handler)

    # Filename includes date: github_2025_12_19.csv
    today = datetime.now().strftime("%Y_%m_%d")
    csv_handler = CsvRotatingFileHandler(
        filename=LOG_DIR / f"github_{today}.csv",
        when="midnight",
        interval=1,
        backupCount=30,
        encoding="utf-8"
    )
    csv_handler.setFormatter(CsvFormatter(datefmt=DATE_FORMAT))
    root_logger.addHandler(csv_handler)

    # Security events are always recorded, even when the root level is raised
    logging.getLogger(SECURITY_LOGGER).setLevel(logging.WARNING)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)
