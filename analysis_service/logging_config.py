"""
Logging setup for the web app and its background analysis threads.

Request handlers and analysis workers log at the same time, so every record
goes onto a queue and a single listener writes it out.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from queue import Queue
from typing import List, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"

# Libraries that are only interesting when debugging
QUIET_LOGGERS = {
    "httpx": logging.CRITICAL,
    "httpcore": logging.CRITICAL,
    "urllib3": logging.WARNING,
    "openai": logging.WARNING,
    "langchain_core": logging.WARNING,
    "langchain_openai": logging.WARNING,
    "langchain_deepseek": logging.WARNING,
    "langchain_ollama": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "werkzeug": logging.WARNING,
}

_HTTP_PREFIXES = ("HTTP Request:", "HTTP Response:")


class HttpNoiseFilter(logging.Filter):
    """Drop per-request HTTP client lines."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if (record.name or "").startswith(("httpx", "httpcore")):
            return False
        message = record.getMessage()
        return not (isinstance(message, str) and message.startswith(_HTTP_PREFIXES))


class ThreadSafeLoggingConfig:
    """Owns the queue listener so it can be restarted or stopped."""

    def __init__(self):
        self._listener: Optional[logging.handlers.QueueListener] = None

    @property
    def running(self) -> bool:
        return self._listener is not None

    def _make_handlers(self, debug: bool, log_file: Optional[Path]) -> List[logging.Handler]:
        sinks: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            sinks.append(logging.FileHandler(log_file, encoding="utf-8"))

        formatter = logging.Formatter(LOG_FORMAT)
        for sink in sinks:
            sink.setFormatter(formatter)
            if not debug:
                sink.addFilter(HttpNoiseFilter())
        return sinks

    def setup_logging(self, debug: bool = False, log_file: Optional[Path] = None) -> None:
        """Install a queue handler on the root logger and start the listener.

        Calling it again replaces the previous listener.
        """
        self.stop()
        queue: Queue = Queue()
        self._listener = logging.handlers.QueueListener(
            queue, *self._make_handlers(debug, log_file), respect_handler_level=True
        )
        self._listener.start()

        root = logging.getLogger()
        root.handlers.clear()
        root.addHandler(logging.handlers.QueueHandler(queue))
        root.setLevel(logging.DEBUG if debug else logging.INFO)

        if not debug:
            for name, level in QUIET_LOGGERS.items():
                logging.getLogger(name).setLevel(level)

    def stop(self) -> None:
        """Flush pending records and stop the listener."""
        if self._listener is not None:
            self._listener.stop()
            self._listener = None


_config = ThreadSafeLoggingConfig()


def setup_logging(debug: bool = False, log_file: Optional[Path] = None) -> None:
    _config.setup_logging(debug, log_file)


def stop_logging() -> None:
    _config.stop()
