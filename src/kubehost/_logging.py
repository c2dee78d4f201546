"""Logging for kubehost.

kubehost is a library: the ``kubehost`` logger only carries a NullHandler
unless an entry point calls configure_logging().  ``KUBEHOST_LOG_LEVEL``
(e.g. ``DEBUG``) sets the level at import time.

Lifecycle code passes the profile it is acting on through ``extra``
(``host``, ``driver``).  The CLI formatter appends those fields, so a line
looks like:

    INFO [2026-02-25 10:02:54] kubehost.host_manager - configureHost (host=minikube driver=kvm2)

Records are handed to a bounded queue and written to stderr by a
QueueListener thread.  Lifecycle operations hold the machines lock for
minutes at a time; a stalled terminal must not extend that window, so a
full queue drops records.
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "kubehost"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

_env_level = os.environ.get("KUBEHOST_LOG_LEVEL", "").strip().upper()
_env_level_value = logging.getLevelNamesMapping().get(_env_level)
if _env_level_value:  # NOTSET and unknown names are ignored
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level_value)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Extra fields shown on CLI output, in this order
_CONTEXT_FIELDS: tuple[str, ...] = ("host", "driver")

_QUEUE_CAPACITY = 1024


class _ContextFormatter(logging.Formatter):
    """Appends the host context carried in ``extra`` to the message."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = [f"{key}={getattr(record, key)}" for key in _CONTEXT_FIELDS if hasattr(record, key)]
        if context:
            line = f"{line} ({' '.join(context)})"
        return line


class _StderrHandler(logging.Handler):
    """Writes formatted records to stderr with click (dimmed on a TTY)."""

    def __init__(self) -> None:
        super().__init__()
        self.formatter = _ContextFormatter(fmt=_FMT, datefmt=_DATEFMT)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(click.style(self.format(record), dim=True), err=True)
        except BlockingIOError:
            pass  # stderr pipe full
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _NonBlockingHandler(logging.handlers.QueueHandler):
    def __init__(self) -> None:
        q: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(q)
        self._listener = logging.handlers.QueueListener(q, _StderrHandler(), respect_handler_level=False)
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # In-process queue: the record is formatted by the listener thread
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a kubehost module (pass ``__name__``)."""
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
) -> None:
    """Send kubehost logs to stderr. Safe to call more than once.

    Args:
        level: Log level name or number. Overrides KUBEHOST_LOG_LEVEL.
        quiet: Only show errors. Wins over ``level``.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    if not any(isinstance(h, _NonBlockingHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(_NonBlockingHandler())

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        lib_logger.setLevel(level)
