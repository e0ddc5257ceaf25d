"""Process-level logging setup.

Modules log through ``logging.getLogger(__name__)``; entry points call
``configure_logging`` once. Records may carry a ``job_id`` extra.
"""

import logging
import sys


class ContextFormatter(logging.Formatter):
    """Formatter that fills in the optional job_id field."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "job_id"):
            record.job_id = "-"
        return super().format(record)


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [job_id=%(job_id)s] - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a stdout handler with the job-aware format.

    Args:
        level: Logging level name.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ContextFormatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)


__all__ = ["LOG_FORMAT", "ContextFormatter", "configure_logging"]
