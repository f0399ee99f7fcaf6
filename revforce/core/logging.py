"""
Structured Logging - JSON lines carrying agent and task context.

Modules log through logging.getLogger(__name__) and pass context with
extra={"agent_id": ..., "task_id": ..., "task_type": ...}.
"""

import json
import logging
import sys
from typing import Optional

from revforce.core.config import LoggingConfig, RevforceConfig

CONTEXT_KEYS = ("agent_id", "task_id", "task_type")
PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """JSON log formatter that carries agent_id / task_id / task_type extras."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_KEYS:
            val = getattr(record, key, None)
            if val:
                log_entry[key] = val

        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    structured: bool = True,
    stream=None,
) -> logging.Handler:
    """
    Install one revforce handler on the root logger.

    Calling again replaces the handler installed by the previous call and
    leaves handlers owned by anyone else in place.
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter() if structured else logging.Formatter(PLAIN_FORMAT))
    handler.set_name("revforce")

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == "revforce":
            root.removeHandler(existing)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)
    return handler


def configure_logging(config: Optional[LoggingConfig] = None, stream=None) -> logging.Handler:
    """setup_logging() driven by a LoggingConfig (defaults to the environment)."""
    if config is None:
        config = RevforceConfig.from_env().logging
    return setup_logging(config.level, config.structured, stream=stream)
