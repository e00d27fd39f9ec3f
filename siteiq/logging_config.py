"""
Structured logging configuration.

Called once from create_app(). Supports text (human-readable) and JSON formats
via LOG_FORMAT env var. LOG_LEVEL defaults to INFO.

Pipeline code logs through LoggerAdapters carrying run context (run_id,
tenant_id, attempt, step); both formats render those fields when present.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

# Attributes set via `extra=` that the formatters surface
CONTEXT_FIELDS = ('run_id', 'tenant_id', 'attempt', 'step', 'record_id')


def _context(record):
    return {k: getattr(record, k) for k in CONTEXT_FIELDS if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for production log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Human-readable formatter that appends run context as key=value pairs."""

    def format(self, record):
        line = super().format(record)
        ctx = _context(record)
        if ctx:
            line += ' | ' + ' '.join(f'{k}={v}' for k, v in ctx.items())
        return line


# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = [
    'sqlalchemy.engine',
    'werkzeug',
    'urllib3',
]


def configure_logging(app=None):
    """
    Set up root logger with format/level from env vars.

    Environment variables:
        LOG_LEVEL   Python log level name (default: INFO)
        LOG_FORMAT  "text" (default) or "json"
    """
    level_name = os.getenv('LOG_LEVEL', 'INFO').upper()
    level = getattr(logging, level_name, logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    log_format = os.getenv('LOG_FORMAT', 'text').lower()

    root = logging.getLogger()
    root.setLevel(level)

    # Remove any existing handlers to avoid duplicates on re-init
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if log_format == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ContextTextFormatter(
            '[%(asctime)s] %(levelname)s %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))

    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
