"""
Central logging for connect-diff.

- Console handler: INFO..CRITICAL on stderr
- Timed rotated file handler: DEBUG (logs/app.log, daily rotation)
- Action-based file handler: DEBUG (logs/YYYY-MM-DD/<action>_<run_id>.log)
- Credential redaction: masks AWS keys/secrets in both msg and % args
- UTC timestamps in ISO-8601
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


class MaskSecretsFilter(logging.Filter):
    """
    Redact AWS credentials that may leak from profiles or environment dumps.
    """

    _patterns = [
        re.compile(r"(aws_secret_access_key\s*[=:]\s*)([^,\s]+)", re.IGNORECASE),
        re.compile(r"(aws_session_token\s*[=:]\s*)([^,\s]+)", re.IGNORECASE),
        re.compile(r"(aws_access_key_id\s*[=:]\s*)([^,\s]+)", re.IGNORECASE),
        re.compile(r"(\b)((?:AKIA|ASIA)[A-Z0-9]{16})\b"),
    ]

    @staticmethod
    def _mask(text: str) -> str:
        masked = text
        for pat in MaskSecretsFilter._patterns:
            masked = pat.sub(r"\1***REDACTED***", masked)
        return masked

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask(str(v)) for k, v in record.args.items()}
            else:
                record.args = tuple(self._mask(a) if isinstance(a, str) else a for a in record.args)
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        return True


def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _utc_formatter(fmt: str) -> logging.Formatter:
    f = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")
    f.converter = time.gmtime  # type: ignore[attr-defined]
    return f


def _level(name: str, default: int) -> int:
    return getattr(logging, str(name).upper(), default)


def _ensure_single_console_handler(
    base_logger: logging.Logger,
    *,
    console_level: str,
    formatter: logging.Formatter,
    mask: logging.Filter,
) -> None:
    """
    Make sure there is exactly ONE StreamHandler bound to the current sys.stderr
    (pytest may replace stdio between tests).
    """
    for h in list(base_logger.handlers):
        if type(h) is logging.StreamHandler:
            base_logger.removeHandler(h)
            h.close()

    sh = logging.StreamHandler(stream=sys.stderr)
    sh.setLevel(_level(console_level, logging.INFO))
    sh.setFormatter(formatter)
    sh.addFilter(mask)
    base_logger.addHandler(sh)


def _ensure_app_file_handler(
    base_logger: logging.Logger,
    *,
    base_dir: str,
    file_level: str,
    formatter: logging.Formatter,
    mask: logging.Filter,
) -> None:
    """
    Ensure a single TimedRotatingFileHandler points to <base_dir>/app.log
    for the current working directory; replace one pointing elsewhere.
    """
    _ensure_dir(base_dir)
    desired = os.path.abspath(os.path.join(base_dir, "app.log"))

    for h in list(base_logger.handlers):
        if isinstance(h, logging.handlers.TimedRotatingFileHandler):
            if os.path.abspath(getattr(h, "baseFilename", "")) != desired:
                base_logger.removeHandler(h)
                h.close()

    if not any(
        isinstance(h, logging.handlers.TimedRotatingFileHandler)
        and os.path.abspath(getattr(h, "baseFilename", "")) == desired
        for h in base_logger.handlers
    ):
        rh = logging.handlers.TimedRotatingFileHandler(
            desired,
            when="midnight",
            backupCount=14,
            encoding="utf-8",
            utc=True,
            delay=False,
        )
        rh.setLevel(_level(file_level, logging.DEBUG))
        rh.setFormatter(formatter)
        rh.addFilter(mask)
        base_logger.addHandler(rh)


def _drop_file_handlers(base_logger: logging.Logger) -> None:
    for h in list(base_logger.handlers):
        if isinstance(h, logging.FileHandler):
            base_logger.removeHandler(h)
            h.close()


def build_logger(
    *,
    name: str = "cdiff",
    run_id: str,
    action: str,
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    file_logging: bool = True,
    extra: Optional[Dict[str, Any]] = None,
) -> logging.LoggerAdapter:
    """
    Configure and return a LoggerAdapter.

    Design:
      - A base logger `<name>` holds console + rotating file handlers.
      - A child logger `<name>.<action>.<run_id>` holds a per-run file handler.
      - Records propagate to the base logger so they appear in all sinks.
      - With `file_logging=False` only the console handler is attached.
    """
    mask = MaskSecretsFilter()
    fmt = (
        "%(asctime)s | %(levelname)-8s | %(name)s | "
        "run=%(run_id)s action=%(action)s source=%(source)s target=%(target)s | "
        "%(message)s"
    )
    formatter = _utc_formatter(fmt)

    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)
    base.propagate = False

    _ensure_single_console_handler(base, console_level=console_level, formatter=formatter, mask=mask)
    if file_logging:
        _ensure_app_file_handler(base, base_dir=base_dir, file_level=file_level, formatter=formatter, mask=mask)
    else:
        _drop_file_handlers(base)

    child = logging.getLogger(f"{name}.{action}.{run_id}")
    child.setLevel(logging.DEBUG)
    child.propagate = True

    if file_logging and not getattr(child, "_cdiff_action_configured", False):
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        dated_dir = os.path.join(base_dir, today)
        _ensure_dir(dated_dir)
        action_file = os.path.join(dated_dir, f"{action}_{run_id}.log")
        Path(action_file).touch(exist_ok=True)

        fh = logging.FileHandler(action_file, encoding="utf-8", delay=False)
        fh.setLevel(_level(file_level, logging.DEBUG))
        fh.setFormatter(formatter)
        fh.addFilter(mask)
        child.addHandler(fh)
        child._cdiff_action_configured = True  # type: ignore[attr-defined]

    adapter = logging.LoggerAdapter(
        child,
        {
            "run_id": run_id,
            "action": action,
            "source": (extra or {}).get("source"),
            "target": (extra or {}).get("target"),
        },
    )
    adapter.debug("Logger initialised")
    return adapter
