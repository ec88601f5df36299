from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


@dataclass(slots=True)
class LoggerBundle:
    app: logging.Logger
    audit: logging.Logger
    latest_log_path: Path
    audit_log_path: Path


def _rotate_latest_log(logs_dir: Path, keep_archives: int = 5) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)
    latest = logs_dir / "latest.log"
    if latest.exists():
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        latest.replace(logs_dir / f"latest_{stamp}.log")

    archives = sorted(
        [path for path in logs_dir.glob("latest_*.log") if path.is_file()],
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for stale in archives[keep_archives:]:
        stale.unlink(missing_ok=True)
    return latest


def _reset_logger(name: str, level: int) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    return logger


def _file_handler(path: Path, mode: str, formatter: logging.Formatter) -> logging.FileHandler:
    handler = logging.FileHandler(path, mode=mode, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def configure_logging(logs_dir: Path, *, level: int = logging.INFO, console: bool = True) -> LoggerBundle:
    """Wire the ``techtree`` logger tree to ``latest.log`` and the audit trail to ``progression.log``."""
    latest = _rotate_latest_log(logs_dir)
    audit_log_path = logs_dir / "progression.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    app_logger = _reset_logger("techtree", level)
    app_logger.propagate = False
    if console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        app_logger.addHandler(stream_handler)
    app_logger.addHandler(_file_handler(latest, "w", formatter))

    # audit records still reach latest.log through the parent logger
    audit_logger = _reset_logger("techtree.audit", logging.INFO)
    audit_logger.addHandler(_file_handler(audit_log_path, "a", logging.Formatter("%(asctime)s %(message)s")))

    return LoggerBundle(app=app_logger, audit=audit_logger, latest_log_path=latest, audit_log_path=audit_log_path)
