"""日志初始化"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from page_retry.core.config import Settings, settings as default_settings
from page_retry.core.log_mask import MaskingFilter

_LOGGING_READY = False


def _normalize_level(level_name: str | None) -> int:
    text = str(level_name or "INFO").strip().upper()
    if text == "WARNING":
        text = "WARN"
    mapping = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return mapping.get(text, logging.INFO)


def setup_logging(settings: Optional[Settings] = None) -> None:
    global _LOGGING_READY
    if _LOGGING_READY:
        return
    cfg = settings or default_settings

    level = _normalize_level(cfg.log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    mask_filter = MaskingFilter(mode=cfg.log_mask_mode)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(mask_filter)
    root_logger.addHandler(stream_handler)

    log_file = str(cfg.log_file or "").strip()
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=int(cfg.log_max_bytes),
            backupCount=int(cfg.log_backup_count),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(mask_filter)
        root_logger.addHandler(file_handler)

    _LOGGING_READY = True
