"""重试策略配置：显式参数优先，其次进程级 Settings。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from page_retry.core.config import Settings, settings as default_settings
from page_retry.services.retry.error_classifier import (
    DEFAULT_RETRY_PATTERNS,
    RetryClassifier,
    RetryPattern,
    parse_retry_patterns,
)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 1
    backoff_ms: int = 300
    retry_on: Tuple[RetryPattern, ...] = DEFAULT_RETRY_PATTERNS
    close_old_browser: bool = True
    goto_timeout_ms: int = 15_000

    @classmethod
    def resolve(
        cls,
        *,
        max_retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        retry_on: Optional[Iterable[RetryPattern]] = None,
        close_old_browser: Optional[bool] = None,
        settings: Optional[Settings] = None,
    ) -> "RetryPolicy":
        cfg = settings or default_settings
        if retry_on is None:
            patterns = parse_retry_patterns(cfg.retry_on) or DEFAULT_RETRY_PATTERNS
        else:
            patterns = tuple(retry_on)
        return cls(
            max_retries=max(0, int(cfg.max_retries if max_retries is None else max_retries)),
            backoff_ms=max(0, int(cfg.backoff_ms if backoff_ms is None else backoff_ms)),
            retry_on=patterns,
            close_old_browser=bool(cfg.close_old_browser if close_old_browser is None else close_old_browser),
            goto_timeout_ms=max(0, int(cfg.goto_timeout_ms)),
        )

    def classifier(self) -> RetryClassifier:
        return RetryClassifier(self.retry_on)
