"""导航失败分类：决定是否换代理重试。"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional, Pattern, Tuple, Union

RetryPattern = Union[str, Pattern[str]]

DEFAULT_RETRY_PATTERNS: Tuple[str, ...] = ("ECONNRESET", "ETIMEDOUT", "net::ERR", "Timeout")


def parse_retry_patterns(text: Optional[str]) -> Tuple[RetryPattern, ...]:
    """解析逗号分隔的配置；/.../ 形式的条目编译为正则。"""
    patterns = []
    for raw in str(text or "").split(","):
        item = raw.strip()
        if not item:
            continue
        if len(item) > 1 and item.startswith("/") and item.endswith("/"):
            patterns.append(re.compile(item[1:-1]))
        else:
            patterns.append(item)
    return tuple(patterns)


def _failure_fields(failure: Any) -> Tuple[str, str, str]:
    if isinstance(failure, BaseException):
        message = getattr(failure, "message", None)
        if not isinstance(message, str):
            message = str(failure)
        name = getattr(failure, "name", None)
        if not isinstance(name, str):
            name = type(failure).__name__
    else:
        message = getattr(failure, "message", None)
        if message is None:
            message = failure
        name = getattr(failure, "name", "")
    code = getattr(failure, "code", None)
    if code is None:
        code = getattr(failure, "errno", None)
    return str(message or ""), str(name or ""), "" if code is None else str(code)


class RetryClassifier:
    """按 message / name / code 匹配重试模式，纯函数无副作用。"""

    def __init__(self, patterns: Optional[Iterable[RetryPattern]] = None) -> None:
        if patterns is None:
            self._patterns: Tuple[RetryPattern, ...] = DEFAULT_RETRY_PATTERNS
        else:
            self._patterns = tuple(patterns)

    @property
    def patterns(self) -> Tuple[RetryPattern, ...]:
        return self._patterns

    def is_retryable(self, failure: Any) -> bool:
        if failure is None:
            return False
        fields = _failure_fields(failure)
        for pattern in self._patterns:
            if isinstance(pattern, str):
                if any(pattern in value for value in fields):
                    return True
            elif any(pattern.search(value) for value in fields):
                return True
        return False

    __call__ = is_retryable
