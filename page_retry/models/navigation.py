"""导航请求与结果。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

DEFAULT_GOTO_TIMEOUT_MS = 15_000
DEFAULT_WAIT_UNTIL = "domcontentloaded"


@dataclass(frozen=True)
class NavigationRequest:
    url: str
    timeout_ms: int = DEFAULT_GOTO_TIMEOUT_MS
    wait_until: str = DEFAULT_WAIT_UNTIL
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        url: str,
        *,
        timeout: Optional[float] = None,
        wait_until: Optional[str] = None,
        default_timeout_ms: int = DEFAULT_GOTO_TIMEOUT_MS,
        **extra: Any,
    ) -> "NavigationRequest":
        return cls(
            url=str(url),
            timeout_ms=int(timeout) if timeout is not None else int(default_timeout_ms),
            wait_until=str(wait_until or DEFAULT_WAIT_UNTIL),
            extra=dict(extra),
        )

    def goto_kwargs(self) -> Dict[str, Any]:
        return {**self.extra, "timeout": self.timeout_ms, "wait_until": self.wait_until}


@dataclass(frozen=True)
class NavigationResult:
    """response 为 None 表示导航成功但没有文档响应（如 data: URL）。"""

    response: Any
    page: Any
