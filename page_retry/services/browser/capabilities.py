"""重试引擎依赖的浏览器 / 代理能力接口。"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from page_retry.models.proxy import ProxyCredential


class BrowserLike(Protocol):
    launch_options: Dict[str, Any]

    async def launch(self, options: Dict[str, Any]) -> "BrowserLike": ...

    async def close(self) -> None: ...

    async def new_context(self, options: Dict[str, Any]) -> "ContextLike": ...


class ContextLike(Protocol):
    context_options: Dict[str, Any]

    async def new_page(self) -> "PageLike": ...

    def owning_browser(self) -> BrowserLike: ...


class PageLike(Protocol):
    async def goto(self, url: str, *, timeout: float, wait_until: str, **kwargs: Any) -> Any: ...

    async def title(self) -> str: ...

    def owning_context(self) -> ContextLike: ...


@runtime_checkable
class ProxyProvider(Protocol):
    async def get(self) -> ProxyCredential: ...


class DynamicProxyLike(Protocol):
    url: str

    def set_upstream(self, upstream: Optional[ProxyCredential]) -> None: ...

    def current_upstream(self) -> Optional[ProxyCredential]: ...

    async def close(self) -> None: ...
