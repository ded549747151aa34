"""切换本地转发代理上游的恢复策略，浏览器与页面保持不变。"""

from __future__ import annotations

from typing import Any

from page_retry.models.proxy import ProxyCredential
from page_retry.services.browser.capabilities import DynamicProxyLike


class DynamicUpstreamStrategy:
    name = "dynamic_upstream"

    def __init__(self, dynamic_proxy: DynamicProxyLike) -> None:
        self.dynamic_proxy = dynamic_proxy

    async def recover(self, page: Any, proxy: ProxyCredential) -> Any:
        self.dynamic_proxy.set_upstream(proxy)
        return page
