"""代理凭证来源：默认走 Aluvia，也可由调用方替换。"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, Optional

from page_retry.core.config import Settings, settings as default_settings
from page_retry.core.errors import (
    AluviaAPIError,
    InsufficientBalanceError,
    MissingApiKeyError,
    NoProxyAvailableError,
    ProxyProviderError,
)
from page_retry.models.proxy import ProxyCredential
from page_retry.services.browser.capabilities import ProxyProvider
from page_retry.services.proxy.aluvia_client import AluviaClient, get_aluvia_client

logger = logging.getLogger(__name__)


def _credential_from_aluvia(item: Dict[str, Any]) -> ProxyCredential:
    host = str(item.get("host") or "").strip()
    port = item.get("http_port") or item.get("httpPort") or item.get("port")
    if not host or not port:
        raise AluviaAPIError(None, "代理数据缺少 host/port")
    return ProxyCredential(
        server=f"http://{host}:{port}",
        username=str(item.get("username") or "") or None,
        password=str(item.get("password") or "") or None,
    )


def coerce_credential(value: Any) -> ProxyCredential:
    if isinstance(value, ProxyCredential):
        return value
    if isinstance(value, str):
        return ProxyCredential(server=value)
    if isinstance(value, dict):
        return ProxyCredential(**value)
    raise ProxyProviderError(f"无法识别的代理数据类型: {type(value).__name__}")


class AluviaProxyProvider:
    def __init__(
        self,
        client: Optional[AluviaClient] = None,
        *,
        api_key: Optional[str] = None,
        check_balance: bool = True,
        settings: Optional[Settings] = None,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._check_balance = bool(check_balance)
        self._settings = settings or default_settings

    def _resolve_client(self) -> AluviaClient:
        if self._client is not None:
            return self._client
        api_key = str(self._api_key or self._settings.api_key or "").strip()
        if not api_key:
            raise MissingApiKeyError("需要设置 ALUVIA_API_KEY 环境变量才能获取代理")
        return get_aluvia_client(api_key, settings=self._settings)

    async def _ensure_balance(self, client: AluviaClient) -> None:
        # 余额查询失败不影响取代理；只有明确的零/负余额才终止
        try:
            balance = await client.get_balance()
        except Exception as exc:  # noqa: BLE001
            logger.warning("page_retry.provider.balance_check.failed | error=%s", exc)
            return
        if balance is not None and balance <= 0:
            raise InsufficientBalanceError(balance)

    async def get(self) -> ProxyCredential:
        client = self._resolve_client()
        if self._check_balance:
            await self._ensure_balance(client)
        item = await client.first()
        if not item:
            raise NoProxyAvailableError("Aluvia 未返回可用代理")
        return _credential_from_aluvia(item)


class CallableProxyProvider:
    """把普通函数 / 协程函数适配成 ProxyProvider。"""

    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn

    async def get(self) -> ProxyCredential:
        value = self._fn()
        if inspect.isawaitable(value):
            value = await value
        return coerce_credential(value)


def resolve_proxy_provider(provider: Any = None, *, settings: Optional[Settings] = None) -> ProxyProvider:
    if provider is None:
        return AluviaProxyProvider(settings=settings)
    if isinstance(provider, ProxyProvider):
        return provider
    if callable(provider):
        return CallableProxyProvider(provider)
    raise TypeError("proxy_provider 需要提供 async get() 方法")
