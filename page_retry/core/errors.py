"""统一异常定义。"""

from __future__ import annotations

from typing import Optional


class PageRetryError(Exception):
    """page_retry 所有自定义异常的基类。"""


class ProxyProviderError(PageRetryError):
    """代理凭证获取失败，对当前 goto 调用是致命错误。"""


class MissingApiKeyError(ProxyProviderError):
    pass


class NoProxyAvailableError(ProxyProviderError):
    pass


class InsufficientBalanceError(ProxyProviderError):
    def __init__(self, balance: float) -> None:
        self.balance = balance
        super().__init__(f"Aluvia 账户余额不足：balance={balance}")


class AluviaAPIError(ProxyProviderError):
    def __init__(self, code: Optional[int], message: str) -> None:
        self.code = code
        self.message = str(message or "")
        super().__init__(f"Aluvia 接口错误(code={code})：{self.message}")


class RelaunchError(PageRetryError):
    """带新代理重启浏览器失败；编排器按普通导航失败处理。"""


class NavigationFailedError(PageRetryError):
    """最后一次失败不是异常对象时用于包装。"""
