"""导航失败时换代理重试，保持调用方的页面句柄。"""

from page_retry.core.errors import (
    AluviaAPIError,
    InsufficientBalanceError,
    MissingApiKeyError,
    NavigationFailedError,
    NoProxyAvailableError,
    PageRetryError,
    ProxyProviderError,
    RelaunchError,
)
from page_retry.models.navigation import NavigationRequest, NavigationResult
from page_retry.models.proxy import ProxyCredential
from page_retry.services.browser.playwright_adapter import BrowserEngine, launch_page, wrap_page
from page_retry.services.proxy.dynamic_proxy import DynamicProxy, start_dynamic_proxy
from page_retry.services.proxy.provider import AluviaProxyProvider, CallableProxyProvider
from page_retry.services.retry.backoff import backoff_delay_ms
from page_retry.services.retry.error_classifier import DEFAULT_RETRY_PATTERNS, RetryClassifier
from page_retry.services.retry.orchestrator import RetryWithProxyRunner, retry_with_proxy
from page_retry.services.retry.policy import RetryPolicy

__version__ = "0.1.0"

__all__ = [
    "AluviaAPIError",
    "AluviaProxyProvider",
    "BrowserEngine",
    "CallableProxyProvider",
    "DEFAULT_RETRY_PATTERNS",
    "DynamicProxy",
    "InsufficientBalanceError",
    "MissingApiKeyError",
    "NavigationFailedError",
    "NavigationRequest",
    "NavigationResult",
    "NoProxyAvailableError",
    "PageRetryError",
    "ProxyCredential",
    "ProxyProviderError",
    "RelaunchError",
    "RetryClassifier",
    "RetryPolicy",
    "RetryWithProxyRunner",
    "backoff_delay_ms",
    "launch_page",
    "retry_with_proxy",
    "start_dynamic_proxy",
    "wrap_page",
]
