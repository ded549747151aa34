"""代理重试导航：首次直连，失败后取一次代理并按策略恢复、重试。

状态流转：initial -> (可重试失败) -> provisioning -> recovering -> attempt[i] -> done|failed。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Optional, Tuple

from page_retry.core.config import Settings
from page_retry.core.errors import NavigationFailedError
from page_retry.models.navigation import NavigationRequest, NavigationResult
from page_retry.models.proxy import ProxyCredential
from page_retry.services.browser.capabilities import DynamicProxyLike, PageLike, ProxyProvider
from page_retry.services.proxy.provider import coerce_credential, resolve_proxy_provider
from page_retry.services.recovery.dynamic_upstream import DynamicUpstreamStrategy
from page_retry.services.recovery.relaunch import RelaunchStrategy
from page_retry.services.retry.backoff import sleep_backoff
from page_retry.services.retry.error_classifier import RetryPattern
from page_retry.services.retry.policy import RetryPolicy

logger = logging.getLogger(__name__)

TITLE_POLL_INTERVAL_SEC = 0.1


@dataclass(frozen=True)
class _AttemptState:
    page: Any
    last_error: Any = None
    attempt: int = 0
    stopped: bool = False


def _as_exception(failure: Any) -> BaseException:
    if isinstance(failure, BaseException):
        return failure
    return NavigationFailedError(str(failure) if failure else "导航失败")


async def _invoke_callback(name: str, callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:  # noqa: BLE001
        logger.warning("page_retry.goto.callback.failed | callback=%s", name, exc_info=True)


class RetryWithProxyRunner:
    def __init__(
        self,
        page: PageLike,
        *,
        policy: RetryPolicy,
        proxy_provider: ProxyProvider,
        strategy: Any,
        on_retry: Optional[Callable[..., Any]] = None,
        on_proxy_loaded: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._page = page
        self._policy = policy
        self._classifier = policy.classifier()
        self._proxy_provider = proxy_provider
        self._strategy = strategy
        self._on_retry = on_retry
        self._on_proxy_loaded = on_proxy_loaded

    @property
    def page(self) -> Any:
        """最近一次导航所用的页面；relaunch 后会变成新浏览器里的页面。"""
        return self._page

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def strategy(self) -> Any:
        return self._strategy

    async def goto(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        wait_until: Optional[str] = None,
        **goto_options: Any,
    ) -> NavigationResult:
        request = NavigationRequest.build(
            url,
            timeout=timeout,
            wait_until=wait_until,
            default_timeout_ms=self._policy.goto_timeout_ms,
            **goto_options,
        )

        page = self._page
        try:
            response = await self._navigate(page, request)
            return NavigationResult(response=response, page=page)
        except Exception as exc:  # noqa: BLE001
            if not self._classifier.is_retryable(exc):
                raise
            if self._policy.max_retries <= 0:
                raise
            logger.warning(
                "page_retry.goto.initial.failed | url=%s strategy=%s error=%s",
                request.url,
                self._strategy.name,
                exc,
            )
            state = _AttemptState(page=page, last_error=exc)

        proxy = await self._provision()

        result: Optional[NavigationResult] = None
        while result is None and not state.stopped and state.attempt < self._policy.max_retries:
            state, result = await self._attempt(state, proxy, request)

        self._page = state.page
        if result is not None:
            return result

        logger.error(
            "page_retry.goto.failed | url=%s attempts=%s stopped=%s error=%s",
            request.url,
            state.attempt,
            state.stopped,
            state.last_error,
        )
        raise _as_exception(state.last_error)

    async def _navigate(self, page: Any, request: NavigationRequest) -> Any:
        return await page.goto(request.url, **request.goto_kwargs())

    async def _provision(self) -> ProxyCredential:
        try:
            proxy = coerce_credential(await self._proxy_provider.get())
        except Exception as exc:
            logger.error("page_retry.goto.provision.failed | error=%s", exc)
            raise
        logger.info("page_retry.goto.proxy_loaded | proxy=%s", proxy.masked())
        await _invoke_callback("on_proxy_loaded", self._on_proxy_loaded, proxy)
        return proxy

    async def _attempt(
        self,
        state: _AttemptState,
        proxy: ProxyCredential,
        request: NavigationRequest,
    ) -> Tuple[_AttemptState, Optional[NavigationResult]]:
        attempt = state.attempt + 1
        max_retries = self._policy.max_retries

        if self._policy.backoff_ms > 0:
            await sleep_backoff(self._policy.backoff_ms, attempt - 1)

        await _invoke_callback("on_retry", self._on_retry, attempt, max_retries, state.last_error)

        try:
            page = await self._strategy.recover(state.page, proxy)
        except Exception as exc:  # noqa: BLE001
            # 恢复失败与导航失败同等对待，继续下一轮
            logger.warning(
                "page_retry.goto.recover.failed | attempt=%s/%s strategy=%s error=%s",
                attempt,
                max_retries,
                self._strategy.name,
                exc,
            )
            return replace(state, attempt=attempt, last_error=exc), None

        try:
            response = await self._navigate(page, request)
        except Exception as exc:  # noqa: BLE001
            retryable = self._classifier.is_retryable(exc)
            logger.warning(
                "page_retry.goto.retry.failed | attempt=%s/%s strategy=%s retryable=%s error=%s",
                attempt,
                max_retries,
                self._strategy.name,
                retryable,
                exc,
            )
            return replace(state, page=page, attempt=attempt, last_error=exc, stopped=not retryable), None

        await self._wait_ready(page, request.timeout_ms)
        logger.info(
            "page_retry.goto.retry.succeeded | attempt=%s/%s strategy=%s proxy=%s",
            attempt,
            max_retries,
            self._strategy.name,
            proxy.masked(),
        )
        return replace(state, page=page, attempt=attempt, last_error=None), NavigationResult(response, page)

    async def _wait_ready(self, page: Any, timeout_ms: float) -> None:
        async def _poll_title() -> None:
            while True:
                title = await page.title()
                if str(title or "").strip():
                    return
                await asyncio.sleep(TITLE_POLL_INTERVAL_SEC)

        try:
            await asyncio.wait_for(_poll_title(), timeout=max(0.0, float(timeout_ms) / 1000.0))
        except Exception:  # noqa: BLE001
            logger.debug("page_retry.goto.ready_gate.skipped", exc_info=True)


def retry_with_proxy(
    page: PageLike,
    *,
    max_retries: Optional[int] = None,
    backoff_ms: Optional[int] = None,
    retry_on: Optional[Iterable[RetryPattern]] = None,
    close_old_browser: Optional[bool] = None,
    proxy_provider: Any = None,
    dynamic_proxy: Optional[DynamicProxyLike] = None,
    on_retry: Optional[Callable[..., Any]] = None,
    on_proxy_loaded: Optional[Callable[..., Any]] = None,
    settings: Optional[Settings] = None,
) -> RetryWithProxyRunner:
    """为页面创建带代理重试的导航器。

    传入 dynamic_proxy 时使用切换上游策略（页面不变），否则重启浏览器。
    未传入的参数回落到 ALUVIA_* 环境配置。
    """
    policy = RetryPolicy.resolve(
        max_retries=max_retries,
        backoff_ms=backoff_ms,
        retry_on=retry_on,
        close_old_browser=close_old_browser,
        settings=settings,
    )
    if dynamic_proxy is not None:
        strategy: Any = DynamicUpstreamStrategy(dynamic_proxy)
    else:
        strategy = RelaunchStrategy(close_old_browser=policy.close_old_browser)
    return RetryWithProxyRunner(
        page,
        policy=policy,
        proxy_provider=resolve_proxy_provider(proxy_provider, settings=settings),
        strategy=strategy,
        on_retry=on_retry,
        on_proxy_loaded=on_proxy_loaded,
    )
