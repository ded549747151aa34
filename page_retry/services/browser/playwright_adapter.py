"""Playwright 引擎适配：把 Page/BrowserContext/Browser 包装成重试引擎的能力接口。

重试引擎不关心底层引擎类型；这里负责记录 launch / new_context 参数，
以便 relaunch 时按原配置（加上新代理）重建会话。
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class BrowserEngine(str, Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"

    @classmethod
    def normalize(cls, value: Any) -> "BrowserEngine":
        if isinstance(value, BrowserEngine):
            return value
        text = str(value or "").strip().lower() or cls.CHROMIUM.value
        try:
            return cls(text)
        except ValueError as exc:
            raise ValueError(f"不支持的浏览器引擎: {value}") from exc


class _Delegating:
    def __getattr__(self, name: str) -> Any:
        raw = self.__dict__.get("raw")
        if raw is None:
            raise AttributeError(name)
        return getattr(raw, name)


class PlaywrightBrowser(_Delegating):
    def __init__(self, raw: Any, *, launch_options: Optional[Dict[str, Any]] = None, browser_type: Any = None) -> None:
        self.raw = raw
        self.launch_options: Dict[str, Any] = dict(launch_options or {})
        self._browser_type = browser_type

    @property
    def browser_type(self) -> Any:
        if self._browser_type is not None:
            return self._browser_type
        return self.raw.browser_type

    @property
    def engine(self) -> BrowserEngine:
        return BrowserEngine.normalize(getattr(self.browser_type, "name", None))

    async def launch(self, options: Dict[str, Any]) -> "PlaywrightBrowser":
        opts = dict(options or {})
        browser_type = self.browser_type
        raw_browser = await browser_type.launch(**opts)
        logger.debug("page_retry.playwright.launch | engine=%s", getattr(browser_type, "name", "?"))
        return PlaywrightBrowser(raw_browser, launch_options=opts, browser_type=browser_type)

    async def new_context(self, options: Dict[str, Any]) -> "PlaywrightContext":
        opts = dict(options or {})
        raw_context = await self.raw.new_context(**opts)
        return PlaywrightContext(raw_context, browser=self, context_options=opts)

    async def close(self) -> None:
        await self.raw.close()


class PlaywrightContext(_Delegating):
    def __init__(
        self,
        raw: Any,
        *,
        browser: PlaywrightBrowser,
        context_options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.raw = raw
        self.context_options: Dict[str, Any] = dict(context_options or {})
        self._browser = browser

    def owning_browser(self) -> PlaywrightBrowser:
        return self._browser

    async def new_page(self) -> "PlaywrightPage":
        raw_page = await self.raw.new_page()
        return PlaywrightPage(raw_page, context=self)


class PlaywrightPage(_Delegating):
    def __init__(self, raw: Any, *, context: PlaywrightContext) -> None:
        self.raw = raw
        self._context = context

    def owning_context(self) -> PlaywrightContext:
        return self._context

    async def goto(self, url: str, *, timeout: float, wait_until: str, **kwargs: Any) -> Any:
        return await self.raw.goto(url, timeout=timeout, wait_until=wait_until, **kwargs)

    async def title(self) -> str:
        return await self.raw.title()


def wrap_page(
    page: Any,
    *,
    launch_options: Optional[Dict[str, Any]] = None,
    context_options: Optional[Dict[str, Any]] = None,
) -> PlaywrightPage:
    """包装调用方已有的 Playwright Page；未提供的配置按空字典处理。"""
    if isinstance(page, PlaywrightPage):
        return page
    raw_context = page.context
    raw_browser = raw_context.browser
    if raw_browser is None:
        raise ValueError("persistent context 没有可重启的 Browser，无法使用 relaunch 策略")
    browser = PlaywrightBrowser(raw_browser, launch_options=launch_options)
    context = PlaywrightContext(raw_context, browser=browser, context_options=context_options)
    return PlaywrightPage(page, context=context)


async def launch_page(
    playwright: Any,
    engine: Any = BrowserEngine.CHROMIUM,
    *,
    launch_options: Optional[Dict[str, Any]] = None,
    context_options: Optional[Dict[str, Any]] = None,
) -> PlaywrightPage:
    browser_type = getattr(playwright, BrowserEngine.normalize(engine).value)
    opts = dict(launch_options or {})
    raw_browser = await browser_type.launch(**opts)
    browser = PlaywrightBrowser(raw_browser, launch_options=opts, browser_type=browser_type)
    context = await browser.new_context(dict(context_options or {}))
    return await context.new_page()


def ensure_relaunchable(page: Any) -> Any:
    """已实现 owning_context 的页面原样返回，裸 Playwright Page 自动包装。"""
    if callable(getattr(page, "owning_context", None)):
        return page
    return wrap_page(page)
