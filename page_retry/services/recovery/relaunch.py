"""重启浏览器恢复策略：沿用旧会话的 launch/context 配置，换上新代理。"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from page_retry.core.errors import RelaunchError
from page_retry.models.proxy import ProxyCredential
from page_retry.services.browser.playwright_adapter import ensure_relaunchable

logger = logging.getLogger(__name__)


def _infer_options(page: Any) -> Tuple[Any, Dict[str, Any], Dict[str, Any]]:
    context = ensure_relaunchable(page).owning_context()
    browser = context.owning_browser()
    try:
        launch_options = dict(getattr(browser, "launch_options", None) or {})
    except Exception:  # noqa: BLE001
        launch_options = {}
    try:
        context_options = dict(getattr(context, "context_options", None) or {})
    except Exception:  # noqa: BLE001
        context_options = {}
    return browser, launch_options, context_options


async def relaunch_with_proxy(proxy: ProxyCredential, old_page: Any, close_old_browser: bool = True) -> Any:
    try:
        old_browser, launch_options, context_options = _infer_options(old_page)
    except Exception as exc:  # noqa: BLE001
        raise RelaunchError(f"无法从旧页面推断浏览器配置: {exc}") from exc

    if close_old_browser:
        try:
            await old_browser.close()
        except Exception:  # noqa: BLE001
            logger.debug("page_retry.relaunch.close_old.failed", exc_info=True)

    retry_launch = {**launch_options, "proxy": proxy.to_playwright()}
    try:
        browser = await old_browser.launch(retry_launch)
    except Exception as exc:  # noqa: BLE001
        raise RelaunchError(f"带代理重启浏览器失败: {exc}") from exc

    try:
        context = await browser.new_context(dict(context_options))
        page = await context.new_page()
    except Exception as exc:  # noqa: BLE001
        # 新浏览器已启动但会话没建起来，先关掉再报错
        try:
            await browser.close()
        except Exception:  # noqa: BLE001
            logger.debug("page_retry.relaunch.close_new.failed", exc_info=True)
        raise RelaunchError(f"带代理重启浏览器失败: {exc}") from exc

    logger.info(
        "page_retry.relaunch.done | proxy=%s closed_old=%s",
        proxy.masked(),
        bool(close_old_browser),
    )
    return page


class RelaunchStrategy:
    name = "relaunch"

    def __init__(self, close_old_browser: bool = True) -> None:
        self.close_old_browser = bool(close_old_browser)

    async def recover(self, page: Any, proxy: ProxyCredential) -> Any:
        return await relaunch_with_proxy(proxy, page, self.close_old_browser)
