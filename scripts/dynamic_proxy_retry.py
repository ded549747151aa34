"""演示：本地转发代理 + 动态切换上游的导航重试。

流程：
- 启动本地转发代理，浏览器启动时固定指向它（初始为直连）。
- 首次导航失败且命中重试规则时，从 Aluvia 取一个代理设为上游，页面对象保持不变。
- 默认目标是一个不可路由地址，用来稳定复现超时。

用法：
    ALUVIA_API_KEY=xxx python scripts/dynamic_proxy_retry.py --url https://example.com
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from playwright.async_api import async_playwright

from page_retry import retry_with_proxy, start_dynamic_proxy
from page_retry.core.logger import setup_logging

logger = logging.getLogger("page_retry.demo")


def _on_retry(attempt: int, max_retries: int, last_error: object) -> None:
    logger.info("重试 %s/%s，上次失败: %s", attempt, max_retries, last_error)


def _on_proxy_loaded(proxy) -> None:
    logger.info("已获取代理: %s", proxy.masked())


async def _run(args: argparse.Namespace) -> int:
    dynamic = await start_dynamic_proxy()
    try:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=not args.headful, proxy={"server": dynamic.url})
            try:
                page = await browser.new_page()
                runner = retry_with_proxy(
                    page,
                    dynamic_proxy=dynamic,
                    max_retries=args.max_retries,
                    backoff_ms=args.backoff_ms,
                    on_retry=_on_retry,
                    on_proxy_loaded=_on_proxy_loaded,
                )
                try:
                    result = await runner.goto(args.url, timeout=args.timeout_ms)
                except Exception as exc:  # noqa: BLE001
                    logger.error("导航失败: %s", exc)
                    return 1
                status = result.response.status if result.response is not None else None
                logger.info("导航成功: url=%s status=%s title=%s", args.url, status, await result.page.title())
                return 0
            finally:
                await browser.close()
    finally:
        await dynamic.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="动态上游代理导航重试演示")
    parser.add_argument("--url", default="http://10.255.255.1", help="目标地址（默认不可路由，用于触发超时）")
    parser.add_argument("--max-retries", type=int, default=2, help="最多重试次数（默认 2）")
    parser.add_argument("--backoff-ms", type=int, default=300, help="退避基数毫秒（默认 300）")
    parser.add_argument("--timeout-ms", type=int, default=5000, help="单次导航超时毫秒（默认 5000）")
    parser.add_argument("--headful", action="store_true", help="显示浏览器窗口")
    args = parser.parse_args()

    setup_logging()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
