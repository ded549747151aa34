import re

import pytest

from page_retry import ProxyProviderError, RelaunchError, retry_with_proxy
from page_retry.services.browser.playwright_adapter import PlaywrightPage, wrap_page
from tests._fakes import (
    FakeBrowser,
    FakeBrowserType,
    FakeDynamicProxy,
    FakeNavError,
    FakeProxyProvider,
    fail_times,
    make_page,
)

pytestmark = pytest.mark.unit

DATA_OK = "data:text/html,<title>ok</title>ok"


@pytest.mark.asyncio
async def test_first_attempt_success_returns_same_page_without_proxy():
    page = make_page()
    provider = FakeProxyProvider()

    result = await retry_with_proxy(page, proxy_provider=provider).goto(DATA_OK)

    # data: URL 没有 Response，返回 None 也算成功
    assert result.response is None
    assert result.page is page
    assert provider.calls == 0
    url, kwargs = page.goto_calls[0]
    assert url == DATA_OK
    assert kwargs["timeout"] == 15_000
    assert kwargs["wait_until"] == "domcontentloaded"


@pytest.mark.asyncio
async def test_goto_options_pass_through():
    page = make_page()
    marker = object()

    async def _ok(url, **kwargs):
        del url, kwargs
        return marker

    page.goto_impl = _ok
    result = await retry_with_proxy(page, proxy_provider=FakeProxyProvider()).goto(
        DATA_OK, timeout=8000, wait_until="load", referer="https://example.com"
    )

    assert result.response is marker
    _, kwargs = page.goto_calls[0]
    assert kwargs == {"timeout": 8000, "wait_until": "load", "referer": "https://example.com"}


@pytest.mark.asyncio
async def test_relaunch_after_etimedout_returns_new_page():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("ETIMEDOUT simulated", times=1, code="ETIMEDOUT")
    provider = FakeProxyProvider()

    result = await retry_with_proxy(
        page,
        retry_on=["ETIMEDOUT"],
        max_retries=2,
        backoff_ms=1,
        close_old_browser=False,
        proxy_provider=provider,
    ).goto(DATA_OK)

    assert result.response is None
    assert result.page is not page
    assert isinstance(result.page, PlaywrightPage)
    assert await result.page.title() == "ok"
    assert provider.calls == 1
    assert browser_type.launch_calls == [
        {"proxy": {"server": "http://127.0.0.1:8888", "username": "u", "password": "p"}}
    ]


@pytest.mark.asyncio
async def test_close_old_browser_false_keeps_original_browser():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("Timeout", times=1)

    result = await retry_with_proxy(
        page,
        max_retries=1,
        backoff_ms=1,
        close_old_browser=False,
        proxy_provider=FakeProxyProvider(),
    ).goto(DATA_OK)

    assert page.context.browser.closed is False
    assert len(page.context.pages) > 0
    assert await result.page.title() == "ok"


@pytest.mark.asyncio
async def test_relaunch_closes_old_browser_and_reuses_context_options():
    browser_type = FakeBrowserType()
    page = make_page(browser_type, user_agent="fake-UA", viewport={"width": 1280, "height": 720})
    page.goto_impl = fail_times("net::ERR_CONNECTION_RESET", times=1)

    wrapped = wrap_page(
        page,
        launch_options={"headless": True},
        context_options={"user_agent": "fake-UA", "viewport": {"width": 1280, "height": 720}},
    )
    result = await retry_with_proxy(wrapped, max_retries=1, backoff_ms=0, proxy_provider=FakeProxyProvider()).goto(
        DATA_OK
    )

    assert page.context.browser.closed is True
    launch_options = browser_type.launch_calls[0]
    assert launch_options["headless"] is True
    assert launch_options["proxy"]["server"] == "http://127.0.0.1:8888"
    new_browser = browser_type.launched[0]
    assert new_browser.contexts[0].options == {"user_agent": "fake-UA", "viewport": {"width": 1280, "height": 720}}
    assert result.page.raw is new_browser.contexts[0].pages[0]


@pytest.mark.asyncio
async def test_close_error_on_old_browser_is_swallowed():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.context.browser.close_error = RuntimeError("already gone")
    page.goto_impl = fail_times("Timeout", times=1)

    result = await retry_with_proxy(page, max_retries=1, backoff_ms=0, proxy_provider=FakeProxyProvider()).goto(
        DATA_OK
    )

    assert await result.page.title() == "ok"


@pytest.mark.asyncio
async def test_max_retries_zero_raises_without_recovery():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("net::ERR_CONNECTION_RESET")
    provider = FakeProxyProvider()

    with pytest.raises(FakeNavError, match="ERR_CONNECTION_RESET"):
        await retry_with_proxy(page, max_retries=0, proxy_provider=provider).goto(DATA_OK)

    assert provider.calls == 0
    assert browser_type.launch_calls == []


@pytest.mark.asyncio
async def test_non_retryable_error_with_dynamic_proxy_leaves_upstream_unset():
    page = make_page()
    page.goto_impl = fail_times("NonRetryable")
    dynamic = FakeDynamicProxy()
    provider = FakeProxyProvider()

    with pytest.raises(FakeNavError, match="NonRetryable"):
        await retry_with_proxy(page, dynamic_proxy=dynamic, max_retries=3, proxy_provider=provider).goto(DATA_OK)

    assert provider.calls == 0
    assert dynamic.current_upstream() is None


@pytest.mark.asyncio
async def test_dynamic_upstream_keeps_page_and_fetches_proxy_once():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("Timeout 8000ms exceeded", times=2)
    dynamic = FakeDynamicProxy()
    provider = FakeProxyProvider(server="http://10.1.1.1:3128")

    result = await retry_with_proxy(
        page,
        dynamic_proxy=dynamic,
        max_retries=5,
        backoff_ms=0,
        proxy_provider=provider,
    ).goto(DATA_OK)

    assert result.page is page
    assert len(page.goto_calls) == 3
    assert provider.calls == 1
    assert dynamic.current_upstream().server == "http://10.1.1.1:3128"
    assert len(dynamic.history) == 2
    assert browser_type.launch_calls == []


@pytest.mark.asyncio
async def test_relaunch_carries_forward_latest_page():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("ETIMEDOUT", code="ETIMEDOUT")
    # 第一次重启出来的页面仍失败，第二次成功
    browser_type.goto_impl = fail_times("ETIMEDOUT", times=1, code="ETIMEDOUT")
    provider = FakeProxyProvider()

    runner = retry_with_proxy(page, max_retries=2, backoff_ms=0, proxy_provider=provider)
    result = await runner.goto(DATA_OK)

    assert provider.calls == 1
    assert len(browser_type.launched) == 2
    first, second = browser_type.launched
    assert page.context.browser.closed is True
    assert first.closed is True
    assert second.closed is False
    assert result.page.raw is second.contexts[0].pages[0]
    assert runner.page is result.page
    assert await result.page.title() == "ok"


@pytest.mark.asyncio
async def test_exhausted_budget_raises_last_error():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("ETIMEDOUT first")
    browser_type.goto_impl = fail_times("ETIMEDOUT later")

    with pytest.raises(FakeNavError, match="ETIMEDOUT later"):
        await retry_with_proxy(page, max_retries=2, backoff_ms=0, proxy_provider=FakeProxyProvider()).goto(DATA_OK)

    assert len(browser_type.launch_calls) == 2


@pytest.mark.asyncio
async def test_non_retryable_failure_during_retry_stops_loop():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("Timeout")
    browser_type.goto_impl = fail_times("Forbidden 403")

    with pytest.raises(FakeNavError, match="Forbidden"):
        await retry_with_proxy(page, max_retries=3, backoff_ms=0, proxy_provider=FakeProxyProvider()).goto(DATA_OK)

    assert len(browser_type.launch_calls) == 1


@pytest.mark.asyncio
async def test_launch_failure_is_folded_into_retry_loop():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("Timeout")
    browser_type.launch_error = RuntimeError("spawn failed")
    seen = []

    def _on_retry(attempt, max_retries, error):
        seen.append((attempt, max_retries, type(error).__name__))
        if attempt == 2:
            browser_type.launch_error = None

    provider = FakeProxyProvider()
    result = await retry_with_proxy(
        page, max_retries=3, backoff_ms=0, proxy_provider=provider, on_retry=_on_retry
    ).goto(DATA_OK)

    assert seen == [(1, 3, "FakeNavError"), (2, 3, "RelaunchError")]
    assert provider.calls == 1
    assert len(browser_type.launch_calls) == 2
    assert await result.page.title() == "ok"


@pytest.mark.asyncio
async def test_launch_failure_on_every_attempt_raises_relaunch_error():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("Timeout")
    browser_type.launch_error = RuntimeError("spawn failed")

    with pytest.raises(RelaunchError, match="spawn failed"):
        await retry_with_proxy(page, max_retries=2, backoff_ms=0, proxy_provider=FakeProxyProvider()).goto(DATA_OK)

    assert len(browser_type.launch_calls) == 2


@pytest.mark.asyncio
async def test_provisioning_failure_is_fatal():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("Timeout")
    provider = FakeProxyProvider(error=ProxyProviderError("pool empty"))

    with pytest.raises(ProxyProviderError, match="pool empty"):
        await retry_with_proxy(page, max_retries=3, backoff_ms=0, proxy_provider=provider).goto(DATA_OK)

    assert provider.calls == 1
    assert browser_type.launch_calls == []


@pytest.mark.asyncio
async def test_callbacks_async_and_failing_callbacks_are_tolerated():
    page = make_page()
    page.goto_impl = fail_times("Timeout", times=1)
    loaded = []

    async def _on_proxy_loaded(proxy):
        loaded.append(proxy.server)

    def _on_retry(attempt, max_retries, error):
        raise RuntimeError("callback bug")

    result = await retry_with_proxy(
        page,
        dynamic_proxy=FakeDynamicProxy(),
        max_retries=1,
        backoff_ms=0,
        proxy_provider=FakeProxyProvider(),
        on_proxy_loaded=_on_proxy_loaded,
        on_retry=_on_retry,
    ).goto(DATA_OK)

    assert loaded == ["http://127.0.0.1:8888"]
    assert result.page is page


@pytest.mark.asyncio
async def test_backoff_applied_between_attempts(monkeypatch):
    calls = []

    async def _fake_sleep_backoff(base_ms, attempt_index):
        calls.append((base_ms, attempt_index))
        return 0.0

    monkeypatch.setattr("page_retry.services.retry.orchestrator.sleep_backoff", _fake_sleep_backoff)
    page = make_page()
    page.goto_impl = fail_times("Timeout", times=3)

    await retry_with_proxy(
        page, dynamic_proxy=FakeDynamicProxy(), max_retries=3, backoff_ms=50, proxy_provider=FakeProxyProvider()
    ).goto(DATA_OK)

    assert calls == [(50, 0), (50, 1), (50, 2)]


@pytest.mark.asyncio
async def test_readiness_gate_timeout_is_swallowed():
    page = make_page()
    page.page_title = ""
    page.goto_impl = fail_times("Timeout", times=1)

    result = await retry_with_proxy(
        page, dynamic_proxy=FakeDynamicProxy(), max_retries=1, backoff_ms=0, proxy_provider=FakeProxyProvider()
    ).goto(DATA_OK, timeout=50)

    assert result.page is page
    assert result.response is None


@pytest.mark.asyncio
async def test_regex_retry_pattern_and_callable_provider():
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("HTTP 403 blocked", times=1)

    result = await retry_with_proxy(
        page,
        retry_on=[re.compile(r"\b4\d\d\b")],
        max_retries=1,
        backoff_ms=0,
        proxy_provider=lambda: "10.0.0.1:3128",
    ).goto(DATA_OK)

    assert browser_type.launch_calls[0]["proxy"] == {"server": "http://10.0.0.1:3128"}
    assert await result.page.title() == "ok"


@pytest.mark.asyncio
async def test_context_failure_after_launch_closes_new_browser(monkeypatch):
    browser_type = FakeBrowserType()
    page = make_page(browser_type)
    page.goto_impl = fail_times("Timeout")
    original_new_context = FakeBrowser.new_context
    state = {"failed": False}

    async def _flaky_new_context(self, **options):
        if not state["failed"]:
            state["failed"] = True
            raise RuntimeError("Target closed")
        return await original_new_context(self, **options)

    monkeypatch.setattr(FakeBrowser, "new_context", _flaky_new_context)
    provider = FakeProxyProvider()

    result = await retry_with_proxy(page, max_retries=2, backoff_ms=0, proxy_provider=provider).goto(DATA_OK)

    assert provider.calls == 1
    first, second = browser_type.launched
    assert first.closed is True
    assert second.closed is False
    assert result.page.raw is second.contexts[0].pages[0]
