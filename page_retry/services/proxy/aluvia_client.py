"""Aluvia 代理凭证接口客户端。"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from page_retry.core.config import Settings, settings as default_settings
from page_retry.core.errors import AluviaAPIError

logger = logging.getLogger(__name__)

PROXIES_PATH = "/proxies"
ACCOUNT_PATH = "/account"


def _extract_provider_message(payload: Any) -> str:
    if not isinstance(payload, dict):
        return str(payload or "").strip()
    candidates: List[str] = []
    for key in ("message", "error", "detail", "reason"):
        text = str(payload.get(key) or "").strip()
        if text:
            candidates.append(text)
    return " | ".join(candidates)


def _ensure_json_payload(resp: httpx.Response) -> Any:
    if int(resp.status_code) >= 400:
        message = resp.text
        try:
            message = _extract_provider_message(resp.json()) or message
        except Exception:  # noqa: BLE001
            pass
        raise AluviaAPIError(int(resp.status_code), message or f"HTTP {resp.status_code}")
    try:
        return resp.json()
    except Exception as exc:
        raise AluviaAPIError(int(resp.status_code), "返回非 JSON 数据") from exc


def _unwrap_data(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload:
        return payload.get("data")
    return payload


class AluviaClient:
    def __init__(
        self,
        api_key: str,
        *,
        api_base: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        cfg = settings or default_settings
        self._api_key = str(api_key or "")
        self._api_base = str(api_base or cfg.api_base).rstrip("/")
        self._timeout = httpx.Timeout(max(1.0, float(timeout_sec or cfg.api_timeout_sec)))
        self._transport = transport

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._api_base,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise AluviaAPIError(None, f"请求失败: {exc}") from exc
        return _ensure_json_payload(resp)

    async def first(self) -> Optional[Dict[str, Any]]:
        """返回第一个可用代理，没有时返回 None。"""
        data = _unwrap_data(await self._get(PROXIES_PATH, params={"limit": 1}))
        if isinstance(data, dict):
            data = data.get("items", [data])
        if not isinstance(data, list):
            return None
        for item in data:
            if isinstance(item, dict) and item:
                return item
        return None

    async def get_balance(self) -> Optional[float]:
        data = _unwrap_data(await self._get(ACCOUNT_PATH))
        if not isinstance(data, dict):
            return None
        raw = data.get("balance")
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            return None


_aluvia_client: Optional[AluviaClient] = None


def get_aluvia_client(api_key: str, *, settings: Optional[Settings] = None) -> AluviaClient:
    """进程级懒加载客户端：首次使用时创建，之后复用。"""
    global _aluvia_client
    if _aluvia_client is None:
        _aluvia_client = AluviaClient(api_key, settings=settings)
    return _aluvia_client


def reset_aluvia_client() -> None:
    global _aluvia_client
    _aluvia_client = None
