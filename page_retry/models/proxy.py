"""代理凭证模型。"""

from __future__ import annotations

from typing import Dict, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, field_validator


class ProxyCredential(BaseModel):
    """一次性签发的出口代理：server 形如 http://host:port。"""

    model_config = ConfigDict(frozen=True)

    server: str
    username: Optional[str] = None
    password: Optional[str] = None

    @field_validator("server")
    @classmethod
    def _normalize_server(cls, value: str) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("server 不能为空")
        if "://" not in text:
            text = f"http://{text}"
        parsed = urlsplit(text)
        if not parsed.hostname or not parsed.port:
            raise ValueError(f"server 缺少 host/port: {value}")
        return text.rstrip("/")

    @property
    def scheme(self) -> str:
        return urlsplit(self.server).scheme.lower() or "http"

    @property
    def host(self) -> str:
        return str(urlsplit(self.server).hostname or "")

    @property
    def port(self) -> int:
        return int(urlsplit(self.server).port or 0)

    def has_auth(self) -> bool:
        return bool(self.username)

    def to_playwright(self) -> Dict[str, str]:
        payload = {"server": self.server}
        if self.username:
            payload["username"] = self.username
        if self.password:
            payload["password"] = self.password
        return payload

    def masked(self) -> str:
        if not self.username:
            return self.server
        return f"{self.scheme}://{self.username}:***@{self.host}:{self.port}"
