"""本地转发代理：浏览器固定指向本地地址，上游代理可在运行时切换。

上游在接受新的客户端连接时读取；已经建立的连接保持原来的出口。
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import List, Optional, Set, Tuple
from urllib.parse import urlsplit

from page_retry.models.proxy import ProxyCredential

logger = logging.getLogger(__name__)

HEAD_LIMIT = 64 * 1024
PIPE_CHUNK = 64 * 1024
HOP_BY_HOP_HEADERS = {"proxy-authorization", "proxy-connection", "connection", "keep-alive"}
BAD_GATEWAY = b"HTTP/1.1 502 Bad Gateway\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"
BAD_REQUEST = b"HTTP/1.1 400 Bad Request\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"
CONNECT_OK = b"HTTP/1.1 200 Connection Established\r\n\r\n"


def _split_host_port(target: str, default_port: int) -> Tuple[str, int]:
    text = str(target or "").strip()
    if text.startswith("["):
        host, _, rest = text[1:].partition("]")
        port_text = rest.lstrip(":")
    else:
        host, sep, port_text = text.rpartition(":")
        if not sep:
            host, port_text = text, ""
    port = int(port_text) if port_text.isdigit() else int(default_port)
    return host, port


def _proxy_authorization(upstream: ProxyCredential) -> Optional[str]:
    if not upstream.username:
        return None
    token = base64.b64encode(f"{upstream.username}:{upstream.password or ''}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def _parse_head(head: bytes) -> Tuple[str, str, str, List[Tuple[str, str]]]:
    lines = head.decode("latin-1").split("\r\n")
    method, target, version = lines[0].split(" ", 2)
    headers: List[Tuple[str, str]] = []
    for line in lines[1:]:
        if not line:
            continue
        name, _, value = line.partition(":")
        headers.append((name.strip(), value.strip()))
    return method.upper(), target, version, headers


def _build_head(start_line: str, headers: List[Tuple[str, str]]) -> bytes:
    lines = [start_line] + [f"{name}: {value}" for name, value in headers]
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


class DynamicProxy:
    def __init__(self, host: str = "127.0.0.1", port: int = 0, upstream: Optional[ProxyCredential] = None) -> None:
        self.host = str(host)
        self.port = int(port)
        self._upstream = upstream
        self._server: Optional[asyncio.AbstractServer] = None
        self._writers: Set[asyncio.StreamWriter] = set()

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def set_upstream(self, upstream: Optional[ProxyCredential]) -> None:
        self._upstream = upstream
        logger.info(
            "page_retry.dynamic_proxy.upstream | listen=%s upstream=%s",
            self.url,
            upstream.masked() if upstream is not None else "direct",
        )

    def current_upstream(self) -> Optional[ProxyCredential]:
        return self._upstream

    async def start(self) -> "DynamicProxy":
        if self._server is not None:
            return self
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port, limit=HEAD_LIMIT)
        sockets = self._server.sockets or []
        if sockets:
            self.port = int(sockets[0].getsockname()[1])
        logger.info("page_retry.dynamic_proxy.started | listen=%s", self.url)
        return self

    async def close(self) -> None:
        server = self._server
        self._server = None
        if server is None:
            return
        server.close()
        for writer in list(self._writers):
            writer.close()
        self._writers.clear()
        await server.wait_closed()
        logger.info("page_retry.dynamic_proxy.closed | listen=%s", self.url)

    async def _open(self, host: str, port: int) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        reader, writer = await asyncio.open_connection(host, port, limit=HEAD_LIMIT)
        self._writers.add(writer)
        return reader, writer

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.add(writer)
        upstream = self._upstream
        remote_writer: Optional[asyncio.StreamWriter] = None
        try:
            try:
                head = await reader.readuntil(b"\r\n\r\n")
                method, target, version, headers = _parse_head(head)
            except (asyncio.IncompleteReadError, asyncio.LimitOverrunError, ValueError):
                writer.write(BAD_REQUEST)
                await writer.drain()
                return

            try:
                if method == "CONNECT":
                    remote_reader, remote_writer = await self._open_tunnel(target, upstream, writer)
                else:
                    remote_reader, remote_writer = await self._forward_request(
                        method, target, version, headers, upstream
                    )
            except (OSError, asyncio.IncompleteReadError, asyncio.LimitOverrunError, ValueError) as exc:
                logger.warning(
                    "page_retry.dynamic_proxy.connect.failed | method=%s target=%s upstream=%s error=%s",
                    method,
                    target,
                    upstream.masked() if upstream is not None else "direct",
                    exc,
                )
                writer.write(BAD_GATEWAY)
                await writer.drain()
                return
            if remote_reader is None:
                return

            await asyncio.gather(
                self._pipe(reader, remote_writer),
                self._pipe(remote_reader, writer),
            )
        except ConnectionError:
            pass
        finally:
            for item in (remote_writer, writer):
                if item is None:
                    continue
                self._writers.discard(item)
                try:
                    item.close()
                except Exception:  # noqa: BLE001
                    pass

    async def _open_tunnel(self, target: str, upstream: Optional[ProxyCredential], client_writer: asyncio.StreamWriter):
        host, port = _split_host_port(target, 443)
        if upstream is None:
            remote_reader, remote_writer = await self._open(host, port)
            client_writer.write(CONNECT_OK)
            await client_writer.drain()
            return remote_reader, remote_writer

        remote_reader, remote_writer = await self._open(upstream.host, upstream.port)
        headers = [("Host", target)]
        auth = _proxy_authorization(upstream)
        if auth:
            headers.append(("Proxy-Authorization", auth))
        remote_writer.write(_build_head(f"CONNECT {target} HTTP/1.1", headers))
        await remote_writer.drain()

        reply = await remote_reader.readuntil(b"\r\n\r\n")
        status_line = reply.split(b"\r\n", 1)[0].decode("latin-1")
        parts = status_line.split(" ", 2)
        if len(parts) < 2 or parts[1] != "200":
            # 上游拒绝（如 407），原样回给浏览器
            client_writer.write(reply)
            await client_writer.drain()
            remote_writer.close()
            self._writers.discard(remote_writer)
            return None, remote_writer
        client_writer.write(CONNECT_OK)
        await client_writer.drain()
        return remote_reader, remote_writer

    async def _forward_request(
        self,
        method: str,
        target: str,
        version: str,
        headers: List[Tuple[str, str]],
        upstream: Optional[ProxyCredential],
    ):
        kept = [(name, value) for name, value in headers if name.lower() not in HOP_BY_HOP_HEADERS]
        kept.append(("Connection", "close"))

        if upstream is not None:
            auth = _proxy_authorization(upstream)
            if auth:
                kept.append(("Proxy-Authorization", auth))
            remote_reader, remote_writer = await self._open(upstream.host, upstream.port)
            remote_writer.write(_build_head(f"{method} {target} {version}", kept))
            await remote_writer.drain()
            return remote_reader, remote_writer

        parsed = urlsplit(target)
        if not parsed.hostname:
            raise ValueError(f"非代理格式请求: {target}")
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"
        remote_reader, remote_writer = await self._open(parsed.hostname, port)
        remote_writer.write(_build_head(f"{method} {path} {version}", kept))
        await remote_writer.drain()
        return remote_reader, remote_writer

    @staticmethod
    async def _pipe(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            while True:
                data = await reader.read(PIPE_CHUNK)
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        except (ConnectionError, OSError):
            pass
        finally:
            try:
                writer.close()
            except Exception:  # noqa: BLE001
                pass


async def start_dynamic_proxy(
    host: str = "127.0.0.1",
    port: int = 0,
    upstream: Optional[ProxyCredential] = None,
) -> DynamicProxy:
    """启动本地转发代理，返回已监听的实例（port=0 时自动分配端口）。"""
    return await DynamicProxy(host=host, port=port, upstream=upstream).start()
