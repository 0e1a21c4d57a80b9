"""远程存储

RemoteStore 是同步层依赖的最小接口（按路径存取文本 blob），
WebDAVClient 是基于 httpx 的实现。
"""

import logging
import posixpath
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import List, Optional
from urllib.parse import quote, unquote, urlparse

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import RemoteError, RemoteNotFound

logger = logging.getLogger(__name__)

DAV_NS = "{DAV:}"

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop><d:resourcetype/></d:prop></d:propfind>'
)


def normalize_path(path: str) -> str:
    """规范化远程路径：以 / 开头，无重复斜杠，无结尾斜杠"""
    if not path or path.strip() in ("", "/"):
        return "/"
    normalized = posixpath.normpath("/" + path.strip().strip("/"))
    return normalized if normalized != "." else "/"


def join_path(base: str, *parts: str) -> str:
    return normalize_path("/".join([base, *parts]))


class RemoteStore(ABC):
    """Remote key/value blob store addressed by path."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    async def download(self, path: str) -> str:
        pass

    @abstractmethod
    async def upload(self, path: str, content: str) -> None:
        pass

    @abstractmethod
    async def list_directory(self, path: str) -> List[str]:
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class WebDAVClient(RemoteStore):
    """WebDAV client on top of httpx.AsyncClient."""

    def __init__(self, url: str, username: str = "", password: str = "",
                 auth_type: str = "password", timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = url.rstrip("/")
        self.username = username
        self.auth_type = auth_type
        self.timeout = timeout

        auth: Optional[httpx.Auth] = None
        if username or password:
            if auth_type == "digest":
                auth = httpx.DigestAuth(username, password)
            else:
                auth = httpx.BasicAuth(username, password)

        self._client = httpx.AsyncClient(auth=auth, timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    def _url(self, path: str) -> str:
        url = self.base_url + quote(normalize_path(path))
        # 集合（目录）保留结尾斜杠
        if path.endswith("/") and not url.endswith("/"):
            url += "/"
        return url

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        logger.debug("WebDAV %s %s", method, path)
        return await self._client.request(method, self._url(path), **kwargs)

    async def _send(self, action: str, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(f"{action} failed: {e}") from e

    async def exists(self, path: str) -> bool:
        response = await self._send("check", "PROPFIND", path,
                                    headers={"Depth": "0"}, content=PROPFIND_BODY)
        if response.status_code == 404:
            return False
        if response.is_success:
            return True
        raise RemoteError(f"check failed: {path}: HTTP {response.status_code}")

    async def download(self, path: str) -> str:
        response = await self._send("download", "GET", path)
        if response.status_code == 404:
            raise RemoteNotFound(f"download failed: {path} not found")
        if not response.is_success:
            raise RemoteError(f"download failed: {path}: HTTP {response.status_code}")
        return response.text

    async def upload(self, path: str, content: str) -> None:
        headers = {"Content-Type": "application/json; charset=utf-8"}
        response = await self._send("upload", "PUT", path, content=content.encode("utf-8"), headers=headers)
        if response.status_code in (404, 409):
            # 父目录不存在
            await self.ensure_directory(posixpath.dirname(normalize_path(path)))
            response = await self._send("upload", "PUT", path, content=content.encode("utf-8"), headers=headers)
        if not response.is_success:
            raise RemoteError(f"upload failed: {path}: HTTP {response.status_code}")
        logger.info("Uploaded %s (%d bytes)", path, len(content))

    async def ensure_directory(self, path: str) -> None:
        """逐级 MKCOL 创建目录"""
        current = ""
        for segment in normalize_path(path).strip("/").split("/"):
            if not segment:
                continue
            current = f"{current}/{segment}"
            if await self.exists(current):
                continue
            response = await self._send("mkdir", "MKCOL", current + "/")
            # 405: 已存在
            if not (response.is_success or response.status_code == 405):
                raise RemoteError(f"mkdir failed: {current}: HTTP {response.status_code}")

    async def list_directory(self, path: str) -> List[str]:
        response = await self._send("list", "PROPFIND", path.rstrip("/") + "/",
                                    headers={"Depth": "1"}, content=PROPFIND_BODY)
        if response.status_code == 404:
            raise RemoteNotFound(f"list failed: {path} not found")
        if not response.is_success:
            raise RemoteError(f"list failed: {path}: HTTP {response.status_code}")
        return self._parse_listing(response.text, path)

    def _parse_listing(self, body: str, path: str) -> List[str]:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as e:
            raise RemoteError(f"list failed: invalid PROPFIND response: {e}") from e

        base_prefix = urlparse(self.base_url).path.rstrip("/")
        own = normalize_path(path)
        names = []
        for response in root.iter(f"{DAV_NS}response"):
            href = response.findtext(f"{DAV_NS}href") or ""
            href_path = unquote(urlparse(href).path)
            if base_prefix and href_path.startswith(base_prefix):
                href_path = href_path[len(base_prefix):]
            href_path = normalize_path(href_path)
            if href_path == own:
                continue
            names.append(posixpath.basename(href_path))
        return names

    async def test_connection(self, remote_dir: str = "/") -> bool:
        await self.list_directory(remote_dir)
        return True


def create_remote_store(sync_config) -> WebDAVClient:
    return WebDAVClient(
        sync_config.webdav_url,
        username=sync_config.username,
        password=sync_config.password,
        auth_type=sync_config.auth_type,
    )
