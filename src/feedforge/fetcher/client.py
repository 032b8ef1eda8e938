"""带超时的 HTTP 客户端封装."""

import asyncio
import logging
from dataclasses import dataclass

import httpx

from feedforge.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; RSS Aggregator/1.0)"


class FetchError(Exception):
    """网络请求失败."""


class FetchTimeoutError(FetchError):
    """网络请求超时."""


@dataclass(frozen=True)
class FetchConfig:
    """抓取配置（进程启动时构造一次，只读）."""

    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 10.0
    synthesis_timeout: float = 15.0
    feed_timeout: float = 30.0
    probe_timeout: float = 5.0
    webhook_timeout: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "FetchConfig":
        """从应用配置构造."""
        return cls(
            user_agent=settings.user_agent,
            timeout=settings.fetch_timeout_seconds,
            synthesis_timeout=settings.synthesis_timeout_seconds,
            feed_timeout=settings.feed_timeout_seconds,
            probe_timeout=settings.probe_timeout_seconds,
            webhook_timeout=settings.webhook_timeout_seconds,
        )


class HttpFetcher:
    """
    所有对外 HTTP 请求的统一入口.

    每次请求都有固定 User-Agent 和截止时间，超时后请求被取消并抛出
    FetchTimeoutError。
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or FetchConfig()
        self._transport = transport

    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        """发送请求并读取完整响应体."""
        limit = timeout or self.config.timeout
        request_headers = {"User-Agent": self.config.user_agent}
        if headers:
            request_headers.update(headers)

        try:
            async with asyncio.timeout(limit):
                async with httpx.AsyncClient(
                    transport=self._transport,
                    follow_redirects=True,
                    timeout=limit,
                ) as client:
                    return await client.request(
                        method,
                        url,
                        headers=request_headers,
                        content=content,
                    )
        except (TimeoutError, httpx.TimeoutException) as e:
            msg = f"Request to {url} timed out after {limit:g}s"
            raise FetchTimeoutError(msg) from e
        except httpx.HTTPError as e:
            msg = f"Request to {url} failed: {e}"
            raise FetchError(msg) from e

    async def get(
        self,
        url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """GET 请求."""
        return await self.request("GET", url, timeout=timeout, headers=headers)

    async def post(
        self,
        url: str,
        content: bytes,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """POST 请求."""
        return await self.request(
            "POST", url, timeout=timeout, headers=headers, content=content
        )

    async def fetch_html(self, url: str, *, timeout: float | None = None) -> str:
        """获取页面 HTML，非 2xx 响应视为失败."""
        response = await self.get(url, timeout=timeout)
        if not response.is_success:
            msg = f"Failed to fetch: {response.status_code} {response.reason_phrase}"
            raise FetchError(msg)
        return response.text
