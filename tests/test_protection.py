"""测试反爬保护检测."""

import httpx

from feedforge.fetcher.client import HttpFetcher
from feedforge.fetcher.protection import (
    NOT_PROTECTED,
    detect_protection,
    detect_protection_from_url,
)

CHALLENGE_HTML = """<html><head><title>Just a moment...</title></head>
<body><div id="challenge-platform">Checking your browser before accessing.</div></body></html>"""


class TestDetectProtection:
    """测试 detect_protection 评分."""

    def test_plain_site_is_not_protected(self) -> None:
        """普通站点：低置信度，无信号."""
        result = detect_protection(200, {"server": "nginx"}, "<html><body>hi</body></html>")
        assert result.is_protected is False
        assert result.confidence == "low"
        assert result.indicators == ()
        assert result.challenge_type is None

    def test_strong_headers(self) -> None:
        """cf-ray 与 cloudflare server 头是强信号."""
        result = detect_protection(200, {"CF-RAY": "8a1b2c", "Server": "cloudflare"})
        assert result.is_protected is True
        assert result.confidence == "high"
        assert "cf-ray header" in result.indicators
        assert "cloudflare server header" in result.indicators

    def test_weak_header_is_medium(self) -> None:
        """cf-cache-status 只到 medium."""
        result = detect_protection(200, {"cf-cache-status": "HIT"})
        assert result.confidence == "medium"
        assert result.is_protected is True

    def test_503_with_cloudflare_is_browser_verification(self) -> None:
        """503 + Cloudflare 头视为浏览器验证."""
        result = detect_protection(503, {"cf-ray": "x"}, CHALLENGE_HTML)
        assert result.is_protected is True
        assert result.confidence == "high"
        assert result.challenge_type == "browser-verification"

    def test_403_with_cloudflare_is_rate_limit(self) -> None:
        """403 + Cloudflare 头视为限流."""
        result = detect_protection(403, {"server": "cloudflare"})
        assert result.challenge_type == "rate-limit"
        assert "HTTP 403 with Cloudflare" in result.indicators

    def test_captcha_markers(self) -> None:
        """CAPTCHA 页面."""
        result = detect_protection(200, {}, '<form id="cf-challenge-form"></form>')
        assert result.challenge_type == "captcha"
        assert result.confidence == "high"

    def test_html_only_challenge(self) -> None:
        """没有响应头时也能从 HTML 识别."""
        result = detect_protection(html=CHALLENGE_HTML)
        assert result.is_protected is True
        assert "browser verification challenge" in result.indicators

    def test_single_rate_limit_phrase_is_medium(self) -> None:
        """单个限流短语只到 medium."""
        result = detect_protection(429, {}, "<p>Too many requests</p>")
        assert result.confidence == "medium"
        assert result.challenge_type == "rate-limit"

    def test_metadata_format(self) -> None:
        """存储格式."""
        result = detect_protection(503, {"cf-ray": "x"}, CHALLENGE_HTML)
        metadata = result.to_metadata()
        assert set(metadata) == {"confidence", "indicators", "challengeType"}
        assert metadata["challengeType"] == "browser-verification"
        assert isinstance(metadata["indicators"], list)


class TestDetectProtectionFromUrl:
    """测试按 URL 检测."""

    async def test_scores_response(self) -> None:
        """请求成功时按响应评分."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(
                503, headers={"cf-ray": "abc", "server": "cloudflare"}, text=CHALLENGE_HTML
            )
        )
        result = await detect_protection_from_url(
            "https://example.com", HttpFetcher(transport=transport)
        )
        assert result.is_protected is True

    async def test_fetch_failure_degrades_to_low(self) -> None:
        """请求失败时返回低置信度结果."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        result = await detect_protection_from_url(
            "https://example.com", HttpFetcher(transport=httpx.MockTransport(handler))
        )
        assert result == NOT_PROTECTED
