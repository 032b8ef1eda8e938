"""Cloudflare 等反爬保护检测."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import ClassVar, Literal

from feedforge.fetcher.client import FetchError, HttpFetcher

logger = logging.getLogger(__name__)

Confidence = Literal["low", "medium", "high"]
ChallengeType = Literal["browser-verification", "captcha", "rate-limit", "unknown"]

_CONFIDENCE_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2}


@dataclass(frozen=True)
class ProtectionResult:
    """检测结果."""

    is_protected: bool
    confidence: Confidence
    indicators: tuple[str, ...] = field(default_factory=tuple)
    challenge_type: ChallengeType | None = None

    def to_metadata(self) -> dict[str, object]:
        """转为 Source.detection_metadata 的存储格式."""
        return {
            "confidence": self.confidence,
            "indicators": list(self.indicators),
            "challengeType": self.challenge_type,
        }


NOT_PROTECTED = ProtectionResult(is_protected=False, confidence="low")


class ProtectionDetector:
    """启发式评分，只做标注，不拦截请求."""

    BROWSER_CHALLENGE_MARKERS: ClassVar[list[str]] = [
        "challenge-platform",
        "just a moment",
        "cf-browser-verification",
        "checking your browser",
        "ddos protection by cloudflare",
    ]

    CAPTCHA_MARKERS: ClassVar[list[str]] = [
        "cf-challenge",
        "cloudflare captcha",
        "cf-chl-bypass",
    ]

    RATE_LIMIT_MARKERS: ClassVar[list[str]] = [
        "rate limit",
        "too many requests",
        "cf-error-details",
    ]

    def __init__(self) -> None:
        self._indicators: list[str] = []
        self._confidence: Confidence = "low"
        self._challenge_type: ChallengeType | None = None

    def _raise_to(self, level: Confidence) -> None:
        if _CONFIDENCE_RANK[level] > _CONFIDENCE_RANK[self._confidence]:
            self._confidence = level

    def _check_headers(self, status_code: int | None, headers: Mapping[str, str]) -> None:
        lowered = {key.lower(): value for key, value in headers.items()}
        server = lowered.get("server", "").lower()
        has_cf_ray = "cf-ray" in lowered
        is_cloudflare_server = "cloudflare" in server

        # 强信号
        if has_cf_ray:
            self._indicators.append("cf-ray header")
            self._raise_to("high")
        if is_cloudflare_server:
            self._indicators.append("cloudflare server header")
            self._raise_to("high")

        # 弱信号
        if "cf-cache-status" in lowered:
            self._indicators.append("cf-cache-status header")
            self._raise_to("medium")
        other_cf = [
            key
            for key in lowered
            if key.startswith("cf-") and key not in ("cf-ray", "cf-cache-status")
        ]
        if other_cf:
            self._indicators.append("cf-* headers present")
            self._raise_to("medium")

        if status_code in (403, 503) and (has_cf_ray or is_cloudflare_server):
            self._indicators.append(f"HTTP {status_code} with Cloudflare")
            self._challenge_type = (
                "rate-limit" if status_code == 403 else "browser-verification"
            )
            self._raise_to("high")

    def _check_html(self, html: str) -> None:
        lower_html = html.lower()

        if any(marker in lower_html for marker in self.BROWSER_CHALLENGE_MARKERS):
            self._indicators.append("browser verification challenge")
            self._challenge_type = "browser-verification"
            self._raise_to("high")

        if any(marker in lower_html for marker in self.CAPTCHA_MARKERS):
            self._indicators.append("CAPTCHA challenge")
            self._challenge_type = "captcha"
            self._raise_to("high")

        if any(marker in lower_html for marker in self.RATE_LIMIT_MARKERS):
            self._indicators.append("rate limit indicator")
            if self._challenge_type is None:
                self._challenge_type = "rate-limit"
            self._raise_to("medium")

        if "cloudflare" in lower_html and (
            "ray id" in lower_html or "cf-ray" in lower_html
        ):
            self._indicators.append("Cloudflare error page")
            self._raise_to("medium")

    def detect(
        self,
        status_code: int | None = None,
        headers: Mapping[str, str] | None = None,
        html: str | None = None,
    ) -> ProtectionResult:
        """对一次响应评分."""
        self._indicators = []
        self._confidence = "low"
        self._challenge_type = None

        if headers is not None:
            self._check_headers(status_code, headers)
        if html:
            self._check_html(html)

        # 多个信号叠加提升置信度
        if len(self._indicators) >= 2:
            self._raise_to("medium")
        if len(self._indicators) >= 3:
            self._raise_to("high")

        return ProtectionResult(
            is_protected=bool(self._indicators) and self._confidence != "low",
            confidence=self._confidence,
            indicators=tuple(self._indicators),
            challenge_type=self._challenge_type,
        )


def detect_protection(
    status_code: int | None = None,
    headers: Mapping[str, str] | None = None,
    html: str | None = None,
) -> ProtectionResult:
    """检测响应头 / HTML 中的反爬保护特征."""
    return ProtectionDetector().detect(status_code, headers, html)


async def detect_protection_from_url(
    url: str, fetcher: HttpFetcher
) -> ProtectionResult:
    """请求 URL 并检测，请求失败时返回低置信度结果."""
    try:
        response = await fetcher.get(url)
    except FetchError as e:
        logger.info(f"保护检测请求失败: {url} - {e}")
        return NOT_PROTECTED

    return detect_protection(response.status_code, response.headers, response.text)
