"""URL 规范化与校验（含 SSRF 防护）."""

import ipaddress
import re
import socket
from urllib.parse import urlsplit

ALLOWED_SCHEMES = ("http", "https")

BLOCKED_HOSTNAMES = frozenset({"localhost", "127.0.0.1", "0.0.0.0"})

# "mailto:"、"ftp://" 这类显式 scheme；"example.com:8080" 中的端口不算
_SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*):(?!\d)")

_HOSTNAME_RE = re.compile(r"^[a-z0-9.\-_\[\]:]+$")

# 十进制、八进制、十六进制及省略段的 IPv4 写法，如 2130706433、127.1、0x7f.0.0.1
_NUMERIC_HOST_RE = re.compile(r"^(0x[0-9a-f]*|\d+)(\.(0x[0-9a-f]*|\d+)){0,3}\.?$")


def _canonical_ipv4(hostname: str) -> str | None:
    """把数字形式的 IPv4 主机名转为点分十进制，非数字主机名返回 None."""
    if not _NUMERIC_HOST_RE.match(hostname):
        return None
    try:
        packed = socket.inet_aton(hostname.rstrip("."))
    except OSError:
        return None
    return str(ipaddress.IPv4Address(packed))


def _is_blocked_host(hostname: str) -> bool:
    """判断主机名是否指向本机或内网."""
    hostname = hostname.rstrip(".")
    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        return True

    try:
        address = ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped

    return (
        address.is_private
        or address.is_loopback
        or address.is_unspecified
        or address.is_link_local
    )


def normalize_url(value: str | None) -> str | None:
    """
    规范化并校验用户提交的 URL.

    - 没有 scheme 时补 https://
    - 只允许 http/https
    - 拒绝 localhost、回环地址与内网地址
    - 返回的字符串不带末尾斜杠

    任何失败都返回 None，调用方把 None 视为正常的拒绝结果。
    """
    if not value or not value.strip():
        return None

    candidate = value.strip()
    if any(ch.isspace() for ch in candidate):
        return None

    if not re.match(r"^https?://", candidate, re.IGNORECASE):
        if _SCHEME_RE.match(candidate) or candidate.startswith("//"):
            return None
        candidate = f"https://{candidate}"

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return None

    hostname = parts.hostname
    if not hostname or not _HOSTNAME_RE.match(hostname):
        return None

    hostname = _canonical_ipv4(hostname) or hostname
    if _is_blocked_host(hostname):
        return None

    host = f"[{hostname}]" if ":" in hostname else hostname
    netloc = host
    if port is not None and port != (443 if scheme == "https" else 80):
        netloc = f"{host}:{port}"
    if "@" in parts.netloc:
        userinfo = parts.netloc.rsplit("@", 1)[0]
        netloc = f"{userinfo}@{netloc}"

    url = f"{scheme}://{netloc}{parts.path or '/'}"
    if parts.query:
        url = f"{url}?{parts.query}"
    if parts.fragment:
        url = f"{url}#{parts.fragment}"

    return url.rstrip("/")


def get_origin(url: str) -> str:
    """返回 URL 的 origin（scheme://host[:port]）."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc.rsplit('@', 1)[-1]}"
