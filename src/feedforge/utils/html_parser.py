"""HTML 解析工具."""

import re

from bs4 import BeautifulSoup


def html_to_text(html: str | None) -> str:
    """
    将 HTML 转换为纯文本.

    Args:
        html: HTML 内容

    Returns:
        提取的纯文本内容，空白合并为单个空格
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "lxml")

    # 移除 script 和 style 标签
    for element in soup(["script", "style"]):
        element.decompose()

    text = soup.get_text(separator=" ")
    return re.sub(r"\s+", " ", text).strip()
