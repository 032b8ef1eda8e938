"""模型公共字段."""

import uuid
from datetime import UTC, datetime


def new_id() -> str:
    """生成主键."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """当前 UTC 时间."""
    return datetime.now(UTC)
