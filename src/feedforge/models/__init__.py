"""数据模型."""

from feedforge.models.database import close_db, init_db
from feedforge.models.item import Item
from feedforge.models.project import Project
from feedforge.models.source import FeedType, Source, SourceStatus
from feedforge.models.webhook import (
    DeliveryStatus,
    Webhook,
    WebhookDelivery,
    WebhookEvent,
)

__all__ = [
    "DeliveryStatus",
    "FeedType",
    "Item",
    "Project",
    "Source",
    "SourceStatus",
    "Webhook",
    "WebhookDelivery",
    "WebhookEvent",
    "close_db",
    "init_db",
]
