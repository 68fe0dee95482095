from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class SubscribeRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class PostNotification(BaseModel):
    title: Optional[str] = None
    slug: Optional[str] = None
    excerpt: Optional[str] = None
    thumbnail: Optional[str] = None
    publishDate: Optional[datetime] = None


class NewsletterResult(BaseModel):
    success: bool
    message: str = ""
    data: Optional[Any] = None
    campaignId: Optional[int] = None
    error: Optional[str] = None


class SubscriptionStats(BaseModel):
    success: bool
    totalSubscribers: Optional[int] = None
    totalBlacklisted: Optional[int] = None
    uniqueSubscribers: Optional[int] = None
    error: Optional[str] = None
