import html
import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import quote

import httpx

from nla_api.schemas.newsletter import NewsletterResult, PostNotification, SubscriptionStats
from nla_api.settings import Settings, settings

logger = logging.getLogger(__name__)

DUPLICATE_CONTACT_MARKER = "Contact already exist"
DEFAULT_EXCERPT = "Click to read our newest post!"

EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>New post: {title}</title>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #097bed; color: white; padding: 20px; text-align: center; border-radius: 10px 10px 0 0; }}
        .content {{ background: #f8f9fa; padding: 30px; border-radius: 0 0 10px 10px; }}
        .post-image {{ width: 100%; max-width: 500px; height: auto; border-radius: 10px; margin: 20px 0; }}
        .btn {{ background: #097bed; color: white; padding: 15px 30px; text-decoration: none; border-radius: 5px; display: inline-block; margin: 20px 0; }}
        .footer {{ text-align: center; padding: 20px; font-size: 12px; color: #666; }}
    </style>
</head>
<body>
    <div class="header">
        {logo}
        <h1>{sender_name}</h1>
        <p>A new post is live!</p>
    </div>
    <div class="content">
        <h2>{title}</h2>
        {image}
        <p>{excerpt}</p>
        <a href="{post_url}" class="btn">Read the post</a>
        <p style="margin-top: 30px;"><small>Published: {publish_date}</small></p>
    </div>
    <div class="footer">
        <p>You are receiving this email because you subscribed to the {sender_name} newsletter.</p>
        <p>To unsubscribe <a href="{{{{unsubscribe}}}}">click here</a>.</p>
        <p>&copy; {year} {sender_name}. All rights reserved.</p>
    </div>
</body>
</html>
"""


class NewsletterService:
    """Brevo contacts and email campaign calls.

    Every public method reports upstream problems through the returned
    result instead of raising, so callers can answer with a JSON body.
    """

    def __init__(
        self,
        current_settings: Settings = settings,
        client: httpx.Client | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = current_settings
        self.list_id = current_settings.BREVO_LIST_ID
        self.client = client or httpx.Client(
            base_url=current_settings.BREVO_API_URL,
            timeout=httpx.Timeout(30.0, connect=5.0),
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def _headers(self) -> dict:
        return {
            "api-key": self.settings.BREVO_SUBSCRIBE_API,
            "accept": "application/json",
        }

    def subscribe_user(self, email: str, first_name: str) -> NewsletterResult:
        payload = {
            "email": email,
            "attributes": {"FIRSTNAME": first_name},
            "listIds": [self.list_id],
            "updateEnabled": True,
        }
        try:
            response = self.client.post("/contacts", json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            logger.error(f"Newsletter subscription error: {e}")
            return NewsletterResult(
                success=False,
                message="Subscription failed. Please try again.",
                error=str(e),
            )

        if response.is_success:
            logger.info(f"User subscribed successfully: {email}")
            return NewsletterResult(
                success=True,
                message="Subscribed successfully!",
                data=_json_or_none(response),
            )

        body = _json_or_none(response) or {}
        error_message = str(body.get("message", response.text))
        if response.status_code == 400 and DUPLICATE_CONTACT_MARKER in error_message:
            return NewsletterResult(
                success=True, message="This email address is already subscribed!"
            )

        logger.error(
            f"Newsletter subscription error: {response.status_code} {error_message}"
        )
        return NewsletterResult(
            success=False,
            message="Subscription failed. Please try again.",
            error=error_message,
        )

    def create_post_campaign(self, notification: PostNotification) -> NewsletterResult:
        """Create an email campaign for a post and send it right away."""
        payload = {
            "name": f"Blog Post: {notification.title}",
            "subject": f"New post: {notification.title}",
            "sender": {
                "name": self.settings.BREVO_SENDER_NAME,
                "email": self.settings.BREVO_SENDER_EMAIL,
            },
            "htmlContent": self.render_post_email(notification),
            "recipients": {"listIds": [self.list_id]},
        }
        try:
            response = self.client.post(
                "/emailCampaigns", json=payload, headers=self._headers
            )
            response.raise_for_status()
            campaign_id = response.json()["id"]
            logger.info(f"Campaign created successfully: {campaign_id}")

            response = self.client.post(
                f"/emailCampaigns/{campaign_id}/sendNow", headers=self._headers
            )
            response.raise_for_status()
            logger.info(f"Campaign sent successfully: {campaign_id}")
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Campaign creation error: {e}")
            return NewsletterResult(
                success=False,
                message="Failed to create the email campaign.",
                error=str(e),
            )

        return NewsletterResult(
            success=True,
            campaignId=campaign_id,
            message="Email campaign sent successfully!",
        )

    def get_subscription_stats(self) -> SubscriptionStats:
        try:
            response = self.client.get(
                f"/contacts/lists/{self.list_id}", headers=self._headers
            )
            response.raise_for_status()
            info = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching subscription stats: {e}")
            return SubscriptionStats(success=False, error=str(e))

        return SubscriptionStats(
            success=True,
            totalSubscribers=info.get("totalSubscribers"),
            totalBlacklisted=info.get("totalBlacklisted"),
            uniqueSubscribers=info.get("uniqueSubscribers"),
        )

    def render_post_email(self, notification: PostNotification) -> str:
        title = html.escape(notification.title or "")
        post_url = (
            f"{self.settings.BASE_URL.rstrip('/')}/post.html?slug="
            f"{quote(notification.slug or '')}"
        )
        image = ""
        if notification.thumbnail:
            image = (
                f'<img src="{html.escape(notification.thumbnail)}" '
                f'alt="{title}" class="post-image">'
            )
        logo = ""
        if self.settings.NEWSLETTER_LOGO_URL:
            logo = (
                f'<img src="{html.escape(self.settings.NEWSLETTER_LOGO_URL)}" '
                f'alt="logo" height="48">'
            )

        published = notification.publishDate or self.clock()
        return EMAIL_TEMPLATE.format(
            title=title,
            sender_name=html.escape(self.settings.BREVO_SENDER_NAME),
            logo=logo,
            image=image,
            excerpt=html.escape(notification.excerpt or DEFAULT_EXCERPT),
            post_url=html.escape(post_url),
            publish_date=published.strftime("%d.%m.%Y"),
            year=self.clock().year,
        )


def _json_or_none(response: httpx.Response) -> Optional[dict]:
    try:
        return response.json()
    except ValueError:
        return None
