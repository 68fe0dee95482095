import logging
import re
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from nla_api import dependencies as deps
from nla_api.errors import server_error
from nla_api.schemas.newsletter import PostNotification, SubscribeRequest
from nla_api.security import get_api_key, get_settings
from nla_api.services.newsletter_service import NewsletterService
from nla_api.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/newsletter", tags=["newsletter"])

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _failure(result, current_settings: Settings) -> JSONResponse:
    """500 body for a failed upstream call; upstream error text stays out of production."""
    exclude = {"error"} if current_settings.is_production else set()
    return JSONResponse(
        status_code=500, content=result.model_dump(exclude_none=True, exclude=exclude)
    )


@router.post("/subscribe", status_code=201)
async def subscribe(
    body: SubscribeRequest,
    service: NewsletterService = Depends(deps.get_newsletter_service),
    current_settings: Settings = Depends(get_settings),
):
    name = (body.name or "").strip()
    email = (body.email or "").strip().lower()
    if not name or not email:
        raise HTTPException(status_code=400, detail="Name and email are required.")
    if not EMAIL_PATTERN.match(email):
        raise HTTPException(status_code=400, detail="Enter a valid email address.")
    if len(name) < 2:
        raise HTTPException(
            status_code=400, detail="Name must be at least 2 characters."
        )

    try:
        result = await run_in_threadpool(service.subscribe_user, email, name)
    except Exception as e:
        logger.error(f"Newsletter subscription error: {e}")
        raise server_error("Server error. Please try again later.", e)

    if not result.success:
        return _failure(result, current_settings)
    return result.model_dump(exclude_none=True)


@router.post("/campaign", status_code=201, dependencies=[Depends(get_api_key)])
async def send_campaign(
    body: PostNotification,
    service: NewsletterService = Depends(deps.get_newsletter_service),
    current_settings: Settings = Depends(get_settings),
):
    if not body.title or not body.slug:
        raise HTTPException(status_code=400, detail="Post title and slug are required.")

    try:
        result = await run_in_threadpool(service.create_post_campaign, body)
    except Exception as e:
        logger.error(f"Newsletter campaign error: {e}")
        raise server_error("Campaign creation failed.", e)

    if not result.success:
        return _failure(result, current_settings)
    return result.model_dump(exclude_none=True)


@router.get("/stats", dependencies=[Depends(get_api_key)])
async def get_stats(
    service: NewsletterService = Depends(deps.get_newsletter_service),
    current_settings: Settings = Depends(get_settings),
):
    try:
        stats = await run_in_threadpool(service.get_subscription_stats)
    except Exception as e:
        logger.error(f"Newsletter stats error: {e}")
        raise server_error("Failed to fetch newsletter statistics.", e)

    if not stats.success:
        return _failure(stats, current_settings)
    return stats.model_dump(exclude_none=True)


@router.get("/test", dependencies=[Depends(get_api_key)])
async def test_connection(
    service: NewsletterService = Depends(deps.get_newsletter_service),
    current_settings: Settings = Depends(get_settings),
):
    stats = await run_in_threadpool(service.get_subscription_stats)
    return {
        "success": True,
        "message": "Newsletter service connection is working!",
        "apiStatus": "Connected" if stats.success else "Error",
        "configErrors": current_settings.newsletter_config_errors(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
