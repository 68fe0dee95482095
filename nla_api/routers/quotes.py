import logging

from fastapi import APIRouter, Depends

from nla_api import dependencies as deps
from nla_api.errors import server_error
from nla_api.schemas.quotes import QuoteResponse, QuoteStatus, QuoteStatusResponse
from nla_api.security import get_api_key
from nla_api.services.quote_service import QuoteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.get("/daily", response_model=QuoteResponse, response_model_exclude_none=True)
def daily_quote(service: QuoteService = Depends(deps.get_quote_service)):
    try:
        return QuoteResponse(data=service.get_daily_quote())
    except Exception as e:
        logger.error(f"Error getting daily quote: {e}")
        raise server_error("Failed to get daily quote", e)


@router.post(
    "/refresh",
    response_model=QuoteResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(get_api_key)],
)
def refresh_quote(service: QuoteService = Depends(deps.get_quote_service)):
    try:
        quote = service.force_refresh()
    except Exception as e:
        logger.error(f"Error refreshing quote: {e}")
        raise server_error("Failed to refresh quote", e)
    return QuoteResponse(data=quote, message="Quote refreshed successfully")


@router.get("/status", response_model=QuoteStatusResponse)
def quote_status(service: QuoteService = Depends(deps.get_quote_service)):
    try:
        return QuoteStatusResponse(data=QuoteStatus(**service.status()))
    except Exception as e:
        logger.error(f"Error getting quote status: {e}")
        raise server_error("Failed to get quote status", e)
