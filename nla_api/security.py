from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from starlette.status import HTTP_403_FORBIDDEN

from nla_api.settings import Settings, settings

API_KEY_NAME = "X-NLA-Key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


def get_settings() -> Settings:
    """Small wrapper to allow dependency overrides in tests."""
    return settings


def _is_valid(key: str | None, current_settings: Settings) -> bool:
    return bool(current_settings.NLA_API_KEY) and key == current_settings.NLA_API_KEY


def get_api_key(
    api_key_header: str = Security(api_key_header),
    current_settings: Settings = Depends(get_settings),
):
    if _is_valid(api_key_header, current_settings):
        return api_key_header
    raise HTTPException(
        status_code=HTTP_403_FORBIDDEN,
        detail="Could not validate API key",
    )


def has_api_key(
    api_key_header: str = Security(api_key_header),
    current_settings: Settings = Depends(get_settings),
) -> bool:
    """Like get_api_key, but for public routes that only unlock extra data."""
    return _is_valid(api_key_header, current_settings)
