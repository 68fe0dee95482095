from fastapi import HTTPException

from nla_api.settings import settings


class PostNotFoundError(Exception):
    def __init__(self, post_id: str):
        super().__init__(f"Post not found: {post_id}")
        self.post_id = post_id


class InvalidPostInput(ValueError):
    """Client supplied post data that cannot be used (HTTP 400)."""


class UpstreamError(Exception):
    """A call to an external service failed on a required path."""


class MediaStorageError(UpstreamError):
    pass


class NewsletterError(UpstreamError):
    pass


def server_error(message: str, exc: Exception | None = None) -> HTTPException:
    """Generic 500; the underlying error is only exposed outside production."""
    detail = message
    if exc is not None and not settings.is_production:
        detail = f"{message}: {exc}"
    return HTTPException(status_code=500, detail=detail)
