import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from nla_api import dependencies as deps
from nla_api.errors import InvalidPostInput, PostNotFoundError, server_error
from nla_api.schemas.newsletter import PostNotification
from nla_api.schemas.posts import (
    Post,
    PostDeleteResponse,
    PostInput,
    PostPage,
    PostUpdateResponse,
    TagCount,
)
from nla_api.security import get_api_key, has_api_key
from nla_api.services.image_service import UploadedFile
from nla_api.services.newsletter_service import NewsletterService
from nla_api.services.posts_service import PostsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])

THUMBNAIL_FIELD = "thumbnail"


@router.get("", response_model=List[Post])
def list_posts(
    include_drafts: bool = False,
    authorized: bool = Depends(has_api_key),
    service: PostsService = Depends(deps.get_posts_service),
):
    """Get all published posts, or every post with `include_drafts` and an API key."""
    if include_drafts and not authorized:
        raise HTTPException(status_code=403, detail="Could not validate API key")
    try:
        return service.list_posts(include_drafts=include_drafts)
    except Exception as e:
        logger.error(f"Unexpected error listing posts: {e}")
        raise server_error("Failed to retrieve posts", e)


@router.get("/latest", response_model=List[Post])
def latest_posts(
    limit: int = Query(3, ge=1, le=50),
    service: PostsService = Depends(deps.get_posts_service),
):
    try:
        return service.latest_posts(limit)
    except Exception as e:
        logger.error(f"Unexpected error fetching latest posts: {e}")
        raise server_error("Failed to retrieve latest posts", e)


@router.get("/search", response_model=List[Post])
def search_posts(
    q: Optional[str] = None,
    service: PostsService = Depends(deps.get_posts_service),
):
    try:
        return service.search_posts(q)
    except Exception as e:
        logger.error(f"Unexpected error searching posts for {q!r}: {e}")
        raise server_error("Failed to search posts", e)


@router.get("/popular-tags", response_model=List[TagCount])
def popular_tags(service: PostsService = Depends(deps.get_posts_service)):
    try:
        return service.popular_tags()
    except Exception as e:
        logger.error(f"Unexpected error aggregating tags: {e}")
        raise server_error("Failed to retrieve popular tags", e)


@router.get("/category/{category}", response_model=PostPage)
def posts_by_category(
    category: str,
    page: int = Query(1, ge=1),
    limit: int = Query(6, ge=1, le=100),
    service: PostsService = Depends(deps.get_posts_service),
):
    try:
        return service.list_by_category(category, page, limit)
    except Exception as e:
        logger.error(f"Unexpected error listing category {category}: {e}")
        raise server_error("Failed to retrieve posts", e)


@router.get("/tag/{tag}", response_model=PostPage)
def posts_by_tag(
    tag: str,
    page: int = Query(1, ge=1),
    limit: int = Query(6, ge=1, le=100),
    service: PostsService = Depends(deps.get_posts_service),
):
    try:
        return service.list_by_tag(tag, page, limit)
    except Exception as e:
        logger.error(f"Unexpected error listing tag {tag}: {e}")
        raise server_error("Failed to retrieve posts", e)


@router.get("/{post_id}", response_model=Post)
def get_post(
    post_id: str,
    authorized: bool = Depends(has_api_key),
    service: PostsService = Depends(deps.get_posts_service),
):
    """Get a single published post; drafts are visible with an API key."""
    try:
        post = service.get_post(post_id, include_drafts=authorized)
        if not post:
            raise HTTPException(status_code=404, detail="Post not found or not published")
        return post
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error retrieving post {post_id}: {e}")
        raise server_error("Failed to retrieve post", e)


@router.post(
    "",
    response_model=Post,
    status_code=201,
    dependencies=[Depends(get_api_key)],
)
async def create_post(
    request: Request,
    background_tasks: BackgroundTasks,
    service: PostsService = Depends(deps.get_posts_service),
    newsletter: NewsletterService = Depends(deps.get_newsletter_service),
):
    """Create a post from a multipart form.

    The `thumbnail` file field is the thumbnail; every other file field is a
    content image candidate, matched to image blocks by name or position.
    """
    try:
        form, thumbnail, files = await _read_post_form(request)
        post = await run_in_threadpool(service.create_post, form, thumbnail, files)
    except InvalidPostInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error creating post: {e}")
        raise server_error("Failed to create post", e)

    if post.status:
        logger.info(f"Scheduling newsletter campaign for {post.slug}")
        background_tasks.add_task(
            _send_post_campaign, newsletter, service.build_post_notification(post)
        )
    return post


@router.patch(
    "/{post_id}",
    response_model=PostUpdateResponse,
    dependencies=[Depends(get_api_key)],
)
async def update_post(
    post_id: str,
    request: Request,
    service: PostsService = Depends(deps.get_posts_service),
):
    try:
        form, thumbnail, files = await _read_post_form(request)
        post = await run_in_threadpool(
            service.update_post, post_id, form, thumbnail, files
        )
    except InvalidPostInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PostNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")
    except Exception as e:
        logger.error(f"Unexpected error updating post {post_id}: {e}")
        raise server_error("Failed to update post", e)

    return PostUpdateResponse(message="Post updated successfully", post=post)


@router.delete(
    "/{post_id}",
    response_model=PostDeleteResponse,
    dependencies=[Depends(get_api_key)],
)
def delete_post(
    post_id: str,
    service: PostsService = Depends(deps.get_posts_service),
):
    try:
        cleanup = service.delete_post(post_id)
    except PostNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")
    except Exception as e:
        logger.error(f"Unexpected error deleting post {post_id}: {e}")
        raise server_error("Failed to delete post", e)

    return PostDeleteResponse(
        message=(
            f"Post deleted successfully. {cleanup.deleted_count} media files removed."
        ),
        deletedMediaCount=cleanup.deleted_count,
        failedMediaCount=cleanup.failed_count,
    )


async def _read_post_form(
    request: Request,
) -> Tuple[PostInput, Optional[UploadedFile], List[UploadedFile]]:
    fields = {}
    thumbnail = None
    files = []

    async with request.form() as form:
        for name, value in form.multi_items():
            if not isinstance(value, UploadFile):
                fields[name] = value
                continue

            content = await value.read()
            if not content:
                # empty file inputs are sent when nothing was picked
                continue
            uploaded = UploadedFile(
                fieldname=name,
                filename=value.filename or "",
                content=content,
                content_type=value.content_type or "application/octet-stream",
            )
            if name == THUMBNAIL_FIELD:
                thumbnail = uploaded
            else:
                files.append(uploaded)

    return PostInput.model_validate(fields), thumbnail, files


def _send_post_campaign(newsletter: NewsletterService, notification: PostNotification):
    result = newsletter.create_post_campaign(notification)
    if result.success:
        logger.info(f"Newsletter campaign sent for {notification.slug}")
    else:
        logger.error(f"Newsletter campaign failed for {notification.slug}: {result.error}")
