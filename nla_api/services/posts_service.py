import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence

from nla_api.errors import InvalidPostInput, MediaStorageError, PostNotFoundError
from nla_api.schemas.newsletter import PostNotification
from nla_api.schemas.posts import ImageBlock, Post, PostInput, PostPage, TagCount
from nla_api.services.cloudinary_service import extract_public_id
from nla_api.services.content_service import (
    dump_blocks,
    extract_excerpt,
    format_content_blocks,
    parse_content,
    parse_tags,
)
from nla_api.services.image_service import (
    ReconciliationResult,
    UploadedFile,
    process_content_images,
)
from nla_api.settings import Settings, settings
from nla_api.utils import calculate_total_pages, slugify

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Uncategorized"
DEFAULT_AUTHOR = "Anonymous"


@dataclass
class MediaCleanupResult:
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


class PostsService:
    def __init__(
        self,
        repo,
        storage,
        media,
        current_settings: Settings = settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repo = repo
        self.storage = storage
        self.media = media
        self.settings = current_settings
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # --- reads ---

    def list_posts(self, include_drafts: bool = False) -> List[Post]:
        posts = self._all_posts(include_drafts)
        return self.media.render_posts(posts, include_content=True)

    def get_post(self, post_id: str, include_drafts: bool = False) -> Optional[Post]:
        doc = self.repo.get_post_doc(post_id)
        post = post_from_doc(doc) if doc else None
        if post is None or (not post.status and not include_drafts):
            return None
        return self.media.render_post(post, include_content=True)

    def list_by_category(self, category: str, page: int = 1, limit: int = 6) -> PostPage:
        posts = [
            post
            for post in self._all_posts()
            if category in (post.formatCategory, post.contentCategory)
        ]
        logger.info(f"Found {len(posts)} posts in category {category}")
        return self._paginate(posts, page, limit)

    def list_by_tag(self, tag: str, page: int = 1, limit: int = 6) -> PostPage:
        posts = [post for post in self._all_posts() if tag in post.tags]
        logger.info(f"Found {len(posts)} posts with tag {tag}")
        return self._paginate(posts, page, limit)

    def latest_posts(self, limit: int = 3) -> List[Post]:
        return self.media.render_posts(self._all_posts()[:limit])

    def search_posts(self, query: Optional[str]) -> List[Post]:
        term = (query or "").strip().lower()
        if not term:
            return []
        matches = [post for post in self._all_posts() if term in post.title.lower()]
        logger.info(f'Found {len(matches)} posts matching "{term}"')
        return self.media.render_posts(matches[: self.settings.SEARCH_RESULT_LIMIT])

    def popular_tags(self, limit: Optional[int] = None) -> List[TagCount]:
        limit = limit or self.settings.POPULAR_TAGS_LIMIT
        counts = Counter(tag for post in self._all_posts() for tag in post.tags)
        return [TagCount(name=name, count=count) for name, count in counts.most_common(limit)]

    def _all_posts(self, include_drafts: bool = False) -> List[Post]:
        posts = []
        for doc in self.repo.list_post_docs():
            try:
                post = post_from_doc(doc)
            except Exception as e:
                logger.warning(f"Skipping unreadable post {doc.get('_id')}: {e}")
                continue
            if include_drafts or post.status:
                posts.append(post)
        posts.sort(key=lambda p: p.createdAt, reverse=True)
        return posts

    def _paginate(self, posts: List[Post], page: int, limit: int) -> PostPage:
        start = (page - 1) * limit
        return PostPage(
            posts=self.media.render_posts(posts[start : start + limit]),
            totalPosts=len(posts),
            totalPages=calculate_total_pages(len(posts), limit),
            currentPage=page,
            postsPerPage=limit,
        )

    # --- writes ---

    def create_post(
        self,
        form: PostInput,
        thumbnail: Optional[UploadedFile] = None,
        files: Sequence[UploadedFile] = (),
    ) -> Post:
        title = (form.title or "").strip()
        if not title:
            raise InvalidPostInput("Title is required")
        if thumbnail is None and self.settings.REQUIRE_THUMBNAIL:
            raise InvalidPostInput("Thumbnail is required")

        raw_content = parse_content(form.content)
        tags = parse_tags(form.tags) or []
        slug = slugify(title)
        now = self.clock()

        thumbnail_id = self._upload_thumbnail(thumbnail, slug, now) if thumbnail else None
        reconciliation = self._reconcile_images(raw_content, files, slug, now, archive=False)

        data = {
            "title": title,
            "slug": slug,
            "formatCategory": form.formatCategory or DEFAULT_CATEGORY,
            "contentCategory": form.contentCategory or DEFAULT_CATEGORY,
            "tags": tags,
            "thumbnail": thumbnail_id,
            "createdAt": now.isoformat(),
            "editDates": [],
            "author": form.author or DEFAULT_AUTHOR,
            "status": parse_status(form.status, self.settings.DEFAULT_POST_STATUS),
            "content": dump_blocks(reconciliation.blocks),
        }
        logger.info(
            f"Creating post {slug} with {len(data['content'])} content blocks"
        )
        saved = self.repo.create_post_doc(data)
        return post_from_doc(saved)

    def update_post(
        self,
        post_id: str,
        form: PostInput,
        thumbnail: Optional[UploadedFile] = None,
        files: Sequence[UploadedFile] = (),
    ) -> Post:
        doc = self.repo.get_post_doc(post_id)
        if doc is None:
            raise PostNotFoundError(post_id)
        existing = post_from_doc(doc)

        title = (form.title or "").strip() or existing.title
        slug = slugify(title)
        raw_content = parse_content(form.content, fallback=doc.get("content") or [])
        tags = parse_tags(form.tags)
        now = self.clock()

        thumbnail_id = existing.thumbnail
        if thumbnail is not None:
            thumbnail_id = self._upload_thumbnail(thumbnail, slug, now)

        reconciliation = self._reconcile_images(raw_content, files, slug, now, archive=True)

        doc.update(
            {
                "title": title,
                "slug": slug,
                "formatCategory": form.formatCategory or existing.formatCategory,
                "contentCategory": form.contentCategory or existing.contentCategory,
                "tags": tags if tags is not None else existing.tags,
                "thumbnail": thumbnail_id,
                "author": form.author or existing.author,
                "status": parse_status(form.status, existing.status),
                "content": dump_blocks(reconciliation.blocks),
                "editDates": [*(doc.get("editDates") or []), now.isoformat()],
            }
        )
        saved = self.repo.save_post_doc(doc)
        logger.info(f"Post {post_id} updated")

        if thumbnail is not None:
            self._archive_thumbnail(existing.thumbnail)
        return post_from_doc(saved)

    def delete_post(self, post_id: str) -> MediaCleanupResult:
        """Remove every hosted asset of the post, then the post itself.

        Asset deletions are independent; failures are counted and the
        document is deleted regardless.
        """
        doc = self.repo.get_post_doc(post_id)
        if doc is None:
            raise PostNotFoundError(post_id)
        post = post_from_doc(doc)
        logger.info(f"Deleting post {post.title} ({post.id})")

        cleanup = MediaCleanupResult()
        if post.thumbnail:
            self._delete_asset(post.thumbnail, cleanup)

        for block in post.content:
            if not isinstance(block, ImageBlock):
                continue
            if block.url:
                self._delete_asset(block.url, cleanup)
            else:
                logger.warning(f"Image block in post {post.id} has no asset reference")

        self.repo.delete_post_doc(doc)
        logger.info(
            f"Post deleted. Media deleted: {cleanup.deleted_count}, failed: {cleanup.failed_count}"
        )
        return cleanup

    def build_post_notification(self, post: Post) -> PostNotification:
        thumbnail = self.media.thumbnail_url(post.thumbnail) if post.thumbnail else None
        return PostNotification(
            title=post.title,
            slug=post.slug,
            excerpt=extract_excerpt(post.content),
            thumbnail=thumbnail,
            publishDate=post.createdAt,
        )

    def _upload_thumbnail(self, file: UploadedFile, slug: str, now: datetime) -> str:
        name = f"{slug}-thumbnail-{int(now.timestamp() * 1000)}"
        try:
            result = self.storage.upload(file.content, self.settings.THUMBNAIL_FOLDER, name)
        except MediaStorageError:
            raise
        except Exception as e:
            raise MediaStorageError(f"Thumbnail upload failed: {e}") from e
        logger.info(f"Thumbnail uploaded successfully: {result['public_id']}")
        return result["public_id"]

    def _archive_thumbnail(self, current: Optional[str]) -> None:
        folder = self.settings.THUMBNAIL_FOLDER
        old_id = _public_id(current)
        if not old_id or not old_id.startswith(folder):
            return
        try:
            self.storage.archive(old_id, folder)
        except Exception as e:
            logger.warning(f"Thumbnail archiving failed for {old_id}: {e}")

    def _reconcile_images(
        self,
        raw_content: list,
        files: Sequence[UploadedFile],
        slug: str,
        now: datetime,
        archive: bool,
    ) -> ReconciliationResult:
        result = process_content_images(
            format_content_blocks(raw_content),
            files,
            self.storage.upload,
            slug,
            archive=self.storage.archive if archive else None,
            folder=self.settings.CONTENT_IMAGE_FOLDER,
            clock=now.timestamp,
        )
        if result.failed:
            logger.warning(
                f"{len(result.failed)} content image(s) failed to upload for {slug}"
            )
            if self.settings.STRICT_CONTENT_IMAGES:
                raise MediaStorageError(
                    f"{len(result.failed)} content image(s) failed to upload"
                )
        return result

    def _delete_asset(self, reference: str, cleanup: MediaCleanupResult) -> None:
        public_id = _public_id(reference)
        if not public_id:
            logger.warning(f"Could not determine public id for {reference}")
            cleanup.failed.append(reference)
            return
        try:
            result = self.storage.destroy(public_id)
        except Exception as e:
            logger.error(f"Error deleting image {public_id}: {e}")
            cleanup.failed.append(public_id)
            return

        if result.get("result") == "ok":
            cleanup.deleted.append(public_id)
        else:
            cleanup.failed.append(public_id)


def _public_id(reference: Optional[str]) -> Optional[str]:
    if not reference:
        return None
    if reference.startswith("http"):
        return extract_public_id(reference)
    return reference


def parse_status(raw: Any, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if not text:
        return default
    return text == "true"


def post_from_doc(doc: dict) -> Post:
    blocks = []
    for block in format_content_blocks(doc.get("content")):
        # old posts kept the asset reference in data.filename
        if isinstance(block, ImageBlock) and not block.url and block.filename:
            block = block.model_copy(update={"url": block.filename, "filename": None})
        blocks.append(block)

    title = doc.get("title") or ""
    return Post(
        id=doc["_id"],
        title=title,
        slug=doc.get("slug") or slugify(title),
        formatCategory=doc.get("formatCategory") or DEFAULT_CATEGORY,
        contentCategory=doc.get("contentCategory") or DEFAULT_CATEGORY,
        tags=doc.get("tags") or [],
        thumbnail=doc.get("thumbnail"),
        createdAt=doc.get("createdAt") or datetime.fromtimestamp(0, timezone.utc),
        editDates=doc.get("editDates") or [],
        author=doc.get("author") or DEFAULT_AUTHOR,
        status=bool(doc.get("status", False)),
        content=blocks,
    )
