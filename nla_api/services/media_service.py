import logging
from typing import Iterable, List

from nla_api.schemas.posts import ImageBlock, Post

logger = logging.getLogger(__name__)

THUMBNAIL_TRANSFORM = {
    "width": 600,
    "height": 400,
    "crop": "fill",
    "quality": "auto:best",
    "fetch_format": "auto",
    "dpr": "auto",
    "flags": "progressive",
}
CONTENT_IMAGE_TRANSFORM = {**THUMBNAIL_TRANSFORM, "width": 800, "height": 600}


class MediaService:
    """Turns stored asset references into delivery URLs at read time."""

    def __init__(self, storage):
        self.storage = storage

    def thumbnail_url(self, public_id: str) -> str:
        return self.storage.build_url(public_id, **THUMBNAIL_TRANSFORM)

    def content_image_url(self, public_id: str) -> str:
        return self.storage.build_url(public_id, **CONTENT_IMAGE_TRANSFORM)

    def render_post(self, post: Post, include_content: bool = True) -> Post:
        update = {}
        if post.thumbnail:
            try:
                update["thumbnail"] = self.thumbnail_url(post.thumbnail)
            except Exception as e:
                logger.warning(f"Error processing thumbnail url for post {post.id}: {e}")

        if include_content:
            update["content"] = [self._render_block(block) for block in post.content]

        return post.model_copy(update=update)

    def render_posts(self, posts: Iterable[Post], include_content: bool = False) -> List[Post]:
        return [self.render_post(post, include_content) for post in posts]

    def _render_block(self, block):
        if not isinstance(block, ImageBlock) or not block.url:
            return block
        try:
            return block.model_copy(update={"url": self.content_image_url(block.url)})
        except Exception as e:
            logger.warning(f"Error processing content image url: {e}")
            return block
