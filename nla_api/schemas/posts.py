from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator

TEXT_BLOCK_TYPES = ("paragraph", "heading", "bulletList", "orderedList")


class TextBlock(BaseModel):
    """Paragraphs, headings and lists; `text` holds the rendered HTML."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["paragraph", "heading", "bulletList", "orderedList"] = "paragraph"
    text: str = ""


class QuoteBlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["blockquote"] = "blockquote"
    text: str = ""
    author: Optional[str] = None


class ImageBlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["image"] = "image"
    url: str = ""
    caption: Optional[str] = None
    # upload hints sent by the editor, never stored
    filename: Optional[str] = Field(default=None, exclude=True)
    src: Optional[str] = Field(default=None, exclude=True)


class YoutubeBlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["youtube"] = "youtube"
    url: str = ""


class GenericBlock(BaseModel):
    """Block types the backend does not know about, kept as string fields."""

    model_config = ConfigDict(extra="allow")

    type: str


def _block_tag(value: Any) -> str:
    if isinstance(value, dict):
        block_type = value.get("type")
    else:
        block_type = getattr(value, "type", None)

    if block_type in TEXT_BLOCK_TYPES:
        return "text"
    if block_type in ("blockquote", "image", "youtube"):
        return block_type
    return "generic"


ContentBlock = Annotated[
    Union[
        Annotated[TextBlock, Tag("text")],
        Annotated[QuoteBlock, Tag("blockquote")],
        Annotated[ImageBlock, Tag("image")],
        Annotated[YoutubeBlock, Tag("youtube")],
        Annotated[GenericBlock, Tag("generic")],
    ],
    Discriminator(_block_tag),
]


class Post(BaseModel):
    id: str
    title: str
    slug: str
    formatCategory: str = "Uncategorized"
    contentCategory: str = "Uncategorized"
    tags: List[str] = Field(default_factory=list)
    thumbnail: Optional[str] = None
    createdAt: datetime
    editDates: List[datetime] = Field(default_factory=list)
    author: str = "Anonymous"
    status: bool = False
    content: List[ContentBlock] = Field(default_factory=list)

    @field_validator("createdAt")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("editDates")
    @classmethod
    def _edit_dates_utc(cls, value: List[datetime]) -> List[datetime]:
        return [_as_utc(item) for item in value]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PostInput(BaseModel):
    """Raw text fields of the multipart create/update form.

    `tags` and `content` arrive as JSON strings, `status` as "true"/"false".
    Anything left as None keeps its previous value on update.
    """

    title: Optional[str] = None
    formatCategory: Optional[str] = None
    contentCategory: Optional[str] = None
    tags: Any = None
    content: Any = None
    author: Optional[str] = None
    status: Any = None


class PostPage(BaseModel):
    posts: List[Post]
    totalPosts: int
    totalPages: int
    currentPage: int
    postsPerPage: int


class TagCount(BaseModel):
    name: str
    count: int


class PostUpdateResponse(BaseModel):
    message: str
    post: Post


class PostDeleteResponse(BaseModel):
    message: str
    deletedMediaCount: int
    failedMediaCount: int
