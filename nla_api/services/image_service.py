import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from nla_api.schemas.posts import ContentBlock, ImageBlock
from nla_api.services.cloudinary_service import extract_public_id

logger = logging.getLogger(__name__)

UploadFn = Callable[[bytes, str, str], dict]
ArchiveFn = Callable[[str, str], object]


@dataclass
class UploadedFile:
    """A file part of the multipart create/update form."""

    fieldname: str
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class ImageUpload:
    index: int
    public_id: str
    replaced: Optional[str] = None


@dataclass
class ImageFailure:
    index: int
    error: str


@dataclass
class ReconciliationResult:
    blocks: List[ContentBlock]
    succeeded: List[ImageUpload] = field(default_factory=list)
    failed: List[ImageFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def is_hosted_reference(url: Optional[str], folder: str = "content-images") -> bool:
    if not url:
        return False
    return url.startswith("http") or url.startswith(f"{folder}/")


def image_identifier(block: ImageBlock, folder: str = "content-images") -> Optional[str]:
    if block.filename:
        return block.filename
    for candidate in (block.src, block.url):
        if candidate and not is_hosted_reference(candidate, folder):
            return candidate
    return None


def find_image_file(
    files: Sequence[UploadedFile],
    block: ImageBlock,
    index: int,
    folder: str = "content-images",
) -> Optional[UploadedFile]:
    """Match an uploaded file to an image block.

    Exact filename, then exact field name, then substring containment; if
    nothing matches, the file uploaded at the block's position is used.
    """
    if not files:
        return None

    identifier = image_identifier(block, folder)
    if not identifier:
        return None

    logger.debug(f"Looking for file with identifier: {identifier}")
    for f in files:
        if f.filename == identifier:
            return f
    for f in files:
        if f.fieldname == identifier:
            return f
    for f in files:
        if identifier in f.fieldname:
            return f
        if f.filename and (f.filename in identifier or identifier in f.filename):
            return f

    if index < len(files):
        logger.info(f"No match for {identifier}, using file at index {index}")
        return files[index]
    return None


def _archivable_id(url: Optional[str], folder: str) -> Optional[str]:
    if not url:
        return None
    public_id = extract_public_id(url) if url.startswith("http") else url
    if public_id and public_id.startswith(folder):
        return public_id
    return None


def process_content_images(
    blocks: Sequence[ContentBlock],
    files: Sequence[UploadedFile],
    upload: UploadFn,
    slug: str,
    archive: Optional[ArchiveFn] = None,
    *,
    folder: str = "content-images",
    clock: Callable[[], float] = time.time,
) -> ReconciliationResult:
    """Upload new files for image blocks and point the blocks at them.

    Each block is handled on its own: a failed upload is recorded in
    `failed` and the block keeps its previous url. Archiving the replaced
    asset is best effort and only logged.
    """
    files = list(files or [])
    result = ReconciliationResult(blocks=list(blocks or []))
    logger.info(
        f"Processing {len(result.blocks)} content blocks with {len(files)} image files"
    )

    sequence = 1
    for i, block in enumerate(result.blocks):
        if not isinstance(block, ImageBlock):
            continue

        file = find_image_file(files, block, i, folder)
        if file is None:
            if block.url:
                logger.debug(f"Keeping existing image url: {block.url}")
            else:
                logger.warning(f"Image block {i} has no filename or url identifier")
            result.blocks[i] = block.model_copy(update={"filename": None, "src": None})
            continue

        name = f"{slug}-content-{int(clock() * 1000)}-{sequence}"
        try:
            uploaded = upload(file.content, folder, name)
            public_id = uploaded["public_id"]
        except Exception as e:
            logger.error(f"Error uploading content image for block {i}: {e}")
            result.failed.append(ImageFailure(index=i, error=str(e)))
            continue

        previous_id = _archivable_id(block.url, folder)
        if archive is not None and previous_id:
            try:
                archive(previous_id, folder)
            except Exception as e:
                logger.warning(f"Error archiving old image {previous_id}: {e}")

        result.blocks[i] = block.model_copy(
            update={"url": public_id, "filename": None, "src": None}
        )
        result.succeeded.append(
            ImageUpload(index=i, public_id=public_id, replaced=block.url or None)
        )
        logger.info(f"Content image uploaded: {public_id}")
        sequence += 1

    return result
