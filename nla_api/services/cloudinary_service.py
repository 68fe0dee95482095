import hashlib
import logging
import re
import time
from typing import Any, Callable, Dict, Optional

import httpx

from nla_api.errors import MediaStorageError
from nla_api.services.image_processor import process_image_buffer
from nla_api.settings import Settings, settings

logger = logging.getLogger(__name__)

_TRANSFORM_KEYS = (
    ("width", "w"),
    ("height", "h"),
    ("crop", "c"),
    ("quality", "q"),
    ("fetch_format", "f"),
    ("dpr", "dpr"),
    ("flags", "fl"),
)
_VERSION_SEGMENT = re.compile(r"^v\d+$")
_TRANSFORM_SEGMENT = re.compile(r"^(w|h|c|q|f|fl|dpr|g|e|ar|x|y|r|t)_[^/]+$")


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature: sha1 of the sorted params plus the secret."""
    to_sign = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if params[key] is not None and params[key] != ""
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def extract_public_id(url: str) -> Optional[str]:
    """Public id from a delivery URL, without transformations, version or extension."""
    if not url or "/upload/" not in url:
        return None

    path = url.split("/upload/", 1)[1].split("?", 1)[0]
    segments = [segment for segment in path.split("/") if segment]
    while segments and (
        "," in segments[0]
        or _VERSION_SEGMENT.match(segments[0])
        or _TRANSFORM_SEGMENT.match(segments[0])
    ):
        segments.pop(0)

    if not segments:
        return None
    segments[-1] = segments[-1].rsplit(".", 1)[0]
    return "/".join(segments)


def build_transformation(**options: Any) -> str:
    return ",".join(
        f"{short}_{options[name]}"
        for name, short in _TRANSFORM_KEYS
        if options.get(name) is not None
    )


class CloudinaryStorage:
    """Thin client for the Cloudinary upload and admin REST APIs."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        *,
        api_url: str = "https://api.cloudinary.com/v1_1",
        delivery_url: str = "https://res.cloudinary.com",
        thumbnail_folder: str = "thumbnails",
        archive_folder: str = "archive",
        client: httpx.Client | None = None,
        process_image: Callable[[bytes, str], bytes] = process_image_buffer,
        clock: Callable[[], float] = time.time,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_url = api_url.rstrip("/")
        self.delivery_url = delivery_url.rstrip("/")
        self.thumbnail_folder = thumbnail_folder
        self.archive_folder = archive_folder
        self.client = client or httpx.Client(timeout=httpx.Timeout(30.0, connect=5.0))
        self.process_image = process_image
        self.clock = clock

    @classmethod
    def from_settings(
        cls, current_settings: Settings = settings, client: httpx.Client | None = None
    ) -> "CloudinaryStorage":
        return cls(
            current_settings.CLOUDINARY_CLOUD_NAME,
            current_settings.CLOUDINARY_API_KEY,
            current_settings.CLOUDINARY_API_SECRET,
            api_url=current_settings.CLOUDINARY_API_URL,
            delivery_url=current_settings.CLOUDINARY_DELIVERY_URL,
            thumbnail_folder=current_settings.THUMBNAIL_FOLDER,
            archive_folder=current_settings.ARCHIVE_FOLDER,
            client=client,
        )

    def upload(self, content: bytes, folder: str, public_id: str) -> dict:
        kind = "thumbnail" if folder == self.thumbnail_folder else "content"
        processed = self.process_image(content, kind)
        if not processed:
            raise MediaStorageError("Missing processed file buffer")

        data = self._signed({"folder": folder, "public_id": public_id})
        result = self._post(
            "image/upload",
            data,
            files={"file": (f"{public_id}.jpg", processed, "image/jpeg")},
        )
        logger.info(f"Cloudinary upload success: {result.get('secure_url')}")
        return result

    def destroy(self, public_id: str) -> dict:
        if not public_id:
            raise ValueError("Public ID is required for deletion")

        result = self._post("image/destroy", self._signed({"public_id": public_id}))
        if result.get("result") == "ok":
            logger.info(f"Image deleted successfully: {public_id}")
        else:
            logger.warning(f"Image deletion returned unexpected result: {result}")
        return result

    def rename(self, from_public_id: str, to_public_id: str, overwrite: bool = True) -> dict:
        params = {
            "from_public_id": from_public_id,
            "to_public_id": to_public_id,
            "overwrite": "true" if overwrite else "false",
        }
        return self._post("image/rename", self._signed(params))

    def archive(self, public_id: str, source_folder: str) -> dict:
        """Move an asset from `<folder>/...` to `archive/<folder>/...`."""
        if not public_id:
            raise ValueError("Public ID is required for archiving")

        archive_path = public_id.replace(
            source_folder, f"{self.archive_folder}/{source_folder}", 1
        )
        result = self.rename(public_id, archive_path)
        logger.info(f"Archived image from {public_id} to {archive_path}")
        return result

    def ensure_folder(self, folder: str) -> None:
        url = f"{self.api_url}/{self.cloud_name}/folders/{folder}"
        try:
            response = self.client.post(url, auth=(self.api_key, self.api_secret))
            if response.status_code != 409:
                response.raise_for_status()
            logger.debug(f"Ensured folder exists: {folder}")
        except httpx.HTTPError as e:
            logger.warning(f"Folder creation failed for {folder}: {e}")

    def build_url(self, public_id: str, **transform: Any) -> str:
        if not public_id or public_id.startswith("http"):
            return public_id

        parts = [self.delivery_url, self.cloud_name, "image", "upload"]
        transformation = build_transformation(**transform)
        if transformation:
            parts.append(transformation)
        parts.append(public_id)
        return "/".join(parts)

    def _signed(self, params: Dict[str, Any]) -> Dict[str, str]:
        signed = {key: str(value) for key, value in params.items()}
        signed["timestamp"] = str(int(self.clock()))
        signed["signature"] = sign_params(signed, self.api_secret)
        signed["api_key"] = self.api_key
        return signed

    def _post(self, path: str, data: Dict[str, str], files=None) -> dict:
        url = f"{self.api_url}/{self.cloud_name}/{path}"
        try:
            response = self.client.post(url, data=data, files=files)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise MediaStorageError(f"Cloudinary request to {path} failed: {e}") from e
