"""Normalizes editor-submitted content into canonical content blocks.

The editor has gone through several formats over time: blocks may carry
their text under `content` or `text`, images under `url` or `src`, and the
oldest posts nest everything inside a `data` object. `format_block` is the
single place that knows about those shapes; everything past it works with
the models in `nla_api.schemas.posts`.
"""

import html
import json
import logging
import re
from typing import Any, Iterable, List, Optional

from pydantic import TypeAdapter

from nla_api.errors import InvalidPostInput
from nla_api.schemas.posts import ContentBlock, TextBlock

logger = logging.getLogger(__name__)

_block_adapter = TypeAdapter(ContentBlock)
_LEGACY_DATA_FIELDS = ("text", "url", "caption", "filename")
_TAG_PATTERN = re.compile(r"<[^>]+>")


def parse_content(raw: Any, fallback: Optional[list] = None) -> list:
    """Turn the `content` form field into a list of raw block dicts."""
    fallback = list(fallback or [])
    if raw is None:
        return fallback
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        return [raw]
    if isinstance(raw, str):
        if not raw.strip():
            return fallback
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidPostInput(f"Content must be valid JSON: {e}") from e
        if not isinstance(parsed, list):
            logger.warning("Content parsed but is not an array, treating as text")
            return [{"type": "paragraph", "text": raw}]
        return parsed
    return fallback


def parse_tags(raw: Any) -> Optional[List[str]]:
    """Accept a JSON array or a comma separated string; None means not provided."""
    if raw is None:
        return None
    if isinstance(raw, list):
        return _clean_tags(raw)
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError as e:
                raise InvalidPostInput(f"Tags must be valid JSON: {e}") from e
            return _clean_tags(parsed)
        return _clean_tags(text.split(","))
    return []


def _clean_tags(values: Iterable[Any]) -> List[str]:
    tags = []
    for value in values:
        if value is None:
            continue
        tag = str(value).strip()
        if tag:
            tags.append(tag)
    return tags


def _first_value(raw: dict, *keys: str, default: Optional[str] = "") -> Optional[str]:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, bool) or not value:
            continue
        if isinstance(value, (str, int, float)):
            return str(value)
    return default


def _optional_text(raw: dict, key: str, fallback_key: str) -> Optional[str]:
    """Like _first_value, but an explicit empty string under `key` is kept."""
    value = _first_value(raw, key, fallback_key, default=None)
    if value is None and isinstance(raw.get(key), str):
        return raw[key]
    return value


def format_block(raw: Any) -> ContentBlock:
    if not isinstance(raw, dict):
        logger.warning(f"Invalid block {raw!r}, defaulting to empty paragraph")
        return TextBlock()

    block_type = raw.get("type")
    if not block_type or not isinstance(block_type, str):
        logger.warning("Block missing type, defaulting to paragraph")
        block_type = "paragraph"

    fields: dict = {"type": block_type}
    if block_type in ("paragraph", "heading"):
        fields["text"] = _first_value(raw, "content", "text")
    elif block_type in ("bulletList", "orderedList"):
        fields["text"] = _first_value(raw, "content", "text", "html")
    elif block_type == "blockquote":
        fields["text"] = _first_value(raw, "content", "text")
        fields["author"] = _optional_text(raw, "author", "subtext")
    elif block_type == "image":
        fields["url"] = _first_value(raw, "url", "src")
        fields["caption"] = _optional_text(raw, "caption", "alt")
        fields["filename"] = _first_value(raw, "filename", default=None)
        fields["src"] = _first_value(raw, "src", default=None)
    elif block_type == "youtube":
        fields["url"] = _first_value(raw, "videoId", "url")
    else:
        fields.update(
            {
                key: value
                for key, value in raw.items()
                if key != "type" and isinstance(value, str)
            }
        )

    # oldest editor format: {"type": ..., "data": {"text": ..., "url": ...}}
    data = raw.get("data")
    if isinstance(data, dict):
        for key in _LEGACY_DATA_FIELDS:
            value = data.get(key)
            if value and isinstance(value, str):
                fields[key] = value

    return _block_adapter.validate_python(fields)


def format_content_blocks(raw_blocks: Optional[Iterable[Any]]) -> List[ContentBlock]:
    if not raw_blocks:
        return []
    return [format_block(raw) for raw in raw_blocks]


def dump_blocks(blocks: Iterable[ContentBlock]) -> List[dict]:
    """Canonical dicts for storage."""
    return [block.model_dump(exclude_none=True) for block in blocks]


def extract_excerpt(blocks: Iterable[ContentBlock], length: int = 200) -> str:
    for block in blocks:
        if isinstance(block, TextBlock) and block.type == "paragraph" and block.text:
            text = html.unescape(_TAG_PATTERN.sub("", block.text)).strip()
            if not text:
                continue
            if len(text) > length:
                return text[:length].rstrip() + "..."
            return text
    return ""
