import math
import re

_NON_WORD = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-{2,}")


def slugify(title: str) -> str:
    slug = _NON_WORD.sub("", (title or "").lower()).strip()
    slug = _WHITESPACE.sub("-", slug)
    return _DASHES.sub("-", slug).strip("-")


def calculate_total_pages(total: int, per_page: int) -> int:
    if per_page <= 0:
        return 0
    return math.ceil(total / per_page)
