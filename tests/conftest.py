import copy
from datetime import datetime, timezone

import pycouchdb
import pytest

from nla_api.repos.posts_repo import CouchPostsRepo
from nla_api.schemas.newsletter import NewsletterResult
from nla_api.services.image_service import UploadedFile
from nla_api.services.media_service import MediaService
from nla_api.services.posts_service import PostsService
from nla_api.settings import Settings


class FakeCouchDB:
    """
    Minimal in-memory CouchDB stand-in.
    Documents are copied on the way in and out, like a real server would.
    """

    def __init__(self, docs: dict | None = None):
        self.docs = docs if docs is not None else {}
        self.saved = []
        self.deleted = []
        self._rev = 0

    def get(self, doc_id: str) -> dict:
        if doc_id not in self.docs:
            raise pycouchdb.exceptions.NotFound(doc_id)
        return copy.deepcopy(self.docs[doc_id])

    def all(self, include_docs: bool = True):
        if include_docs:
            return [{"doc": copy.deepcopy(doc)} for doc in self.docs.values()]
        return [{"id": doc_id} for doc_id in self.docs]

    def save(self, doc: dict) -> dict:
        self._rev += 1
        stored = copy.deepcopy(doc)
        stored["_rev"] = f"{self._rev}-fake"
        self.docs[stored["_id"]] = stored
        self.saved.append(stored["_id"])
        return copy.deepcopy(stored)

    def delete(self, doc: dict) -> None:
        doc_id = doc["_id"]
        if doc_id not in self.docs:
            raise pycouchdb.exceptions.NotFound(doc_id)
        del self.docs[doc_id]
        self.deleted.append(doc_id)


class FakeStorage:
    """
    Media hosting stand-in that records every call.
    `fail_uploads` holds file contents whose upload raises; `reject_deletes`
    and `raise_deletes` hold public ids whose deletion fails.
    """

    def __init__(self, fail_uploads=(), reject_deletes=(), raise_deletes=()):
        self.fail_uploads = set(fail_uploads)
        self.reject_deletes = set(reject_deletes)
        self.raise_deletes = set(raise_deletes)
        self.uploads = []
        self.destroyed = []
        self.archived = []
        self.folders = []

    def upload(self, content: bytes, folder: str, public_id: str) -> dict:
        if content in self.fail_uploads:
            raise RuntimeError("upload rejected")
        self.uploads.append((folder, public_id, content))
        return {"public_id": f"{folder}/{public_id}"}

    def destroy(self, public_id: str) -> dict:
        self.destroyed.append(public_id)
        if public_id in self.raise_deletes:
            raise RuntimeError("destroy failed")
        if public_id in self.reject_deletes:
            return {"result": "not found"}
        return {"result": "ok"}

    def archive(self, public_id: str, source_folder: str) -> dict:
        self.archived.append((public_id, source_folder))
        return {"public_id": f"archive/{public_id}"}

    def ensure_folder(self, folder: str) -> None:
        self.folders.append(folder)

    def build_url(self, public_id: str, **transform) -> str:
        if not public_id or public_id.startswith("http"):
            return public_id
        return f"https://cdn.test/w_{transform.get('width')}/{public_id}"


class FakeClock:
    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class FakePostsService:
    """
    Minimal posts service stand-in for router tests.
    """

    def __init__(self, posts=None, page=None, tags=None, cleanup=None):
        self.posts = posts or []
        self.page = page
        self.tags = tags or []
        self.cleanup = cleanup
        self.calls = []

    def list_posts(self, include_drafts=False):
        self.calls.append(("list_posts", include_drafts))
        return self.posts

    def get_post(self, post_id, include_drafts=False):
        self.calls.append(("get_post", post_id, include_drafts))
        return next((p for p in self.posts if p.id == post_id), None)

    def latest_posts(self, limit=3):
        self.calls.append(("latest_posts", limit))
        return self.posts[:limit]

    def search_posts(self, q):
        self.calls.append(("search_posts", q))
        return self.posts

    def popular_tags(self, limit=None):
        return self.tags

    def list_by_category(self, category, page=1, limit=6):
        self.calls.append(("list_by_category", category, page, limit))
        return self.page

    def list_by_tag(self, tag, page=1, limit=6):
        self.calls.append(("list_by_tag", tag, page, limit))
        return self.page


class FakeNewsletterService:
    def __init__(self, result: NewsletterResult | None = None):
        self.result = result or NewsletterResult(success=True, message="ok")
        self.subscribed = []
        self.campaigns = []

    def subscribe_user(self, email, first_name):
        self.subscribed.append((email, first_name))
        return self.result

    def create_post_campaign(self, notification):
        self.campaigns.append(notification)
        return self.result


def make_post_doc(doc_id: str, **overrides) -> dict:
    doc = {
        "_id": doc_id,
        "type": "post",
        "title": f"Post {doc_id}",
        "slug": f"post-{doc_id}",
        "formatCategory": "Review",
        "contentCategory": "Anime",
        "tags": [],
        "thumbnail": f"thumbnails/{doc_id}",
        "createdAt": "2024-01-01T00:00:00+00:00",
        "editDates": [],
        "author": "Tester",
        "status": True,
        "content": [{"type": "paragraph", "text": "<p>hi</p>"}],
    }
    doc.update(overrides)
    return doc


def image_file(name: str, content: bytes = b"img", fieldname: str | None = None):
    return UploadedFile(
        fieldname=fieldname or name, filename=name, content=content, content_type="image/png"
    )


@pytest.fixture
def app_settings():
    return Settings(
        NLA_API_KEY="secret",
        DEFAULT_POST_STATUS=True,
        REQUIRE_THUMBNAIL=True,
        STRICT_CONTENT_IMAGES=False,
    )


@pytest.fixture
def couch():
    return FakeCouchDB()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def posts_service(couch, storage, clock, app_settings):
    return PostsService(
        repo=CouchPostsRepo(couch),
        storage=storage,
        media=MediaService(storage),
        current_settings=app_settings,
        clock=clock,
    )
