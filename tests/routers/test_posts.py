import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.datastructures import UploadFile

from nla_api import dependencies as deps
from nla_api.routers import posts
from nla_api.schemas.posts import Post, PostPage, TagCount
from nla_api.security import API_KEY_NAME, get_settings
from nla_api.settings import Settings
from tests.conftest import FakeNewsletterService, FakePostsService, make_post_doc

AUTH = {API_KEY_NAME: "secret"}


def make_post(post_id="p1", **overrides):
    data = {
        "id": post_id,
        "title": f"Post {post_id}",
        "slug": f"post-{post_id}",
        "createdAt": "2024-01-01T00:00:00Z",
        "status": True,
    }
    data.update(overrides)
    return Post(**data)


def make_app(service, newsletter=None):
    app = FastAPI()
    app.dependency_overrides[deps.get_posts_service] = lambda: service
    app.dependency_overrides[deps.get_newsletter_service] = lambda: (
        newsletter or FakeNewsletterService()
    )
    app.dependency_overrides[get_settings] = lambda: Settings(NLA_API_KEY="secret")
    app.include_router(posts.router)
    return app


# --- read routes ---


def test_list_posts_returns_published_posts():
    service = FakePostsService(posts=[make_post("a"), make_post("b")])
    client = TestClient(make_app(service))

    res = client.get("/posts")

    assert res.status_code == 200
    assert [p["id"] for p in res.json()] == ["a", "b"]
    assert service.calls == [("list_posts", False)]


def test_list_posts_with_drafts_requires_api_key():
    service = FakePostsService(posts=[make_post("a", status=False)])
    client = TestClient(make_app(service))

    assert client.get("/posts", params={"include_drafts": "true"}).status_code == 403

    res = client.get("/posts", params={"include_drafts": "true"}, headers=AUTH)
    assert res.status_code == 200
    assert service.calls == [("list_posts", True)]


def test_list_posts_returns_500_on_unexpected_error():
    class BoomService(FakePostsService):
        def list_posts(self, include_drafts=False):
            raise RuntimeError("boom")

    client = TestClient(make_app(BoomService()))

    res = client.get("/posts")

    assert res.status_code == 500
    assert res.json()["detail"].startswith("Failed to retrieve posts")


def test_static_routes_are_not_treated_as_ids():
    service = FakePostsService(
        posts=[make_post("a"), make_post("b"), make_post("c")],
        tags=[TagCount(name="isekai", count=3)],
    )
    client = TestClient(make_app(service))

    latest = client.get("/posts/latest", params={"limit": 2})
    search = client.get("/posts/search", params={"q": "post"})
    tags = client.get("/posts/popular-tags")

    assert [p["id"] for p in latest.json()] == ["a", "b"]
    assert len(search.json()) == 3
    assert tags.json() == [{"name": "isekai", "count": 3}]
    assert ("latest_posts", 2) in service.calls
    assert ("search_posts", "post") in service.calls
    assert not any(call[0] == "get_post" for call in service.calls)


def test_category_and_tag_routes_pass_pagination():
    page = PostPage(posts=[make_post()], totalPosts=7, totalPages=3, currentPage=2, postsPerPage=3)
    service = FakePostsService(page=page)
    client = TestClient(make_app(service))

    res = client.get("/posts/category/Review", params={"page": 2, "limit": 3})
    client.get("/posts/tag/isekai")

    assert res.status_code == 200
    assert res.json()["totalPages"] == 3
    assert service.calls == [
        ("list_by_category", "Review", 2, 3),
        ("list_by_tag", "isekai", 1, 6),
    ]


def test_category_rejects_invalid_page():
    client = TestClient(make_app(FakePostsService(page=None)))

    assert client.get("/posts/category/Review", params={"page": 0}).status_code == 422


def test_get_post_returns_404_when_missing():
    client = TestClient(make_app(FakePostsService()))

    res = client.get("/posts/missing")

    assert res.status_code == 404


def test_get_post_passes_draft_access_with_api_key():
    service = FakePostsService(posts=[make_post("p1")])
    client = TestClient(make_app(service))

    assert client.get("/posts/p1").json()["id"] == "p1"
    client.get("/posts/p1", headers=AUTH)

    assert service.calls == [("get_post", "p1", False), ("get_post", "p1", True)]


# --- write routes against the real service ---


@pytest.fixture
def newsletter():
    return FakeNewsletterService()


@pytest.fixture
def client(posts_service, newsletter):
    return TestClient(make_app(posts_service, newsletter))


def test_write_routes_require_api_key(client):
    assert client.post("/posts", data={"title": "x"}).status_code == 403
    assert client.patch("/posts/p1", data={"title": "x"}).status_code == 403
    assert client.delete("/posts/p1").status_code == 403


def test_create_post_end_to_end(client, couch, storage, newsletter):
    content = json.dumps(
        [
            {"type": "paragraph", "text": "<p>First words</p>"},
            {"type": "image", "filename": "a.png"},
        ]
    )

    res = client.post(
        "/posts",
        headers=AUTH,
        data={"title": "Hello World!", "content": content, "tags": '["a", "b"]'},
        files=[
            ("thumbnail", ("t.jpg", b"thumb", "image/jpeg")),
            ("images[]", ("a.png", b"a", "image/png")),
        ],
    )

    assert res.status_code == 201
    body = res.json()
    assert body["slug"] == "hello-world"
    assert body["status"] is True
    assert body["editDates"] == []
    assert body["tags"] == ["a", "b"]
    assert body["content"][1]["url"].startswith("content-images/hello-world-content-")
    assert "filename" not in body["content"][1]
    assert body["id"] in couch.docs
    assert [u[0] for u in storage.uploads] == ["thumbnails", "content-images"]

    [campaign] = newsletter.campaigns
    assert campaign.slug == "hello-world"
    assert campaign.excerpt == "First words"


def test_create_draft_does_not_send_newsletter(client, newsletter):
    res = client.post(
        "/posts",
        headers=AUTH,
        data={"title": "Draft", "status": "false"},
        files=[("thumbnail", ("t.jpg", b"thumb", "image/jpeg"))],
    )

    assert res.status_code == 201
    assert res.json()["status"] is False
    assert newsletter.campaigns == []


def test_create_post_closes_uploaded_files(client, monkeypatch):
    closed = []
    original_close = UploadFile.close

    async def tracking_close(self):
        closed.append(self.filename)
        await original_close(self)

    monkeypatch.setattr(UploadFile, "close", tracking_close)

    res = client.post(
        "/posts",
        headers=AUTH,
        data={"title": "Closed"},
        files=[
            ("thumbnail", ("t.jpg", b"thumb", "image/jpeg")),
            ("images[]", ("a.png", b"a", "image/png")),
        ],
    )

    assert res.status_code == 201
    assert {"a.png", "t.jpg"} <= set(closed)


def test_create_post_validation_errors_are_400(client, storage):
    no_title = client.post(
        "/posts", headers=AUTH, files=[("thumbnail", ("t.jpg", b"thumb", "image/jpeg"))]
    )
    no_thumbnail = client.post("/posts", headers=AUTH, data={"title": "T"})
    bad_json = client.post(
        "/posts",
        headers=AUTH,
        data={"title": "T", "content": "[oops"},
        files=[("thumbnail", ("t.jpg", b"thumb", "image/jpeg"))],
    )

    assert no_title.status_code == 400
    assert no_title.json()["detail"] == "Title is required"
    assert no_thumbnail.status_code == 400
    assert bad_json.status_code == 400
    assert storage.uploads == []


def test_create_post_thumbnail_failure_is_500(client, storage):
    storage.fail_uploads = {b"thumb"}

    res = client.post(
        "/posts",
        headers=AUTH,
        data={"title": "T"},
        files=[("thumbnail", ("t.jpg", b"thumb", "image/jpeg"))],
    )

    assert res.status_code == 500
    assert res.json()["detail"].startswith("Failed to create post")


def test_update_post_end_to_end(client, couch):
    couch.docs["p1"] = make_post_doc("p1", tags=["old"])

    res = client.patch(
        "/posts/p1", headers=AUTH, data={"title": "Renamed Post", "tags": "x, y"}
    )

    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Post updated successfully"
    assert body["post"]["slug"] == "renamed-post"
    assert body["post"]["tags"] == ["x", "y"]
    assert len(body["post"]["editDates"]) == 1
    assert couch.docs["p1"]["title"] == "Renamed Post"


def test_update_missing_post_is_404(client):
    res = client.patch("/posts/nope", headers=AUTH, data={"title": "x"})

    assert res.status_code == 404


def test_delete_post_end_to_end(client, couch, storage):
    couch.docs["p1"] = make_post_doc(
        "p1",
        content=[
            {"type": "image", "url": "content-images/a"},
            {"type": "image", "url": "content-images/b"},
        ],
    )
    storage.reject_deletes = {"content-images/b"}

    res = client.delete("/posts/p1", headers=AUTH)

    assert res.status_code == 200
    body = res.json()
    assert body["deletedMediaCount"] + body["failedMediaCount"] == 3
    assert body["failedMediaCount"] == 1
    assert "p1" not in couch.docs


def test_delete_missing_post_is_404(client):
    assert client.delete("/posts/nope", headers=AUTH).status_code == 404
