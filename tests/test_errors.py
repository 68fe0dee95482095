from nla_api import errors
from nla_api.settings import Settings


def test_server_error_includes_detail_outside_production(monkeypatch):
    monkeypatch.setattr(errors, "settings", Settings(ENVIRONMENT="development"))

    exc = errors.server_error("Failed to create post", RuntimeError("boom"))

    assert exc.status_code == 500
    assert exc.detail == "Failed to create post: boom"


def test_server_error_hides_detail_in_production(monkeypatch):
    monkeypatch.setattr(errors, "settings", Settings(ENVIRONMENT="production"))

    exc = errors.server_error("Failed to create post", RuntimeError("boom"))

    assert exc.detail == "Failed to create post"


def test_post_not_found_keeps_id():
    err = errors.PostNotFoundError("abc")
    assert err.post_id == "abc"
    assert "abc" in str(err)
