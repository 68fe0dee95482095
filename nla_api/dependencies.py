from functools import lru_cache

from fastapi import Depends

from nla_api.db.couchdb import get_couch
from nla_api.repos.posts_repo import CouchPostsRepo
from nla_api.services.cloudinary_service import CloudinaryStorage
from nla_api.services.media_service import MediaService
from nla_api.services.newsletter_service import NewsletterService
from nla_api.services.posts_service import PostsService
from nla_api.services.quote_service import QuoteService


@lru_cache
def get_media_storage() -> CloudinaryStorage:
    return CloudinaryStorage.from_settings()


@lru_cache
def get_newsletter_service() -> NewsletterService:
    return NewsletterService()


@lru_cache
def get_quote_service() -> QuoteService:
    return QuoteService.from_settings()


def get_media_service(storage=Depends(get_media_storage)):
    return MediaService(storage)


def get_posts_repo(couch_db=Depends(get_couch)):
    return CouchPostsRepo(couch_db)


def get_posts_service(
    repo=Depends(get_posts_repo),
    storage=Depends(get_media_storage),
    media=Depends(get_media_service),
):
    return PostsService(repo=repo, storage=storage, media=media)
