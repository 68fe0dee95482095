import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nla_api.dependencies import get_media_storage
from nla_api.routers import newsletter, posts, quotes
from nla_api.settings import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="NLA API", description="No Life Anime blog backend")


def ensure_media_folders() -> None:
    storage = get_media_storage()
    for folder in (settings.THUMBNAIL_FOLDER, settings.CONTENT_IMAGE_FOLDER):
        storage.ensure_folder(folder)
        storage.ensure_folder(f"{settings.ARCHIVE_FOLDER}/{folder}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    for problem in settings.newsletter_config_errors():
        logger.warning(f"Newsletter configuration: {problem}")

    ensure_media_folders()
    logger.info("Media folders checked")

    yield
    logger.info("NLA API shutting down")


app.router.lifespan_context = lifespan

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(posts.router)
app.include_router(newsletter.router)
app.include_router(quotes.router)


@app.get("/")
async def root():
    return {"message": "NLA API is running"}
