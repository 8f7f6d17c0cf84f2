import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from uploader import app_context
from uploader.app.routes.uploads import router as uploads_router
from uploader.app.services.quota import configure_quota_context

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("uploads")

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

QUOTA_CONFIG = configure_quota_context()

app = FastAPI(title="Video Upload API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(uploads_router)


@app.on_event("startup")
def log_quota_backend() -> None:
    logger.info(
        "Upload quota backend=%s ceiling=%s retention=%s",
        QUOTA_CONFIG.backend,
        QUOTA_CONFIG.ceiling,
        QUOTA_CONFIG.retention_seconds,
    )


@app.on_event("shutdown")
def close_quota_store() -> None:
    app_context.reset()
