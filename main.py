from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from civic_reporter.api.middleware import install_middleware
from civic_reporter.core.config import settings
from civic_reporter.core.errors import install_error_handlers
from civic_reporter.core.logging import get_logger
from civic_reporter.db.init_db import create_initial_data
from civic_reporter.db.session import SessionLocal
from civic_reporter.routers import admin, auth, reports
from civic_reporter.services.redis import close_redis

logger = get_logger("civic_reporter")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with SessionLocal() as session:
        await create_initial_data(session)
    logger.info(f"{settings.PROJECT_NAME} started: environment={settings.ENVIRONMENT}")
    yield
    await close_redis()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="API for reporting municipal issues and tracking their resolution",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

install_error_handlers(app)
install_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix=settings.API_V1_STR, tags=["Authentication"])
app.include_router(reports.router, prefix=settings.API_V1_STR, tags=["Reports"])
app.include_router(admin.router, prefix=settings.API_V1_STR, tags=["Admin"])

Path(settings.MEDIA_ROOT).mkdir(parents=True, exist_ok=True)
app.mount(settings.MEDIA_URL_PREFIX, StaticFiles(directory=settings.MEDIA_ROOT), name="media")


@app.get("/api/health", tags=["Health"])
async def health_check():
    return {"success": True, "message": "Server is running", "environment": settings.ENVIRONMENT}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
