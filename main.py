import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

import models  # noqa: F401  registers every table on Base.metadata
from authorization import seed_role_permissions
from create_admin import bootstrap_admin
from database import Base, SessionLocal, engine, settings
from errors import register_exception_handlers
from routers import admin, auth, blogs, events, polls, profile, timeline

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_db():
    """Create tables, seed role permissions and, when configured, the first Admin."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_role_permissions(db)
        if settings.ADMIN_EMAIL and settings.ADMIN_USERNAME and settings.ADMIN_PASSWORD:
            bootstrap_admin(db, settings.ADMIN_EMAIL, settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting up...")
    init_db()
    logger.info(f"API is ready at {settings.API_PREFIX}")
    yield
    # Shutdown
    logger.info("Shutting down...")
    engine.dispose()

app = FastAPI(
    title="Potluck API",
    description="A community platform API for organizing events, blogs, timeline posts and polls",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
    return response

register_exception_handlers(app)

# Include routers
app.include_router(auth.router, prefix=settings.API_PREFIX, tags=["authentication"])
app.include_router(profile.router, prefix=settings.API_PREFIX, tags=["profile"])
app.include_router(events.router, prefix=settings.API_PREFIX, tags=["events"])
app.include_router(blogs.router, prefix=settings.API_PREFIX, tags=["blogs"])
app.include_router(timeline.router, prefix=settings.API_PREFIX, tags=["timeline"])
app.include_router(polls.router, prefix=settings.API_PREFIX, tags=["polls"])
app.include_router(admin.router, prefix=f"{settings.API_PREFIX}/admin", tags=["admin"])

@app.get("/")
async def root():
    return {"message": "Potluck API", "version": "1.0.0"}

@app.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
