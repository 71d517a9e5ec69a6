"""
Blueprint Exchange - FastAPI Backend
Main application entry point with health check and API routing.
"""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import health, auth, blueprints


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Blueprint Exchange API...")
    validate_security_settings()
    Path(settings.STORAGE_DIR).mkdir(parents=True, exist_ok=True)
    print(f"📦 Blob storage at {settings.STORAGE_DIR}")
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    yield
    # Shutdown
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Blueprint Exchange API",
    description="Share, search and update community level blueprints",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(blueprints.router, prefix="/blueprints", tags=["Blueprints"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Blueprint Exchange API",
        "version": "0.1.0",
        "status": "running"
    }
