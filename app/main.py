"""
Push Audience API - Main Application

SECURITY FEATURES:
- Conditional API docs (disabled in production by default)
- Logging without subscriber data or credentials
- RFC 7807 error bodies that never expose internals in production
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from app.api.v2.router import api_router
from app.config import settings
from app.database import init_db
from app.exceptions import APIException, create_exception_handlers
from app.middleware import RequestIdLogFilter, RequestIdMiddleware
from app.services.audience.errors import AudienceError
# Import all models to register them with SQLAlchemy metadata before init_db()
from app.models import (  # noqa: F401
    Merchant, Subscriber, Segment, SegmentCondition, Campaign, CampaignSegment
)

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL or (logging.DEBUG if settings.DEBUG else logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for handler in logging.getLogger().handlers:
    handler.addFilter(RequestIdLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Push Audience API...")
    logger.info("Environment: %s", settings.ENVIRONMENT)
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # SECURITY: Don't log full exception details which may contain credentials
        logger.error("Database initialization failed: %s", type(e).__name__)
        logger.warning("App starting without database - audience endpoints will fail")
    yield
    # Shutdown
    logger.info("Shutting down Push Audience API...")


# SECURITY: Conditionally enable docs based on settings
docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="Push Audience API",
    description="Segment condition compiler and audience resolver for push campaigns",
    version="1.0.0",
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# CORS middleware
allowed_origins = [settings.FRONTEND_URL]
if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:3000",  # Dashboard dev server
        "http://localhost:5173",  # Vite dev server
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)

# Exception handlers
handlers = create_exception_handlers()
app.add_exception_handler(APIException, handlers["api"])
app.add_exception_handler(AudienceError, handlers["audience"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

# Include routers
app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "Push Audience API",
        "version": "1.0.0",
        "health": "/health",
    }
    # Only include docs link if enabled
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
