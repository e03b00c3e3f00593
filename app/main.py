from fastapi import FastAPI, Request
from contextlib import asynccontextmanager
from app.core.config import settings
from app.core.errors import EngineError, engine_error_handler
from app.core.limiter import limiter
from app.db.session import Base, engine
from app.api import tender, bids, evaluations, awards, carnival, documents
from app.utils.cache import redis_health_check
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import logging

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    logger.info(f"Starting {settings.PROJECT_NAME} API...")
    Base.metadata.create_all(bind=engine)
    if settings.CACHE_ENABLED and not redis_health_check():
        logger.warning("Redis is unreachable; views will be served uncached")

    yield

    logger.info(f"Shutting down {settings.PROJECT_NAME} API...")
    engine.dispose()


app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(EngineError, engine_error_handler)

# Include routers
app.include_router(tender.router)
app.include_router(bids.router)
app.include_router(evaluations.router)
app.include_router(awards.router)
app.include_router(carnival.router)
app.include_router(documents.router)


@app.get("/")
@limiter.limit("60/minute")
def root(request: Request):
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}


@app.get("/health")
@limiter.limit("200/minute")  # Allow more for monitoring
def health_check(request: Request):
    """Health check endpoint with cache status."""
    return {
        "status": "healthy",
        "cache": {
            "enabled": settings.CACHE_ENABLED,
            "reachable": redis_health_check(),
        },
    }
