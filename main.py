"""
Main application entry point for the Contacts API.

This module initializes the FastAPI application, configures logging and
CORS, creates the database tables, initializes the rate limiter with a
Redis backend, installs the envelope error handlers, and includes routers
for users and contacts.

Modules:
- FastAPI: Web framework
- CORSMiddleware: Middleware for handling CORS
- FastAPILimiter: Rate limiting
- redis.asyncio: Async Redis client
- fakeredis.aioredis: In-process Redis used when no server is reachable
- contacts_api.database: Database engine
- contacts_api.models: SQLAlchemy models
- contacts_api.errors: Error types and envelope handlers
- contacts_api.users: Users router
- contacts_api.contacts: Contacts router
- contacts_api.core: Application settings
"""

import logging
from contextlib import asynccontextmanager

from fakeredis.aioredis import FakeRedis
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi_limiter import FastAPILimiter
import redis.asyncio as redis

from contacts_api.database import engine
from contacts_api import models, contacts, users
from contacts_api.core import get_settings
from contacts_api.errors import envelope, register_error_handlers

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Prepare application resources.

    Creates the tables and initializes the rate limiter with the Redis
    backend. Falls back to FakeRedis if Redis is unavailable (e.g. during
    local development).
    """
    # Create tables (for development only)
    models.Base.metadata.create_all(bind=engine)

    redis_client = redis.from_url(
        settings.REDIS_URL, encoding="utf-8", decode_responses=True
    )
    try:
        await FastAPILimiter.init(redis_client)
    except Exception as exc:
        logger.warning("Redis unavailable (%s); rate limiting in-process", exc)
        await FastAPILimiter.init(FakeRedis(decode_responses=True))
    yield
    await FastAPILimiter.close()


# Initialize FastAPI application
app = FastAPI(title="Contacts API", lifespan=lifespan)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include routers for application areas
app.include_router(users.router)
app.include_router(contacts.router)


@app.get("/")
def root():
    """
    Root endpoint for the API.

    Returns a simple envelope directing users to the Swagger UI.
    """
    return envelope(status.HTTP_200_OK, "Contacts API. Visit /docs for Swagger UI")


@app.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
def page_not_found(path: str):
    """Answer every unmatched route with a 404 envelope."""
    return envelope(
        status.HTTP_404_NOT_FOUND, "Invalid Route", errors=["Page Not Found"]
    )
