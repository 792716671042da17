import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobfeed.config import settings
from jobfeed.database import close_db, init_db
from jobfeed.health import health_report
from jobfeed.routers import advanced_matching, jobs, sites
from jobfeed.services.usage import UsageMeter

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Initialize async database connection pool
    logger.info("Starting Job Feed Backend")
    await init_db()
    app.state.usage_meter = UsageMeter()
    logger.info("Database tables created successfully")
    yield
    # Shutdown: flush usage writes, then close connections
    logger.info("Shutting down Job Feed Backend")
    await app.state.usage_meter.drain()
    await close_db()
    logger.info("Database connections closed")

app = FastAPI(
    title=settings.app_name,
    description="Job feed synchronization and advanced matching",
    version="0.1.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_cors_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs.router)
app.include_router(advanced_matching.router)
app.include_router(sites.router)


@app.get("/")
async def root():
    return {"message": "Job Feed API - Ready"}

@app.get("/health")
async def health_check():
    """Health check for the database and the LLM provider."""
    return await health_report(
        settings.database_url, settings.llm_base_url, settings.llm_api_key
    )
