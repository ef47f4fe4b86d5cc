from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from frontdesk.core.config import settings
from frontdesk.core.logging import configure_logging
from frontdesk.core.dependencies import get_knowledge_base_service, get_help_request_service
from frontdesk.routers.help_request import router as router_help_requests
from frontdesk.routers.knowledge_base import router as router_knowledge_base
from frontdesk.routers.livekit import router as router_livekit
from contextlib import asynccontextmanager
import logging

configure_logging(settings.log_level)

logger = logging.getLogger("fastapi_server")
logger.setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Build stores up front so schema and seed data exist before the first call
    get_knowledge_base_service()
    get_help_request_service()
    logger.info(f"🚀 {settings.app_name} ready (db: {settings.database_path})")
    yield
    logger.info("🛑 Shutting down")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # React dev server
    allow_credentials=True,
    allow_methods=["*"],                      # Allow all HTTP methods
    allow_headers=["*"],                      # Allow all headers
)
# Include routers
app.include_router(router_help_requests)
app.include_router(router_knowledge_base)
app.include_router(router_livekit)


@app.get("/")
async def root():
    return {"status": "running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
