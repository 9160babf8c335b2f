"""FastAPI application entry point."""

import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cli.logging_config import setup_logging
from web.deps import get_config, get_manager
from web.routes import locale, whatsapp

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    setup_logging(json_mode=True, level=config.logging.level)
    logger.info("web.startup", local_db=str(config.paths.local_db))
    yield
    if get_manager.cache_info().currsize:
        get_manager().shutdown()
    logger.info("web.shutdown")


app = FastAPI(
    title="Locale Storage",
    version="0.1.0",
    lifespan=lifespan,
)

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(locale.router)
app.include_router(whatsapp.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
