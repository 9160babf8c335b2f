"""Dependency injection for FastAPI routes."""

from functools import lru_cache

import structlog
from fastapi import Depends

from cli.config import load_config_model
from cli.config_models import StorageConfig
from cli.utils import build_manager

logger = structlog.get_logger()


@lru_cache
def get_config() -> StorageConfig:
    """Load shared config from config.yaml."""
    return load_config_model()


@lru_cache
def get_manager():
    """Process-wide manager; each worker process keeps its own cache."""
    return build_manager(get_config())


def get_whatsapp_client(config: StorageConfig = Depends(get_config)):
    """Outbound client per request, or None when credentials are not configured."""
    settings = config.whatsapp
    if not settings.access_token or not settings.phone_number_id:
        yield None
        return
    from whatsapp import WhatsAppClient

    client = WhatsAppClient(
        access_token=settings.access_token,
        phone_number_id=settings.phone_number_id,
        api_version=settings.api_version,
    )
    try:
        yield client
    finally:
        client.close()
