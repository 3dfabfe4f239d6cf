"""ASGI entrypoint: logging, CORS, HTTP routes and the room websocket."""

import logging.config
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.metrics import router as metrics_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import Settings, get_settings
from roomrelay.realtime import shutdown_realtime, startup_realtime


def build_logging_config(settings: Settings) -> dict:
    """dictConfig for the service; the engine logs at DEBUG while ``debug`` is on."""

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "standard"},
        },
        "root": {"handlers": ["console"], "level": settings.log_level},
        "loggers": {
            "roomrelay": {"level": "DEBUG" if settings.debug else settings.log_level},
            "app.api.ws": {"level": settings.log_level},
        },
    }


settings = get_settings()
logging.config.dictConfig(build_logging_config(settings))


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    await startup_realtime()
    try:
        yield
    finally:
        await shutdown_realtime()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_origin_regex=settings.cors_allow_origin_regex,
)


@app.get("/health", tags=["system"])
def health_check() -> dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "ok", "environment": settings.environment}


app.include_router(api_router, prefix="/api")
app.include_router(ws_router)
app.include_router(metrics_router)
