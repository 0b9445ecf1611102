"""
Articulator - Main FastAPI Application
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from .api import chat_router, sessions_router, video_router
from .config import Settings, settings
from .core.logging_config import setup_logging
from .db import create_db_engine, create_session_factory, init_db
from .llm import LLMProvider, provider_from_settings
from .middleware import RequestLoggingMiddleware
from .services import AnalysisService, ChatStore, RetryPolicy
from .storage import LocalStorage

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Settings] = None,
    llm_provider: Optional[LLMProvider] = None,
    engine: Optional[Engine] = None,
) -> FastAPI:
    """
    Build the application and its services.

    Args:
        config: Settings to use, defaults to the environment-derived ``settings``
        llm_provider: Provider override, otherwise built from ``config``
        engine: Database engine override, otherwise built from ``config.database_url``
    """
    config = config or settings

    if llm_provider is None:
        llm_provider = provider_from_settings(config)

    engine = engine or create_db_engine(config.database_url)
    chat_store = ChatStore(create_session_factory(engine))
    storage = LocalStorage(config.upload_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        setup_logging(config)
        Path(config.upload_dir).mkdir(parents=True, exist_ok=True)
        init_db(engine)

        logger.info(f"Starting {config.app_name} v{config.app_version}")
        logger.info(f"Upload directory: {storage.base_dir}")
        logger.info(f"LLM provider: {config.llm_provider if llm_provider else 'not configured'}")
        logger.info(f"Debug mode: {config.debug}")
        yield
        logger.info(f"Shutting down {config.app_name}")
        await app.state.analysis_service.wait_for_pending()
        engine.dispose()

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Record yourself speaking and get streamed AI coaching feedback",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.storage = storage
    app.state.chat_store = chat_store
    app.state.analysis_service = AnalysisService(
        provider=llm_provider,
        chat_store=chat_store,
        retry_policy=RetryPolicy.from_settings(config),
        temperature=config.llm_temperature,
        max_tokens=config.llm_max_tokens,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if config.log_api_requests:
        app.add_middleware(RequestLoggingMiddleware)

    app.include_router(video_router)
    app.include_router(chat_router)
    app.include_router(sessions_router)

    @app.get("/")
    async def root():
        return {
            "app": config.app_name,
            "version": config.app_version,
            "status": "running",
        }

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "llm_configured": llm_provider is not None,
            "version": config.app_version,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "articulator.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
