from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from tablesync import __version__
from tablesync.api.errors import register_exception_handlers
from tablesync.api.responses import success_response
from tablesync.api.routes import router as data_center_router
from tablesync.config.loader import resolve_config
from tablesync.logging.init import setup_logging
from tablesync.models.config_models import SyncConfig

logger = logging.getLogger(__name__)


def create_app(config: SyncConfig | None = None) -> FastAPI:
    """Build the API application.

    ``config`` defaults to resolve_config() (config/tablesync.yml if present,
    otherwise built-in defaults). Run with
    ``uvicorn --factory tablesync.api.app:create_app`` or ``tablesync serve``.
    """
    setup_logging()
    # .env は既存の環境変数より優先 (DB 接続パラメータ)
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=True)
    cfg = config or resolve_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(f"tablesync API v{__version__} starting [schema={cfg.schema}]")
        yield
        logger.info("tablesync API shutting down")

    app = FastAPI(
        title="tablesync",
        description="Schema-driven CSV / ZIP import and export for PostgreSQL tables.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    register_exception_handlers(app)
    app.include_router(data_center_router)

    @app.get("/health")
    def health() -> dict[str, object]:
        return success_response({"status": "ok", "version": __version__})

    return app
