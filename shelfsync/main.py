"""
Main entry point for ShelfSync
Initializes the database and the sync orchestrator and serves the HTTP API
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from shelfsync import __version__
from shelfsync.config.config_loader import load_config
from shelfsync.core.database import DatabaseService
from shelfsync.core.logging_manager import configure_logging
from shelfsync.core.models import utc_now
from shelfsync.core.remote_store import RemoteStore
from shelfsync.core.sync_orchestrator import SyncOrchestrator

from shelfsync.api import library, sync
from shelfsync.api.dependencies import init_api_dependencies
from shelfsync.api.error_handling import register_exception_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown"""
    shelfsync_app: 'ShelfSyncApp' = app.state.shelfsync

    await shelfsync_app.startup()
    yield
    await shelfsync_app.shutdown()


class ShelfSyncApp:
    """Main ShelfSync application"""

    def __init__(self, config: Dict[str, Any], remote_store: Optional[RemoteStore] = None):
        self.config = config

        db_config = config.get('database', {})
        self.db_service = DatabaseService(
            db_config.get('url', 'sqlite+aiosqlite:///./data/shelfsync.db'),
            echo=db_config.get('echo', False)
        )
        self.orchestrator = SyncOrchestrator.from_config(config, self.db_service, remote_store)

        self.app = FastAPI(
            title="ShelfSync",
            description="Offline-first synchronization for a personal book library",
            version=__version__,
            lifespan=lifespan
        )
        self.app.state.shelfsync = self

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=config.get('api', {}).get('cors_origins', ["*"]),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"]
        )

        api_key = config.get('api', {}).get('api_key', 'development-key')
        init_api_dependencies(api_key, self.orchestrator)

        register_exception_handlers(self.app)

        self.app.include_router(sync.router, prefix="/api/v1/sync", tags=["Synchronization"])
        self.app.include_router(library.router, prefix="/api/v1/library", tags=["Library"])

        @self.app.get("/health")
        async def health_check():
            """Health check with database and remote connectivity"""
            database_ok = await self.db_service.health_check()
            remote_ok = await self.orchestrator.remote_store.validate_connection()

            if not database_ok:
                raise HTTPException(status_code=503, detail="Database unavailable")

            return {
                "status": "healthy" if remote_ok else "degraded",
                "version": __version__,
                "timestamp": utc_now().isoformat(),
                "database": "connected",
                "remote": "connected" if remote_ok else "unreachable",
                "is_syncing": self.orchestrator.is_syncing
            }

    async def startup(self):
        """Application startup"""
        logger.info("Starting ShelfSync...")

        await self.db_service.create_tables()
        await self.orchestrator.initialize()

        if self.config.get('sync', {}).get('auto_start', False):
            await self.orchestrator.start()

        logger.info("ShelfSync started successfully")

    async def shutdown(self):
        """Application shutdown"""
        logger.info("Shutting down ShelfSync...")

        await self.orchestrator.stop()
        await self.orchestrator.remote_store.close()
        await self.db_service.close()

        logger.info("ShelfSync shutdown complete")


def create_app(config: Dict[str, Any] = None, remote_store: Optional[RemoteStore] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    if config is None:
        config = load_config()

    return ShelfSyncApp(config, remote_store).app


def main(config: Dict[str, Any] = None):
    """Run the API server"""
    if config is None:
        config = load_config()
    configure_logging(config)

    api_config = config.get('api', {})
    uvicorn.run(
        create_app(config),
        host=api_config.get('host', '0.0.0.0'),
        port=int(api_config.get('port', 8080)),
        log_level=str(config.get('logging', {}).get('level', 'info')).lower()
    )


if __name__ == "__main__":
    main()
