"""
Main FastAPI application entry point.

This module builds the node router admin API, loads configuration, sets up
logging and owns the lifecycle of the routing engine.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from noderouter import __version__
from noderouter.api.v1.router import api_router
from noderouter.config import ConfigLoader, RouterConfig
from noderouter.config.logging import setup_logging
from noderouter.services.engine import RoutingEngine, build_engine

logger = logging.getLogger(__name__)


def _configure_logging(config: RouterConfig) -> None:
    setup_logging(
        log_level=config.server.log_level.upper(),
        log_format=config.server.log_format,
        log_file=config.server.log_file,
        enable_access_log=config.server.access_log
    )


def create_app(config: Optional[RouterConfig] = None, engine: Optional[RoutingEngine] = None) -> FastAPI:
    """
    Create the admin application.

    Args:
        config: Router configuration, loaded from config/ when omitted
        engine: Prebuilt engine, built from the configuration when omitted

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        router_config = config
        if router_config is None:
            router_config = engine.config if engine is not None else ConfigLoader().load_config()
            _configure_logging(router_config)
        app.state.config = router_config

        routing_engine = engine or build_engine(router_config)
        app.state.engine = routing_engine
        await routing_engine.start()
        logger.info(f"Node router started with {len(routing_engine.store)} nodes")

        yield

        # Cleanup
        await routing_engine.stop()
        logger.info("Node router stopped")

    app = FastAPI(
        title="Node Router",
        description="Routes outbound requests for known services onto acceleration nodes",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.include_router(api_router)

    @app.get("/")
    async def read_root():
        return {"message": "Node router admin API", "version": __version__}

    return app


app = create_app()


def run():
    """Console entry point: serve the admin API with uvicorn."""
    config = ConfigLoader().load_config()
    _configure_logging(config)
    uvicorn.run(
        create_app(config=config),
        host=config.server.host,
        port=config.server.port,
        log_config=None,
        access_log=config.server.access_log
    )


if __name__ == "__main__":
    run()
