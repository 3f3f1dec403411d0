"""
Cooperative Lending API Application Factory
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .collections import router as collections_router
from .computations import router as computations_router
from .dependencies import LendingSystem, get_lending_system
from .errors import register_error_handlers
from .loans import router as loans_router
from .settings import router as settings_router
from .. import __version__
from ..config import get_config
from ..logging_config import setup_logging


def create_app(system: Optional[LendingSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        system: Lending system to serve; the process-wide one is created
            lazily on first request when omitted
    """
    config = system.config if system is not None else get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="Cooperative Lending API",
        description="Loan applications, approvals, releases and repayment tracking",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if system is not None:
        app.dependency_overrides[get_lending_system] = lambda: system

    register_error_handlers(app)

    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(computations_router, prefix="/compute", tags=["Computations"])
    app.include_router(settings_router, tags=["Administration"])
    app.include_router(collections_router, tags=["Collections"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "coop_lending_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Cooperative Lending API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "loans": "/loans",
                "compute": "/compute",
                "penalty_settings": "/settings/penalty",
                "users": "/users",
                "collections": "/collections",
                "reports": "/reports/portfolio",
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False, workers: int = 1):
    """Run the FastAPI server"""
    uvicorn.run(
        "coop_lending.api:app",
        host=host,
        port=port,
        reload=debug,
        workers=None if debug else workers,
        log_level="info"
    )


app = create_app()
