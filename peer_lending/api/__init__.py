"""
Peer Lending API Application Factory
"""

from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import PeerLendingConfig, get_config
from ..exceptions import ValidationError, NotFoundError, BusinessRuleError, ConsistencyError
from ..logging_config import setup_logging, get_logger
from .deps import LendingSystem, get_lending_system
from .loans import router as loans_router
from .borrowers import router as borrowers_router
from .payments import router as payments_router
from .reports import router as reports_router


logger = get_logger(__name__)

ERROR_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (BusinessRuleError, 400),
    (ConsistencyError, 409),
)


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


def create_app(system: Optional[LendingSystem] = None,
               config: Optional[PeerLendingConfig] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Lending system to serve; the shared instance is used when omitted
        config: Configuration; the global configuration is used when omitted
    """
    config = config or get_config()
    setup_logging(level=config.log_level, log_format=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="Peer Lending API",
        description="Peer-to-peer loans with monthly interest cycles",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_class, status_code in ERROR_STATUS:
        app.add_exception_handler(exc_class, _error_handler(status_code))

    if system is not None:
        app.dependency_overrides[get_lending_system] = lambda: system

    # Include routers
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(borrowers_router, prefix="/borrowers", tags=["Borrowers"])
    app.include_router(payments_router, prefix="/principal-payments", tags=["Principal Payments"])
    app.include_router(reports_router, tags=["Reports"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "peer_lending_api",
            "version": __version__
        }

    @app.get("/audit/integrity")
    async def audit_integrity(lending: LendingSystem = Depends(get_lending_system)):
        """Verify the audit hash chain"""
        return lending.audit_trail.verify_integrity()

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Peer Lending API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "loans": "/loans",
                "borrowers": "/borrowers",
                "principal-payments": "/principal-payments",
                "dashboard": "/dashboard",
                "reports": "/reports",
                "audit": "/audit/integrity",
            }
        }

    return app
