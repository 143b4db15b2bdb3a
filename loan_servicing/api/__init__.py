"""
Loan Servicing API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..config import get_config
from ..errors import ServicingError
from ..logging_config import get_logger, log_action, setup_logging
from .clients import router as clients_router
from .loans import router as loans_router
from .payments import router as payments_router
from .reminders import router as reminders_router
from .dashboard import router as dashboard_router


logger = get_logger("loan_servicing.api")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(config.log_level, config.log_format)

    app = FastAPI(
        title="Loan Servicing API",
        description="Client loans, installment schedules and waterfall payment allocation",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in config.cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ServicingError)
    async def servicing_error_handler(request: Request, exc: ServicingError):
        level = "error" if exc.status_code >= 500 else "warning"
        log_action(logger, level, exc.reason, action="api.error", resource=request.url.path,
                   extra={"status_code": exc.status_code})
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    # Include routers
    app.include_router(clients_router, prefix="/clients", tags=["Clients"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(payments_router, prefix="/payments", tags=["Payments"])
    app.include_router(reminders_router, prefix="/reminders", tags=["Reminders"])
    app.include_router(dashboard_router, prefix="/dashboard", tags=["Dashboard"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "loan_servicing_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Loan Servicing API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "clients": "/clients",
                "loans": "/loans",
                "payments": "/payments",
                "reminders": "/reminders",
                "dashboard": "/dashboard",
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "loan_servicing.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
