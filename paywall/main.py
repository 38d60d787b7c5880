"""FastAPI application entry point"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from paywall.api import paywall
from paywall.core.config import settings
from paywall.core.errors import ConfigurationError, PaywallError, ValidationError
from paywall.core.logging import security_logger, setup_logging
from paywall.core.otel import initialize_otel, instrument_app
from paywall.core.security import log_api_access
from paywall.db.redis import get_redis_client
from paywall.db.session import init_db

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    if initialize_otel():
        logger.info(f"OpenTelemetry initialized, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")

    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    logger.info("Testing Redis connection...")
    try:
        get_redis_client().ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="Paywall Backend",
    description="Magic link access tokens for paid articles",
    version="1.0.0",
    lifespan=lifespan
)

instrument_app(app)

app.include_router(paywall.router)


@app.middleware("http")
async def access_log_middleware(request: Request, call_next):
    """Log every request without its query string or cookies"""
    status_code = 500
    error = None
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    except Exception as e:
        error = str(e)
        raise
    finally:
        log_api_access(request, status_code, error)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    # Detail stays in the logs; the caller learns nothing about which setting is missing
    logger.critical(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": exc.public_message})


@app.exception_handler(PaywallError)
async def paywall_error_handler(request: Request, exc: PaywallError):
    if exc.status_code == 400 and not isinstance(exc, ValidationError):
        security_logger.warning(f"Rejected request on {request.url.path}: {type(exc).__name__}")
    elif exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "fields": [f for f in fields if f]}
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


# Prometheus metrics endpoint
@app.get("/metrics")
def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
