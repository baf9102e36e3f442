import asyncio
import logging
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load environment variables as early as possible
load_dotenv()

from .config import settings
from .database import engine, create_db_and_tables
from .dependencies import run_otp_cleanup
from .exceptions import (
    OTPServiceError,
    otp_service_exception_handler,
    validation_exception_handler,
    http_exception_handler,
)
from .middleware import (
    RateLimitMiddleware,
    PreflightCORSMiddleware,
    SecurityMiddleware,
    LoggingMiddleware,
    ErrorHandlingMiddleware,
)
from .routers import otp_router
from .schemas import HealthResponse

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


async def otp_cleanup_loop(interval_seconds: int):
    """Periodically delete stale OTP records until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(run_otp_cleanup)
        except Exception:
            # Keep the sweep alive; the next run retries
            logger.exception("OTP cleanup failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    app.state.db_init_ok = True
    app.state.db_init_error = None
    try:
        create_db_and_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        # Do not crash the app; report via health endpoint
        app.state.db_init_ok = False
        app.state.db_init_error = str(e)
        logger.exception("Database initialization failed")

    if not settings.twilio_configured:
        logger.warning("Twilio is not fully configured; OTP delivery will fail")

    cleanup_task = None
    if settings.OTP_CLEANUP_INTERVAL_SECONDS > 0:
        cleanup_task = asyncio.create_task(otp_cleanup_loop(settings.OTP_CLEANUP_INTERVAL_SECONDS))
    yield
    # Shutdown
    if cleanup_task:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
    logger.info(f"Shutting down {settings.APP_NAME}...")

# Initialize FastAPI
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url=("/docs" if settings.DOCS_ENABLED else None),
    redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
    openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
)

# Add custom exception handlers
app.add_exception_handler(OTPServiceError, otp_service_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)

# Add middleware
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(SecurityMiddleware)
app.add_middleware(RateLimitMiddleware)

# Add CORS middleware
app.add_middleware(
    PreflightCORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=False,
    allow_methods=settings.allowed_methods_list,
    allow_headers=settings.allowed_headers_list,
)

app.include_router(otp_router.router)


@app.get("/health", response_model=HealthResponse)
def health():
    database = "ok"
    if not getattr(app.state, "db_init_ok", True):
        database = f"init failed: {app.state.db_init_error}"
    else:
        try:
            with Session(engine) as session:
                session.connection().execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Health check database error: {e}")
            database = "unavailable"
    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        version=settings.APP_VERSION,
        database=database,
        sms_configured=settings.twilio_configured,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT)
