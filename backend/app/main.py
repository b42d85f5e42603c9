"""
Grocery POS - Backend API
Transaction settlement engine for grocery checkouts
"""
import logging
import time
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

from app.core.config import settings
from app.core.database import get_db_connection_dict_with_retry, CONNECTION_TIMEOUT
from app.core.errors import PosError

# Import API routers
from app.api import transactions, inventory, loyalty, coupons

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Crear aplicación FastAPI
app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
    debug=settings.API_DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)


@app.exception_handler(PosError)
async def pos_error_handler(request: Request, exc: PosError):
    """Typed engine errors carry their own status code and actionable details"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", **exc.to_dict()},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"status": "error", "error": "InternalServerError", "message": "Internal server error"}
    if settings.API_DEBUG:
        content["details"] = {"exception": f"{type(exc).__name__}: {exc}"}
    return JSONResponse(status_code=500, content=content)


# Include API routers
app.include_router(transactions.router, prefix="/api/v1/transactions", tags=["Transactions"])
app.include_router(inventory.router, prefix="/api/v1/inventory", tags=["Inventory"])
app.include_router(loyalty.router, prefix="/api/v1/loyalty", tags=["Loyalty"])
app.include_router(coupons.router, prefix="/api/v1/coupons", tags=["Coupons"])


@app.get("/")
async def root():
    """Root endpoint - API status"""
    return {
        "message": settings.API_TITLE,
        "status": "online",
        "version": settings.API_VERSION,
    }


@app.get("/health")
def health():
    """Health check endpoint - tests database connectivity when using PostgreSQL"""
    start_time = time.time()

    if settings.STORAGE_BACKEND == "memory":
        return {
            "status": "healthy",
            "service": "grocery-pos-api",
            "version": settings.API_VERSION,
            "storage": "memory",
        }

    db_status = "unknown"
    db_latency_ms = None
    db_error = None

    try:
        # Minimal retry (fast check)
        conn = get_db_connection_dict_with_retry(max_retries=1, retry_delay=0.5)
        cursor = conn.cursor()

        db_start = time.time()
        cursor.execute("SELECT 1")
        cursor.fetchone()
        db_latency_ms = round((time.time() - db_start) * 1000, 2)

        cursor.close()
        conn.close()
        db_status = "connected"
    except Exception as e:
        db_status = "disconnected"
        db_error = str(e) if settings.API_DEBUG else type(e).__name__

    total_latency_ms = round((time.time() - start_time) * 1000, 2)

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "service": "grocery-pos-api",
        "version": settings.API_VERSION,
        "storage": "postgres",
        "database": {
            "status": db_status,
            "latency_ms": db_latency_ms,
            "error": db_error,
            "connection_timeout_s": CONNECTION_TIMEOUT
        },
        "total_latency_ms": total_latency_ms
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.API_DEBUG)
