"""
HealthChain Records - Patient/Doctor Records Service

Registration, appointment booking and prescriptions kept in a relational
store, with a parallel record on a smart-contract ledger:

- JWT Authentication
- Role-based access (patient / doctor / admin)
- Audit logging
- Commitment-backed anonymous prescriptions
- PostgreSQL/SQLite database support
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from healthchain.config import settings
from healthchain.database.connection import db_manager
from healthchain.api import (
    auth, users, doctors, patients, appointments, prescriptions,
    anonymous_prescriptions, access_requests, tokens, admin
)
from healthchain.services.blockchain_service import (
    BlockchainService, BlockchainError, get_blockchain_service
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database on startup, release it on shutdown"""
    logger.info(f"Starting {settings.APP_NAME} {settings.VERSION}...")

    db_manager.init_database()
    logger.info("Database initialized (PostgreSQL/SQLite)")

    if settings.BLOCKCHAIN_ENABLED:
        logger.info(f"Ledger integration enabled via {settings.RPC_URL}")
    else:
        logger.info("Ledger integration disabled; records are kept in the database only")

    logger.info("API documentation available at /api/docs")

    yield

    db_manager.close()
    logger.info("Database connections closed")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Healthcare records with a blockchain-backed mirror:

    * **Accounts** - Signup, login and role-based dashboards
    * **Profiles** - Patient and doctor registration
    * **Appointments** - Booking with overlap detection
    * **Prescriptions** - Issued in the database and on the ledger
    * **Anonymous Prescriptions** - Hash commitments with ownership proofs
    * **Tokens** - HealthToken purchases and doctor fee payments
    * **Audit & Compliance** - Complete audit trail
    """,
    version=settings.VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
for module in (
    auth, users, doctors, patients, appointments, prescriptions,
    anonymous_prescriptions, access_requests, tokens, admin
):
    app.include_router(module.router, prefix="/api")


@app.exception_handler(BlockchainError)
async def blockchain_exception_handler(request: Request, exc: BlockchainError) -> JSONResponse:
    """Ledger-only operations that fail answer 502"""
    logger.error(f"Ledger error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"status": "error", "message": "Blockchain operation failed", "detail": str(exc)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error"},
    )


@app.get("/health")
def health_check(chain: Optional[BlockchainService] = Depends(get_blockchain_service)):
    """Health check endpoint"""
    database = "ok"
    try:
        with db_manager.session_scope() as db:
            db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "error"

    if chain is None:
        ledger = "disabled"
    else:
        ledger = "ok" if chain.is_connected() else "unreachable"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "version": settings.VERSION,
        "services": {
            "database": database,
            "ledger": ledger,
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
