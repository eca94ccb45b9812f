from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

from retailpos import __version__
from retailpos.core.config import settings
from retailpos.core.exceptions import POSError, LedgerWriteFailure
from retailpos.database.database import init_db

# Import middleware
from retailpos.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Import routers
from retailpos.modules.products.router import product_router
from retailpos.modules.inventory.router import movements_router, stock_router
from retailpos.modules.returns.router import returns_router
from retailpos.modules.discounts.router import discounts_router, coupons_router
from retailpos.modules.orders.router import pos_router, orders_router

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="RetailPOS API",
    description="Point of sale order composition and ledger-backed inventory",
    version=__version__,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(POSError)
async def pos_error_handler(request: Request, exc: POSError):
    if isinstance(exc, LedgerWriteFailure):
        logger.error(f"Ledger write failure for order {exc.order_id} on {request.url.path}")
    else:
        logger.info(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(product_router)
app.include_router(movements_router)
app.include_router(stock_router)
app.include_router(returns_router)
app.include_router(discounts_router)
app.include_router(coupons_router)
app.include_router(pos_router)
app.include_router(orders_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    init_db()


@app.get("/")
async def read_root():
    return {
        "message": "RetailPOS API is running",
        "version": __version__,
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("RetailPOS API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
