# storefront/main.py
# Storefront API - catalog, media, checkout
from __future__ import annotations
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from storefront.settings import settings
from storefront.database import init_db, close_db, check_db_health

from storefront.routers.auth import router as auth_router
from storefront.routers.categories import router as categories_router
from storefront.routers.products import router as products_router
from storefront.routers.proxy import router as proxy_router
from storefront.routers.checkout import router as checkout_router
from storefront.routers.orders import router as orders_router
from storefront.routers.users import router as users_router

# ---------------------------------------------------------
# Logging setup
# ---------------------------------------------------------
from storefront.logging_setup import setup_logging
setup_logging(settings)

logger = logging.getLogger("storefront")

# ---------------------------------------------------------
# Lifespan: Database init/cleanup
# ---------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db(create_tables=True)
    logger.info("Database initialized")
    yield
    await close_db()
    logger.info("Database connections closed")

# ---------------------------------------------------------
# FastAPI app + CORS + /uploads static
# ---------------------------------------------------------
app = FastAPI(
    title="Storefront API",
    version="1.0.0",
    description="Product catalog, media serving and Stripe checkout",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Original-Format"],
)

settings.uploads_root.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(settings.uploads_root)), name="uploads")


@app.middleware("http")
async def log_api_requests(request: Request, call_next):
    if not request.url.path.startswith("/api"):
        return await call_next(request)
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s %s in %.0fms",
        request.method, request.url.path, response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal Server Error"})


app.include_router(auth_router)
app.include_router(categories_router)
app.include_router(products_router)
app.include_router(proxy_router)
app.include_router(checkout_router)
app.include_router(orders_router)
app.include_router(users_router)

# ---------------------------------------------------------
# Endpoints
# ---------------------------------------------------------
@app.get("/health")
async def health():
    """Health check endpoint with database status."""
    result = {"status": "ok", "version": app.version}
    db_health = await check_db_health()
    result["database"] = db_health
    if db_health.get("status") != "healthy":
        result["status"] = "degraded"
    return result
