import os
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from b2b_commerce.api.health import router as health_router
from b2b_commerce.api.routes_cart import router as cart_router
from b2b_commerce.api.routes_catalogue import router as catalogue_router
from b2b_commerce.api.routes_client import router as client_router
from b2b_commerce.api.routes_order import router as order_router
from b2b_commerce.config import settings
from b2b_commerce.db import SessionLocal, init_db, load_models
from b2b_commerce.errors import ServiceError
from b2b_commerce.repositories.cart_repo import CartRepository
from b2b_commerce.utils.logging import get_logger
from b2b_commerce.utils.transactions import unit_of_work

log = get_logger(__name__)

load_models()


def expire_carts_job():
    """Mark active carts past expires_at as abandoned."""
    db = SessionLocal()
    try:
        with unit_of_work(db):
            ids = CartRepository(db).expire_overdue()
        if ids:
            log.info("expired %d carts: %s", len(ids), ids)
    except ServiceError as e:
        log.error("cart expiry sweep failed: %s", e)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # RESET_DB=1 drops and recreates the schema (CI, demos)
    init_db(reset=os.environ.get("RESET_DB", "0") in ("1", "true", "True"))

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        expire_carts_job,
        "interval",
        seconds=settings.CART_EXPIRY_SWEEP_SECONDS,
        id="expire_carts",
    )
    scheduler.start()

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)


app = FastAPI(title="B2B Commerce - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        details.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(catalogue_router, prefix="/api/products", tags=["catalogue"])

app.include_router(cart_router, tags=["cart"])

app.include_router(order_router, prefix="/api/orders", tags=["orders"])

app.include_router(client_router, prefix="/api/clients", tags=["clients"])
